from __future__ import annotations

"""
File: shuttle_dispatch/ws.py
Purpose: WebSocket connection manager for pushing the read model to UI clients.
"""

import asyncio
import json
import logging

from fastapi import WebSocket

logger = logging.getLogger("shuttle-api")


class WSManager:
    """Track dashboard sockets and broadcast simulation updates."""
    def __init__(self) -> None:
        self.clients: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self.clients.add(websocket)
        logger.info("ws client connected clients=%s", len(self.clients))

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self.clients.discard(websocket)

    async def broadcast(self, event_type: str, payload: dict) -> None:
        """Send {"event_type", "data"} to every client, dropping sockets that fail."""
        data = json.dumps({"event_type": event_type, "data": payload}, separators=(",", ":"), sort_keys=True, default=str)
        stale: list[WebSocket] = []
        async with self._lock:
            clients = list(self.clients)
        for client in clients:
            try:
                await client.send_text(data)
            except Exception:  # noqa: BLE001
                stale.append(client)
        if stale:
            async with self._lock:
                for client in stale:
                    self.clients.discard(client)
            logger.info("ws clients dropped count=%s", len(stale))
