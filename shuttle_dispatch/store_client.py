from __future__ import annotations

"""
File: shuttle_dispatch/store_client.py
Purpose: HTTP client for the platform entity store.
Key responsibilities:
- Call the store proxy with {entity, method, params} requests.
- Expose list/filter/get/create/update/delete per entity.
- Normalize transport and application failures into StoreError.
"""

import logging
from typing import Any

import httpx
from pydantic_core import to_jsonable_python

from shuttle_dispatch.errors import StoreError

logger = logging.getLogger("shuttle-store")

PROXY_PATH = "/api/proxy"


class EntityClient:
    """CRUD operations for one entity collection."""

    def __init__(self, store: StoreClient, entity: str) -> None:
        self.store = store
        self.entity = entity

    async def list(self, sort: str | None = None, limit: int | None = None) -> list[dict]:
        """List records; sort uses "-field" for descending order."""
        params: dict[str, Any] = {}
        if sort:
            params["orderBy"] = sort
        if limit is not None:
            params["limit"] = int(limit)
        return await self.store.call(self.entity, "list", params) or []

    async def filter(self, where: dict[str, Any], sort: str | None = None, limit: int | None = None) -> list[dict]:
        """Filter by exact match or {"$in": [...]} clauses."""
        params: dict[str, Any] = dict(where)
        if sort:
            params["orderBy"] = sort
        if limit is not None:
            params["limit"] = int(limit)
        return await self.store.call(self.entity, "filter", params) or []

    async def get(self, record_id: str) -> dict | None:
        return await self.store.call(self.entity, "get", {"id": record_id})

    async def create(self, fields: dict[str, Any]) -> dict:
        return await self.store.call(self.entity, "create", fields)

    async def update(self, record_id: str, fields: dict[str, Any]) -> dict:
        return await self.store.call(self.entity, "update", {"id": record_id, **fields})

    async def delete(self, record_id: str) -> None:
        await self.store.call(self.entity, "delete", {"id": record_id})


class StoreClient:
    """Async client for the entity-store proxy."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Cache-Control": "no-store"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, headers=headers, transport=transport)
        self.rides = EntityClient(self, "Ride")
        self.vehicles = EntityClient(self, "Vehicle")
        self.drivers = EntityClient(self, "Driver")
        self.alerts = EntityClient(self, "EmergencyAlert")
        self.ratings = EntityClient(self, "Rating")

    async def call(self, entity: str, method: str, params: dict[str, Any]) -> Any:
        """POST one proxy call and return its data payload."""
        body = {"entity": entity, "method": method, "params": to_jsonable_python(params)}
        try:
            resp = await self._client.post(PROXY_PATH, json=body)
        except httpx.HTTPError as exc:
            raise StoreError(entity, method, f"transport error: {exc}") from exc

        try:
            result = resp.json()
        except ValueError:
            result = {}
        if not isinstance(result, dict):
            result = {"data": result}

        if resp.is_error:
            raise StoreError(entity, method, str(result.get("error") or f"HTTP {resp.status_code}"))
        if result.get("success") is False:
            raise StoreError(entity, method, str(result.get("error") or "unknown error from proxy"))
        logger.debug("store call ok entity=%s method=%s", entity, method)
        return result.get("data")

    async def aclose(self) -> None:
        await self._client.aclose()
