from __future__ import annotations

"""
File: shuttle_dispatch/events.py
Purpose: Fire-and-forget lifecycle notifications for the webhook dispatcher.
Key responsibilities:
- Name the events emitted after each transition.
- Deliver over AMQP (aio-pika) or HTTP (httpx), never failing the caller.
"""

from datetime import datetime, timezone
import hashlib
import json
import logging
from typing import Any

import aio_pika
from aio_pika import ExchangeType
import httpx
from pydantic_core import to_jsonable_python

from shuttle_dispatch.errors import WebhookDeliveryError

logger = logging.getLogger("shuttle-events")

RIDE_CREATED = "ride.created"
RIDE_ASSIGNED = "ride.assigned"
RIDE_IN_PROGRESS = "ride.in_progress"
RIDE_COMPLETED = "ride.completed"
RIDE_CANCELLED = "ride.cancelled"
VEHICLE_STATUS_CHANGED = "vehicle.status_changed"
ALERT_CREATED = "alert.created"
ALERT_RESOLVED = "alert.resolved"
RATING_SUBMITTED = "rating.submitted"


def _event_id(event: str, data: dict[str, Any], ts_utc: str) -> str:
    entity_id = data.get("ride_id") or data.get("alert_id") or data.get("vehicle_id") or data.get("rating_id") or ""
    raw = f"{event}:{entity_id}:{ts_utc}"
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


class AmqpEventTransport:
    """Publish events to the shuttle topic exchange; consumers bind their own queues."""

    def __init__(self, rabbit_url: str, exchange_name: str) -> None:
        self.rabbit_url = rabbit_url
        self.exchange_name = exchange_name
        self.connection: aio_pika.abc.AbstractRobustConnection | None = None
        self.exchange: aio_pika.abc.AbstractExchange | None = None

    async def start(self) -> None:
        self.connection = await aio_pika.connect_robust(self.rabbit_url)
        channel = await self.connection.channel()
        self.exchange = await channel.declare_exchange(self.exchange_name, ExchangeType.TOPIC, durable=True)
        logger.info("amqp event transport ready exchange=%s", self.exchange_name)

    async def send(self, event: str, data: dict[str, Any]) -> None:
        if self.exchange is None:
            raise WebhookDeliveryError("amqp transport not started")
        ts_utc = datetime.now(timezone.utc).isoformat()
        envelope = {
            "event_id": _event_id(event, data, ts_utc),
            "event_type": event,
            "data": to_jsonable_python(data),
            "ts_utc": ts_utc,
        }
        message = aio_pika.Message(
            body=json.dumps(envelope, separators=(",", ":"), sort_keys=True).encode("utf-8"),
            content_type="application/json",
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            message_id=envelope["event_id"],
        )
        try:
            await self.exchange.publish(message, routing_key=event)
        except Exception as exc:  # noqa: BLE001
            raise WebhookDeliveryError(f"publish {event} failed: {exc}") from exc

    async def close(self) -> None:
        if self.connection is not None:
            await self.connection.close()
            self.connection = None
            self.exchange = None


class HttpWebhookTransport:
    """Hand events to the platform's webhook trigger function."""

    def __init__(
        self,
        url: str,
        internal_key: str = "",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.internal_key = internal_key
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def start(self) -> None:
        return None

    async def send(self, event: str, data: dict[str, Any]) -> None:
        payload = {
            "action": "trigger",
            "event": event,
            "data": to_jsonable_python(data),
            "internal_key": self.internal_key or None,
        }
        try:
            resp = await self._client.post(self.url, json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise WebhookDeliveryError(f"webhook trigger {event} failed: {exc}") from exc

    async def close(self) -> None:
        await self._client.aclose()


class EventNotifier:
    """Emit lifecycle events; delivery problems are logged and swallowed."""

    def __init__(self, transport=None) -> None:
        self.transport = transport

    async def notify(self, event: str, data: dict[str, Any]) -> None:
        if self.transport is None:
            logger.debug("event dropped (no transport) event=%s", event)
            return
        try:
            await self.transport.send(event, data)
        except WebhookDeliveryError as exc:
            logger.warning("event delivery failed event=%s err=%s", event, exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception("event delivery error event=%s err=%s", event, exc)
