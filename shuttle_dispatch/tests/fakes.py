from __future__ import annotations

"""
File: shuttle_dispatch/tests/fakes.py
Purpose: Deterministic stand-ins for the entity store, clock, scheduler and event transport.
"""

import asyncio
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any

from shuttle_dispatch.errors import StoreError
from shuttle_dispatch.scheduler import run_guarded

START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class ManualClock:
    """now() and monotonic() advance together, only when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.start = start
        self.elapsed = 0.0

    def now(self) -> datetime:
        return self.start + timedelta(seconds=self.elapsed)

    def monotonic(self) -> float:
        return self.elapsed

    def advance(self, seconds: float) -> None:
        self.elapsed += seconds


class ManualTimer:
    def __init__(self, name: str, due: float, interval: float | None, fn, seq: int) -> None:
        self.name = name
        self.due = due
        self.interval = interval
        self.fn = fn
        self.seq = seq
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def pending(self) -> bool:
        return not self.cancelled and not self.fired


class ManualScheduler:
    """Fires due timers in (due time, registration order) as the clock is advanced."""

    def __init__(self, clock: ManualClock) -> None:
        self.clock = clock
        self.timers: list[ManualTimer] = []
        self._seq = 0

    def every(self, interval_s: float, fn, name: str) -> ManualTimer:
        return self._add(name, interval_s, interval_s, fn)

    def call_later(self, delay_s: float, fn, name: str) -> ManualTimer:
        return self._add(name, delay_s, None, fn)

    def _add(self, name: str, delay: float, interval: float | None, fn) -> ManualTimer:
        self._seq += 1
        timer = ManualTimer(name, self.clock.monotonic() + delay, interval, fn, self._seq)
        self.timers.append(timer)
        return timer

    def pending(self, name: str | None = None) -> list[ManualTimer]:
        return [t for t in self.timers if t.pending and (name is None or t.name == name)]

    async def advance(self, seconds: float) -> None:
        target = self.clock.monotonic() + seconds
        while True:
            due = [t for t in self.timers if t.pending and t.due <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            if timer.due > self.clock.monotonic():
                self.clock.advance(timer.due - self.clock.monotonic())
            if timer.interval is None:
                timer.fired = True
            else:
                timer.due += timer.interval
            await run_guarded(timer.fn, timer.name)
        if target > self.clock.monotonic():
            self.clock.advance(target - self.clock.monotonic())


def _matches(record: dict[str, Any], where: dict[str, Any]) -> bool:
    for key, expected in where.items():
        if isinstance(expected, dict) and "$in" in expected:
            if record.get(key) not in expected["$in"]:
                return False
        elif record.get(key) != expected:
            return False
    return True


def _sorted(records: list[dict[str, Any]], sort: str | None) -> list[dict[str, Any]]:
    if not sort:
        return records
    field = sort.lstrip("-")
    ordered = sorted(records, key=lambda r: (r.get(field) is not None, r.get(field) or 0))
    if sort.startswith("-"):
        ordered.reverse()
    return ordered


class InMemoryEntity:
    """One entity collection with the store's list/filter/get/create/update/delete semantics."""

    def __init__(self, store: InMemoryStore, name: str, prefix: str) -> None:
        self.store = store
        self.name = name
        self.prefix = prefix
        self.records: dict[str, dict[str, Any]] = {}
        self.calls: Counter[str] = Counter()
        self._next_id = 0

    async def _enter(self, method: str) -> None:
        self.calls[method] += 1
        if self.store.gate is not None and (not self.store.gated or (self.name, method) in self.store.gated):
            await self.store.gate.wait()
        if self.store.offline or (self.name, method) in self.store.failing:
            raise StoreError(self.name, method, "injected failure")

    def seed(self, **fields: Any) -> dict[str, Any]:
        """Insert a record synchronously, bypassing call counters."""
        self._next_id += 1
        record_id = fields.pop("id", f"{self.prefix}-{self._next_id}")
        now = self.store.clock.now()
        record = {"created_date": now, "updated_date": now, **fields, "id": record_id}
        self.records[record_id] = record
        return dict(record)

    def all(self) -> list[dict[str, Any]]:
        return [dict(r) for r in self.records.values()]

    async def list(self, sort: str | None = None, limit: int | None = None) -> list[dict]:
        await self._enter("list")
        rows = _sorted([dict(r) for r in self.records.values()], sort)
        return rows[:limit] if limit is not None else rows

    async def filter(self, where: dict[str, Any], sort: str | None = None, limit: int | None = None) -> list[dict]:
        await self._enter("filter")
        rows = _sorted([dict(r) for r in self.records.values() if _matches(r, where)], sort)
        return rows[:limit] if limit is not None else rows

    async def get(self, record_id: str) -> dict | None:
        await self._enter("get")
        record = self.records.get(record_id)
        return dict(record) if record is not None else None

    async def create(self, fields: dict[str, Any]) -> dict:
        await self._enter("create")
        return self.seed(**dict(fields))

    async def update(self, record_id: str, fields: dict[str, Any]) -> dict:
        await self._enter("update")
        if record_id not in self.records:
            raise StoreError(self.name, "update", f"{record_id} not found")
        record = self.records[record_id]
        record.update(fields)
        record["updated_date"] = self.store.clock.now()
        return dict(record)

    async def delete(self, record_id: str) -> None:
        await self._enter("delete")
        self.records.pop(record_id, None)


class InMemoryStore:
    """Entity store double with call counters and failure injection."""

    def __init__(self, clock: ManualClock) -> None:
        self.clock = clock
        self.offline = False
        self.failing: set[tuple[str, str]] = set()
        self.gate: asyncio.Event | None = None
        self.gated: set[tuple[str, str]] = set()
        self.rides = InMemoryEntity(self, "Ride", "ride")
        self.vehicles = InMemoryEntity(self, "Vehicle", "veh")
        self.drivers = InMemoryEntity(self, "Driver", "drv")
        self.alerts = InMemoryEntity(self, "EmergencyAlert", "alert")
        self.ratings = InMemoryEntity(self, "Rating", "rating")


class RecordingTransport:
    """Event transport that keeps every delivered event."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, dict[str, Any]]] = []

    async def start(self) -> None:
        return None

    async def send(self, event: str, data: dict[str, Any]) -> None:
        self.sent.append((event, data))

    async def close(self) -> None:
        return None

    def names(self) -> list[str]:
        return [event for event, _ in self.sent]


class RecordingSleep:
    """Injectable sleep that records delays and returns immediately."""

    def __init__(self, on_sleep=None) -> None:
        self.delays: list[float] = []
        self.on_sleep = on_sleep

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.on_sleep is not None:
            self.on_sleep(len(self.delays))

def seed_vehicle(store, shuttle_number="V1", status="available", lat=29.7074, lng=-95.3981, **extra):
    return store.vehicles.seed(
        shuttle_number=shuttle_number,
        status=status,
        current_driver=extra.pop("current_driver", f"driver-{shuttle_number}"),
        location_lat=lat,
        location_lng=lng,
        capacity=extra.pop("capacity", 8),
        **extra,
    )


def seed_ride(store, pickup="hotel-lobby", destination="museum-fine-arts", status="pending", **extra):
    fields = {
        "ride_code": extra.pop("ride_code", "ABC123"),
        "public_access_token": extra.pop("public_access_token", "token-1"),
        "guest_name": "Jane Guest",
        "guest_room": "412",
        "guest_phone": "+15551234567",
        "pickup_location": pickup,
        "destination": destination,
        "priority": "normal",
        "status": status,
        "pending_timestamp": extra.pop("pending_timestamp", store.clock.now()),
    }
    fields.update(extra)
    return store.rides.seed(**fields)
