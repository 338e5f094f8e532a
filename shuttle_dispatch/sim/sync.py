from __future__ import annotations

"""
File: shuttle_dispatch/sim/sync.py
Purpose: Pull the rides/vehicles/alerts/drivers snapshot from the entity store.
Key responsibilities:
- At most one in-flight sync; forced refreshes bypass the guard.
- Retry the whole fetch with exponential backoff, then raise NetworkError.
- Replace the snapshot wholesale on success and notify listeners.
Key entrypoints:
- DataSyncEngine.sync()
"""

import asyncio
import logging
from typing import Awaitable, Callable

from shuttle_dispatch.errors import NetworkError, StoreError
from shuttle_dispatch.sim.entities import (
    ON_DUTY_DRIVER_STATUSES,
    Actor,
    Driver,
    EmergencyAlert,
    Ride,
    Snapshot,
    Vehicle,
)

logger = logging.getLogger("shuttle-sync")

SnapshotListener = Callable[[Snapshot], Awaitable[None]]


class DataSyncEngine:
    """Keeps a local copy of the store contents the dispatch core reads."""

    def __init__(
        self,
        store,
        clock,
        actor_provider: Callable[[], Actor | None],
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        ride_limit: int = 200,
        max_retries: int = 3,
        backoff_base_s: float = 1.0,
    ) -> None:
        self.store = store
        self.clock = clock
        self.actor_provider = actor_provider
        self.sleep = sleep
        self.ride_limit = ride_limit
        self.max_retries = max_retries
        self.backoff_base_s = backoff_base_s

        self.snapshot = Snapshot()
        self.network_error = False
        self.is_initialized = False
        self.syncing = False
        self.fetch_cycles = 0
        self.listeners: list[SnapshotListener] = []

    def backoff_delay(self, retry_count: int) -> float:
        return (2 ** retry_count) * self.backoff_base_s

    async def sync(self, retry_count: int = 0, force_update: bool = False) -> Snapshot:
        """Refresh the snapshot; a concurrent unforced call returns the current one untouched."""
        if self.syncing and not force_update:
            logger.debug("sync already in progress, skipping")
            return self.snapshot
        if self.actor_provider() is None:
            logger.info("sync skipped: no authenticated actor")
            return self.snapshot

        # A forced refresh may overlap an in-flight sync; only the holder releases the guard.
        owns_guard = not self.syncing
        self.syncing = True
        try:
            return await self._sync_with_retry(retry_count)
        finally:
            if owns_guard:
                self.syncing = False

    async def _sync_with_retry(self, retry_count: int) -> Snapshot:
        attempt = retry_count
        while True:
            try:
                snapshot = await self._fetch()
            except StoreError as exc:
                self.network_error = True
                if attempt >= self.max_retries:
                    logger.error("sync failed after %s retries err=%s", self.max_retries, exc)
                    raise NetworkError(f"data sync failed after {self.max_retries} retries: {exc}") from exc
                delay = self.backoff_delay(attempt)
                logger.warning("sync failed, retrying in %.1fs attempt=%s/%s err=%s", delay, attempt + 1, self.max_retries, exc)
                await self.sleep(delay)
                attempt += 1
                continue

            self.snapshot = snapshot
            self.network_error = False
            self.is_initialized = True
            logger.info(
                "data synced rides=%s vehicles=%s alerts=%s drivers=%s",
                len(snapshot.rides),
                len(snapshot.vehicles),
                len(snapshot.alerts),
                len(snapshot.drivers),
            )
            await self._notify(snapshot)
            return snapshot

    async def _fetch(self) -> Snapshot:
        self.fetch_cycles += 1
        rides, vehicles, alerts, drivers = await asyncio.gather(
            self.store.rides.list(sort="-updated_date", limit=self.ride_limit),
            self.store.vehicles.list(),
            self.store.alerts.filter({"status": "active"}),
            self.store.drivers.filter({"status": {"$in": list(ON_DUTY_DRIVER_STATUSES)}}),
        )
        return Snapshot(
            rides=tuple(Ride.model_validate(r) for r in rides),
            vehicles=tuple(Vehicle.model_validate(v) for v in vehicles),
            alerts=tuple(EmergencyAlert.model_validate(a) for a in alerts),
            drivers=tuple(Driver.model_validate(d) for d in drivers),
            last_update=self.clock.now(),
        )

    async def _notify(self, snapshot: Snapshot) -> None:
        for listener in list(self.listeners):
            try:
                await listener(snapshot)
            except Exception as exc:  # noqa: BLE001
                logger.exception("snapshot listener failed err=%s", exc)
