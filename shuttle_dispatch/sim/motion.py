from __future__ import annotations

"""
File: shuttle_dispatch/sim/motion.py
Purpose: Vehicle motion along open route legs.
Key responsibilities:
- Derive leg progress from elapsed time and great-circle distance.
- Interpolate and persist vehicle positions each tick (best effort).
- Hand arrivals to the lifecycle: pickup starts the ride, destination completes it after a grace delay.
Key entrypoints:
- FleetMotionSimulator.step()
"""

import asyncio
import logging
from typing import Awaitable, Callable, Mapping

from shuttle_dispatch.errors import InvalidTransition
from shuttle_dispatch.scheduler import TaskHandle
from shuttle_dispatch.sim.entities import TERMINAL_RIDE_STATUSES, RouteLeg, Ride, Vehicle
from shuttle_dispatch.sim.geo import haversine_km, interpolate
from shuttle_dispatch.sim.lifecycle import RideLifecycle, TransitionResult
from shuttle_dispatch.sim.ratings import RatingGenerator
from shuttle_dispatch.sim.routing import RouteTable

logger = logging.getLogger("shuttle-motion")

TransitionHook = Callable[[str, TransitionResult], Awaitable[None]]


class FleetMotionSimulator:
    """Moves en-route vehicles and drives pickup/drop-off transitions."""

    def __init__(
        self,
        routes: RouteTable,
        lifecycle: RideLifecycle,
        store,
        clock,
        scheduler,
        speed_deg_s: float = 0.00015,
        km_per_degree: float = 111.0,
        arrival_grace_s: float = 2.0,
        rating_generator: RatingGenerator | None = None,
        on_transition: TransitionHook | None = None,
    ) -> None:
        self.routes = routes
        self.lifecycle = lifecycle
        self.store = store
        self.clock = clock
        self.scheduler = scheduler
        self.speed_deg_s = speed_deg_s
        self.km_per_degree = km_per_degree
        self.arrival_grace_s = arrival_grace_s
        self.rating_generator = rating_generator
        self.on_transition = on_transition
        self.completions: dict[str, TaskHandle] = {}

    def estimated_leg_seconds(self, leg: RouteLeg) -> float:
        distance_km = haversine_km(leg.origin(), leg.target())
        return distance_km / (self.speed_deg_s * self.km_per_degree)

    def leg_progress(self, leg: RouteLeg, now: float) -> float:
        """Fraction of the active phase covered, clamped to [0, 1]."""
        estimated_s = self.estimated_leg_seconds(leg)
        if estimated_s <= 0:
            return 1.0
        elapsed = max(0.0, now - leg.start_time)
        return min(elapsed / estimated_s, 1.0)

    async def step(self, vehicles: Mapping[str, Vehicle]) -> dict[str, Vehicle]:
        """Advance every vehicle with an open leg; return their moved records."""
        now = self.clock.monotonic()
        stamp = self.clock.now()
        moved: dict[str, Vehicle] = {}
        writes = []
        arrivals: list[tuple[str, RouteLeg]] = []

        for vehicle_id, leg in self.routes.items():
            vehicle = vehicles.get(vehicle_id)
            if vehicle is None:
                logger.debug("leg without tracked vehicle vehicle_id=%s ride_id=%s", vehicle_id, leg.ride_id)
                continue
            leg.progress = self.leg_progress(leg, now)
            position = interpolate(leg.origin(), leg.target(), leg.progress)
            fields = {"location_lat": position.lat, "location_lng": position.lng, "location_updated": stamp}
            moved[vehicle_id] = vehicle.model_copy(update=fields)
            writes.append(self._persist_position(vehicle, fields))
            if leg.progress >= 1.0 and not leg.completing:
                arrivals.append((vehicle_id, leg))

        await asyncio.gather(*writes)

        for vehicle_id, leg in arrivals:
            if leg.phase == "to_pickup":
                await self._arrive_at_pickup(vehicle_id, leg)
            else:
                self._schedule_completion(vehicle_id, leg)
        return moved

    def cancel_pending(self) -> None:
        """Drop scheduled drop-off completions."""
        for handle in self.completions.values():
            handle.cancel()
        self.completions.clear()

    async def _persist_position(self, vehicle: Vehicle, fields: dict) -> None:
        # A lost position write is overwritten by the next tick.
        try:
            await self.store.vehicles.update(vehicle.id, fields)
        except Exception as exc:  # noqa: BLE001
            logger.warning("position update failed vehicle=%s err=%s", vehicle.shuttle_number, exc)

    async def _load_ride(self, ride_id: str) -> Ride | None:
        record = await self.store.rides.get(ride_id)
        if not record:
            return None
        return Ride.model_validate(record)

    async def _arrive_at_pickup(self, vehicle_id: str, leg: RouteLeg) -> None:
        ride = await self._load_ride(leg.ride_id)
        if ride is None or ride.status in TERMINAL_RIDE_STATUSES:
            logger.info("dropping leg for inactive ride vehicle_id=%s ride_id=%s", vehicle_id, leg.ride_id)
            self.routes.discard(vehicle_id)
            return
        if ride.status == "in-progress":
            self.routes.begin_destination(vehicle_id, self.clock.monotonic())
            return
        try:
            result = await self.lifecycle.start(ride)
        except InvalidTransition as exc:
            logger.warning("pickup transition rejected vehicle_id=%s err=%s", vehicle_id, exc)
            self.routes.discard(vehicle_id)
            return
        await self._emit("start", result)

    def _schedule_completion(self, vehicle_id: str, leg: RouteLeg) -> None:
        leg.completing = True
        ride_id = leg.ride_id

        async def _complete() -> None:
            await self._complete(vehicle_id, ride_id)

        self.completions[vehicle_id] = self.scheduler.call_later(
            self.arrival_grace_s, _complete, name=f"complete:{ride_id}"
        )

    async def _complete(self, vehicle_id: str, ride_id: str) -> None:
        self.completions.pop(vehicle_id, None)
        leg = self.routes.get(vehicle_id)
        if leg is None or leg.ride_id != ride_id:
            return
        try:
            ride = await self._load_ride(ride_id)
            if ride is None:
                self.routes.discard(vehicle_id)
                return
            if ride.status == "completed":
                result = await self.lifecycle.finish_completion(ride, rating_generator=self.rating_generator)
            else:
                result = await self.lifecycle.complete(ride, rating_generator=self.rating_generator)
        except InvalidTransition as exc:
            logger.warning("drop-off transition rejected vehicle_id=%s err=%s", vehicle_id, exc)
            self.routes.discard(vehicle_id)
            return
        except Exception:
            # The leg is still open; the next tick schedules another attempt.
            leg.completing = False
            raise
        await self._emit("complete", result)

    async def _emit(self, action: str, result: TransitionResult) -> None:
        if self.on_transition is not None:
            await self.on_transition(action, result)
