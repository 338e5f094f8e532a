from __future__ import annotations

"""
File: shuttle_dispatch/sim/orchestrator.py
Purpose: Own the fleet simulation's timers and aggregate read model.
Key responsibilities:
- start()/stop() the simulation: countdown, ride creation, assignment, motion and sync timers.
- Keep the working fleet copy the motion simulator moves between syncs.
- Force a resync after every local write so the read model catches up.
- Run an idle background sync while no simulation is active.
Key entrypoints:
- SimulationOrchestrator.start(), stop(), refresh_data(), view()
"""

from dataclasses import dataclass, replace
import asyncio
import logging
import random
from typing import Awaitable, Callable

from shuttle_dispatch import events
from shuttle_dispatch.errors import InvalidTransition, NetworkError, NoVehicleAvailable, NoVehiclesError
from shuttle_dispatch.scheduler import TaskHandle
from shuttle_dispatch.settings import Settings, settings as default_settings
from shuttle_dispatch.sim.assignment import AssignmentPolicy, AutoAssigner, RandomVehiclePolicy
from shuttle_dispatch.sim.entities import Actor, SimulationStats, SimulationView, Snapshot, Vehicle
from shuttle_dispatch.sim.geo import HUB, location_point
from shuttle_dispatch.sim.identity import random_ride_request
from shuttle_dispatch.sim.lifecycle import RideLifecycle, TransitionResult
from shuttle_dispatch.sim.metrics import compute_fleet_stats
from shuttle_dispatch.sim.motion import FleetMotionSimulator
from shuttle_dispatch.sim.ratings import RatingGenerator
from shuttle_dispatch.sim.routing import RouteTable
from shuttle_dispatch.sim.sync import DataSyncEngine

logger = logging.getLogger("shuttle-sim")

ViewListener = Callable[[SimulationView], Awaitable[None]]


@dataclass(frozen=True)
class SimulationConfig:
    """Cadences and tuning constants for one orchestrator instance."""
    duration_s: int = 3600
    countdown_interval_s: float = 1.0
    ride_creation_min_s: float = 15.0
    ride_creation_max_s: float = 30.0
    first_ride_delay_s: float = 2.0
    assignment_interval_s: float = 8.0
    motion_interval_s: float = 2.0
    sync_interval_s: float = 10.0
    idle_sync_interval_s: float = 5.0
    arrival_grace_s: float = 2.0
    sync_ride_limit: int = 200
    sync_max_retries: int = 3
    sync_backoff_base_s: float = 1.0
    access_window_s: int = 300
    speed_deg_s: float = 0.00015
    km_per_degree: float = 111.0
    hub: str = HUB

    @classmethod
    def from_settings(cls, s: Settings = default_settings) -> "SimulationConfig":
        return cls(
            duration_s=s.sim_duration_s,
            countdown_interval_s=s.countdown_interval_s,
            ride_creation_min_s=s.ride_creation_min_s,
            ride_creation_max_s=s.ride_creation_max_s,
            first_ride_delay_s=s.first_ride_delay_s,
            assignment_interval_s=s.assignment_interval_s,
            motion_interval_s=s.motion_interval_s,
            sync_interval_s=s.sync_interval_s,
            idle_sync_interval_s=s.idle_sync_interval_s,
            arrival_grace_s=s.arrival_grace_s,
            sync_ride_limit=s.sync_ride_limit,
            sync_max_retries=s.sync_max_retries,
            sync_backoff_base_s=s.sync_backoff_base_s,
            access_window_s=s.access_window_s,
            speed_deg_s=s.motion_speed_deg_s,
            km_per_degree=s.km_per_degree,
            hub=s.hub_location,
        )


class SimulationOrchestrator:
    """stopped -> running -> stopped; every piece of mutable simulation state lives here."""

    def __init__(
        self,
        store,
        scheduler,
        clock,
        actor_provider: Callable[[], Actor | None],
        notifier: events.EventNotifier | None = None,
        rng: random.Random | None = None,
        config: SimulationConfig | None = None,
        policy: AssignmentPolicy | None = None,
        rating_generator: RatingGenerator | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.scheduler = scheduler
        self.clock = clock
        self.rng = rng or random.Random()
        self.config = config or SimulationConfig()
        self.notifier = notifier or events.EventNotifier()

        self.routes = RouteTable()
        self.sync_engine = DataSyncEngine(
            store,
            clock,
            actor_provider,
            sleep=sleep,
            ride_limit=self.config.sync_ride_limit,
            max_retries=self.config.sync_max_retries,
            backoff_base_s=self.config.sync_backoff_base_s,
        )
        self.lifecycle = RideLifecycle(
            store,
            self.notifier,
            clock,
            self.routes,
            rng=self.rng,
            hub=self.config.hub,
            access_window_s=self.config.access_window_s,
        )
        self.assigner = AutoAssigner(self.lifecycle, policy or RandomVehiclePolicy(self.rng))
        self.motion = FleetMotionSimulator(
            self.routes,
            self.lifecycle,
            store,
            clock,
            scheduler,
            speed_deg_s=self.config.speed_deg_s,
            km_per_degree=self.config.km_per_degree,
            arrival_grace_s=self.config.arrival_grace_s,
            rating_generator=rating_generator or RatingGenerator(self.rng),
            on_transition=self._on_transition,
        )

        self.is_active = False
        self.time_remaining = 0
        self.stats = SimulationStats()
        self.ride_interval_s = 0.0
        self._fleet: dict[str, Vehicle] = {}
        self._handles: list[TaskHandle] = []
        self._idle_handle: TaskHandle | None = None
        self._listeners: list[ViewListener] = []
        self.sync_engine.listeners.append(self._on_snapshot)

    # ---- lifecycle -------------------------------------------------------

    async def open(self) -> None:
        """Begin idle background syncing; an initial sync runs immediately."""
        if self._idle_handle is not None:
            return
        await self._safe_sync(force=False)
        self._idle_handle = self.scheduler.every(self.config.idle_sync_interval_s, self._idle_sync_tick, name="idle-sync")

    async def close(self) -> None:
        self.stop()
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

    async def start(self) -> None:
        """Reset the fleet to available and schedule the simulation timers."""
        if self.is_active:
            logger.info("simulation already running")
            return
        records = await self.store.vehicles.list()
        if not records:
            raise NoVehiclesError("no vehicles found; add vehicles before starting the simulation")

        await self._reset_fleet([Vehicle.model_validate(r) for r in records])
        self.routes.clear()
        self.motion.cancel_pending()
        self.stats = SimulationStats()
        self.time_remaining = self.config.duration_s
        self.ride_interval_s = self.rng.uniform(self.config.ride_creation_min_s, self.config.ride_creation_max_s)
        self.is_active = True
        logger.info(
            "simulation started vehicles=%s duration_s=%s ride_interval_s=%.1f",
            len(self._fleet),
            self.time_remaining,
            self.ride_interval_s,
        )

        await self._safe_sync(force=True)

        # Registration order is firing order for timers due at the same instant:
        # assignment must run before motion within a tick.
        every = self.scheduler.every
        self._handles = [
            every(self.config.countdown_interval_s, self._countdown_tick, name="countdown"),
            every(self.ride_interval_s, self._ride_creation_tick, name="ride-creation"),
            every(self.config.assignment_interval_s, self._assignment_tick, name="assignment"),
            every(self.config.motion_interval_s, self._motion_tick, name="motion"),
            every(self.config.sync_interval_s, self._sync_tick, name="sync"),
            self.scheduler.call_later(self.config.first_ride_delay_s, self._ride_creation_tick, name="first-ride"),
        ]

    def stop(self) -> None:
        """Cancel every simulation timer and drop in-flight route legs."""
        if not self.is_active:
            return
        for handle in self._handles:
            handle.cancel()
        self._handles = []
        self.motion.cancel_pending()
        self.routes.clear()
        self.is_active = False
        logger.info(
            "simulation stopped created=%s completed=%s ratings=%s",
            self.stats.rides_created,
            self.stats.rides_completed,
            self.stats.ratings_generated,
        )

    async def refresh_data(self) -> Snapshot:
        """Force an immediate sync; NetworkError surfaces to the caller."""
        return await self.sync_engine.sync(force_update=True)

    def add_listener(self, listener: ViewListener) -> None:
        self._listeners.append(listener)

    def view(self) -> SimulationView:
        snapshot = self.sync_engine.snapshot
        vehicles = snapshot.vehicles
        if self.is_active:
            vehicles = tuple(self._fleet.get(v.id, v) for v in vehicles)
        return SimulationView(
            is_active=self.is_active,
            time_remaining=self.time_remaining,
            stats=replace(self.stats),
            vehicles=vehicles,
            rides=snapshot.rides,
            alerts=snapshot.alerts,
            drivers=snapshot.drivers,
            last_update=snapshot.last_update,
            network_error=self.sync_engine.network_error,
            is_initialized=self.sync_engine.is_initialized,
            fleet_stats=compute_fleet_stats(snapshot),
        )

    # ---- timers ----------------------------------------------------------

    async def _countdown_tick(self) -> None:
        self.time_remaining = max(0, self.time_remaining - max(1, round(self.config.countdown_interval_s)))
        if self.time_remaining <= 0:
            logger.info("simulation time elapsed")
            self.stop()

    async def _ride_creation_tick(self) -> None:
        request = random_ride_request(self.rng)
        ride = await self.lifecycle.create(request)
        self.stats.rides_created += 1
        logger.info("simulated ride created code=%s pickup=%s destination=%s", ride.ride_code, ride.pickup_location, ride.destination)
        await self._safe_sync(force=True)

    async def _assignment_tick(self) -> None:
        rides = [r for r in self.sync_engine.snapshot.rides if not self.routes.has_ride(r.id)]
        vehicles = [v for v in self._fleet.values() if v.id not in self.routes]
        try:
            result = await self.assigner.assign_next(rides, vehicles)
        except NoVehicleAvailable as exc:
            logger.info("assignment skipped: %s", exc)
            return
        except InvalidTransition as exc:
            logger.warning("assignment rejected err=%s", exc)
            return
        if result is None:
            return
        if result.vehicle is not None:
            self._fleet[result.vehicle.id] = result.vehicle
        await self._safe_sync(force=True)

    async def _motion_tick(self) -> None:
        if not self.routes:
            return
        moved = await self.motion.step(self._fleet)
        self._fleet.update(moved)

    async def _sync_tick(self) -> None:
        await self._safe_sync(force=False)

    async def _idle_sync_tick(self) -> None:
        if self.is_active:
            return
        await self._safe_sync(force=False)

    # ---- internals -------------------------------------------------------

    async def _reset_fleet(self, vehicles: list[Vehicle]) -> None:
        hub_point = location_point(self.config.hub)
        now = self.clock.now()
        self._fleet = {}
        for vehicle in vehicles:
            fields: dict = {"status": "available"}
            if vehicle.location_lat is None or vehicle.location_lng is None:
                fields.update({"location_lat": hub_point.lat, "location_lng": hub_point.lng, "location_updated": now})
            record = await self.store.vehicles.update(vehicle.id, fields)
            self._fleet[vehicle.id] = Vehicle.model_validate({**vehicle.model_dump(), **fields, **(record or {})})

    async def _on_transition(self, action: str, result: TransitionResult) -> None:
        if result.vehicle is not None and result.vehicle.id in self._fleet:
            self._fleet[result.vehicle.id] = result.vehicle
        if action == "complete":
            self.stats.rides_completed += 1
            if result.rating is not None:
                self.stats.ratings_generated += 1
        await self._safe_sync(force=True)

    async def _safe_sync(self, force: bool) -> None:
        try:
            await self.sync_engine.sync(force_update=force)
        except NetworkError as exc:
            logger.warning("sync unavailable err=%s", exc)

    async def _on_snapshot(self, snapshot: Snapshot) -> None:
        # En-route vehicles keep the simulated position; everything else follows the store.
        for vehicle in snapshot.vehicles:
            current = self._fleet.get(vehicle.id)
            if current is None:
                continue
            if vehicle.id in self.routes:
                vehicle = vehicle.model_copy(
                    update={
                        "location_lat": current.location_lat,
                        "location_lng": current.location_lng,
                        "location_updated": current.location_updated,
                    }
                )
            self._fleet[vehicle.id] = vehicle
        if not self._listeners:
            return
        current = self.view()
        for listener in list(self._listeners):
            try:
                await listener(current)
            except Exception as exc:  # noqa: BLE001
                logger.exception("view listener failed err=%s", exc)
