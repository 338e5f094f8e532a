from __future__ import annotations

"""
File: shuttle_dispatch/sim/assignment.py
Purpose: Auto-assignment of pending rides to available vehicles.
Key responsibilities:
- Order pending rides oldest-first.
- Select a vehicle through a pluggable policy (random or nearest).
- Assign at most one ride per pass.
"""

from datetime import datetime, timezone
import logging
import random
from typing import Sequence

from shuttle_dispatch.errors import NoVehicleAvailable
from shuttle_dispatch.sim.entities import Ride, Vehicle
from shuttle_dispatch.sim.geo import haversine_km, location_point
from shuttle_dispatch.sim.lifecycle import RideLifecycle, TransitionResult, vehicle_position

logger = logging.getLogger("shuttle-assignment")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _pending_key(ride: Ride) -> tuple:
    stamp = ride.pending_timestamp or ride.created_date
    # Rides without any timestamp sort last.
    return (stamp is None, stamp or _EPOCH, ride.id)


def pending_oldest_first(rides: Sequence[Ride]) -> list[Ride]:
    """Return pending rides ordered by pending_timestamp, oldest first."""
    return sorted((r for r in rides if r.status == "pending"), key=_pending_key)


def available_vehicles(vehicles: Sequence[Vehicle]) -> list[Vehicle]:
    return [v for v in vehicles if v.status == "available"]


class AssignmentPolicy:
    """Chooses a vehicle for a pending ride; None when nothing qualifies."""

    def select_vehicle(self, ride: Ride, vehicles: Sequence[Vehicle]) -> Vehicle | None:
        raise NotImplementedError


class RandomVehiclePolicy(AssignmentPolicy):
    """Uniform random pick among available vehicles."""

    def __init__(self, rng: random.Random) -> None:
        self.rng = rng

    def select_vehicle(self, ride: Ride, vehicles: Sequence[Vehicle]) -> Vehicle | None:
        if not vehicles:
            return None
        return self.rng.choice(list(vehicles))


class NearestVehiclePolicy(AssignmentPolicy):
    """Closest vehicle to the pickup point by great-circle distance."""

    def select_vehicle(self, ride: Ride, vehicles: Sequence[Vehicle]) -> Vehicle | None:
        pickup = location_point(ride.pickup_location)
        best_vehicle = None
        best_distance = float("inf")
        for vehicle in sorted(vehicles, key=lambda v: v.shuttle_number):
            d = haversine_km(vehicle_position(vehicle), pickup)
            if d < best_distance:
                best_distance = d
                best_vehicle = vehicle
        return best_vehicle


class AutoAssigner:
    """Greedy single-ride-per-pass dispatcher."""

    def __init__(self, lifecycle: RideLifecycle, policy: AssignmentPolicy) -> None:
        self.lifecycle = lifecycle
        self.policy = policy

    async def assign_next(self, rides: Sequence[Ride], vehicles: Sequence[Vehicle]) -> TransitionResult | None:
        """Assign the oldest pending ride; no-op when there is nothing to assign."""
        pending = pending_oldest_first(rides)
        if not pending:
            return None
        candidates = available_vehicles(vehicles)
        if not candidates:
            raise NoVehicleAvailable(f"{len(pending)} pending ride(s), no available vehicles")

        ride = pending[0]
        vehicle = self.policy.select_vehicle(ride, candidates)
        if vehicle is None:
            raise NoVehicleAvailable(f"no vehicle qualifies for ride {ride.ride_code}")
        logger.info("auto-assign ride_id=%s code=%s vehicle=%s pending=%s", ride.id, ride.ride_code, vehicle.shuttle_number, len(pending))
        return await self.lifecycle.assign(ride, vehicle)
