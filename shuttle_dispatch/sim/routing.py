from __future__ import annotations

"""
File: shuttle_dispatch/sim/routing.py
Purpose: In-memory table of open route legs keyed by vehicle id.
"""

from typing import Iterator

from shuttle_dispatch.sim.entities import GeoPoint, RouteLeg


class RouteTable:
    """Route legs of in-flight vehicles, owned by one orchestrator instance."""

    def __init__(self) -> None:
        self._legs: dict[str, RouteLeg] = {}

    def open(
        self,
        vehicle_id: str,
        ride_id: str,
        start: GeoPoint,
        pickup: GeoPoint,
        destination: GeoPoint,
        now: float,
    ) -> RouteLeg:
        """Open (or replace) the to_pickup leg for a vehicle."""
        leg = RouteLeg(
            ride_id=ride_id,
            phase="to_pickup",
            start=start,
            pickup=pickup,
            destination=destination,
            progress=0.0,
            start_time=now,
        )
        self._legs[vehicle_id] = leg
        return leg

    def begin_destination(self, vehicle_id: str, now: float) -> RouteLeg | None:
        """Flip a vehicle's leg to to_destination and restart its progress."""
        leg = self._legs.get(vehicle_id)
        if leg is None:
            return None
        leg.phase = "to_destination"
        leg.progress = 0.0
        leg.start_time = now
        leg.completing = False
        return leg

    def discard(self, vehicle_id: str) -> RouteLeg | None:
        return self._legs.pop(vehicle_id, None)

    def get(self, vehicle_id: str) -> RouteLeg | None:
        return self._legs.get(vehicle_id)

    def vehicle_for_ride(self, ride_id: str) -> str | None:
        for vehicle_id, leg in self._legs.items():
            if leg.ride_id == ride_id:
                return vehicle_id
        return None

    def has_ride(self, ride_id: str) -> bool:
        return self.vehicle_for_ride(ride_id) is not None

    def items(self) -> Iterator[tuple[str, RouteLeg]]:
        return iter(list(self._legs.items()))

    def clear(self) -> None:
        self._legs.clear()

    def __len__(self) -> int:
        return len(self._legs)

    def __contains__(self, vehicle_id: object) -> bool:
        return vehicle_id in self._legs
