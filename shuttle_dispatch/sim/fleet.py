from __future__ import annotations

"""
File: shuttle_dispatch/sim/fleet.py
Purpose: Dispatcher control over vehicle availability.
Key responsibilities:
- Move idle vehicles between offline, available and maintenance.
- Unassign the driver of an idle vehicle.
- Leave in-use vehicles to the ride lifecycle.
"""

import logging

from shuttle_dispatch import events
from shuttle_dispatch.errors import InvalidTransition, ValidationError
from shuttle_dispatch.sim.entities import Vehicle

logger = logging.getLogger("shuttle-fleet")

DISPATCHER_STATUSES = {"offline", "available", "maintenance"}


class FleetDesk:
    def __init__(self, store, notifier: events.EventNotifier, clock) -> None:
        self.store = store
        self.notifier = notifier
        self.clock = clock

    async def set_status(self, vehicle: Vehicle, status: str) -> Vehicle:
        """Flip an idle vehicle's status; going offline also clears its driver."""
        if status not in DISPATCHER_STATUSES:
            raise ValidationError(f"vehicle status {status} cannot be set by a dispatcher")
        fields: dict = {"status": status}
        if status == "offline":
            fields["current_driver"] = None
        return await self._update(vehicle, fields, f"set vehicle {vehicle.shuttle_number} {status}")

    async def unassign_driver(self, vehicle: Vehicle) -> Vehicle:
        return await self._update(
            vehicle,
            {"status": "available", "current_driver": None},
            f"unassign driver of vehicle {vehicle.shuttle_number}",
        )

    async def _update(self, vehicle: Vehicle, fields: dict, action: str) -> Vehicle:
        if vehicle.status == "in-use":
            raise InvalidTransition(None, action, vehicle.status, "vehicle is serving a ride")
        now = self.clock.now()
        fields = {**fields, "location_updated": now}
        record = await self.store.vehicles.update(vehicle.id, fields)
        updated = Vehicle.model_validate({**vehicle.model_dump(), **fields, **(record or {})})
        logger.info(
            "vehicle status changed vehicle=%s status=%s previous=%s driver=%s",
            vehicle.shuttle_number,
            updated.status,
            vehicle.status,
            updated.current_driver,
        )
        await self.notifier.notify(
            events.VEHICLE_STATUS_CHANGED,
            {
                "vehicle_id": vehicle.id,
                "shuttle_number": vehicle.shuttle_number,
                "status": updated.status,
                "previous_status": vehicle.status,
                "changed_at": now,
            },
        )
        return updated
