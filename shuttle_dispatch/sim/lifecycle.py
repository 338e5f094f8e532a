from __future__ import annotations

"""
File: shuttle_dispatch/sim/lifecycle.py
Purpose: Ride lifecycle state machine and its side effects.
Key responsibilities:
- Validate and create rides in the pending state.
- Apply assign / start / complete / cancel transitions with precondition guards.
- Flip vehicle status, open/advance/discard route legs, persist ratings.
- Emit lifecycle events after each transition.
Key entrypoints:
- validate_ride_request()
- RideLifecycle.create(), assign(), start(), complete(), finish_completion(), cancel()
"""

from dataclasses import dataclass
from datetime import timedelta
import logging
import random
from typing import Any

from shuttle_dispatch import events
from shuttle_dispatch.errors import InvalidTransition, ValidationError
from shuttle_dispatch.sim.entities import GeoPoint, Rating, Ride, Vehicle
from shuttle_dispatch.sim.geo import HUB, HUB_POINT, LOCATIONS, location_point
from shuttle_dispatch.sim.identity import generate_access_token, generate_ride_code
from shuttle_dispatch.sim.ratings import RatingGenerator
from shuttle_dispatch.sim.routing import RouteTable

logger = logging.getLogger("shuttle-lifecycle")

REQUEST_FIELDS = ("guest_name", "guest_room", "guest_phone", "special_requests")


@dataclass
class TransitionResult:
    """Outcome of a lifecycle transition."""
    ride: Ride
    vehicle: Vehicle | None = None
    rating: Rating | None = None


def validate_ride_request(request: dict[str, Any], hub: str = HUB) -> None:
    """Raise ValidationError unless pickup/destination satisfy the routing rules."""
    pickup = request.get("pickup_location") or ""
    destination = request.get("destination") or ""
    if not pickup or not destination:
        raise ValidationError("pickup_location and destination are required")
    for location_id in (pickup, destination):
        if location_id not in LOCATIONS:
            raise ValidationError(f"unknown location: {location_id}")
    if pickup == destination:
        raise ValidationError("pickup and destination cannot be the same location")
    if pickup != hub and destination != hub:
        raise ValidationError(f"rides from {pickup} must return to {hub}")
    if request.get("priority", "normal") not in {"normal", "high"}:
        raise ValidationError(f"invalid priority: {request.get('priority')}")


def vehicle_position(vehicle: Vehicle) -> GeoPoint:
    """Current vehicle position, defaulting to the hub when unknown."""
    if vehicle.location_lat is None or vehicle.location_lng is None:
        return HUB_POINT
    return GeoPoint(lat=vehicle.location_lat, lng=vehicle.location_lng)


def _merge(model, fields: dict[str, Any], record: Any):
    """Return the model with a write applied, preferring the store's echo."""
    data = model.model_dump()
    data.update(fields)
    if isinstance(record, dict):
        data.update(record)
    return type(model).model_validate(data)


def _ride_event(ride: Ride, **extra: Any) -> dict[str, Any]:
    data = {
        "ride_id": ride.id,
        "ride_code": ride.ride_code,
        "guest_name": ride.guest_name,
        "assigned_driver": ride.assigned_driver,
        "vehicle_number": ride.vehicle_number,
        "pickup_location": ride.pickup_location,
        "destination": ride.destination,
        "status": ride.status,
    }
    data.update(extra)
    return data


class RideLifecycle:
    """pending -> assigned -> in-progress -> completed, with cancel from pending/assigned."""

    def __init__(
        self,
        store,
        notifier: events.EventNotifier,
        clock,
        routes: RouteTable,
        rng: random.Random | None = None,
        hub: str = HUB,
        access_window_s: int = 300,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.clock = clock
        self.routes = routes
        self.rng = rng or random.Random()
        self.hub = hub
        self.access_window_s = access_window_s

    async def create(self, request: dict[str, Any]) -> Ride:
        """Validate a guest/dispatcher request and persist it as a pending ride."""
        validate_ride_request(request, hub=self.hub)
        now = self.clock.now()
        fields: dict[str, Any] = {name: str(request.get(name) or "") for name in REQUEST_FIELDS}
        fields.update(
            {
                "pickup_location": request["pickup_location"],
                "destination": request["destination"],
                "priority": request.get("priority", "normal"),
                "status": "pending",
                "ride_code": generate_ride_code(self.rng),
                "public_access_token": generate_access_token(),
                "pending_timestamp": now,
                "sms_consent_status": "none",
            }
        )
        record = await self.store.rides.create(fields)
        ride = Ride.model_validate({**fields, **(record or {})})
        logger.info("ride created ride_id=%s code=%s pickup=%s destination=%s", ride.id, ride.ride_code, ride.pickup_location, ride.destination)
        await self.notifier.notify(events.RIDE_CREATED, _ride_event(ride, created_at=now))
        return ride

    async def assign(self, ride: Ride, vehicle: Vehicle, driver_name: str | None = None) -> TransitionResult:
        """Bind a pending ride to an available vehicle and open its to_pickup leg."""
        if ride.status != "pending":
            raise InvalidTransition(ride.id, "assign", ride.status)
        if vehicle.status != "available":
            raise InvalidTransition(ride.id, "assign", ride.status, f"vehicle {vehicle.shuttle_number} is {vehicle.status}")

        now = self.clock.now()
        driver = driver_name if driver_name is not None else vehicle.current_driver
        ride_fields = {
            "status": "assigned",
            "assigned_driver": driver,
            "vehicle_number": vehicle.shuttle_number,
            "assigned_timestamp": now,
        }
        vehicle_fields: dict[str, Any] = {"status": "in-use"}
        if driver_name is not None:
            vehicle_fields["current_driver"] = driver_name
            vehicle_fields["location_updated"] = now

        ride_record = await self.store.rides.update(ride.id, ride_fields)
        try:
            vehicle_record = await self.store.vehicles.update(vehicle.id, vehicle_fields)
        except Exception:
            await self._revert_assignment(ride)
            raise
        updated_ride = _merge(ride, ride_fields, ride_record)
        updated_vehicle = _merge(vehicle, vehicle_fields, vehicle_record)

        self.routes.open(
            vehicle.id,
            ride.id,
            start=vehicle_position(vehicle),
            pickup=location_point(ride.pickup_location),
            destination=location_point(ride.destination),
            now=self.clock.monotonic(),
        )
        logger.info("ride assigned ride_id=%s code=%s vehicle=%s", ride.id, ride.ride_code, vehicle.shuttle_number)
        await self.notifier.notify(events.RIDE_ASSIGNED, _ride_event(updated_ride, assigned_at=now))
        await self.notifier.notify(
            events.VEHICLE_STATUS_CHANGED,
            {"vehicle_id": vehicle.id, "shuttle_number": vehicle.shuttle_number, "status": "in-use", "previous_status": vehicle.status},
        )
        return TransitionResult(ride=updated_ride, vehicle=updated_vehicle)

    async def start(self, ride: Ride) -> TransitionResult:
        """Guest picked up: assigned -> in-progress, leg flips to to_destination."""
        if ride.status != "assigned":
            raise InvalidTransition(ride.id, "start", ride.status)
        now = self.clock.now()
        fields = {"status": "in-progress", "in_progress_timestamp": now}
        record = await self.store.rides.update(ride.id, fields)
        updated = _merge(ride, fields, record)

        vehicle_id = self.routes.vehicle_for_ride(ride.id)
        if vehicle_id is not None:
            self.routes.begin_destination(vehicle_id, self.clock.monotonic())
        logger.info("ride started ride_id=%s code=%s", ride.id, ride.ride_code)
        await self.notifier.notify(events.RIDE_IN_PROGRESS, _ride_event(updated, started_at=now))
        return TransitionResult(ride=updated)

    async def complete(
        self,
        ride: Ride,
        vehicle: Vehicle | None = None,
        rating_generator: RatingGenerator | None = None,
    ) -> TransitionResult:
        """Drop-off: in-progress -> completed, free the vehicle, optionally rate the ride."""
        if ride.status != "in-progress":
            raise InvalidTransition(ride.id, "complete", ride.status)
        now = self.clock.now()
        fields = {
            "status": "completed",
            "completed_timestamp": now,
            "completed_time": now,
            "access_expires_at": now + timedelta(seconds=self.access_window_s),
        }
        record = await self.store.rides.update(ride.id, fields)
        updated = _merge(ride, fields, record)
        return await self._settle_completion(updated, vehicle, rating_generator)

    async def finish_completion(
        self,
        ride: Ride,
        vehicle: Vehicle | None = None,
        rating_generator: RatingGenerator | None = None,
    ) -> TransitionResult:
        """Redo the vehicle release and rating of a ride already written as completed."""
        if ride.status != "completed":
            raise InvalidTransition(ride.id, "finish completion", ride.status)
        logger.info("resuming completion ride_id=%s code=%s", ride.id, ride.ride_code)
        return await self._settle_completion(ride, vehicle, rating_generator)

    async def cancel(self, ride: Ride, vehicle: Vehicle | None = None) -> TransitionResult:
        """Cancel a pending or assigned ride; an assigned vehicle goes back to available."""
        if ride.status not in {"pending", "assigned"}:
            raise InvalidTransition(ride.id, "cancel", ride.status)
        now = self.clock.now()
        fields = {"status": "cancelled", "cancelled_timestamp": now}
        record = await self.store.rides.update(ride.id, fields)
        updated = _merge(ride, fields, record)

        freed = None
        if ride.status == "assigned":
            freed = await self._release_vehicle(ride, vehicle)
        self._discard_leg(ride.id)
        logger.info("ride cancelled ride_id=%s code=%s", ride.id, ride.ride_code)
        await self.notifier.notify(events.RIDE_CANCELLED, _ride_event(updated, cancelled_at=now))
        return TransitionResult(ride=updated, vehicle=freed)

    async def find_vehicle(self, ride: Ride) -> Vehicle | None:
        """Look up the vehicle serving a ride via its shuttle number."""
        if not ride.vehicle_number:
            return None
        records = await self.store.vehicles.filter({"shuttle_number": ride.vehicle_number}, limit=1)
        if not records:
            return None
        return Vehicle.model_validate(records[0])

    async def has_rating(self, ride_id: str) -> bool:
        return bool(await self.store.ratings.filter({"ride_id": ride_id}, limit=1))

    async def _settle_completion(
        self,
        ride: Ride,
        vehicle: Vehicle | None,
        rating_generator: RatingGenerator | None,
    ) -> TransitionResult:
        # The leg stays open until the vehicle and rating writes land.
        freed = await self._release_vehicle(ride, vehicle)

        rating = None
        if rating_generator is not None and not await self.has_rating(ride.id):
            rating_record = await self.store.ratings.create(rating_generator.generate(ride))
            rating = Rating.model_validate(rating_record)
            await self.notifier.notify(
                events.RATING_SUBMITTED,
                {
                    "rating_id": rating.id,
                    "ride_id": ride.id,
                    "ride_code": ride.ride_code,
                    "rating": rating.rating,
                    "flagged_for_review": rating.flagged_for_review,
                },
            )

        self._discard_leg(ride.id)
        logger.info("ride completed ride_id=%s code=%s rating=%s", ride.id, ride.ride_code, rating.rating if rating else None)
        await self.notifier.notify(events.RIDE_COMPLETED, _ride_event(ride, completed_at=ride.completed_timestamp))
        return TransitionResult(ride=ride, vehicle=freed, rating=rating)

    async def _revert_assignment(self, ride: Ride) -> None:
        fields = {"status": "pending", "assigned_driver": None, "vehicle_number": None, "assigned_timestamp": None}
        try:
            await self.store.rides.update(ride.id, fields)
        except Exception as exc:  # noqa: BLE001
            logger.exception("assignment rollback failed ride_id=%s err=%s", ride.id, exc)
            return
        logger.warning("assignment rolled back ride_id=%s code=%s", ride.id, ride.ride_code)

    def _discard_leg(self, ride_id: str) -> None:
        vehicle_id = self.routes.vehicle_for_ride(ride_id)
        if vehicle_id is not None:
            self.routes.discard(vehicle_id)

    async def _release_vehicle(self, ride: Ride, vehicle: Vehicle | None) -> Vehicle | None:
        if vehicle is None:
            vehicle = await self.find_vehicle(ride)
        if vehicle is None:
            logger.warning("no vehicle found to release ride_id=%s vehicle_number=%s", ride.id, ride.vehicle_number)
            return None
        if vehicle.status == "available":
            return vehicle

        fields = {"status": "available"}
        record = await self.store.vehicles.update(vehicle.id, fields)
        await self.notifier.notify(
            events.VEHICLE_STATUS_CHANGED,
            {"vehicle_id": vehicle.id, "shuttle_number": vehicle.shuttle_number, "status": "available", "previous_status": vehicle.status},
        )
        return _merge(vehicle, fields, record)
