from __future__ import annotations

"""
File: shuttle_dispatch/sim/tracking.py
Purpose: Public ride tracking and guest feedback.
Key responsibilities:
- Resolve rides by public access token, honoring link expiry.
- Persist guest ratings and revoke the tracking link afterwards.
- Acknowledge flagged ratings on behalf of a dispatcher.
"""

import logging
from typing import Any

from shuttle_dispatch import events
from shuttle_dispatch.errors import AccessExpired, InvalidTransition, RecordNotFound, RideNotFound
from shuttle_dispatch.sim.entities import Rating, Ride
from shuttle_dispatch.sim.ratings import build_rating

logger = logging.getLogger("shuttle-tracking")


class GuestFeedback:
    """Token-scoped guest access to a ride."""

    def __init__(self, store, notifier: events.EventNotifier, clock) -> None:
        self.store = store
        self.notifier = notifier
        self.clock = clock

    async def find_public_ride(self, token: str) -> Ride:
        """Return the ride behind a tracking link or raise if unknown/expired."""
        records = await self.store.rides.filter({"public_access_token": token}, limit=1)
        if not records:
            raise RideNotFound("ride not found; the link may be invalid")
        ride = Ride.model_validate(records[0])
        if ride.access_expires_at is not None and self.clock.now() > ride.access_expires_at:
            raise AccessExpired(f"tracking link for ride {ride.ride_code} has expired")
        return ride

    async def submit_rating(self, ride: Ride, scores: dict[str, Any]) -> Rating:
        """Store a guest rating for a completed ride and expire its public link."""
        if ride.status != "completed":
            raise InvalidTransition(ride.id, "rate", ride.status)
        existing = await self.store.ratings.filter({"ride_id": ride.id}, limit=1)
        if existing:
            raise InvalidTransition(ride.id, "rate", "rated", "a rating already exists for this ride")
        fields = build_rating(ride, scores)
        record = await self.store.ratings.create(fields)
        rating = Rating.model_validate({**fields, **(record or {})})

        now = self.clock.now()
        await self.store.rides.update(ride.id, {"access_expires_at": now})
        logger.info("rating submitted ride_id=%s rating=%s flagged=%s", ride.id, rating.rating, rating.flagged_for_review)
        await self.notifier.notify(
            events.RATING_SUBMITTED,
            {
                "rating_id": rating.id,
                "ride_id": ride.id,
                "ride_code": ride.ride_code,
                "driver_id": ride.assigned_driver,
                "vehicle_id": ride.vehicle_number,
                "rating": rating.rating,
                "service_quality": rating.service_quality,
                "punctuality": rating.punctuality,
                "vehicle_condition": rating.vehicle_condition,
                "would_recommend": rating.would_recommend,
                "flagged_for_review": rating.flagged_for_review,
                "submitted_at": now,
            },
        )
        return rating

    async def acknowledge_rating(self, rating_id: str, reviewer: str = "dispatcher") -> Rating:
        """Clear the review flag of a rating."""
        fields = {"flagged_for_review": False, "reviewed_by": reviewer, "reviewed_at": self.clock.now()}
        record = await self.store.ratings.update(rating_id, fields)
        if not record:
            raise RecordNotFound(f"rating {rating_id} not found")
        return Rating.model_validate({**record, **fields})
