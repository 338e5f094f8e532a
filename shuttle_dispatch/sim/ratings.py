from __future__ import annotations

"""
File: shuttle_dispatch/sim/ratings.py
Purpose: Rating construction for completed rides.
Key responsibilities:
- Validate 1-5 scores and derive the review flag.
- Generate synthetic ratings for simulated rides.
"""

import random
from typing import Any

from shuttle_dispatch.errors import ValidationError
from shuttle_dispatch.sim.entities import Ride

SCORE_FIELDS = ("rating", "service_quality", "punctuality", "vehicle_condition")
FLAG_THRESHOLD = 2


def _clamp_score(value: int) -> int:
    return max(1, min(5, value))


def build_rating(ride: Ride, scores: dict[str, Any]) -> dict[str, Any]:
    """Return Rating fields for a ride; low overall scores are flagged for review."""
    fields: dict[str, Any] = {
        "ride_id": ride.id,
        "driver_id": ride.assigned_driver,
        "vehicle_id": ride.vehicle_number,
        "guest_phone": ride.guest_phone,
        "would_recommend": bool(scores.get("would_recommend", True)),
        "comments": str(scores.get("comments", "")).strip(),
    }
    overall = scores.get("rating")
    for name in SCORE_FIELDS:
        value = scores.get(name, overall)
        if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
            raise ValidationError(f"{name} must be an integer between 1 and 5")
        fields[name] = value
    fields["flagged_for_review"] = fields["rating"] <= FLAG_THRESHOLD
    return fields


class RatingGenerator:
    """Synthetic guest feedback: mostly positive, occasionally poor."""

    def __init__(self, rng: random.Random, positive_share: float = 0.7) -> None:
        self.rng = rng
        self.positive_share = positive_share

    def scores(self) -> dict[str, Any]:
        positive = self.rng.random() < self.positive_share
        if positive:
            rating = self.rng.randint(4, 5)
            return {
                "rating": rating,
                "service_quality": rating,
                "punctuality": rating,
                "vehicle_condition": rating,
                "would_recommend": True,
                "comments": "Great service! Very professional driver.",
            }
        rating = self.rng.randint(1, 3)
        return {
            "rating": rating,
            "service_quality": _clamp_score(rating + 1),
            "punctuality": _clamp_score(rating - 1),
            "vehicle_condition": rating,
            "would_recommend": False,
            "comments": "Not satisfied with the service.",
        }

    def generate(self, ride: Ride) -> dict[str, Any]:
        return build_rating(ride, self.scores())
