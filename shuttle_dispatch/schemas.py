from __future__ import annotations

"""
File: shuttle_dispatch/schemas.py
Purpose: Pydantic models for the HTTP request/response contracts.
Key responsibilities:
- Validate ride creation, assignment, rating and alert payloads.
- Shape the simulation read model and public tracking view.
Key entrypoints:
- RideCreateRequest, SimulationViewResponse, TransitionResponse
"""

from dataclasses import asdict
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from shuttle_dispatch.sim.entities import Driver, EmergencyAlert, Rating, Ride, SimulationView, Vehicle


class RideCreateRequest(BaseModel):
    """Request body for POST /api/rides."""
    guest_name: str = Field(min_length=1)
    guest_room: str = ""
    guest_phone: str = ""
    pickup_location: str
    destination: str
    special_requests: str = ""
    priority: Literal["normal", "high"] = "normal"


class AssignRideRequest(BaseModel):
    """Manual dispatcher assignment."""
    vehicle_id: str
    driver_name: Optional[str] = None


class RatingRequest(BaseModel):
    """Guest rating; sub-scores default to the overall rating."""
    rating: int
    service_quality: Optional[int] = None
    punctuality: Optional[int] = None
    vehicle_condition: Optional[int] = None
    would_recommend: Optional[bool] = None
    comments: str = ""


class AlertCreateRequest(BaseModel):
    alert_type: str
    message: str
    priority: str = "high"


class AcknowledgeRequest(BaseModel):
    reviewer: str = "dispatcher"


class VehicleStatusRequest(BaseModel):
    """Dispatcher status change for an idle vehicle."""
    status: Literal["offline", "available", "maintenance"]


class TransitionResponse(BaseModel):
    """Ride (and vehicle/rating when touched) after a lifecycle action."""
    ride: Ride
    vehicle: Optional[Vehicle] = None
    rating: Optional[Rating] = None


class PublicRideResponse(BaseModel):
    """Subset of a ride shown on the guest tracking page."""
    ride_code: Optional[str]
    guest_name: str
    pickup_location: str
    destination: str
    status: str
    vehicle_number: Optional[str]
    assigned_driver: Optional[str]
    pending_timestamp: Optional[datetime]
    assigned_timestamp: Optional[datetime]
    in_progress_timestamp: Optional[datetime]
    completed_timestamp: Optional[datetime]
    access_expires_at: Optional[datetime]

    @classmethod
    def from_ride(cls, ride: Ride) -> "PublicRideResponse":
        return cls.model_validate(ride.model_dump(include=set(cls.model_fields)))


class SimulationViewResponse(BaseModel):
    """Aggregate read model served to the dispatcher console."""
    is_active: bool
    time_remaining: int
    stats: dict[str, int]
    vehicles: list[Vehicle]
    rides: list[Ride]
    alerts: list[EmergencyAlert]
    drivers: list[Driver]
    last_update: Optional[datetime]
    network_error: bool
    is_initialized: bool
    fleet_stats: dict[str, int]

    @classmethod
    def from_view(cls, view: SimulationView) -> "SimulationViewResponse":
        return cls(
            is_active=view.is_active,
            time_remaining=view.time_remaining,
            stats=asdict(view.stats),
            vehicles=list(view.vehicles),
            rides=list(view.rides),
            alerts=list(view.alerts),
            drivers=list(view.drivers),
            last_update=view.last_update,
            network_error=view.network_error,
            is_initialized=view.is_initialized,
            fleet_stats=dict(view.fleet_stats),
        )
