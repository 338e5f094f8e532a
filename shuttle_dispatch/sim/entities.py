from __future__ import annotations

"""
File: shuttle_dispatch/sim/entities.py
Purpose: Typed records for store entities and simulation state.
Key responsibilities:
- Parse Ride/Vehicle/Driver/EmergencyAlert/Rating records from the entity store.
- Define in-memory route legs, snapshots and the read model.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator


RideStatus = Literal["pending", "assigned", "in-progress", "completed", "cancelled"]
VehicleStatus = Literal["offline", "available", "in-use", "maintenance"]
AlertStatus = Literal["active", "resolved"]
LegPhase = Literal["to_pickup", "to_destination"]

ACTIVE_RIDE_STATUSES = {"assigned", "in-progress"}
TERMINAL_RIDE_STATUSES = {"completed", "cancelled"}
ON_DUTY_DRIVER_STATUSES = ["signed-in", "on-ride", "on-break"]


class StoreRecord(BaseModel):
    """Base for entity-store records; tolerates unknown fields."""
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: str
    created_date: Optional[datetime] = None
    updated_date: Optional[datetime] = None

    @field_validator("*", mode="after")
    @classmethod
    def _utc(cls, value):
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Ride(StoreRecord):
    """A transportation request."""
    ride_code: Optional[str] = None
    public_access_token: Optional[str] = None
    guest_name: str = ""
    guest_room: str = ""
    guest_phone: str = ""
    pickup_location: str
    destination: str
    special_requests: str = ""
    priority: Literal["normal", "high"] = "normal"
    status: RideStatus = "pending"
    assigned_driver: Optional[str] = None
    vehicle_number: Optional[str] = None
    pending_timestamp: Optional[datetime] = None
    assigned_timestamp: Optional[datetime] = None
    in_progress_timestamp: Optional[datetime] = None
    completed_timestamp: Optional[datetime] = None
    completed_time: Optional[datetime] = None
    cancelled_timestamp: Optional[datetime] = None
    access_expires_at: Optional[datetime] = None


class Vehicle(StoreRecord):
    """A fleet unit; shuttle_number joins to Ride.vehicle_number."""
    shuttle_number: str
    capacity: Optional[int] = None
    current_mileage: Optional[float] = None
    fuel_level: Optional[float] = None
    status: VehicleStatus = "offline"
    current_driver: Optional[str] = None
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None
    location_updated: Optional[datetime] = None


class Driver(StoreRecord):
    """Roster entry; read-only to the core."""
    name: str = ""
    status: str = "signed-out"
    vehicle_number: Optional[str] = None


class EmergencyAlert(StoreRecord):
    alert_type: str = ""
    message: str = ""
    priority: str = "high"
    status: AlertStatus = "active"
    resolved_time: Optional[datetime] = None


class Rating(StoreRecord):
    """Guest feedback for a completed ride."""
    ride_id: str
    driver_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    guest_phone: str = ""
    rating: int
    service_quality: int
    punctuality: int
    vehicle_condition: int
    would_recommend: bool = True
    comments: str = ""
    flagged_for_review: bool = False


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float


@dataclass
class RouteLeg:
    """In-flight travel segment of one vehicle; never persisted."""
    ride_id: str
    phase: LegPhase
    start: GeoPoint
    pickup: GeoPoint
    destination: GeoPoint
    progress: float = 0.0
    start_time: float = 0.0
    completing: bool = False

    def origin(self) -> GeoPoint:
        return self.start if self.phase == "to_pickup" else self.pickup

    def target(self) -> GeoPoint:
        return self.pickup if self.phase == "to_pickup" else self.destination


@dataclass(frozen=True)
class Snapshot:
    """Store contents as of the last successful sync; replaced wholesale."""
    rides: tuple[Ride, ...] = ()
    vehicles: tuple[Vehicle, ...] = ()
    alerts: tuple[EmergencyAlert, ...] = ()
    drivers: tuple[Driver, ...] = ()
    last_update: Optional[datetime] = None


@dataclass
class SimulationStats:
    rides_created: int = 0
    rides_completed: int = 0
    ratings_generated: int = 0


@dataclass(frozen=True)
class SimulationView:
    """Read model handed to the UI layer."""
    is_active: bool
    time_remaining: int
    stats: SimulationStats
    vehicles: tuple[Vehicle, ...]
    rides: tuple[Ride, ...]
    alerts: tuple[EmergencyAlert, ...]
    drivers: tuple[Driver, ...]
    last_update: Optional[datetime]
    network_error: bool
    is_initialized: bool
    fleet_stats: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Actor:
    """Authenticated principal on whose behalf the core talks to the store."""
    uid: str
    role: str = "dispatcher"
    email: str = ""
