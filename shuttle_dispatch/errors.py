from __future__ import annotations

"""
File: shuttle_dispatch/errors.py
Purpose: Exception taxonomy for the dispatch core.
"""


class DispatchError(Exception):
    """Base class for dispatch core failures."""


class ValidationError(DispatchError):
    """Ride or rating input violates a creation constraint."""


class InvalidTransition(DispatchError):
    """A lifecycle action was requested from a state that does not allow it."""

    def __init__(self, ride_id: str | None, action: str, status: str | None, detail: str = "") -> None:
        self.ride_id = ride_id
        self.action = action
        self.status = status
        subject = f" ride {ride_id}" if ride_id else ""
        message = f"cannot {action}{subject} in status {status}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class NoVehicleAvailable(DispatchError):
    """No vehicle qualifies for a pending ride."""


class NoVehiclesError(DispatchError):
    """The fleet is empty, so the simulation cannot start."""


class NetworkError(DispatchError):
    """Data sync failed after exhausting its retries."""


class StoreError(DispatchError):
    """An entity-store call failed (transport or application error)."""

    def __init__(self, entity: str, method: str, message: str) -> None:
        self.entity = entity
        self.method = method
        super().__init__(f"{entity}.{method} failed: {message}")


class WebhookDeliveryError(DispatchError):
    """An event notification could not be delivered."""


class RecordNotFound(DispatchError):
    """No store record matches the given id."""


class RideNotFound(RecordNotFound):
    """No ride matches the given id or access token."""


class AccessExpired(DispatchError):
    """The public tracking link of a ride has expired."""
