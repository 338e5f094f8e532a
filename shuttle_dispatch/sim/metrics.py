from __future__ import annotations

"""
File: shuttle_dispatch/sim/metrics.py
Purpose: Compute fleet dashboard counters from a synced snapshot.
Key responsibilities:
- Ride counts per lifecycle bucket, vehicle availability, active drivers and alerts.
"""

from shuttle_dispatch.sim.entities import ACTIVE_RIDE_STATUSES, Snapshot


def compute_fleet_stats(snapshot: Snapshot) -> dict[str, int]:
    """Compute the counters shown on the dispatcher console."""
    rides = snapshot.rides
    vehicles = snapshot.vehicles

    pending_rides = sum(1 for r in rides if r.status == "pending")
    active_rides = sum(1 for r in rides if r.status in ACTIVE_RIDE_STATUSES)
    completed_rides = sum(1 for r in rides if r.status == "completed")
    cancelled_rides = sum(1 for r in rides if r.status == "cancelled")

    available_vehicles = sum(1 for v in vehicles if v.status == "available")
    vehicles_in_use = sum(1 for v in vehicles if v.status == "in-use")

    return {
        "active_drivers": len(snapshot.drivers),
        "pending_rides": pending_rides,
        "active_rides": active_rides,
        "completed_rides": completed_rides,
        "cancelled_rides": cancelled_rides,
        "active_alerts": sum(1 for a in snapshot.alerts if a.status == "active"),
        "available_vehicles": available_vehicles,
        "vehicles_in_use": vehicles_in_use,
    }
