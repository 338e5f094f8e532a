from __future__ import annotations

"""
File: shuttle_dispatch/sim/geo.py
Purpose: Location catalogue and geographic helpers for fleet motion.
Key responsibilities:
- Map approved location ids to coordinates.
- Great-circle distance (haversine) and linear interpolation.
"""

from math import atan2, cos, radians, sin, sqrt

from shuttle_dispatch.sim.entities import GeoPoint

EARTH_RADIUS_KM = 6371.0
HUB = "hotel-lobby"

LOCATIONS: dict[str, dict] = {
    "hotel-lobby": {"lat": 29.7074, "lng": -95.3981, "name": "Hotel Lobby"},
    "starbucks-rice": {"lat": 29.7176, "lng": -95.4214, "name": "Starbucks"},
    "damicos-rice": {"lat": 29.7165, "lng": -95.4231, "name": "D'Amico's"},
    "black-walnut-rice": {"lat": 29.7165, "lng": -95.4231, "name": "Black Walnut Cafe"},
    "banana-republic-rice": {"lat": 29.7169, "lng": -95.4219, "name": "Banana Republic"},
    "museum-natural-science": {"lat": 29.7223, "lng": -95.3893, "name": "Museum of Natural Science"},
    "museum-fine-arts": {"lat": 29.7256, "lng": -95.3904, "name": "Museum of Fine Arts"},
    "health-museum": {"lat": 29.7219, "lng": -95.3889, "name": "Health Museum"},
    "hermann-park": {"lat": 29.7164, "lng": -95.3903, "name": "Hermann Park"},
    "houston-zoo": {"lat": 29.7147, "lng": -95.3919, "name": "The Houston Zoo"},
    "holocaust-museum": {"lat": 29.7229, "lng": -95.3897, "name": "Holocaust Museum"},
    "palmer-memorial": {"lat": 29.7174, "lng": -95.4019, "name": "Palmer Memorial Episcopal Church"},
    "christ-the-king": {"lat": 29.7067, "lng": -95.4134, "name": "Christ The King Lutheran Church"},
    "st-vincent": {"lat": 29.7028, "lng": -95.4389, "name": "St. Vincent de Paul Catholic Church"},
    "md-main-building": {"lat": 29.7074, "lng": -95.3981, "name": "Main Building / Clark Clinic"},
    "md-muslim-prayer-room": {"lat": 29.7074, "lng": -95.3981, "name": "Muslim Prayer Room"},
    "md-duncan-building": {"lat": 29.7089, "lng": -95.3967, "name": "Dan L Duncan Building"},
    "md-mays-clinic": {"lat": 29.7067, "lng": -95.3989, "name": "Mays Clinic"},
    "md-pickens-tower": {"lat": 29.7092, "lng": -95.3978, "name": "Pickens Tower"},
    "md-mitchell-research": {"lat": 29.7098, "lng": -95.3956, "name": "Mitchell Research Building"},
    "md-life-science-plaza": {"lat": 29.7102, "lng": -95.3978, "name": "Life Science Plaza"},
    "md-proton-therapy-1": {"lat": 29.7034, "lng": -95.3912, "name": "Proton Therapy Center 1"},
    "md-proton-therapy-2": {"lat": 29.7034, "lng": -95.3912, "name": "Proton Therapy Center 2"},
}

LOCATION_IDS = list(LOCATIONS.keys())


def location_point(location_id: str) -> GeoPoint:
    """Return the coordinates of an approved location."""
    entry = LOCATIONS[location_id]
    return GeoPoint(lat=entry["lat"], lng=entry["lng"])


HUB_POINT = location_point(HUB)


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two points in kilometres."""
    d_lat = radians(b.lat - a.lat)
    d_lng = radians(b.lng - a.lng)
    h = sin(d_lat / 2) ** 2 + cos(radians(a.lat)) * cos(radians(b.lat)) * sin(d_lng / 2) ** 2
    return EARTH_RADIUS_KM * 2 * atan2(sqrt(h), sqrt(1 - h))


def interpolate(start: GeoPoint, end: GeoPoint, progress: float) -> GeoPoint:
    """Linear lat/lng interpolation; progress 0 is start, 1 is end."""
    return GeoPoint(
        lat=start.lat + (end.lat - start.lat) * progress,
        lng=start.lng + (end.lng - start.lng) * progress,
    )
