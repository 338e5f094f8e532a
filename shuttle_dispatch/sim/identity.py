from __future__ import annotations

"""
File: shuttle_dispatch/sim/identity.py
Purpose: Identity generators for rides and simulated guests.
Key responsibilities:
- Ride codes, public access tokens and pseudo phone numbers.
- Random guest ride requests that respect the hub return rule.
"""

import random
import string
import uuid

from shuttle_dispatch.sim.geo import HUB, LOCATION_IDS

RIDE_CODE_ALPHABET = string.ascii_uppercase + string.digits
RIDE_CODE_LENGTH = 6

GUEST_NAMES = [
    "Sarah Johnson", "Michael Chen", "Emily Rodriguez", "David Kim", "Jessica Williams",
    "James Brown", "Maria Garcia", "Robert Taylor", "Jennifer Martinez", "William Anderson",
    "Lisa Thompson", "Daniel Moore", "Nancy White", "Christopher Lee", "Karen Harris",
]

# Empty entries weight the draw towards no request.
SPECIAL_REQUESTS = [
    "", "", "", "",
    "Wheelchair accessible",
    "Extra luggage space",
    "Child seat needed",
    "Running late - please wait",
]


def generate_ride_code(rng: random.Random) -> str:
    """Return a 6-character uppercase alphanumeric display code."""
    return "".join(rng.choice(RIDE_CODE_ALPHABET) for _ in range(RIDE_CODE_LENGTH))


def generate_phone_number(rng: random.Random) -> str:
    """Return a +1 NANP-shaped phone number for a simulated guest."""
    area_code = rng.randint(100, 999)
    exchange = rng.randint(100, 999)
    subscriber = rng.randint(1000, 9999)
    return f"+1{area_code}{exchange}{subscriber}"


def generate_access_token() -> str:
    return str(uuid.uuid4())


def random_ride_request(rng: random.Random) -> dict[str, str]:
    """Draw a simulated guest request; non-hub pickups always return to the hub."""
    pickup = rng.choice(LOCATION_IDS)
    if pickup != HUB:
        destination = HUB
    else:
        destination = rng.choice([loc for loc in LOCATION_IDS if loc != HUB])
    return {
        "guest_name": rng.choice(GUEST_NAMES),
        "guest_room": str(rng.randint(100, 999)),
        "guest_phone": generate_phone_number(rng),
        "pickup_location": pickup,
        "destination": destination,
        "special_requests": rng.choice(SPECIAL_REQUESTS),
        "priority": "normal",
    }
