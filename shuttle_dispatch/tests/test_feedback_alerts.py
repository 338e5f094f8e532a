from datetime import timedelta

import pytest

from shuttle_dispatch import events
from shuttle_dispatch.errors import (
    AccessExpired,
    InvalidTransition,
    RecordNotFound,
    RideNotFound,
    StoreError,
    ValidationError,
)
from shuttle_dispatch.sim.alerts import AlertDesk
from shuttle_dispatch.sim.entities import Driver, EmergencyAlert, Ride, Snapshot, Vehicle
from shuttle_dispatch.sim.metrics import compute_fleet_stats
from shuttle_dispatch.sim.tracking import GuestFeedback
from shuttle_dispatch.tests.fakes import seed_ride


@pytest.fixture
def feedback(store, notifier, clock):
    return GuestFeedback(store, notifier, clock)


@pytest.fixture
def desk(store, notifier, clock):
    return AlertDesk(store, notifier, clock)


@pytest.mark.asyncio
async def test_public_ride_lookup(feedback, store, clock):
    seed_ride(store, public_access_token="tok-1", access_expires_at=clock.now() + timedelta(minutes=5))
    ride = await feedback.find_public_ride("tok-1")
    assert ride.public_access_token == "tok-1"

    with pytest.raises(RideNotFound):
        await feedback.find_public_ride("nope")

    clock.advance(301)
    with pytest.raises(AccessExpired):
        await feedback.find_public_ride("tok-1")


@pytest.mark.asyncio
async def test_submit_rating_revokes_link(feedback, store, clock, transport):
    record = seed_ride(store, status="completed", vehicle_number="V1", public_access_token="tok-2")
    ride = Ride.model_validate(record)

    rating = await feedback.submit_rating(ride, {"rating": 2, "comments": "late pickup"})

    assert rating.flagged_for_review is True
    assert rating.ride_id == ride.id
    assert store.ratings.records[rating.id]["comments"] == "late pickup"
    assert store.rides.records[ride.id]["access_expires_at"] == clock.now()
    assert transport.names() == [events.RATING_SUBMITTED]

    clock.advance(1)
    with pytest.raises(AccessExpired):
        await feedback.find_public_ride("tok-2")


@pytest.mark.asyncio
async def test_submit_rating_requires_completed_ride(feedback, store):
    ride = Ride.model_validate(seed_ride(store, status="in-progress"))
    with pytest.raises(InvalidTransition):
        await feedback.submit_rating(ride, {"rating": 5})
    assert store.ratings.all() == []


@pytest.mark.asyncio
async def test_submit_rating_validates_scores(feedback, store):
    ride = Ride.model_validate(seed_ride(store, status="completed"))
    with pytest.raises(ValidationError):
        await feedback.submit_rating(ride, {"rating": 9})


@pytest.mark.asyncio
async def test_second_rating_for_ride_is_rejected(feedback, store, transport):
    ride = Ride.model_validate(seed_ride(store, status="completed", vehicle_number="V1"))
    await feedback.submit_rating(ride, {"rating": 4})

    with pytest.raises(InvalidTransition) as info:
        await feedback.submit_rating(ride, {"rating": 5})

    assert info.value.status == "rated"
    assert len(store.ratings.all()) == 1
    assert transport.names() == [events.RATING_SUBMITTED]


@pytest.mark.asyncio
async def test_acknowledge_rating(feedback, store, clock):
    rating = store.ratings.seed(
        ride_id="r1", rating=1, service_quality=1, punctuality=1, vehicle_condition=1, flagged_for_review=True
    )
    acked = await feedback.acknowledge_rating(rating["id"], reviewer="ops-lead")
    assert acked.flagged_for_review is False
    assert store.ratings.records[rating["id"]]["reviewed_by"] == "ops-lead"
    assert store.ratings.records[rating["id"]]["reviewed_at"] == clock.now()


@pytest.mark.asyncio
async def test_acknowledge_unknown_rating(feedback):
    with pytest.raises(StoreError):
        await feedback.acknowledge_rating("missing")


@pytest.mark.asyncio
async def test_alert_lifecycle(desk, store, transport):
    alert = await desk.raise_alert("medical", "guest needs assistance at lobby")
    assert alert.status == "active"
    assert alert.priority == "high"

    resolved = await desk.resolve_alert(alert)
    assert resolved.status == "resolved"
    assert resolved.resolved_time is not None
    assert store.alerts.records[alert.id]["status"] == "resolved"
    assert transport.names() == [events.ALERT_CREATED, events.ALERT_RESOLVED]

    with pytest.raises(InvalidTransition):
        await desk.resolve_alert(resolved)


@pytest.mark.asyncio
async def test_alert_requires_message(desk, store):
    with pytest.raises(ValidationError):
        await desk.raise_alert("medical", "")
    assert store.alerts.all() == []


def test_fleet_stats_counts():
    def ride(i, status):
        return Ride(id=f"r{i}", pickup_location="hotel-lobby", destination="houston-zoo", status=status)

    snapshot = Snapshot(
        rides=(ride(1, "pending"), ride(2, "assigned"), ride(3, "in-progress"), ride(4, "completed"), ride(5, "cancelled")),
        vehicles=(
            Vehicle(id="v1", shuttle_number="V1", status="available"),
            Vehicle(id="v2", shuttle_number="V2", status="in-use"),
            Vehicle(id="v3", shuttle_number="V3", status="maintenance"),
        ),
        alerts=(EmergencyAlert(id="a1", status="active"),),
        drivers=(Driver(id="d1", status="signed-in"), Driver(id="d2", status="on-ride")),
    )
    assert compute_fleet_stats(snapshot) == {
        "active_drivers": 2,
        "pending_rides": 1,
        "active_rides": 2,
        "completed_rides": 1,
        "cancelled_rides": 1,
        "active_alerts": 1,
        "available_vehicles": 1,
        "vehicles_in_use": 1,
    }


def test_record_not_found_hierarchy():
    assert issubclass(RideNotFound, RecordNotFound)
