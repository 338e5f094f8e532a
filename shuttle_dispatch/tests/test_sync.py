import asyncio
from datetime import timedelta

import pytest

from shuttle_dispatch.errors import NetworkError
from shuttle_dispatch.sim.sync import DataSyncEngine
from shuttle_dispatch.tests.fakes import RecordingSleep, seed_ride, seed_vehicle


def _engine(store, clock, actor, sleep=None, **kwargs):
    return DataSyncEngine(store, clock, lambda: actor, sleep=sleep or RecordingSleep(), **kwargs)


@pytest.mark.asyncio
async def test_sync_builds_snapshot(store, clock, actor):
    seed_vehicle(store, "V1")
    seed_ride(store)
    store.alerts.seed(alert_type="medical", message="guest fell", status="active")
    store.alerts.seed(alert_type="traffic", message="road closed", status="resolved")
    store.drivers.seed(name="Sam", status="signed-in")
    store.drivers.seed(name="Lee", status="on-break")
    store.drivers.seed(name="Kim", status="signed-out")
    engine = _engine(store, clock, actor)

    snapshot = await engine.sync()

    assert [v.shuttle_number for v in snapshot.vehicles] == ["V1"]
    assert len(snapshot.rides) == 1
    assert [a.alert_type for a in snapshot.alerts] == ["medical"]
    assert sorted(d.name for d in snapshot.drivers) == ["Lee", "Sam"]
    assert snapshot.last_update == clock.now()
    assert engine.is_initialized
    assert engine.network_error is False
    assert engine.fetch_cycles == 1


@pytest.mark.asyncio
async def test_rides_newest_updated_first_and_capped(store, clock, actor):
    for i in range(5):
        seed_ride(store, ride_code=f"R{i}")
        clock.advance(1)
    engine = _engine(store, clock, actor, ride_limit=3)

    snapshot = await engine.sync()

    assert [r.ride_code for r in snapshot.rides] == ["R4", "R3", "R2"]


@pytest.mark.asyncio
async def test_concurrent_syncs_fetch_once(store, clock, actor):
    engine = _engine(store, clock, actor)

    first, second = await asyncio.gather(engine.sync(), engine.sync())

    assert engine.fetch_cycles == 1
    assert store.vehicles.calls["list"] == 1
    assert engine.syncing is False


@pytest.mark.asyncio
async def test_forced_sync_bypasses_in_flight_guard(store, clock, actor):
    engine = _engine(store, clock, actor)
    store.gate = asyncio.Event()

    in_flight = asyncio.create_task(engine.sync())
    await asyncio.sleep(0)
    assert engine.syncing is True

    skipped = await engine.sync()
    forced = asyncio.create_task(engine.sync(force_update=True))
    await asyncio.sleep(0)
    store.gate.set()
    await asyncio.gather(in_flight, forced)

    assert skipped.last_update is None
    assert engine.fetch_cycles == 2
    assert engine.syncing is False


@pytest.mark.asyncio
async def test_retry_backoff_then_network_error(store, clock, actor):
    sleep = RecordingSleep()
    engine = _engine(store, clock, actor, sleep=sleep)
    seed_vehicle(store, "V1")
    await engine.sync()
    before = engine.snapshot
    store.offline = True

    with pytest.raises(NetworkError):
        await engine.sync()

    assert sleep.delays == [1.0, 2.0, 4.0]
    assert engine.fetch_cycles == 1 + 4
    assert engine.network_error is True
    assert engine.snapshot is before
    assert engine.syncing is False


@pytest.mark.asyncio
async def test_retry_recovers_and_clears_error(store, clock, actor):
    def back_online(count):
        store.offline = False

    sleep = RecordingSleep(on_sleep=back_online)
    engine = _engine(store, clock, actor, sleep=sleep)
    seed_vehicle(store, "V1")
    store.offline = True

    snapshot = await engine.sync()

    assert sleep.delays == [1.0]
    assert engine.network_error is False
    assert len(snapshot.vehicles) == 1


@pytest.mark.asyncio
async def test_backoff_scales_with_base(store, clock, actor):
    engine = _engine(store, clock, actor, backoff_base_s=0.5)
    assert [engine.backoff_delay(n) for n in range(3)] == [0.5, 1.0, 2.0]


@pytest.mark.asyncio
async def test_no_actor_means_no_fetch(store, clock):
    engine = DataSyncEngine(store, clock, lambda: None, sleep=RecordingSleep())

    snapshot = await engine.sync(force_update=True)

    assert snapshot.rides == ()
    assert engine.fetch_cycles == 0
    assert store.rides.calls["list"] == 0
    assert engine.is_initialized is False


@pytest.mark.asyncio
async def test_snapshot_replaced_wholesale(store, clock, actor):
    engine = _engine(store, clock, actor)
    ride = seed_ride(store)
    first = await engine.sync()
    store.rides.records[ride["id"]]["status"] = "cancelled"
    clock.advance(timedelta(seconds=5).total_seconds())

    second = await engine.sync()

    assert first.rides[0].status == "pending"
    assert second.rides[0].status == "cancelled"
    assert second is not first


@pytest.mark.asyncio
async def test_listeners_run_after_success(store, clock, actor):
    engine = _engine(store, clock, actor)
    seen = []

    async def listener(snapshot):
        seen.append(snapshot)

    async def broken(snapshot):
        raise RuntimeError("listener bug")

    engine.listeners.extend([broken, listener])
    snapshot = await engine.sync()

    assert seen == [snapshot]
