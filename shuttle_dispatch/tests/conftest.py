import random

import pytest

from shuttle_dispatch import events
from shuttle_dispatch.sim.entities import Actor
from shuttle_dispatch.sim.lifecycle import RideLifecycle
from shuttle_dispatch.sim.routing import RouteTable
from shuttle_dispatch.tests.fakes import InMemoryStore, ManualClock, ManualScheduler, RecordingTransport


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def store(clock):
    return InMemoryStore(clock)


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def notifier(transport):
    return events.EventNotifier(transport)


@pytest.fixture
def routes():
    return RouteTable()


@pytest.fixture
def rng():
    return random.Random(7)


@pytest.fixture
def actor():
    return Actor(uid="dispatcher-1")


@pytest.fixture
def lifecycle(store, notifier, clock, routes, rng):
    return RideLifecycle(store, notifier, clock, routes, rng=rng)
