import random

import pytest

from shuttle_dispatch.errors import ValidationError
from shuttle_dispatch.sim.entities import Ride
from shuttle_dispatch.sim.ratings import RatingGenerator, build_rating


def _ride() -> Ride:
    return Ride(
        id="ride-1",
        pickup_location="hotel-lobby",
        destination="houston-zoo",
        status="completed",
        assigned_driver="Sam",
        vehicle_number="V1",
        guest_phone="+15550001111",
    )


@pytest.mark.parametrize("score,flagged", [(1, True), (2, True), (3, False), (4, False), (5, False)])
def test_flag_follows_overall_rating(score, flagged):
    fields = build_rating(_ride(), {"rating": score})
    assert fields["flagged_for_review"] is flagged


def test_sub_scores_default_to_overall():
    fields = build_rating(_ride(), {"rating": 4, "punctuality": 2})
    assert fields["service_quality"] == 4
    assert fields["vehicle_condition"] == 4
    assert fields["punctuality"] == 2
    assert fields["ride_id"] == "ride-1"
    assert fields["driver_id"] == "Sam"
    assert fields["vehicle_id"] == "V1"


@pytest.mark.parametrize("bad", [0, 6, "5", None, True])
def test_out_of_range_scores_rejected(bad):
    with pytest.raises(ValidationError):
        build_rating(_ride(), {"rating": bad})


def test_generator_distribution():
    gen = RatingGenerator(random.Random(5))
    ride = _ride()
    samples = [gen.generate(ride) for _ in range(1000)]

    positive = sum(1 for s in samples if s["rating"] >= 4)
    assert 600 <= positive <= 800
    for s in samples:
        for name in ("rating", "service_quality", "punctuality", "vehicle_condition"):
            assert 1 <= s[name] <= 5
        assert s["flagged_for_review"] is (s["rating"] <= 2)
        assert s["would_recommend"] is (s["rating"] >= 4)
