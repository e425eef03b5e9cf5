import dataclasses
import random

import pytest

from conftest import make_spot
from core.entities import SpotFeature, SpotPreferences, SpotStatus, SpotType, VehicleType
from planning.spot_selector import (
    compatible_spot_types,
    is_compatible,
    rank_candidates,
    select_spot,
)


@pytest.mark.parametrize(
    "vehicle_type, expected",
    [
        (VehicleType.MOTORCYCLE, {SpotType.MOTORCYCLE, SpotType.COMPACT, SpotType.STANDARD}),
        (VehicleType.COMPACT, {SpotType.COMPACT, SpotType.STANDARD}),
        (VehicleType.STANDARD, {SpotType.STANDARD}),
        (VehicleType.ELECTRIC, {SpotType.ELECTRIC, SpotType.STANDARD}),
        (VehicleType.OVERSIZED, {SpotType.OVERSIZED}),
    ],
)
def test_compatibility_table(vehicle_type, expected):
    assert compatible_spot_types(vehicle_type) == expected
    # String values resolve the same way.
    assert compatible_spot_types(vehicle_type.value) == expected


def test_unknown_vehicle_type_has_no_compatible_spots():
    assert compatible_spot_types("hovercraft") == frozenset()
    assert select_spot("hovercraft", [make_spot(1, "A", 1)]) is None


def test_standard_vehicle_never_gets_compact_spot():
    assert not is_compatible(VehicleType.STANDARD, SpotType.COMPACT)
    snapshot = [make_spot(1, "A", 1, SpotType.COMPACT)]
    assert select_spot(VehicleType.STANDARD, snapshot) is None


def test_picks_lowest_floor_bay_number():
    snapshot = [
        make_spot(2, "A", 1),
        make_spot(1, "B", 1),
        make_spot(1, "A", 7),
        make_spot(1, "A", 3),
    ]
    assert select_spot(VehicleType.STANDARD, snapshot).spot_id == "F1-A-003"


def test_selection_is_independent_of_snapshot_order():
    snapshot = [make_spot(f, b, n) for f in (1, 2) for b in "ABC" for n in range(1, 6)]
    expected = select_spot(VehicleType.STANDARD, snapshot)
    for seed in range(5):
        shuffled = list(snapshot)
        random.Random(seed).shuffle(shuffled)
        assert select_spot(VehicleType.STANDARD, shuffled) == expected


def test_skips_unavailable_spots():
    snapshot = [
        dataclasses.replace(make_spot(1, "A", 1), status=SpotStatus.OCCUPIED, occupant="X1"),
        make_spot(1, "A", 2),
    ]
    assert select_spot(VehicleType.STANDARD, snapshot).spot_id == "F1-A-002"


def test_compact_vehicle_takes_earliest_compatible_spot_of_any_allowed_type():
    snapshot = [make_spot(1, "A", 2, SpotType.COMPACT), make_spot(1, "A", 1, SpotType.STANDARD)]
    assert select_spot(VehicleType.COMPACT, snapshot).spot_id == "F1-A-001"


def test_preferred_floor_wins_when_it_has_candidates():
    snapshot = [make_spot(1, "A", 1), make_spot(3, "A", 1), make_spot(3, "B", 1)]
    prefs = SpotPreferences(preferred_floor=3)
    ranked = rank_candidates(VehicleType.STANDARD, snapshot, prefs)
    assert [s.spot_id for s in ranked] == ["F3-A-001", "F3-B-001", "F1-A-001"]


def test_preferred_floor_falls_back_to_global_order():
    snapshot = [make_spot(2, "A", 1), make_spot(1, "C", 4)]
    prefs = SpotPreferences(preferred_floor=5)
    assert select_spot(VehicleType.STANDARD, snapshot, prefs).spot_id == "F1-C-004"


def test_required_features_are_a_hard_filter():
    snapshot = [
        make_spot(1, "A", 1, SpotType.ELECTRIC),
        make_spot(2, "A", 1, SpotType.ELECTRIC, features=[SpotFeature.EV_CHARGING]),
    ]
    prefs = SpotPreferences(required_features=frozenset({SpotFeature.EV_CHARGING}))
    assert select_spot(VehicleType.ELECTRIC, snapshot, prefs).spot_id == "F2-A-001"

    prefs = SpotPreferences(required_features=frozenset({SpotFeature.HANDICAP}))
    assert select_spot(VehicleType.ELECTRIC, snapshot, prefs) is None


def test_select_spot_does_not_mutate_snapshot():
    snapshot = [make_spot(1, "A", 2), make_spot(1, "A", 1)]
    before = list(snapshot)
    select_spot(VehicleType.STANDARD, snapshot)
    assert snapshot == before
