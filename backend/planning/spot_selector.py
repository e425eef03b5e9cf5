'''
Spot selection is a pure policy function.

It answers one question: given a vehicle type and a snapshot of spots,
which spot should this vehicle get?

1) Filter by the compatibility table and by status == available

2) Apply the caller's hard requirements (spot features)

3) Prefer the requested floor if it has any candidate

4) Pick the lowest (floor, bay, number)

It never mutates anything. Two callers may get the same answer; the
store's reserve primitive decides who actually wins the spot.
'''

from typing import Dict, FrozenSet, Iterable, List, Optional

from core.entities import Spot, SpotPreferences, SpotType, VehicleType

COMPATIBILITY: Dict[VehicleType, FrozenSet[SpotType]] = {
    VehicleType.MOTORCYCLE: frozenset({SpotType.MOTORCYCLE, SpotType.COMPACT, SpotType.STANDARD}),
    VehicleType.COMPACT: frozenset({SpotType.COMPACT, SpotType.STANDARD}),
    VehicleType.STANDARD: frozenset({SpotType.STANDARD}),
    VehicleType.ELECTRIC: frozenset({SpotType.ELECTRIC, SpotType.STANDARD}),
    VehicleType.OVERSIZED: frozenset({SpotType.OVERSIZED}),
}


def compatible_spot_types(vehicle_type) -> FrozenSet[SpotType]:
    """Spot types a vehicle type may occupy (empty for unknown types)."""
    try:
        return COMPATIBILITY.get(VehicleType(vehicle_type), frozenset())
    except ValueError:
        return frozenset()


def is_compatible(vehicle_type, spot_type) -> bool:
    return spot_type in compatible_spot_types(vehicle_type)


def rank_candidates(
    vehicle_type,
    snapshot: Iterable[Spot],
    preferences: Optional[SpotPreferences] = None,
) -> List[Spot]:
    """All eligible spots, best first."""
    allowed = compatible_spot_types(vehicle_type)
    if not allowed:
        return []

    required = preferences.required_features if preferences else frozenset()
    candidates = [
        spot for spot in snapshot
        if spot.spot_type in allowed
        and spot.is_available()
        and required <= spot.features
    ]
    candidates.sort(key=lambda s: s.sort_key)

    if preferences is not None and preferences.preferred_floor is not None:
        on_floor = [s for s in candidates if s.floor == preferences.preferred_floor]
        if on_floor:
            rest = [s for s in candidates if s.floor != preferences.preferred_floor]
            return on_floor + rest

    return candidates


def select_spot(
    vehicle_type,
    snapshot: Iterable[Spot],
    preferences: Optional[SpotPreferences] = None,
) -> Optional[Spot]:
    ranked = rank_candidates(vehicle_type, snapshot, preferences)
    if not ranked:
        return None
    return ranked[0]
