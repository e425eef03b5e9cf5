import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from core.entities import Spot, SpotFeature, SpotType
from db.repositories import SpotRepository
from db.store_errors import DuplicateSpotError

log = logging.getLogger(__name__)


class LayoutError(Exception):
    pass


@dataclass(frozen=True)
class GarageLayout:
    """Shape of a garage, applied identically to every floor.

    Spots on a floor are numbered by position: bay A holds positions
    0..spots_per_bay-1, bay B the next block, and so on.

    - `type_plan`: (spot_type, count) blocks consumed in order from position 0;
      positions past the plan are standard spots.
    - `feature_plan`: (feature, start, stop) position ranges, stop exclusive.
    """

    floors: int
    bays: Sequence[str]
    spots_per_bay: int
    type_plan: Sequence[Tuple[SpotType, int]] = ()
    feature_plan: Sequence[Tuple[SpotFeature, int, int]] = field(default_factory=tuple)

    @property
    def spots_per_floor(self) -> int:
        return len(self.bays) * self.spots_per_bay

    def validate(self) -> None:
        if self.floors < 1:
            raise LayoutError("Garage must have at least one floor")
        if not self.bays:
            raise LayoutError("Garage must have at least one bay per floor")
        if len(set(self.bays)) != len(self.bays):
            raise LayoutError(f"Bay names must be unique, got {list(self.bays)}")
        if self.spots_per_bay < 1:
            raise LayoutError("Each bay needs at least one spot")
        if self.spots_per_bay > 999:
            raise LayoutError("Spot numbers are three digits; at most 999 spots per bay")

        planned = sum(count for _, count in self.type_plan)
        if any(count < 0 for _, count in self.type_plan):
            raise LayoutError("Type plan counts must be non-negative")
        if planned > self.spots_per_floor:
            raise LayoutError(
                f"Type plan assigns {planned} spots, "
                f"but a floor only has {self.spots_per_floor}."
            )
        for feature, start, stop in self.feature_plan:
            if not 0 <= start <= stop <= self.spots_per_floor:
                raise LayoutError(f"Feature range {feature.value} [{start}, {stop}) is outside the floor")


# Mirrors the demo garage: 3 floors of 100 spots, accessible spots first,
# then EV chargers, then compact, a motorcycle row and an oversized bay.
DEFAULT_LAYOUT = GarageLayout(
    floors=3,
    bays="ABCDEFGHIJ",
    spots_per_bay=10,
    type_plan=(
        (SpotType.STANDARD, 5),
        (SpotType.ELECTRIC, 10),
        (SpotType.COMPACT, 15),
        (SpotType.MOTORCYCLE, 10),
        (SpotType.STANDARD, 50),
        (SpotType.OVERSIZED, 10),
    ),
    feature_plan=(
        (SpotFeature.HANDICAP, 0, 5),
        (SpotFeature.EV_CHARGING, 5, 15),
    ),
)


def _types_by_position(layout: GarageLayout) -> List[SpotType]:
    types: List[SpotType] = []
    for spot_type, count in layout.type_plan:
        types.extend([spot_type] * count)
    types.extend([SpotType.STANDARD] * (layout.spots_per_floor - len(types)))
    return types


def _features_by_position(layout: GarageLayout) -> Dict[int, frozenset]:
    features: Dict[int, set] = {}
    for feature, start, stop in layout.feature_plan:
        for position in range(start, stop):
            features.setdefault(position, set()).add(feature)
    return {position: frozenset(f) for position, f in features.items()}


def build_spots(garage_id: str, layout: GarageLayout) -> List[Spot]:
    """Deterministic spot list for `layout`, in selection order."""
    layout.validate()
    types = _types_by_position(layout)
    features = _features_by_position(layout)

    spots = []
    for floor in range(1, layout.floors + 1):
        for bay_index, bay in enumerate(layout.bays):
            for number in range(1, layout.spots_per_bay + 1):
                position = bay_index * layout.spots_per_bay + number - 1
                spots.append(
                    Spot(
                        garage_id=garage_id,
                        floor=floor,
                        bay=bay,
                        number=number,
                        spot_type=types[position],
                        features=features.get(position, frozenset()),
                    )
                )
    return spots


def seed_garage(
    spot_repository: SpotRepository, garage_id: str, layout: GarageLayout = DEFAULT_LAYOUT
) -> List[Spot]:
    spots = build_spots(garage_id, layout)
    for spot in spots:
        try:
            spot_repository.add(spot)
        except DuplicateSpotError as exc:
            raise LayoutError(f"Garage {garage_id} already has spot {spot.spot_id}") from exc

    log.info("Seeded garage %s with %d spots over %d floors", garage_id, len(spots), layout.floors)
    return spots
