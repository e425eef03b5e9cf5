
from db.repositories import SpotRepository
from db.store_errors import StoreError
from planning.spot_selector import compatible_spot_types

from .entities import AvailabilitySnapshot
from .errors import TransientStoreFailure
from .validation import validate_garage_id, validate_vehicle_type


class AvailabilityService:
    """Read-only occupancy counts.

    All numbers in one snapshot come from a single `get_stats` read, so a
    reservation landing mid-query is either fully counted or not at all.
    """

    def __init__(self, spots: SpotRepository):
        self.spots = spots

    def get_availability(self, garage_id: str, vehicle_type=None) -> AvailabilitySnapshot:
        garage_id = validate_garage_id(garage_id)
        vtype = None if vehicle_type is None else validate_vehicle_type(vehicle_type)
        spot_types = None if vtype is None else compatible_spot_types(vtype)

        try:
            stats = self.spots.get_stats(garage_id, spot_types)
        except (StoreError, OSError) as exc:
            raise TransientStoreFailure("availability", str(exc)) from exc

        return AvailabilitySnapshot(
            garage_id=garage_id,
            vehicle_type=vtype,
            total=stats.total,
            available=stats.available,
            occupied=stats.occupied,
            out_of_service=stats.out_of_service,
            by_spot_type=dict(stats.by_spot_type),
        )
