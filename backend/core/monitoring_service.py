"""Read-only views for the garage office: who is parked, and headline counts."""

import datetime as dt
from typing import Callable, List

from db.repositories import SpotRepository, VehicleRepository
from db.store_errors import StoreError

from .durations import parking_duration
from .entities import GarageStats, ParkedVehicle, VehicleStatus, utcnow
from .errors import TransientStoreFailure
from .validation import validate_garage_id, validate_min_minutes


class MonitoringService:
    def __init__(
        self,
        spots: SpotRepository,
        vehicles: VehicleRepository,
        clock: Callable[[], dt.datetime] = utcnow,
    ):
        self.spots = spots
        self.vehicles = vehicles
        self._clock = clock

    def list_parked(self, garage_id: str, min_minutes: int = 0) -> List[ParkedVehicle]:
        """Parked vehicles that have stayed at least `min_minutes`, longest first."""
        garage_id = validate_garage_id(garage_id)
        min_minutes = validate_min_minutes(min_minutes)

        try:
            parked = self.vehicles.find_parked(garage_id)
        except (StoreError, OSError) as exc:
            raise TransientStoreFailure("parked vehicles", str(exc)) from exc

        now = self._clock()
        entries = []
        for vehicle in parked:
            # checked_in_at is stamped by the store clock, which may run ahead.
            _, minutes, _ = parking_duration(vehicle.checked_in_at, max(now, vehicle.checked_in_at))
            if minutes >= min_minutes:
                entries.append(
                    ParkedVehicle(
                        vehicle=vehicle,
                        spot_id=vehicle.spot_id,
                        parked_since=vehicle.checked_in_at,
                        parked_minutes=minutes,
                    )
                )
        return entries

    def get_stats(self, garage_id: str) -> GarageStats:
        garage_id = validate_garage_id(garage_id)

        try:
            spot_stats = self.spots.get_stats(garage_id)
            vehicle_counts = self.vehicles.count_by_status(garage_id)
        except (StoreError, OSError) as exc:
            raise TransientStoreFailure("garage stats", str(exc)) from exc

        rate = 0.0
        if spot_stats.total:
            rate = round(spot_stats.occupied / spot_stats.total * 100, 2)

        return GarageStats(
            garage_id=garage_id,
            total_spots=spot_stats.total,
            available_spots=spot_stats.available,
            occupied_spots=spot_stats.occupied,
            out_of_service_spots=spot_stats.out_of_service,
            occupancy_rate=rate,
            parked_vehicles=vehicle_counts.get(VehicleStatus.PARKED, 0),
            departed_vehicles=vehicle_counts.get(VehicleStatus.DEPARTED, 0),
        )
