# core/parking_manager.py
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from db.memory_store import (
    InMemorySessionRepository,
    InMemorySpotRepository,
    InMemoryVehicleRepository,
)
from db.repositories import SessionRepository, SpotRepository, VehicleRepository
from db.session_repository import SqlSessionRepository
from db.spot_repository import SqlSpotRepository
from db.vehicle_repository import SqlVehicleRepository

from .availability_service import AvailabilityService
from .checkin_service import CheckinService
from .checkout_service import CheckoutService
from .config import ParkingSettings, get_settings
from .entities import (
    AvailabilitySnapshot,
    CheckinOptions,
    CheckinPreview,
    CheckinResult,
    CheckoutPreview,
    CheckoutResult,
    GarageStats,
    ParkedVehicle,
)
from .monitoring_service import MonitoringService


class ParkingManager:
    """Entry point of the check-in / check-out core.

    Owns the three stores and the services that coordinate writes across
    them. Every call names its garage explicitly.
    """

    def __init__(
        self,
        spots: SpotRepository,
        vehicles: VehicleRepository,
        sessions: SessionRepository,
        settings: Optional[ParkingSettings] = None,
    ):
        self.settings = settings or get_settings()
        self.spots = spots
        self.vehicles = vehicles
        self.sessions = sessions

        self.checkin = CheckinService(spots, vehicles, sessions, self.settings)
        self.checkout = CheckoutService(spots, vehicles, sessions, self.settings)
        self.availability = AvailabilityService(spots)
        self.monitoring = MonitoringService(spots, vehicles)

    # ---------------- construction ----------------

    @classmethod
    def in_memory(cls, settings: Optional[ParkingSettings] = None) -> "ParkingManager":
        settings = settings or get_settings()
        timeout = settings.store_lock_timeout_seconds
        return cls(
            InMemorySpotRepository(timeout),
            InMemoryVehicleRepository(timeout),
            InMemorySessionRepository(timeout),
            settings,
        )

    @classmethod
    def with_sql(
        cls, session_factory: sessionmaker, settings: Optional[ParkingSettings] = None
    ) -> "ParkingManager":
        return cls(
            SqlSpotRepository(session_factory),
            SqlVehicleRepository(session_factory),
            SqlSessionRepository(session_factory),
            settings,
        )

    # ---------------- operations ----------------

    def check_in(
        self,
        garage_id: str,
        license_plate: str,
        vehicle_type,
        options: Optional[CheckinOptions] = None,
    ) -> CheckinResult:
        return self.checkin.check_in(garage_id, license_plate, vehicle_type, options)

    def preview_check_in(
        self,
        garage_id: str,
        license_plate: str,
        vehicle_type,
        options: Optional[CheckinOptions] = None,
    ) -> CheckinPreview:
        return self.checkin.preview(garage_id, license_plate, vehicle_type, options)

    def check_out(self, garage_id: str, license_plate: str) -> CheckoutResult:
        return self.checkout.check_out(garage_id, license_plate)

    def force_check_out(
        self, garage_id: str, license_plate: str, reason: Optional[str] = None
    ) -> CheckoutResult:
        return self.checkout.force_check_out(garage_id, license_plate, reason)

    def get_availability(self, garage_id: str, vehicle_type=None) -> AvailabilitySnapshot:
        return self.availability.get_availability(garage_id, vehicle_type)

    def preview_check_out(self, garage_id: str, license_plate: str) -> CheckoutPreview:
        return self.checkout.preview(garage_id, license_plate)

    def list_parked(self, garage_id: str, min_minutes: int = 0) -> List[ParkedVehicle]:
        return self.monitoring.list_parked(garage_id, min_minutes)

    def get_garage_stats(self, garage_id: str) -> GarageStats:
        return self.monitoring.get_stats(garage_id)
