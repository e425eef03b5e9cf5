import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.entities import (
    AvailabilitySnapshot,
    CheckinOptions,
    CheckinPreview,
    CheckinResult,
    CheckoutPreview,
    CheckoutResult,
    GarageStats,
    ParkedVehicle,
    ParkingSession,
    Spot,
    Vehicle,
)

# --- Request DTOs ---

class CheckinRequest(BaseModel):
    license_plate: str
    vehicle_type: str
    rate_type: str = "hourly"
    expected_duration_hours: Optional[float] = None
    notes: Optional[str] = None
    preferred_floor: Optional[int] = None
    required_features: List[str] = Field(default_factory=list)

    def to_options(self) -> CheckinOptions:
        # Raw strings go through; the core validates and coerces them.
        return CheckinOptions(
            rate_type=self.rate_type,
            expected_duration_hours=self.expected_duration_hours,
            notes=self.notes,
            preferred_floor=self.preferred_floor,
            required_features=frozenset(self.required_features),
        )


class CheckoutRequest(BaseModel):
    license_plate: str


class ForceCheckoutRequest(BaseModel):
    license_plate: str
    reason: Optional[str] = None

# --- Response DTOs ---

class SpotDTO(BaseModel):
    spot_id: str
    floor: int
    bay: str
    number: int
    spot_type: str
    features: List[str]
    status: str
    occupant: Optional[str] = None

    @classmethod
    def from_spot(cls, spot: Spot) -> "SpotDTO":
        return cls(
            spot_id=spot.spot_id,
            floor=spot.floor,
            bay=spot.bay,
            number=spot.number,
            spot_type=spot.spot_type.value,
            features=sorted(f.value for f in spot.features),
            status=spot.status.value,
            occupant=spot.occupant,
        )


class VehicleDTO(BaseModel):
    vehicle_id: str
    license_plate: str
    vehicle_type: str
    rate_type: str
    status: str
    spot_id: Optional[str] = None
    checked_in_at: Optional[dt.datetime] = None
    checked_out_at: Optional[dt.datetime] = None

    @classmethod
    def from_vehicle(cls, vehicle: Vehicle) -> "VehicleDTO":
        return cls(
            vehicle_id=vehicle.vehicle_id,
            license_plate=vehicle.license_plate,
            vehicle_type=vehicle.vehicle_type.value,
            rate_type=vehicle.rate_type.value,
            status=vehicle.status.value,
            spot_id=vehicle.spot_id,
            checked_in_at=vehicle.checked_in_at,
            checked_out_at=vehicle.checked_out_at,
        )


class SessionDTO(BaseModel):
    session_id: str
    spot_id: str
    status: str
    entry_time: dt.datetime
    expected_end_time: Optional[dt.datetime] = None
    exit_time: Optional[dt.datetime] = None
    duration_minutes: Optional[int] = None
    billable_hours: Optional[int] = None
    closed_reason: Optional[str] = None

    @classmethod
    def from_session(cls, session: ParkingSession) -> "SessionDTO":
        return cls(
            session_id=session.session_id,
            spot_id=session.spot_id,
            status=session.status.value,
            entry_time=session.entry_time,
            expected_end_time=session.expected_end_time,
            exit_time=session.exit_time,
            duration_minutes=session.duration_minutes,
            billable_hours=session.billable_hours,
            closed_reason=session.closed_reason,
        )


class CheckinResponse(BaseModel):
    vehicle: VehicleDTO
    spot: SpotDTO
    session: SessionDTO

    @classmethod
    def from_result(cls, result: CheckinResult) -> "CheckinResponse":
        return cls(
            vehicle=VehicleDTO.from_vehicle(result.vehicle),
            spot=SpotDTO.from_spot(result.spot),
            session=SessionDTO.from_session(result.session),
        )


class CheckinPreviewResponse(BaseModel):
    would_succeed: bool
    spot: Optional[SpotDTO] = None
    reason: Optional[str] = None
    compatible_available: int = 0

    @classmethod
    def from_preview(cls, preview: CheckinPreview) -> "CheckinPreviewResponse":
        return cls(
            would_succeed=preview.would_succeed,
            spot=SpotDTO.from_spot(preview.spot) if preview.spot else None,
            reason=preview.reason,
            compatible_available=preview.compatible_available,
        )


class CheckoutResponse(BaseModel):
    vehicle: VehicleDTO
    spot: SpotDTO
    session: SessionDTO
    total_duration_minutes: int

    @classmethod
    def from_result(cls, result: CheckoutResult) -> "CheckoutResponse":
        return cls(
            vehicle=VehicleDTO.from_vehicle(result.vehicle),
            spot=SpotDTO.from_spot(result.spot),
            session=SessionDTO.from_session(result.session),
            total_duration_minutes=int(result.total_duration.total_seconds() // 60),
        )


class CheckoutPreviewResponse(BaseModel):
    would_succeed: bool
    spot_id: Optional[str] = None
    session_id: Optional[str] = None
    entry_time: Optional[dt.datetime] = None
    duration_minutes: int = 0
    billable_hours: int = 0
    reason: Optional[str] = None

    @classmethod
    def from_preview(cls, preview: CheckoutPreview) -> "CheckoutPreviewResponse":
        return cls(
            would_succeed=preview.would_succeed,
            spot_id=preview.spot_id,
            session_id=preview.session_id,
            entry_time=preview.entry_time,
            duration_minutes=preview.duration_minutes,
            billable_hours=preview.billable_hours,
            reason=preview.reason,
        )


class ParkedVehicleDTO(BaseModel):
    license_plate: str
    vehicle_type: str
    rate_type: str
    spot_id: str
    parked_since: dt.datetime
    parked_minutes: int

    @classmethod
    def from_entry(cls, entry: ParkedVehicle) -> "ParkedVehicleDTO":
        return cls(
            license_plate=entry.vehicle.license_plate,
            vehicle_type=entry.vehicle.vehicle_type.value,
            rate_type=entry.vehicle.rate_type.value,
            spot_id=entry.spot_id,
            parked_since=entry.parked_since,
            parked_minutes=entry.parked_minutes,
        )


class GarageStatsResponse(BaseModel):
    garage_id: str
    total_spots: int
    available_spots: int
    occupied_spots: int
    out_of_service_spots: int
    occupancy_rate: float
    parked_vehicles: int
    departed_vehicles: int

    @classmethod
    def from_stats(cls, stats: GarageStats) -> "GarageStatsResponse":
        return cls(
            garage_id=stats.garage_id,
            total_spots=stats.total_spots,
            available_spots=stats.available_spots,
            occupied_spots=stats.occupied_spots,
            out_of_service_spots=stats.out_of_service_spots,
            occupancy_rate=stats.occupancy_rate,
            parked_vehicles=stats.parked_vehicles,
            departed_vehicles=stats.departed_vehicles,
        )


class SpotTypeCountsDTO(BaseModel):
    total: int
    available: int
    occupied: int
    out_of_service: int


class AvailabilityResponse(BaseModel):
    garage_id: str
    vehicle_type: Optional[str] = None
    total: int
    available: int
    occupied: int
    out_of_service: int
    by_spot_type: Dict[str, SpotTypeCountsDTO]

    @classmethod
    def from_snapshot(cls, snapshot: AvailabilitySnapshot) -> "AvailabilityResponse":
        return cls(
            garage_id=snapshot.garage_id,
            vehicle_type=snapshot.vehicle_type.value if snapshot.vehicle_type else None,
            total=snapshot.total,
            available=snapshot.available,
            occupied=snapshot.occupied,
            out_of_service=snapshot.out_of_service,
            by_spot_type={
                spot_type.value: SpotTypeCountsDTO(
                    total=c.total,
                    available=c.available,
                    occupied=c.occupied,
                    out_of_service=c.out_of_service,
                )
                for spot_type, c in snapshot.by_spot_type.items()
            },
        )


class ErrorDTO(BaseModel):
    kind: str
    message: str
    retryable: bool
    detail: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    error: ErrorDTO
