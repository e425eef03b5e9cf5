import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional


class VehicleType(str, Enum):
    COMPACT = "compact"
    STANDARD = "standard"
    OVERSIZED = "oversized"
    ELECTRIC = "electric"
    MOTORCYCLE = "motorcycle"


class SpotType(str, Enum):
    COMPACT = "compact"
    STANDARD = "standard"
    OVERSIZED = "oversized"
    ELECTRIC = "electric"
    MOTORCYCLE = "motorcycle"


class SpotFeature(str, Enum):
    EV_CHARGING = "ev_charging"
    HANDICAP = "handicap"


class SpotStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    OUT_OF_SERVICE = "out_of_service"


class VehicleStatus(str, Enum):
    PARKED = "parked"
    DEPARTED = "departed"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RateType(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    MONTHLY = "monthly"


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def format_spot_id(floor: int, bay: str, number: int) -> str:
    return f"F{floor}-{bay}-{number:03d}"


@dataclass(frozen=True)
class Spot:
    """One physical parking location.

    Instances are immutable snapshots; stores hand out copies and apply
    state changes by replacing the record.
    """

    garage_id: str
    floor: int
    bay: str
    number: int
    spot_type: SpotType
    features: FrozenSet[SpotFeature] = frozenset()
    status: SpotStatus = SpotStatus.AVAILABLE
    occupant: Optional[str] = None
    confirmed: bool = False

    @property
    def spot_id(self) -> str:
        return format_spot_id(self.floor, self.bay, self.number)

    @property
    def sort_key(self):
        return (self.floor, self.bay, self.number)

    def is_available(self) -> bool:
        return self.status == SpotStatus.AVAILABLE

    def is_occupied(self) -> bool:
        return self.status == SpotStatus.OCCUPIED


@dataclass(frozen=True)
class Vehicle:
    vehicle_id: str
    garage_id: str
    license_plate: str
    vehicle_type: VehicleType
    rate_type: RateType
    status: VehicleStatus
    spot_id: Optional[str]
    checked_in_at: Optional[dt.datetime] = None
    checked_out_at: Optional[dt.datetime] = None
    notes: Optional[str] = None

    def is_parked(self) -> bool:
        return self.status == VehicleStatus.PARKED


@dataclass(frozen=True)
class ParkingSession:
    session_id: str
    garage_id: str
    vehicle_id: str
    license_plate: str
    spot_id: str
    entry_time: dt.datetime
    status: SessionStatus = SessionStatus.ACTIVE
    expected_end_time: Optional[dt.datetime] = None
    exit_time: Optional[dt.datetime] = None
    duration_minutes: Optional[int] = None
    billable_hours: Optional[int] = None
    notes: Optional[str] = None
    closed_reason: Optional[str] = None

    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE


@dataclass(frozen=True)
class SpotTypeCounts:
    total: int = 0
    available: int = 0
    occupied: int = 0
    out_of_service: int = 0


@dataclass(frozen=True)
class SpotStats:
    """Occupancy counts taken from a single consistent read of the spot store."""

    total: int
    available: int
    occupied: int
    out_of_service: int
    by_spot_type: Dict[SpotType, SpotTypeCounts] = field(default_factory=dict)


# -------------------------------------------------
# Operation inputs / results
# -------------------------------------------------

@dataclass(frozen=True)
class SpotPreferences:
    preferred_floor: Optional[int] = None
    required_features: FrozenSet[SpotFeature] = frozenset()


@dataclass(frozen=True)
class CheckinOptions:
    rate_type: RateType = RateType.HOURLY
    expected_duration_hours: Optional[float] = None
    notes: Optional[str] = None
    preferred_floor: Optional[int] = None
    required_features: FrozenSet[SpotFeature] = frozenset()

    @property
    def preferences(self) -> SpotPreferences:
        return SpotPreferences(
            preferred_floor=self.preferred_floor,
            required_features=frozenset(self.required_features),
        )


@dataclass(frozen=True)
class CheckinResult:
    vehicle: Vehicle
    spot: Spot
    session: ParkingSession


@dataclass(frozen=True)
class CheckoutResult:
    vehicle: Vehicle
    spot: Spot
    session: ParkingSession
    total_duration: dt.timedelta


@dataclass(frozen=True)
class AvailabilitySnapshot:
    garage_id: str
    vehicle_type: Optional[VehicleType]
    total: int
    available: int
    occupied: int
    out_of_service: int
    by_spot_type: Dict[SpotType, SpotTypeCounts]


@dataclass(frozen=True)
class CheckinPreview:
    """Outcome of a dry-run check-in: what would happen, with no writes."""

    would_succeed: bool
    spot: Optional[Spot] = None
    reason: Optional[str] = None
    compatible_available: int = 0


@dataclass(frozen=True)
class CheckoutPreview:
    """Outcome of a dry-run check-out: the spot that would be freed and the bill so far."""

    would_succeed: bool
    spot_id: Optional[str] = None
    session_id: Optional[str] = None
    entry_time: Optional[dt.datetime] = None
    duration_minutes: int = 0
    billable_hours: int = 0
    reason: Optional[str] = None


@dataclass(frozen=True)
class ParkedVehicle:
    vehicle: Vehicle
    spot_id: str
    parked_since: dt.datetime
    parked_minutes: int


@dataclass(frozen=True)
class GarageStats:
    garage_id: str
    total_spots: int
    available_spots: int
    occupied_spots: int
    out_of_service_spots: int
    # Percentage of all spots that are occupied, two decimals.
    occupancy_rate: float
    parked_vehicles: int
    departed_vehicles: int
