# Every failure of a core operation is one of these kinds. Callers (the HTTP
# layer) branch on `kind`, never on message text.

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(str, Enum):
    VALIDATION_FAILED = "validation_failed"
    ALREADY_CHECKED_IN = "already_checked_in"
    NO_SPOTS_AVAILABLE = "no_spots_available"
    NOT_CHECKED_IN = "not_checked_in"
    TRANSIENT_STORE_FAILURE = "transient_store_failure"


class ParkingError(Exception):
    """
    Base class for all check-in / check-out failures.
    """

    kind: ErrorKind
    retryable: bool = False

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail: Dict[str, Any] = dict(detail or {})
        # Secondary failures hit while undoing partial writes.
        self.rollback_errors: List[Exception] = []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "retryable": self.retryable,
            "detail": self.detail,
        }


class ValidationFailed(ParkingError):
    """
    Raised for a malformed plate or an unknown vehicle / rate type.
    """

    kind = ErrorKind.VALIDATION_FAILED

    def __init__(self, field_name: str, value: Any, message: str):
        super().__init__(message, {"field": field_name, "value": value})
        self.field_name = field_name


class AlreadyCheckedIn(ParkingError):
    """
    Raised when the plate already has a parked vehicle record.
    """

    kind = ErrorKind.ALREADY_CHECKED_IN

    def __init__(self, license_plate: str, spot_id: Optional[str]):
        super().__init__(
            f"Vehicle {license_plate} is already checked in at spot {spot_id}",
            {"license_plate": license_plate, "spot_id": spot_id},
        )
        self.license_plate = license_plate
        self.spot_id = spot_id


class NoSpotsAvailable(ParkingError):
    """
    Raised when no compatible spot could be reserved.
    """

    kind = ErrorKind.NO_SPOTS_AVAILABLE
    retryable = True

    def __init__(
        self,
        vehicle_type: str,
        compatible_available: int,
        compatible_occupied: int,
        total_available: int,
    ):
        super().__init__(
            f"No available spots for {vehicle_type} vehicles. "
            f"Compatible spots available: {compatible_available}, "
            f"occupied: {compatible_occupied}. "
            f"Total spots available: {total_available}",
            {
                "vehicle_type": vehicle_type,
                "compatible_available": compatible_available,
                "compatible_occupied": compatible_occupied,
                "total_available": total_available,
            },
        )
        self.compatible_available = compatible_available
        self.compatible_occupied = compatible_occupied
        self.total_available = total_available


class NotCheckedIn(ParkingError):
    """
    Raised when check-out is requested for a plate with no active session.
    """

    kind = ErrorKind.NOT_CHECKED_IN

    def __init__(self, license_plate: str):
        super().__init__(
            f"Vehicle {license_plate} has no active parking session",
            {"license_plate": license_plate},
        )
        self.license_plate = license_plate


class TransientStoreFailure(ParkingError):
    """
    Raised when a repository call failed or the operation ran out of time.
    Partial writes have already been rolled back when this reaches the caller.
    """

    kind = ErrorKind.TRANSIENT_STORE_FAILURE
    retryable = True

    def __init__(self, operation: str, message: str):
        super().__init__(message, {"operation": operation})
        self.operation = operation
