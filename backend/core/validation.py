import math
import re
from enum import Enum
from typing import Any, Optional, Type, TypeVar

from .entities import CheckinOptions, RateType, SpotFeature, VehicleType
from .errors import ValidationFailed

PLATE_PATTERN = re.compile(r"^[A-Z0-9 -]{2,10}$")
MAX_NOTES_LENGTH = 500
MAX_REASON_LENGTH = 200
# A stay is booked for at most a year.
MAX_EXPECTED_HOURS = 24 * 366

E = TypeVar("E", bound=Enum)


def normalize_plate(license_plate: str) -> str:
    """Canonical plate identity: trimmed and upper-cased."""
    return license_plate.strip().upper()


def validate_plate(license_plate: Any) -> str:
    """Normalize a plate and check it against the allowed character set.

    Returns the normalized plate.
    """
    if not isinstance(license_plate, str):
        raise ValidationFailed(
            "license_plate", license_plate, "License plate is required and must be a string"
        )

    plate = normalize_plate(license_plate)
    if not plate:
        raise ValidationFailed("license_plate", license_plate, "License plate is required")

    if not PLATE_PATTERN.match(plate):
        raise ValidationFailed(
            "license_plate",
            license_plate,
            "License plate must be 2-10 characters of letters, digits, spaces or dashes",
        )
    return plate


def coerce_enum(enum_cls: Type[E], value: Any, field_name: str) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        valid = ", ".join(member.value for member in enum_cls)
        raise ValidationFailed(
            field_name, value, f"Invalid {field_name}: {value}. Valid types: {valid}"
        ) from None


def validate_vehicle_type(vehicle_type: Any) -> VehicleType:
    return coerce_enum(VehicleType, vehicle_type, "vehicle_type")


def validate_options(options: Optional[CheckinOptions]) -> CheckinOptions:
    if options is None:
        return CheckinOptions()

    rate_type = coerce_enum(RateType, options.rate_type, "rate_type")
    features = frozenset(
        coerce_enum(SpotFeature, f, "required_features") for f in options.required_features
    )

    hours = options.expected_duration_hours
    if hours is not None:
        if isinstance(hours, bool) or not isinstance(hours, (int, float)) or not math.isfinite(hours):
            # repr keeps nan / inf out of JSON error bodies.
            raise ValidationFailed(
                "expected_duration_hours", repr(hours), "Expected duration must be a number of hours"
            )
        if not 0 < hours <= MAX_EXPECTED_HOURS:
            raise ValidationFailed(
                "expected_duration_hours",
                hours,
                f"Expected duration must be more than 0 and at most {MAX_EXPECTED_HOURS} hours",
            )

    if options.notes is not None and not isinstance(options.notes, str):
        raise ValidationFailed("notes", options.notes, "Notes must be text")
    if options.notes is not None and len(options.notes) > MAX_NOTES_LENGTH:
        raise ValidationFailed(
            "notes", options.notes[:20] + "...", f"Notes must be at most {MAX_NOTES_LENGTH} characters"
        )

    floor = options.preferred_floor
    if floor is not None and (isinstance(floor, bool) or not isinstance(floor, int)):
        raise ValidationFailed("preferred_floor", floor, "Preferred floor must be a whole number")
    if floor is not None and floor < 0:
        raise ValidationFailed(
            "preferred_floor", options.preferred_floor, "Preferred floor cannot be negative"
        )

    return CheckinOptions(
        rate_type=rate_type,
        expected_duration_hours=hours,
        notes=options.notes,
        preferred_floor=options.preferred_floor,
        required_features=features,
    )


def validate_garage_id(garage_id: Any) -> str:
    if not isinstance(garage_id, str) or not garage_id.strip():
        raise ValidationFailed("garage_id", garage_id, "Garage id is required")
    return garage_id.strip()


def validate_reason(reason: Any, default: str) -> str:
    """Reason recorded on a force-closed session; blank means `default`."""
    if reason is None:
        return default
    if not isinstance(reason, str):
        raise ValidationFailed("reason", reason, "Reason must be text")
    reason = reason.strip()
    if len(reason) > MAX_REASON_LENGTH:
        raise ValidationFailed(
            "reason", reason[:20] + "...", f"Reason must be at most {MAX_REASON_LENGTH} characters"
        )
    return reason or default


def validate_min_minutes(min_minutes: Any) -> int:
    if isinstance(min_minutes, bool) or not isinstance(min_minutes, int) or min_minutes < 0:
        raise ValidationFailed(
            "min_minutes", min_minutes, "Minimum minutes must be a non-negative whole number"
        )
    return min_minutes
