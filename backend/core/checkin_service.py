"""Vehicle check-in: reserve a spot, record the vehicle, open a session.

Steps, each pushing its inverse onto a CompensationStack once committed:

1) validate input                     (no writes)
2) reject a plate that is already parked (no writes)
3) reserve a spot                      -> release
4) create / reactivate the vehicle     -> delete / restore prior record
5) open the session                    -> delete
6) confirm the spot hold

Any failure after step 3 unwinds the stack before the error reaches the
caller. Rollback failures are attached to the error, never raised instead
of it.
"""

import datetime as dt
import dataclasses
import logging
from functools import partial
from typing import Callable, List, Optional
import uuid

from db.repositories import SessionRepository, SpotRepository, VehicleRepository
from db.store_errors import StoreError, VehicleAlreadyParkedError
from planning.spot_selector import compatible_spot_types, rank_candidates, select_spot

from .compensation import CompensationStack
from .config import ParkingSettings, get_settings
from .deadline import Deadline
from .entities import (
    CheckinOptions,
    CheckinPreview,
    CheckinResult,
    ParkingSession,
    SessionStatus,
    Spot,
    SpotPreferences,
    SpotStatus,
    Vehicle,
    VehicleType,
    utcnow,
)
from .errors import (
    AlreadyCheckedIn,
    NoSpotsAvailable,
    ParkingError,
    TransientStoreFailure,
)
from .validation import (
    validate_garage_id,
    validate_options,
    validate_plate,
    validate_vehicle_type,
)

log = logging.getLogger(__name__)

# Store failures the caller may retry.
TRANSIENT_ERRORS = (StoreError, OSError)


class CheckinService:
    def __init__(
        self,
        spots: SpotRepository,
        vehicles: VehicleRepository,
        sessions: SessionRepository,
        settings: Optional[ParkingSettings] = None,
        clock: Callable[[], dt.datetime] = utcnow,
    ):
        self.spots = spots
        self.vehicles = vehicles
        self.sessions = sessions
        self.settings = settings or get_settings()
        self._clock = clock

    # ------------------------
    # Public operations
    # ------------------------

    def check_in(
        self,
        garage_id: str,
        license_plate: str,
        vehicle_type,
        options: Optional[CheckinOptions] = None,
    ) -> CheckinResult:
        garage_id = validate_garage_id(garage_id)
        plate = validate_plate(license_plate)
        vtype = validate_vehicle_type(vehicle_type)
        opts = validate_options(options)

        deadline = Deadline("check-in", self.settings.operation_timeout_seconds)
        self._reject_duplicate(garage_id, plate)

        compensations = CompensationStack("check-in")
        try:
            spot = self._reserve_spot(garage_id, plate, vtype, opts.preferences, deadline, compensations)

            deadline.check("create vehicle")
            vehicle = self._create_vehicle(garage_id, plate, spot, vtype, opts, compensations)

            deadline.check("create session")
            session = self._open_session(garage_id, vehicle, spot, opts, compensations)

            deadline.check("confirm spot")
            self._confirm_spot(garage_id, spot, plate)
        except VehicleAlreadyParkedError as exc:
            # Lost the race for this plate to a concurrent check-in.
            compensations.abort(AlreadyCheckedIn(plate, exc.spot_id), exc)
        except ParkingError as exc:
            compensations.abort(exc)
        except TRANSIENT_ERRORS as exc:
            compensations.abort(TransientStoreFailure("check-in", str(exc)), exc)
        except Exception:
            compensations.unwind()
            raise

        confirmed = dataclasses.replace(
            spot, status=SpotStatus.OCCUPIED, occupant=plate, confirmed=True
        )
        log.info(
            "Checked in %s (%s) at %s/%s, session %s",
            plate, vtype.value, garage_id, spot.spot_id, session.session_id,
        )
        return CheckinResult(vehicle=vehicle, spot=confirmed, session=session)

    def preview(
        self,
        garage_id: str,
        license_plate: str,
        vehicle_type,
        options: Optional[CheckinOptions] = None,
    ) -> CheckinPreview:
        """Report what check_in would do right now, without writing anything."""
        garage_id = validate_garage_id(garage_id)
        plate = validate_plate(license_plate)
        vtype = validate_vehicle_type(vehicle_type)
        opts = validate_options(options)

        try:
            existing = self.vehicles.find_by_plate(garage_id, plate)
            if existing is not None and existing.is_parked():
                return CheckinPreview(
                    would_succeed=False,
                    reason=f"Vehicle {plate} is already checked in at spot {existing.spot_id}",
                )

            allowed = compatible_spot_types(vtype)
            snapshot = self.spots.find_available(garage_id, allowed) if allowed else []
        except TRANSIENT_ERRORS as exc:
            raise TransientStoreFailure("check-in preview", str(exc)) from exc

        ranked = rank_candidates(vtype, snapshot, opts.preferences)
        if not ranked:
            return CheckinPreview(
                would_succeed=False,
                reason=f"No compatible spots available for {vtype.value} vehicles",
            )
        return CheckinPreview(
            would_succeed=True, spot=ranked[0], compatible_available=len(ranked)
        )

    # ------------------------
    # Steps
    # ------------------------

    def _reject_duplicate(self, garage_id: str, plate: str) -> None:
        try:
            existing = self.vehicles.find_by_plate(garage_id, plate)
        except TRANSIENT_ERRORS as exc:
            raise TransientStoreFailure("check-in", str(exc)) from exc

        if existing is not None and existing.is_parked():
            raise AlreadyCheckedIn(plate, existing.spot_id)

    def _reserve_spot(
        self,
        garage_id: str,
        plate: str,
        vtype: VehicleType,
        preferences: SpotPreferences,
        deadline: Deadline,
        compensations: CompensationStack,
    ) -> Spot:
        allowed = compatible_spot_types(vtype)

        for attempt in range(1, self.settings.reservation_attempts + 1):
            deadline.check("reserve spot")
            snapshot: List[Spot] = (
                self.spots.find_available(garage_id, allowed) if allowed else []
            )
            working = list(snapshot)

            candidate = select_spot(vtype, working, preferences)
            while candidate is not None:
                if self.spots.reserve(garage_id, candidate.spot_id, plate):
                    compensations.push(
                        f"release spot {candidate.spot_id}",
                        partial(self._release_hold, garage_id, candidate.spot_id, plate),
                    )
                    return candidate

                log.debug(
                    "Spot %s taken concurrently while checking in %s (attempt %d)",
                    candidate.spot_id, plate, attempt,
                )
                working = [s for s in working if s.spot_id != candidate.spot_id]
                deadline.check("reserve spot")
                candidate = select_spot(vtype, working, preferences)

            if not snapshot:
                break

        compatible = self.spots.get_stats(garage_id, allowed)
        overall = self.spots.get_stats(garage_id)
        raise NoSpotsAvailable(
            vtype.value, compatible.available, compatible.occupied, overall.available
        )

    def _create_vehicle(
        self,
        garage_id: str,
        plate: str,
        spot: Spot,
        vtype: VehicleType,
        opts: CheckinOptions,
        compensations: CompensationStack,
    ) -> Vehicle:
        vehicle, prior = self.vehicles.create_or_reactivate(
            garage_id, plate, spot.spot_id, vtype, opts.rate_type, opts.notes
        )
        if prior is None:
            compensations.push(
                f"delete vehicle {plate}", partial(self.vehicles.delete, vehicle.vehicle_id)
            )
        else:
            compensations.push(
                f"restore vehicle {plate}", partial(self.vehicles.restore, prior)
            )
        return vehicle

    def _open_session(
        self,
        garage_id: str,
        vehicle: Vehicle,
        spot: Spot,
        opts: CheckinOptions,
        compensations: CompensationStack,
    ) -> ParkingSession:
        entry_time = self._clock()
        expected_end = None
        if opts.expected_duration_hours is not None:
            expected_end = entry_time + dt.timedelta(hours=opts.expected_duration_hours)

        session = self.sessions.create(
            ParkingSession(
                session_id=str(uuid.uuid4()),
                garage_id=garage_id,
                vehicle_id=vehicle.vehicle_id,
                license_plate=vehicle.license_plate,
                spot_id=spot.spot_id,
                entry_time=entry_time,
                status=SessionStatus.ACTIVE,
                expected_end_time=expected_end,
                notes=opts.notes,
            )
        )
        compensations.push(
            f"delete session {session.session_id}",
            partial(self.sessions.delete, session.session_id),
        )
        return session

    def _confirm_spot(self, garage_id: str, spot: Spot, plate: str) -> None:
        if not self.spots.confirm(garage_id, spot.spot_id, plate):
            raise StoreError(f"Hold on spot {spot.spot_id} for {plate} was lost before confirmation")

    def _release_hold(self, garage_id: str, spot_id: str, plate: str) -> None:
        if not self.spots.release(garage_id, spot_id, plate):
            raise StoreError(f"Spot {spot_id} is no longer held by {plate}")

