"""Vehicle check-out: close the session, mark the vehicle departed, free the spot.

The spot is released last. Every earlier write has a private inverse
(reopen the session, restore the vehicle record); once the spot is back in
the pool a concurrent check-in may take it, so nothing after the release
can fail and require it back.
"""

import dataclasses
import datetime as dt
import logging
from functools import partial
from typing import Callable, Optional

from db.repositories import SessionRepository, SpotRepository, VehicleRepository
from db.store_errors import (
    SessionStateError,
    SpotNotFoundError,
    StoreError,
    VehicleNotFoundError,
)

from .compensation import CompensationStack
from .config import ParkingSettings, get_settings
from .deadline import Deadline
from .durations import parking_duration
from .entities import (
    CheckoutPreview,
    CheckoutResult,
    ParkingSession,
    Spot,
    SpotStatus,
    Vehicle,
    VehicleStatus,
    utcnow,
)
from .errors import NotCheckedIn, ParkingError, TransientStoreFailure
from .validation import validate_garage_id, validate_plate, validate_reason

log = logging.getLogger(__name__)

TRANSIENT_ERRORS = (StoreError, OSError)


class CheckoutService:
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

    def check_out(self, garage_id: str, license_plate: str) -> CheckoutResult:
        return self._check_out(garage_id, license_plate, reason=None)

    def force_check_out(
        self, garage_id: str, license_plate: str, reason: Optional[str] = None
    ) -> CheckoutResult:
        """Administrative check-out.

        Behaves like check_out, records `reason` on the session and frees the
        spot even if its occupant no longer matches the vehicle.
        """
        reason = validate_reason(reason, "Administrative action")
        log.warning("Forced check-out requested for %s in %s: %s", license_plate, garage_id, reason)
        return self._check_out(garage_id, license_plate, reason=reason)

    def preview(self, garage_id: str, license_plate: str) -> CheckoutPreview:
        """Report what check_out would do right now, without writing anything."""
        garage_id = validate_garage_id(garage_id)
        plate = validate_plate(license_plate)

        try:
            _, session = self._find_active(garage_id, plate)
        except NotCheckedIn:
            return CheckoutPreview(would_succeed=False, reason=f"Vehicle {plate} is not checked in")

        _, minutes, billable = parking_duration(session.entry_time, self._clock())
        return CheckoutPreview(
            would_succeed=True,
            spot_id=session.spot_id,
            session_id=session.session_id,
            entry_time=session.entry_time,
            duration_minutes=minutes,
            billable_hours=billable,
        )

    def _check_out(self, garage_id: str, license_plate: str, reason: Optional[str]) -> CheckoutResult:
        garage_id = validate_garage_id(garage_id)
        plate = validate_plate(license_plate)
        forced = reason is not None

        deadline = Deadline("check-out", self.settings.operation_timeout_seconds)
        vehicle, session = self._find_active(garage_id, plate)

        compensations = CompensationStack("check-out")
        try:
            deadline.check("close session")
            closed = self._close_session(session, reason, compensations)

            deadline.check("mark vehicle departed")
            departed = self._depart_vehicle(garage_id, plate, vehicle, compensations)

            deadline.check("release spot")
            spot = self._release_spot(garage_id, session.spot_id, plate, forced)
        except SessionStateError as exc:
            # Another check-out for this plate closed the session first.
            compensations.abort(NotCheckedIn(plate), exc)
        except VehicleNotFoundError as exc:
            compensations.abort(NotCheckedIn(plate), exc)
        except ParkingError as exc:
            compensations.abort(exc)
        except TRANSIENT_ERRORS as exc:
            compensations.abort(TransientStoreFailure("check-out", str(exc)), exc)
        except Exception:
            compensations.unwind()
            raise

        total_duration = closed.exit_time - closed.entry_time
        log.info(
            "Checked out %s from %s/%s after %d min, session %s",
            plate, garage_id, session.spot_id, closed.duration_minutes or 0, closed.session_id,
        )
        return CheckoutResult(
            vehicle=departed, spot=spot, session=closed, total_duration=total_duration
        )

    # ------------------------
    # Steps
    # ------------------------

    def _find_active(self, garage_id: str, plate: str):
        try:
            vehicle = self.vehicles.find_by_plate(garage_id, plate)
            if vehicle is None or not vehicle.is_parked():
                raise NotCheckedIn(plate)
            session = self.sessions.find_active_by_vehicle(vehicle.vehicle_id)
        except TRANSIENT_ERRORS as exc:
            raise TransientStoreFailure("check-out", str(exc)) from exc

        if session is None:
            raise NotCheckedIn(plate)
        return vehicle, session

    def _close_session(
        self,
        session: ParkingSession,
        reason: Optional[str],
        compensations: CompensationStack,
    ) -> ParkingSession:
        closed = self.sessions.close(session.session_id, self._clock(), reason)
        compensations.push(
            f"reopen session {session.session_id}",
            partial(self.sessions.reopen, session.session_id),
        )
        return closed

    def _depart_vehicle(
        self,
        garage_id: str,
        plate: str,
        vehicle: Vehicle,
        compensations: CompensationStack,
    ) -> Vehicle:
        departed = self.vehicles.mark_departed(garage_id, plate)
        # Only undo our own departure; a newer check-in of this plate wins.
        compensations.push(
            f"restore vehicle {plate}",
            partial(self.vehicles.restore, vehicle, only_if=VehicleStatus.DEPARTED),
        )
        return departed

    def _release_spot(self, garage_id: str, spot_id: str, plate: str, forced: bool) -> Spot:
        spot = self.spots.get(garage_id, spot_id)
        if spot is None:
            raise SpotNotFoundError(f"Spot {spot_id} not found. Data integrity issue")

        if self.spots.release(garage_id, spot_id, None if forced else plate):
            return dataclasses.replace(
                spot, status=SpotStatus.AVAILABLE, occupant=None, confirmed=False
            )

        if not forced:
            raise StoreError(
                f"Spot {spot_id} is not held by {plate} (occupant: {spot.occupant}). Data integrity issue"
            )
        log.warning(
            "Forced check-out of %s: spot %s was not occupied (status %s)",
            plate, spot_id, spot.status.value,
        )
        return spot
