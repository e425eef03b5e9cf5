import datetime as dt
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from core.durations import parking_duration
from core.entities import ParkingSession, SessionStatus

from .database import as_utc, session_scope
from .models import SessionModel
from .repositories import SessionRepository
from .store_errors import SessionNotFoundError, SessionStateError


def session_from_model(model: SessionModel) -> ParkingSession:
    return ParkingSession(
        session_id=model.id,
        garage_id=model.garage_id,
        vehicle_id=model.vehicle_id,
        license_plate=model.license_plate,
        spot_id=model.spot_id,
        entry_time=as_utc(model.entry_time),
        status=SessionStatus(model.status),
        expected_end_time=as_utc(model.expected_end_time),
        exit_time=as_utc(model.exit_time),
        duration_minutes=model.duration_minutes,
        billable_hours=model.billable_hours,
        notes=model.notes,
        closed_reason=model.closed_reason,
    )


class SqlSessionRepository(SessionRepository):
    """Parking session store backed by SQLAlchemy."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create(self, session: ParkingSession) -> ParkingSession:
        with session_scope(self._session_factory) as db:
            db.add(
                SessionModel(
                    id=session.session_id,
                    garage_id=session.garage_id,
                    vehicle_id=session.vehicle_id,
                    license_plate=session.license_plate,
                    spot_id=session.spot_id,
                    entry_time=session.entry_time,
                    expected_end_time=session.expected_end_time,
                    exit_time=session.exit_time,
                    status=session.status.value,
                    duration_minutes=session.duration_minutes,
                    billable_hours=session.billable_hours,
                    notes=session.notes,
                    closed_reason=session.closed_reason,
                )
            )
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise SessionStateError(
                    f"Vehicle {session.license_plate} already has an active session"
                ) from exc
        return session

    def get(self, session_id: str) -> Optional[ParkingSession]:
        with session_scope(self._session_factory) as db:
            model = db.get(SessionModel, session_id)
            return session_from_model(model) if model else None

    def close(
        self, session_id: str, exit_time: dt.datetime, reason: Optional[str] = None
    ) -> ParkingSession:
        with session_scope(self._session_factory) as db:
            model = db.get(SessionModel, session_id)
            if model is None:
                raise SessionNotFoundError(f"Session {session_id} not found")
            current = session_from_model(model)
            if current.status != SessionStatus.ACTIVE:
                raise SessionStateError(f"Session {session_id} is {current.status.value}")

            _, minutes, billable = parking_duration(current.entry_time, exit_time)
            result = db.execute(
                update(SessionModel)
                .where(
                    SessionModel.id == session_id,
                    SessionModel.status == SessionStatus.ACTIVE.value,
                )
                .values(
                    status=SessionStatus.COMPLETED.value,
                    exit_time=exit_time,
                    duration_minutes=minutes,
                    billable_hours=billable,
                    closed_reason=reason,
                )
                .execution_options(synchronize_session=False)
            )
            db.commit()
            if result.rowcount != 1:
                raise SessionStateError(f"Session {session_id} was closed concurrently")

        return ParkingSession(
            session_id=current.session_id,
            garage_id=current.garage_id,
            vehicle_id=current.vehicle_id,
            license_plate=current.license_plate,
            spot_id=current.spot_id,
            entry_time=current.entry_time,
            status=SessionStatus.COMPLETED,
            expected_end_time=current.expected_end_time,
            exit_time=exit_time,
            duration_minutes=minutes,
            billable_hours=billable,
            notes=current.notes,
            closed_reason=reason,
        )

    def reopen(self, session_id: str) -> ParkingSession:
        with session_scope(self._session_factory) as db:
            try:
                # The partial unique index refuses a second active session per vehicle.
                result = db.execute(
                    update(SessionModel)
                    .where(
                        SessionModel.id == session_id,
                        SessionModel.status == SessionStatus.COMPLETED.value,
                    )
                    .values(
                        status=SessionStatus.ACTIVE.value,
                        exit_time=None,
                        duration_minutes=None,
                        billable_hours=None,
                        closed_reason=None,
                    )
                    .execution_options(synchronize_session=False)
                )
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise SessionStateError(
                    f"Session {session_id} cannot be reopened: its vehicle has another active session"
                ) from exc

            model = db.get(SessionModel, session_id)
            if model is None:
                raise SessionNotFoundError(f"Session {session_id} not found")
            if result.rowcount != 1:
                raise SessionStateError(f"Session {session_id} is {model.status}")
            return session_from_model(model)

    def find_active_by_vehicle(self, vehicle_id: str) -> Optional[ParkingSession]:
        stmt = select(SessionModel).where(
            SessionModel.vehicle_id == vehicle_id,
            SessionModel.status == SessionStatus.ACTIVE.value,
        )
        with session_scope(self._session_factory) as db:
            model = db.scalars(stmt).first()
            return session_from_model(model) if model else None

    def delete(self, session_id: str) -> None:
        with session_scope(self._session_factory) as db:
            result = db.execute(delete(SessionModel).where(SessionModel.id == session_id))
            db.commit()
            if result.rowcount != 1:
                raise SessionNotFoundError(f"Session {session_id} not found")
