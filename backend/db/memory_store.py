import dataclasses
import datetime as dt
import threading
import uuid
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from core.durations import parking_duration
from core.entities import (
    ParkingSession,
    RateType,
    SessionStatus,
    Spot,
    SpotStats,
    SpotStatus,
    SpotType,
    Vehicle,
    VehicleStatus,
    VehicleType,
    utcnow,
)

from .repositories import (
    SessionRepository,
    SpotRepository,
    VehicleRepository,
    compute_spot_stats,
)
from .store_errors import (
    DuplicateSpotError,
    SessionNotFoundError,
    SessionStateError,
    StoreUnavailableError,
    VehicleAlreadyParkedError,
    VehicleNotFoundError,
    VehicleStateError,
)

DEFAULT_LOCK_TIMEOUT = 5.0


class _LockedStore:
    """Process-local store guarded by one lock.

    Every public method runs entirely under the lock, so each call is one
    atomic step. The lock is acquired with a timeout; a store that cannot
    be entered in time reports itself unavailable instead of blocking the
    caller forever.

    Note: state lives in this process only. Multiple backend instances need
    the SQL store.
    """

    def __init__(self, lock_timeout: float = DEFAULT_LOCK_TIMEOUT):
        self._lock = threading.Lock()
        self._lock_timeout = lock_timeout

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise StoreUnavailableError(
                f"{type(self).__name__} lock not acquired within {self._lock_timeout}s"
            )
        try:
            yield
        finally:
            self._lock.release()


class InMemorySpotRepository(_LockedStore, SpotRepository):
    def __init__(self, lock_timeout: float = DEFAULT_LOCK_TIMEOUT):
        super().__init__(lock_timeout)
        # garage_id -> spot_id -> Spot
        self._spots: Dict[str, Dict[str, Spot]] = {}

    def add(self, spot: Spot) -> Spot:
        with self._locked():
            garage = self._spots.setdefault(spot.garage_id, {})
            if spot.spot_id in garage:
                raise DuplicateSpotError(f"Spot {spot.spot_id} already exists in {spot.garage_id}")
            garage[spot.spot_id] = spot
            return spot

    def get(self, garage_id: str, spot_id: str) -> Optional[Spot]:
        with self._locked():
            return self._spots.get(garage_id, {}).get(spot_id)

    def list_spots(self, garage_id: str) -> List[Spot]:
        with self._locked():
            spots = list(self._spots.get(garage_id, {}).values())
        return sorted(spots, key=lambda s: s.sort_key)

    def find_available(
        self, garage_id: str, spot_types: Optional[Iterable[SpotType]] = None
    ) -> List[Spot]:
        allowed = None if spot_types is None else frozenset(spot_types)
        with self._locked():
            spots = [
                s for s in self._spots.get(garage_id, {}).values()
                if s.is_available() and (allowed is None or s.spot_type in allowed)
            ]
        return sorted(spots, key=lambda s: s.sort_key)

    def reserve(self, garage_id: str, spot_id: str, occupant: str) -> bool:
        with self._locked():
            spot = self._spots.get(garage_id, {}).get(spot_id)
            if spot is None or spot.status != SpotStatus.AVAILABLE:
                return False
            self._spots[garage_id][spot_id] = dataclasses.replace(
                spot, status=SpotStatus.OCCUPIED, occupant=occupant, confirmed=False
            )
            return True

    def confirm(self, garage_id: str, spot_id: str, occupant: str) -> bool:
        with self._locked():
            spot = self._spots.get(garage_id, {}).get(spot_id)
            if spot is None or spot.status != SpotStatus.OCCUPIED or spot.occupant != occupant:
                return False
            self._spots[garage_id][spot_id] = dataclasses.replace(spot, confirmed=True)
            return True

    def release(self, garage_id: str, spot_id: str, occupant: Optional[str] = None) -> bool:
        with self._locked():
            spot = self._spots.get(garage_id, {}).get(spot_id)
            if spot is None or spot.status != SpotStatus.OCCUPIED:
                return False
            if occupant is not None and spot.occupant != occupant:
                return False
            self._spots[garage_id][spot_id] = dataclasses.replace(
                spot, status=SpotStatus.AVAILABLE, occupant=None, confirmed=False
            )
            return True

    def set_out_of_service(self, garage_id: str, spot_id: str, out_of_service: bool) -> bool:
        current, target = (
            (SpotStatus.AVAILABLE, SpotStatus.OUT_OF_SERVICE)
            if out_of_service
            else (SpotStatus.OUT_OF_SERVICE, SpotStatus.AVAILABLE)
        )
        with self._locked():
            spot = self._spots.get(garage_id, {}).get(spot_id)
            if spot is None or spot.status != current:
                return False
            self._spots[garage_id][spot_id] = dataclasses.replace(spot, status=target)
            return True

    def get_stats(
        self, garage_id: str, spot_types: Optional[Iterable[SpotType]] = None
    ) -> SpotStats:
        with self._locked():
            spots = list(self._spots.get(garage_id, {}).values())
        return compute_spot_stats(spots, spot_types)


class InMemoryVehicleRepository(_LockedStore, VehicleRepository):
    def __init__(self, lock_timeout: float = DEFAULT_LOCK_TIMEOUT):
        super().__init__(lock_timeout)
        self._vehicles: Dict[str, Vehicle] = {}
        # (garage_id, plate) -> vehicle_id
        self._by_plate: Dict[Tuple[str, str], str] = {}

    def find_by_plate(self, garage_id: str, license_plate: str) -> Optional[Vehicle]:
        with self._locked():
            vehicle_id = self._by_plate.get((garage_id, license_plate))
            return self._vehicles.get(vehicle_id) if vehicle_id else None

    def create_or_reactivate(
        self,
        garage_id: str,
        license_plate: str,
        spot_id: str,
        vehicle_type: VehicleType,
        rate_type: RateType,
        notes: Optional[str] = None,
    ) -> Tuple[Vehicle, Optional[Vehicle]]:
        with self._locked():
            key = (garage_id, license_plate)
            prior = self._vehicles.get(self._by_plate.get(key, ""))

            if prior is not None and prior.status == VehicleStatus.PARKED:
                raise VehicleAlreadyParkedError(license_plate, prior.spot_id)

            vehicle = Vehicle(
                vehicle_id=prior.vehicle_id if prior else str(uuid.uuid4()),
                garage_id=garage_id,
                license_plate=license_plate,
                vehicle_type=vehicle_type,
                rate_type=rate_type,
                status=VehicleStatus.PARKED,
                spot_id=spot_id,
                checked_in_at=utcnow(),
                checked_out_at=None,
                notes=notes,
            )
            self._vehicles[vehicle.vehicle_id] = vehicle
            self._by_plate[key] = vehicle.vehicle_id
            return vehicle, prior

    def mark_departed(self, garage_id: str, license_plate: str) -> Vehicle:
        with self._locked():
            vehicle = self._vehicles.get(self._by_plate.get((garage_id, license_plate), ""))
            if vehicle is None or vehicle.status != VehicleStatus.PARKED:
                raise VehicleNotFoundError(f"No parked vehicle {license_plate} in {garage_id}")
            departed = dataclasses.replace(
                vehicle, status=VehicleStatus.DEPARTED, spot_id=None, checked_out_at=utcnow()
            )
            self._vehicles[vehicle.vehicle_id] = departed
            return departed

    def restore(self, vehicle: Vehicle, only_if: Optional[VehicleStatus] = None) -> None:
        with self._locked():
            if only_if is not None:
                current = self._vehicles.get(vehicle.vehicle_id)
                if current is None or current.status != only_if:
                    found = current.status.value if current else "missing"
                    raise VehicleStateError(
                        f"Vehicle {vehicle.license_plate} is {found}, expected {only_if.value}"
                    )
            self._vehicles[vehicle.vehicle_id] = vehicle
            self._by_plate[(vehicle.garage_id, vehicle.license_plate)] = vehicle.vehicle_id

    def find_parked(self, garage_id: str) -> List[Vehicle]:
        with self._locked():
            parked = [
                v for v in self._vehicles.values()
                if v.garage_id == garage_id and v.is_parked()
            ]
        return sorted(parked, key=lambda v: (v.checked_in_at, v.license_plate))

    def count_by_status(self, garage_id: str) -> Dict[VehicleStatus, int]:
        counts = {status: 0 for status in VehicleStatus}
        with self._locked():
            for vehicle in self._vehicles.values():
                if vehicle.garage_id == garage_id:
                    counts[vehicle.status] += 1
        return counts

    def delete(self, vehicle_id: str) -> None:
        with self._locked():
            vehicle = self._vehicles.pop(vehicle_id, None)
            if vehicle is None:
                raise VehicleNotFoundError(f"Vehicle {vehicle_id} not found")
            key = (vehicle.garage_id, vehicle.license_plate)
            if self._by_plate.get(key) == vehicle_id:
                del self._by_plate[key]

    def list_vehicles(self) -> List[Vehicle]:
        with self._locked():
            return list(self._vehicles.values())


class InMemorySessionRepository(_LockedStore, SessionRepository):
    def __init__(self, lock_timeout: float = DEFAULT_LOCK_TIMEOUT):
        super().__init__(lock_timeout)
        self._sessions: Dict[str, ParkingSession] = {}

    def create(self, session: ParkingSession) -> ParkingSession:
        with self._locked():
            for existing in self._sessions.values():
                if existing.vehicle_id == session.vehicle_id and existing.is_active():
                    raise SessionStateError(
                        f"Vehicle {session.license_plate} already has active session {existing.session_id}"
                    )
            self._sessions[session.session_id] = session
            return session

    def get(self, session_id: str) -> Optional[ParkingSession]:
        with self._locked():
            return self._sessions.get(session_id)

    def close(
        self, session_id: str, exit_time: dt.datetime, reason: Optional[str] = None
    ) -> ParkingSession:
        with self._locked():
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(f"Session {session_id} not found")
            if session.status != SessionStatus.ACTIVE:
                raise SessionStateError(f"Session {session_id} is {session.status.value}")

            _, minutes, billable = parking_duration(session.entry_time, exit_time)
            closed = dataclasses.replace(
                session,
                status=SessionStatus.COMPLETED,
                exit_time=exit_time,
                duration_minutes=minutes,
                billable_hours=billable,
                closed_reason=reason,
            )
            self._sessions[session_id] = closed
            return closed

    def reopen(self, session_id: str) -> ParkingSession:
        with self._locked():
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(f"Session {session_id} not found")
            if session.status != SessionStatus.COMPLETED:
                raise SessionStateError(f"Session {session_id} is {session.status.value}")
            for other in self._sessions.values():
                if other.vehicle_id == session.vehicle_id and other.is_active():
                    raise SessionStateError(
                        f"Vehicle {session.license_plate} already has active session {other.session_id}"
                    )
            reopened = dataclasses.replace(
                session,
                status=SessionStatus.ACTIVE,
                exit_time=None,
                duration_minutes=None,
                billable_hours=None,
                closed_reason=None,
            )
            self._sessions[session_id] = reopened
            return reopened

    def find_active_by_vehicle(self, vehicle_id: str) -> Optional[ParkingSession]:
        with self._locked():
            for session in self._sessions.values():
                if session.vehicle_id == vehicle_id and session.is_active():
                    return session
        return None

    def delete(self, session_id: str) -> None:
        with self._locked():
            if self._sessions.pop(session_id, None) is None:
                raise SessionNotFoundError(f"Session {session_id} not found")

    def list_sessions(self) -> List[ParkingSession]:
        with self._locked():
            return list(self._sessions.values())
