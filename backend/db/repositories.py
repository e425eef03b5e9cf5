"""Repository contracts consumed by the check-in / check-out core.

Each store makes its own single-record mutations atomic and rejects an
operation that would break its own invariants. Nothing here coordinates
across stores; that is the orchestrators' job.
"""

import datetime as dt
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Tuple

from core.entities import (
    ParkingSession,
    RateType,
    Spot,
    SpotStats,
    SpotType,
    SpotTypeCounts,
    Vehicle,
    VehicleStatus,
    VehicleType,
)


class SpotRepository(ABC):
    @abstractmethod
    def add(self, spot: Spot) -> Spot:
        """Register a spot (garage initialization only)."""
        raise NotImplementedError

    @abstractmethod
    def get(self, garage_id: str, spot_id: str) -> Optional[Spot]:
        raise NotImplementedError

    @abstractmethod
    def list_spots(self, garage_id: str) -> List[Spot]:
        raise NotImplementedError

    @abstractmethod
    def find_available(
        self, garage_id: str, spot_types: Optional[Iterable[SpotType]] = None
    ) -> List[Spot]:
        raise NotImplementedError

    @abstractmethod
    def reserve(self, garage_id: str, spot_id: str, occupant: str) -> bool:
        """Atomically move a spot from available to occupied.

        Returns True for exactly one caller; False if the spot was not
        available (taken, out of service or unknown).
        """
        raise NotImplementedError

    @abstractmethod
    def confirm(self, garage_id: str, spot_id: str, occupant: str) -> bool:
        """Turn a provisional hold held by `occupant` into a confirmed occupation."""
        raise NotImplementedError

    @abstractmethod
    def release(self, garage_id: str, spot_id: str, occupant: Optional[str] = None) -> bool:
        """Return an occupied spot to available.

        With `occupant`, only releases if that occupant holds the spot.
        """
        raise NotImplementedError

    @abstractmethod
    def set_out_of_service(self, garage_id: str, spot_id: str, out_of_service: bool) -> bool:
        raise NotImplementedError

    @abstractmethod
    def get_stats(
        self, garage_id: str, spot_types: Optional[Iterable[SpotType]] = None
    ) -> SpotStats:
        """Counts computed from one consistent read of the garage's spots."""
        raise NotImplementedError


class VehicleRepository(ABC):
    @abstractmethod
    def find_by_plate(self, garage_id: str, license_plate: str) -> Optional[Vehicle]:
        raise NotImplementedError

    @abstractmethod
    def create_or_reactivate(
        self,
        garage_id: str,
        license_plate: str,
        spot_id: str,
        vehicle_type: VehicleType,
        rate_type: RateType,
        notes: Optional[str] = None,
    ) -> Tuple[Vehicle, Optional[Vehicle]]:
        """Insert a parked record, or flip a departed one back to parked.

        Returns (new record, record before the write or None if inserted).
        Raises VehicleAlreadyParkedError if the plate is already parked.
        """
        raise NotImplementedError

    @abstractmethod
    def mark_departed(self, garage_id: str, license_plate: str) -> Vehicle:
        raise NotImplementedError

    @abstractmethod
    def restore(self, vehicle: Vehicle, only_if: Optional[VehicleStatus] = None) -> None:
        """Overwrite the stored record with `vehicle` (rollback only).

        With `only_if`, the overwrite happens only while the stored record
        still has that status; otherwise VehicleStateError is raised and
        nothing changes.
        """
        raise NotImplementedError

    @abstractmethod
    def find_parked(self, garage_id: str) -> List[Vehicle]:
        """Parked vehicles of a garage, longest parked first."""
        raise NotImplementedError

    @abstractmethod
    def count_by_status(self, garage_id: str) -> Dict[VehicleStatus, int]:
        raise NotImplementedError

    @abstractmethod
    def delete(self, vehicle_id: str) -> None:
        """Remove a record (rollback only)."""
        raise NotImplementedError


class SessionRepository(ABC):
    @abstractmethod
    def create(self, session: ParkingSession) -> ParkingSession:
        raise NotImplementedError

    @abstractmethod
    def get(self, session_id: str) -> Optional[ParkingSession]:
        raise NotImplementedError

    @abstractmethod
    def close(
        self, session_id: str, exit_time: dt.datetime, reason: Optional[str] = None
    ) -> ParkingSession:
        """Complete an active session. Raises SessionStateError if it is not active."""
        raise NotImplementedError

    @abstractmethod
    def reopen(self, session_id: str) -> ParkingSession:
        """Undo a close (rollback only).

        Raises SessionStateError if the session is not completed or its
        vehicle already has another active session.
        """
        raise NotImplementedError

    @abstractmethod
    def find_active_by_vehicle(self, vehicle_id: str) -> Optional[ParkingSession]:
        raise NotImplementedError

    @abstractmethod
    def delete(self, session_id: str) -> None:
        """Remove a session (rollback only)."""
        raise NotImplementedError


def compute_spot_stats(
    spots: Iterable[Spot], spot_types: Optional[Iterable[SpotType]] = None
) -> SpotStats:
    """Aggregate one already-read list of spots into SpotStats."""
    allowed = None if spot_types is None else frozenset(spot_types)
    per_type = {}
    for spot in spots:
        if allowed is not None and spot.spot_type not in allowed:
            continue
        counts = per_type.setdefault(spot.spot_type, [0, 0, 0, 0])
        counts[0] += 1
        if spot.is_available():
            counts[1] += 1
        elif spot.is_occupied():
            counts[2] += 1
        else:
            counts[3] += 1

    if allowed is not None:
        for spot_type in allowed:
            per_type.setdefault(spot_type, [0, 0, 0, 0])

    by_type = {
        spot_type: SpotTypeCounts(
            total=c[0], available=c[1], occupied=c[2], out_of_service=c[3]
        )
        for spot_type, c in per_type.items()
    }
    return SpotStats(
        total=sum(c.total for c in by_type.values()),
        available=sum(c.available for c in by_type.values()),
        occupied=sum(c.occupied for c in by_type.values()),
        out_of_service=sum(c.out_of_service for c in by_type.values()),
        by_spot_type=by_type,
    )
