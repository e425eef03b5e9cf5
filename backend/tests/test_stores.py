import datetime as dt
import uuid

import pytest

from conftest import GARAGE, make_spot
from core.entities import (
    ParkingSession,
    RateType,
    SessionStatus,
    SpotFeature,
    SpotStatus,
    SpotType,
    VehicleStatus,
    VehicleType,
    utcnow,
)
from db.store_errors import (
    DuplicateSpotError,
    SessionNotFoundError,
    SessionStateError,
    VehicleAlreadyParkedError,
    VehicleNotFoundError,
    VehicleStateError,
)


@pytest.fixture
def stores(any_manager):
    return any_manager.spots, any_manager.vehicles, any_manager.sessions


def _session(vehicle, entry_time=None):
    return ParkingSession(
        session_id=str(uuid.uuid4()),
        garage_id=GARAGE,
        vehicle_id=vehicle.vehicle_id,
        license_plate=vehicle.license_plate,
        spot_id=vehicle.spot_id,
        entry_time=entry_time or utcnow(),
    )


# ------------------------
# Spots
# ------------------------

def test_spot_roundtrip_keeps_features(stores):
    spots, _, _ = stores
    spot = make_spot(3, "D", 42, SpotType.ELECTRIC, features=[SpotFeature.EV_CHARGING, SpotFeature.HANDICAP])
    spots.add(spot)

    stored = spots.get(GARAGE, "F3-D-042")
    assert stored == spot
    assert spots.get(GARAGE, "F9-Z-999") is None


def test_duplicate_spot_rejected(stores):
    spots, _, _ = stores
    spots.add(make_spot(1, "A", 1))
    with pytest.raises(DuplicateSpotError):
        spots.add(make_spot(1, "A", 1))


def test_reserve_is_exclusive(stores):
    spots, _, _ = stores
    spots.add(make_spot(1, "A", 1))

    assert spots.reserve(GARAGE, "F1-A-001", "AAA-1")
    assert not spots.reserve(GARAGE, "F1-A-001", "BBB-2")
    assert not spots.reserve(GARAGE, "F1-Z-001", "BBB-2")

    held = spots.get(GARAGE, "F1-A-001")
    assert held.status == SpotStatus.OCCUPIED
    assert held.occupant == "AAA-1"
    assert not held.confirmed


def test_confirm_and_release_check_occupant(stores):
    spots, _, _ = stores
    spots.add(make_spot(1, "A", 1))
    spots.reserve(GARAGE, "F1-A-001", "AAA-1")

    assert not spots.confirm(GARAGE, "F1-A-001", "BBB-2")
    assert spots.confirm(GARAGE, "F1-A-001", "AAA-1")
    assert spots.get(GARAGE, "F1-A-001").confirmed

    assert not spots.release(GARAGE, "F1-A-001", "BBB-2")
    assert spots.release(GARAGE, "F1-A-001", "AAA-1")
    assert not spots.release(GARAGE, "F1-A-001")

    freed = spots.get(GARAGE, "F1-A-001")
    assert freed.status == SpotStatus.AVAILABLE
    assert freed.occupant is None


def test_find_available_is_ordered_and_filtered(stores):
    spots, _, _ = stores
    for spot in [
        make_spot(2, "A", 1),
        make_spot(1, "B", 1, SpotType.COMPACT),
        make_spot(1, "A", 2),
        make_spot(1, "A", 1),
    ]:
        spots.add(spot)
    spots.reserve(GARAGE, "F1-A-002", "AAA-1")

    assert [s.spot_id for s in spots.find_available(GARAGE)] == ["F1-A-001", "F1-B-001", "F2-A-001"]
    assert [s.spot_id for s in spots.find_available(GARAGE, [SpotType.COMPACT])] == ["F1-B-001"]
    assert [s.spot_id for s in spots.list_spots(GARAGE)] == [
        "F1-A-001", "F1-A-002", "F1-B-001", "F2-A-001",
    ]


def test_out_of_service_transitions(stores):
    spots, _, _ = stores
    spots.add(make_spot(1, "A", 1))
    spots.reserve(GARAGE, "F1-A-001", "AAA-1")

    # Occupied spots cannot be taken out of service.
    assert not spots.set_out_of_service(GARAGE, "F1-A-001", True)
    spots.release(GARAGE, "F1-A-001")
    assert spots.set_out_of_service(GARAGE, "F1-A-001", True)
    assert not spots.reserve(GARAGE, "F1-A-001", "AAA-1")
    assert spots.get_stats(GARAGE).out_of_service == 1


# ------------------------
# Vehicles
# ------------------------

def test_create_then_reject_parked_plate(stores):
    _, vehicles, _ = stores
    vehicle, prior = vehicles.create_or_reactivate(
        GARAGE, "ABC-123", "F1-A-001", VehicleType.STANDARD, RateType.HOURLY
    )
    assert prior is None
    assert vehicle.status == VehicleStatus.PARKED
    assert vehicles.find_by_plate(GARAGE, "ABC-123") == vehicle

    with pytest.raises(VehicleAlreadyParkedError) as exc_info:
        vehicles.create_or_reactivate(
            GARAGE, "ABC-123", "F1-A-002", VehicleType.STANDARD, RateType.HOURLY
        )
    assert exc_info.value.spot_id == "F1-A-001"


def test_reactivate_departed_vehicle(stores):
    _, vehicles, _ = stores
    vehicle, _ = vehicles.create_or_reactivate(
        GARAGE, "ABC-123", "F1-A-001", VehicleType.STANDARD, RateType.HOURLY
    )
    departed = vehicles.mark_departed(GARAGE, "ABC-123")
    assert departed.status == VehicleStatus.DEPARTED
    assert departed.spot_id is None
    assert departed.checked_out_at is not None

    again, prior = vehicles.create_or_reactivate(
        GARAGE, "ABC-123", "F2-B-003", VehicleType.COMPACT, RateType.MONTHLY, "back again"
    )
    assert prior == departed
    assert again.vehicle_id == vehicle.vehicle_id
    assert again.spot_id == "F2-B-003"
    assert again.rate_type == RateType.MONTHLY
    assert again.checked_out_at is None


def test_mark_departed_requires_parked_vehicle(stores):
    _, vehicles, _ = stores
    with pytest.raises(VehicleNotFoundError):
        vehicles.mark_departed(GARAGE, "ABC-123")


def test_restore_and_delete(stores):
    _, vehicles, _ = stores
    vehicle, _ = vehicles.create_or_reactivate(
        GARAGE, "ABC-123", "F1-A-001", VehicleType.STANDARD, RateType.HOURLY
    )
    vehicles.mark_departed(GARAGE, "ABC-123")
    vehicles.restore(vehicle)
    assert vehicles.find_by_plate(GARAGE, "ABC-123").status == VehicleStatus.PARKED

    vehicles.delete(vehicle.vehicle_id)
    assert vehicles.find_by_plate(GARAGE, "ABC-123") is None
    with pytest.raises(VehicleNotFoundError):
        vehicles.delete(vehicle.vehicle_id)


def test_conditional_restore_only_overwrites_expected_status(stores):
    _, vehicles, _ = stores
    vehicle, _ = vehicles.create_or_reactivate(
        GARAGE, "ABC-123", "F1-A-001", VehicleType.STANDARD, RateType.HOURLY
    )
    vehicles.mark_departed(GARAGE, "ABC-123")
    again, _ = vehicles.create_or_reactivate(
        GARAGE, "ABC-123", "F1-A-002", VehicleType.STANDARD, RateType.HOURLY
    )

    with pytest.raises(VehicleStateError):
        vehicles.restore(vehicle, only_if=VehicleStatus.DEPARTED)
    assert vehicles.find_by_plate(GARAGE, "ABC-123") == again

    vehicles.mark_departed(GARAGE, "ABC-123")
    vehicles.restore(vehicle, only_if=VehicleStatus.DEPARTED)
    assert vehicles.find_by_plate(GARAGE, "ABC-123").spot_id == "F1-A-001"


def test_find_parked_and_count_by_status(stores):
    _, vehicles, _ = stores
    for n, plate in enumerate(["AAA-1", "BBB-2", "CCC-3"], start=1):
        vehicles.create_or_reactivate(
            GARAGE, plate, f"F1-A-00{n}", VehicleType.STANDARD, RateType.HOURLY
        )
    vehicles.create_or_reactivate(
        "other", "DDD-4", "F1-A-001", VehicleType.STANDARD, RateType.HOURLY
    )
    vehicles.mark_departed(GARAGE, "BBB-2")

    assert [v.license_plate for v in vehicles.find_parked(GARAGE)] == ["AAA-1", "CCC-3"]
    assert vehicles.count_by_status(GARAGE) == {
        VehicleStatus.PARKED: 2,
        VehicleStatus.DEPARTED: 1,
    }
    assert vehicles.find_parked("empty") == []
    assert vehicles.count_by_status("empty") == {
        VehicleStatus.PARKED: 0,
        VehicleStatus.DEPARTED: 0,
    }


# ------------------------
# Sessions
# ------------------------

def _parked(vehicles, plate="ABC-123"):
    vehicle, _ = vehicles.create_or_reactivate(
        GARAGE, plate, "F1-A-001", VehicleType.STANDARD, RateType.HOURLY
    )
    return vehicle


def test_one_active_session_per_vehicle(stores):
    _, vehicles, sessions = stores
    vehicle = _parked(vehicles)
    first = sessions.create(_session(vehicle))

    with pytest.raises(SessionStateError):
        sessions.create(_session(vehicle))

    assert sessions.find_active_by_vehicle(vehicle.vehicle_id) == first


def test_close_is_conditional(stores):
    _, vehicles, sessions = stores
    vehicle = _parked(vehicles)
    entry = utcnow()
    session = sessions.create(_session(vehicle, entry))

    closed = sessions.close(session.session_id, entry + dt.timedelta(minutes=61), "done")
    assert closed.status == SessionStatus.COMPLETED
    assert closed.duration_minutes == 61
    assert closed.billable_hours == 2
    assert closed.closed_reason == "done"
    assert sessions.get(session.session_id) == closed
    assert sessions.find_active_by_vehicle(vehicle.vehicle_id) is None

    with pytest.raises(SessionStateError):
        sessions.close(session.session_id, entry + dt.timedelta(minutes=90))


def test_reopen_undoes_close(stores):
    _, vehicles, sessions = stores
    vehicle = _parked(vehicles)
    session = sessions.create(_session(vehicle))
    sessions.close(session.session_id, utcnow())

    reopened = sessions.reopen(session.session_id)

    assert reopened == session
    assert sessions.find_active_by_vehicle(vehicle.vehicle_id) == session


def test_missing_sessions(stores):
    _, _, sessions = stores
    assert sessions.get("missing") is None
    with pytest.raises(SessionNotFoundError):
        sessions.close("missing", utcnow())
    with pytest.raises(SessionNotFoundError):
        sessions.delete("missing")


def test_reopen_requires_a_completed_session(stores):
    _, vehicles, sessions = stores
    vehicle = _parked(vehicles)
    session = sessions.create(_session(vehicle))

    with pytest.raises(SessionStateError):
        sessions.reopen(session.session_id)
    with pytest.raises(SessionNotFoundError):
        sessions.reopen("missing")


def test_reopen_refuses_second_active_session(stores):
    _, vehicles, sessions = stores
    vehicle = _parked(vehicles)
    old = sessions.create(_session(vehicle))
    sessions.close(old.session_id, utcnow())
    new = sessions.create(_session(vehicle))

    with pytest.raises(SessionStateError):
        sessions.reopen(old.session_id)

    assert sessions.get(old.session_id).status == SessionStatus.COMPLETED
    assert sessions.find_active_by_vehicle(vehicle.vehicle_id) == new
