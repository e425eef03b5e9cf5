import pytest
from sqlalchemy.orm import sessionmaker

from core.config import ParkingSettings
from core.entities import Spot, SpotType
from core.parking_manager import ParkingManager
from db.database import create_db_engine, create_session_factory, init_db

GARAGE = "garage-1"


def make_spot(floor, bay, number, spot_type=SpotType.STANDARD, features=(), garage_id=GARAGE):
    return Spot(
        garage_id=garage_id,
        floor=floor,
        bay=bay,
        number=number,
        spot_type=spot_type,
        features=frozenset(features),
    )


def add_spots(manager, *spots):
    for spot in spots:
        manager.spots.add(spot)


@pytest.fixture
def settings():
    return ParkingSettings(
        store_backend="memory",
        reservation_attempts=3,
        store_lock_timeout_seconds=2.0,
        operation_timeout_seconds=10.0,
    )


@pytest.fixture
def manager(settings):
    return ParkingManager.in_memory(settings)


@pytest.fixture
def session_factory(tmp_path) -> sessionmaker:
    engine = create_db_engine(f"sqlite:///{tmp_path / 'parking.db'}", timeout=2.0)
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def sql_manager(session_factory, settings):
    return ParkingManager.with_sql(session_factory, settings)


@pytest.fixture(params=["memory", "sql"])
def any_manager(request, settings):
    """The same scenario against both store backends."""
    if request.param == "memory":
        return ParkingManager.in_memory(settings)
    return request.getfixturevalue("sql_manager")


@pytest.fixture
def two_standard_spots(any_manager):
    add_spots(any_manager, make_spot(1, "A", 1), make_spot(1, "A", 2))
    return any_manager


