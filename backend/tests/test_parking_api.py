import pytest
from fastapi.testclient import TestClient

from api_app import app
from conftest import GARAGE, add_spots, make_spot
from core.entities import SpotType
from db.deps import get_parking_manager


@pytest.fixture
def client(manager):
    add_spots(
        manager,
        make_spot(1, "A", 1),
        make_spot(1, "A", 2),
        make_spot(2, "B", 10, SpotType.OVERSIZED),
    )
    app.dependency_overrides[get_parking_manager] = lambda: manager
    # No context manager: startup hooks (DB init, demo seeding) are not needed here.
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_checkin_and_checkout_over_http(client):
    resp = client.post(
        f"/garages/{GARAGE}/checkins",
        json={"license_plate": "abc-123", "vehicle_type": "standard", "expected_duration_hours": 1.5},
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["spot"]["spot_id"] == "F1-A-001"
    assert body["spot"]["status"] == "occupied"
    assert body["vehicle"]["license_plate"] == "ABC-123"
    assert body["session"]["status"] == "active"
    assert body["session"]["expected_end_time"] is not None

    resp = client.post(f"/garages/{GARAGE}/checkouts", json={"license_plate": "ABC-123"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["spot"]["status"] == "available"
    assert body["vehicle"]["status"] == "departed"
    assert body["session"]["status"] == "completed"
    assert body["session"]["billable_hours"] == 1
    assert body["total_duration_minutes"] == 0


def test_duplicate_checkin_is_409(client):
    client.post(f"/garages/{GARAGE}/checkins", json={"license_plate": "abc-123", "vehicle_type": "standard"})
    resp = client.post(f"/garages/{GARAGE}/checkins", json={"license_plate": "ABC-123", "vehicle_type": "standard"})

    assert resp.status_code == 409
    error = resp.json()["error"]
    assert error["kind"] == "already_checked_in"
    assert error["retryable"] is False
    assert error["detail"]["spot_id"] == "F1-A-001"


def test_validation_error_is_400(client):
    resp = client.post(f"/garages/{GARAGE}/checkins", json={"license_plate": "??", "vehicle_type": "standard"})
    assert resp.status_code == 400
    assert resp.json()["error"]["kind"] == "validation_failed"
    assert resp.json()["error"]["detail"]["field"] == "license_plate"

    resp = client.post(
        f"/garages/{GARAGE}/checkins",
        json={"license_plate": "ABC-1", "vehicle_type": "standard", "rate_type": "weekly"},
    )
    assert resp.status_code == 400


def test_no_spots_is_503_and_retryable(client):
    client.post(f"/garages/{GARAGE}/checkins", json={"license_plate": "BIG-1", "vehicle_type": "oversized"})
    resp = client.post(f"/garages/{GARAGE}/checkins", json={"license_plate": "BIG-2", "vehicle_type": "oversized"})

    assert resp.status_code == 503
    assert resp.headers["retry-after"] == "1"
    error = resp.json()["error"]
    assert error["kind"] == "no_spots_available"
    assert error["retryable"] is True
    assert error["detail"]["compatible_available"] == 0


def test_checkout_unknown_plate_is_404(client):
    resp = client.post(f"/garages/{GARAGE}/checkouts", json={"license_plate": "NOPE-1"})
    assert resp.status_code == 404
    assert resp.json()["error"]["kind"] == "not_checked_in"


def test_preview_writes_nothing(client):
    resp = client.post(
        f"/garages/{GARAGE}/checkins:preview",
        json={"license_plate": "abc-123", "vehicle_type": "standard"},
    )
    assert resp.status_code == 200
    assert resp.json()["would_succeed"] is True
    assert resp.json()["spot"]["spot_id"] == "F1-A-001"

    availability = client.get(f"/garages/{GARAGE}/availability").json()
    assert availability["occupied"] == 0


def test_force_checkout(client):
    client.post(f"/garages/{GARAGE}/checkins", json={"license_plate": "abc-123", "vehicle_type": "standard"})
    resp = client.post(
        f"/garages/{GARAGE}/checkouts:force", json={"license_plate": "abc-123", "reason": "towed"}
    )
    assert resp.status_code == 200
    assert resp.json()["session"]["closed_reason"] == "towed"


def test_availability_by_vehicle_type(client):
    resp = client.get(f"/garages/{GARAGE}/availability", params={"vehicle_type": "standard"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["vehicle_type"] == "standard"
    assert body["total"] == 2
    assert set(body["by_spot_type"]) == {"standard"}

    resp = client.get(f"/garages/{GARAGE}/availability", params={"vehicle_type": "boat"})
    assert resp.status_code == 400


def test_out_of_range_expected_duration_is_400(client):
    resp = client.post(
        f"/garages/{GARAGE}/checkins",
        json={"license_plate": "ABC-123", "vehicle_type": "standard", "expected_duration_hours": 1e9},
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["detail"]["field"] == "expected_duration_hours"
    assert client.get(f"/garages/{GARAGE}/availability").json()["occupied"] == 0


def test_force_checkout_reason_too_long_is_400(client):
    client.post(f"/garages/{GARAGE}/checkins", json={"license_plate": "abc-123", "vehicle_type": "standard"})
    resp = client.post(
        f"/garages/{GARAGE}/checkouts:force", json={"license_plate": "abc-123", "reason": "x" * 201}
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["detail"]["field"] == "reason"


def test_checkout_preview_over_http(client):
    client.post(f"/garages/{GARAGE}/checkins", json={"license_plate": "abc-123", "vehicle_type": "standard"})

    resp = client.post(f"/garages/{GARAGE}/checkouts:preview", json={"license_plate": "abc-123"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["would_succeed"] is True
    assert body["spot_id"] == "F1-A-001"
    assert body["billable_hours"] == 1

    resp = client.post(f"/garages/{GARAGE}/checkouts:preview", json={"license_plate": "NOPE-1"})
    assert resp.status_code == 200
    assert resp.json()["would_succeed"] is False

    assert client.get(f"/garages/{GARAGE}/availability").json()["occupied"] == 1


def test_parked_vehicles_and_stats(client):
    client.post(f"/garages/{GARAGE}/checkins", json={"license_plate": "abc-123", "vehicle_type": "standard"})
    client.post(f"/garages/{GARAGE}/checkins", json={"license_plate": "xyz-9", "vehicle_type": "standard"})
    client.post(f"/garages/{GARAGE}/checkouts", json={"license_plate": "xyz-9"})

    resp = client.get(f"/garages/{GARAGE}/vehicles")
    assert resp.status_code == 200
    assert [v["license_plate"] for v in resp.json()] == ["ABC-123"]
    assert resp.json()[0]["spot_id"] == "F1-A-001"

    assert client.get(f"/garages/{GARAGE}/vehicles", params={"min_minutes": 30}).json() == []
    assert client.get(f"/garages/{GARAGE}/vehicles", params={"min_minutes": -1}).status_code == 400

    resp = client.get(f"/garages/{GARAGE}/stats")
    assert resp.status_code == 200
    body = resp.json()
    assert (body["total_spots"], body["occupied_spots"]) == (3, 1)
    assert body["occupancy_rate"] == 33.33
    assert (body["parked_vehicles"], body["departed_vehicles"]) == (1, 1)
