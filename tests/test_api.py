import pytest
from fastapi.testclient import TestClient

from fleetdesk.api import create_app
from fleetdesk.auth import Actor, Role, fixed_actor
from fleetdesk.config import Settings
from fleetdesk.runtime import FleetDeskRuntime


def _reservation_body(**overrides) -> dict:
    body = {
        "vehicle_class_id": "class-c",
        "customer_name": "Hanako Yamada",
        "pickup_date": "2026-03-01T09:00:00Z",
        "return_date": "2026-03-03T18:00:00Z",
        "estimated_amount": 15000,
        "entity_type": 1,
    }
    body.update(overrides)
    return body


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app(FleetDeskRuntime(settings=Settings())))


def _vehicle(client: TestClient, code: str = "V-001") -> dict:
    response = client.post("/api/vehicles", json={"vehicle_code": code, "vehicle_class_id": "class-c"})
    assert response.status_code == 201
    return response.json()


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_reservation_lifecycle_over_http(client: TestClient) -> None:
    vehicle = _vehicle(client)
    created = client.post("/api/reservations", json=_reservation_body())
    assert created.status_code == 201
    reservation = created.json()
    assert reservation["reservation_code"] == "RS-00001"
    rid = reservation["id"]

    assert client.post(f"/api/reservations/{rid}/assign", json={"vehicle_id": vehicle["id"]}).json()["status"] == "CONFIRMED"
    departed = client.post(
        f"/api/reservations/{rid}/depart",
        json={"actual_pickup_date": "2026-03-01T09:10:00Z", "departure_odometer": 10000},
    )
    assert departed.json()["status"] == "DEPARTED"
    returned = client.post(
        f"/api/reservations/{rid}/return",
        json={"actual_return_date": "2026-03-03T17:40:00Z", "return_odometer": 10250, "fuel_level_at_return": "FULL"},
    )
    assert returned.json()["status"] == "RETURNED"
    settled = client.post(f"/api/reservations/{rid}/settle", json={"actual_amount": "16500"})
    assert settled.status_code == 200
    assert settled.json()["status"] == "SETTLED"

    payments = client.get(f"/api/reservations/{rid}/payments").json()
    assert [payment["payment_number"] for payment in payments] == ["PM-00001"]

    history = client.get("/api/audit/RS-00001").json()
    assert [entry["action"] for entry in history][-1] == "reservation_settle"


def test_validation_errors_return_400_with_field_errors(client: TestClient) -> None:
    response = client.post(
        "/api/reservations",
        json=_reservation_body(pickup_date="2026-03-03T09:00:00Z", return_date="2026-03-01T09:00:00Z"),
    )
    assert response.status_code == 400
    assert "return_date" in response.json()["field_errors"]


def test_guard_violation_returns_409_with_current_status(client: TestClient) -> None:
    rid = client.post("/api/reservations", json=_reservation_body()).json()["id"]
    client.post(f"/api/reservations/{rid}/cancel")

    response = client.post(f"/api/reservations/{rid}/cancel")

    assert response.status_code == 409
    assert response.json()["current_status"] == "CANCELLED"


def test_double_booking_returns_400(client: TestClient) -> None:
    vehicle = _vehicle(client)
    first = client.post("/api/reservations", json=_reservation_body()).json()
    second = client.post("/api/reservations", json=_reservation_body()).json()
    client.post(f"/api/reservations/{first['id']}/assign", json={"vehicle_id": vehicle["id"]})

    response = client.post(f"/api/reservations/{second['id']}/assign", json={"vehicle_id": vehicle["id"]})

    assert response.status_code == 400
    assert response.json()["detail"] == "This vehicle is already booked by RS-00001"


def test_unknown_reservation_returns_404(client: TestClient) -> None:
    assert client.get("/api/reservations/missing").status_code == 404


def test_member_cannot_approve_over_http() -> None:
    runtime = FleetDeskRuntime(
        settings=Settings(), actor_provider=fixed_actor(Actor("u-member", "Member", Role.MEMBER))
    )
    client = TestClient(create_app(runtime))
    rid = client.post("/api/reservations", json=_reservation_body()).json()["id"]

    response = client.post(f"/api/reservations/{rid}/approve", json={"status": "APPROVED"})

    assert response.status_code == 403


def test_approval_queue_and_bulk_decision(client: TestClient) -> None:
    ids = [client.post("/api/reservations", json=_reservation_body()).json()["id"] for _ in range(3)]
    assert client.get("/api/approvals").json()["count"] == 3

    single = client.post(f"/api/reservations/{ids[0]}/approve", json={"status": "REJECTED", "comment": "No"})
    assert single.json()["approval_status"] == "REJECTED"

    bulk = client.post("/api/approvals/bulk", json={"ids": ids, "status": "APPROVED"})
    assert bulk.json() == {"count": 2}
    assert client.get("/api/approvals").json()["count"] == 0


def test_list_filters_by_status(client: TestClient) -> None:
    first = client.post("/api/reservations", json=_reservation_body()).json()
    client.post("/api/reservations", json=_reservation_body())
    client.post(f"/api/reservations/{first['id']}/cancel")

    cancelled = client.get("/api/reservations", params={"status": "CANCELLED"}).json()
    assert [item["id"] for item in cancelled] == [first["id"]]
    assert len(client.get("/api/reservations").json()) == 2


def test_dispatch_batch_update(client: TestClient) -> None:
    rid = client.post("/api/reservations", json=_reservation_body()).json()["id"]

    response = client.post(
        "/api/dispatch/batch-update",
        json={
            "changes": [
                {"reservation_id": rid, "pickup_date": "2026-03-02T09:00:00Z", "return_date": "2026-03-04T18:00:00Z"}
            ]
        },
    )

    assert response.json() == {"updated": 1}
    assert client.get(f"/api/reservations/{rid}").json()["pickup_date"].startswith("2026-03-02T09:00:00")
    assert client.post("/api/dispatch/batch-update", json={"changes": []}).status_code == 400


def test_dispatch_batch_update_saves_nothing_on_conflict(client: TestClient) -> None:
    vehicle = _vehicle(client)
    held = client.post("/api/reservations", json=_reservation_body()).json()
    client.post(f"/api/reservations/{held['id']}/assign", json={"vehicle_id": vehicle["id"]})
    moving = client.post(
        "/api/reservations",
        json=_reservation_body(pickup_date="2026-03-05T09:00:00Z", return_date="2026-03-07T09:00:00Z"),
    ).json()
    client.post(f"/api/reservations/{moving['id']}/assign", json={"vehicle_id": vehicle["id"]})
    free = client.post("/api/reservations", json=_reservation_body()).json()

    response = client.post(
        "/api/dispatch/batch-update",
        json={
            "changes": [
                {"reservation_id": free["id"], "pickup_date": "2026-03-10T09:00:00Z", "return_date": "2026-03-11T09:00:00Z"},
                {"reservation_id": moving["id"], "pickup_date": "2026-03-02T09:00:00Z", "return_date": "2026-03-06T09:00:00Z"},
            ]
        },
    )

    assert response.status_code == 400
    assert client.get(f"/api/reservations/{free['id']}").json()["pickup_date"].startswith("2026-03-01T09:00:00")
