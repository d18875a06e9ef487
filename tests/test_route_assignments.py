from datetime import date, timedelta

import pytest

from laundryops.models_routing import Route, Vehicle
from tests.conftest import auth_headers, make_user, make_vehicle

TOMORROW = (date.today() + timedelta(days=1)).isoformat()


@pytest.fixture
def route(client, headers, vehicle):
    return client.post(
        "/routes",
        json={"route_name": "Üsküdar Akşam", "vehicle_id": vehicle.id, "planned_date": TOMORROW},
        headers=headers,
    ).json()


def _assign(client, headers, route_id, driver_id, **overrides):
    payload = {"route_id": route_id, "driver_id": driver_id}
    payload.update(overrides)
    return client.post("/route-assignments", json=payload, headers=headers)


def _route_status(db, route_id):
    db.expire_all()
    return db.get(Route, route_id).status


def test_assign_driver_moves_route_to_assigned(client, db, headers, route, driver):
    response = _assign(client, headers, route["id"], driver.id, notes="Fragile items")
    assert response.status_code == 201, response.text
    assert response.json()["status"] == "assigned"
    assert _route_status(db, route["id"]) == "ASSIGNED"


def test_only_one_active_assignment_per_route(client, db, business, headers, route, driver):
    _assign(client, headers, route["id"], driver.id)
    other_driver = make_user(db, business, "DRIVER", email="driver2@example.com")
    assert _assign(client, headers, route["id"], other_driver.id).status_code == 409


def test_driver_cannot_take_two_routes_on_one_day(client, db, business, headers, route, driver):
    _assign(client, headers, route["id"], driver.id)
    second_van = make_vehicle(db, business, plate="34DEF456")
    second_route = client.post(
        "/routes",
        json={"route_name": "Second", "vehicle_id": second_van.id, "planned_date": TOMORROW},
        headers=headers,
    ).json()
    assert _assign(client, headers, second_route["id"], driver.id).status_code == 409


def test_assignment_validates_driver_and_vehicle(client, db, business, headers, route, owner):
    assert _assign(client, headers, route["id"], owner.id).status_code == 404

    driver = make_user(db, business, "DRIVER", email="driver2@example.com")
    other_van = make_vehicle(db, business, plate="34DEF456")
    response = _assign(client, headers, route["id"], driver.id, vehicle_id=other_van.id)
    assert response.status_code == 400


def test_only_managers_assign(client, route, driver, driver_headers):
    assert _assign(client, driver_headers, route["id"], driver.id).status_code == 403


def test_accept_and_complete(client, db, headers, driver_headers, route, driver, vehicle):
    assignment = _assign(client, headers, route["id"], driver.id).json()

    response = client.post(f"/route-assignments/{assignment['id']}/accept", headers=driver_headers)
    assert response.status_code == 200
    assert response.json()["accepted_at"] is not None

    client.post(f"/routes/{route['id']}/status", json={"action": "start"}, headers=headers)

    response = client.post(f"/route-assignments/{assignment['id']}/complete", headers=headers)
    assert response.json()["status"] == "completed"
    assert _route_status(db, route["id"]) == "COMPLETED"
    assert db.get(Vehicle, vehicle.id).status == "AVAILABLE"


def test_reject_returns_route_to_planned(client, db, headers, driver_headers, route, driver):
    assignment = _assign(client, headers, route["id"], driver.id).json()

    response = client.post(
        f"/route-assignments/{assignment['id']}/reject", json={"reason": "Sick"}, headers=driver_headers
    )
    assert response.json()["status"] == "rejected"
    assert response.json()["rejection_reason"] == "Sick"
    assert _route_status(db, route["id"]) == "PLANNED"

    response = client.post(f"/route-assignments/{assignment['id']}/accept", headers=driver_headers)
    assert response.status_code == 400


def test_only_the_assigned_driver_answers(client, headers, route, driver):
    assignment = _assign(client, headers, route["id"], driver.id).json()
    response = client.post(f"/route-assignments/{assignment['id']}/accept", headers=headers)
    assert response.status_code == 404


def test_complete_requires_acceptance(client, headers, route, driver):
    assignment = _assign(client, headers, route["id"], driver.id).json()
    response = client.post(f"/route-assignments/{assignment['id']}/complete", headers=headers)
    assert response.status_code == 400


def test_cancelling_route_rejects_assignment(client, headers, route, driver):
    assignment = _assign(client, headers, route["id"], driver.id).json()
    client.post(f"/routes/{route['id']}/status", json={"action": "cancel"}, headers=headers)

    response = client.get(f"/route-assignments/{assignment['id']}", headers=headers)
    assert response.json()["status"] == "rejected"
    assert response.json()["rejection_reason"] == "Route cancelled"


def test_delete_assignment(client, db, headers, driver_headers, route, driver):
    assignment = _assign(client, headers, route["id"], driver.id).json()
    response = client.delete(f"/route-assignments/{assignment['id']}", headers=headers)
    assert response.status_code == 200
    assert _route_status(db, route["id"]) == "PLANNED"

    assignment = _assign(client, headers, route["id"], driver.id).json()
    client.post(f"/route-assignments/{assignment['id']}/accept", headers=driver_headers)
    client.post(f"/routes/{route['id']}/status", json={"action": "start"}, headers=headers)
    assert client.delete(f"/route-assignments/{assignment['id']}", headers=headers).status_code == 400


def test_list_mine_and_stats(client, headers, driver_headers, route, driver):
    _assign(client, headers, route["id"], driver.id)

    mine = client.get("/route-assignments", params={"mine": True}, headers=driver_headers).json()
    assert len(mine) == 1
    assert client.get("/route-assignments", params={"mine": True}, headers=headers).json() == []

    stats = client.get("/route-assignments/stats", headers=headers).json()
    assert stats["total"] == 1
    assert stats["pending_assignments"] == 1


def test_other_business_cannot_see_assignment(client, db, headers, route, driver):
    from laundryops.models import Business

    assignment = _assign(client, headers, route["id"], driver.id).json()
    other = Business(name="Elsewhere")
    db.add(other)
    db.commit()
    outsider = make_user(db, other, "OWNER", email="outsider@example.com")

    response = client.get(f"/route-assignments/{assignment['id']}", headers=auth_headers(outsider))
    assert response.status_code == 404


def test_deleting_rejected_assignment_keeps_replacement(client, db, business, headers, driver_headers, route, driver):
    rejected = _assign(client, headers, route["id"], driver.id).json()
    client.post(f"/route-assignments/{rejected['id']}/reject", json={"reason": "Sick"}, headers=driver_headers)
    replacement_driver = make_user(db, business, "DRIVER", email="driver2@example.com")
    replacement = _assign(client, headers, route["id"], replacement_driver.id)
    assert replacement.status_code == 201
    assert _route_status(db, route["id"]) == "ASSIGNED"

    response = client.delete(f"/route-assignments/{rejected['id']}", headers=headers)

    assert response.status_code == 200
    assert _route_status(db, route["id"]) == "ASSIGNED"
    # The route still refuses a second active assignment
    third_driver = make_user(db, business, "DRIVER", email="driver3@example.com")
    assert _assign(client, headers, route["id"], third_driver.id).status_code == 409
