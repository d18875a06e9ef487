from datetime import date, timedelta

from laundryops.models_routing import Vehicle
from tests.conftest import make_customer, make_order

TOMORROW = (date.today() + timedelta(days=1)).isoformat()


def _create_route(client, headers, vehicle_id, planned_date=TOMORROW, **overrides):
    payload = {"route_name": "Kadıköy Sabah", "vehicle_id": vehicle_id, "planned_date": planned_date}
    payload.update(overrides)
    return client.post("/routes", json=payload, headers=headers)


def _add_stop(client, headers, route_id, address, **overrides):
    payload = {"stop_type": "PICKUP", "address": address}
    payload.update(overrides)
    return client.post(f"/routes/{route_id}/stops", json=payload, headers=headers)


def test_create_route(client, headers, vehicle):
    response = _create_route(client, headers, vehicle.id)
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["status"] == "PLANNED"
    assert data["route_type"] == "MIXED"
    assert data["stop_count"] == 0


def test_vehicle_cannot_have_two_active_routes_on_one_day(client, headers, vehicle):
    _create_route(client, headers, vehicle.id)
    response = _create_route(client, headers, vehicle.id, route_name="Second")
    assert response.status_code == 409

    other_day = (date.today() + timedelta(days=2)).isoformat()
    assert _create_route(client, headers, vehicle.id, planned_date=other_day).status_code == 201


def test_create_route_rejects_reversed_times(client, headers, vehicle):
    response = _create_route(
        client,
        headers,
        vehicle.id,
        planned_start_time=f"{TOMORROW}T17:00:00",
        planned_end_time=f"{TOMORROW}T09:00:00",
    )
    assert response.status_code == 422


def test_route_lifecycle_moves_vehicle(client, db, headers, vehicle):
    route_id = _create_route(client, headers, vehicle.id).json()["id"]

    response = client.post(f"/routes/{route_id}/status", json={"action": "resume"}, headers=headers)
    assert response.status_code == 400

    response = client.post(f"/routes/{route_id}/status", json={"action": "start"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["actual_start_time"] is not None
    db.expire_all()
    assert db.get(Vehicle, vehicle.id).status == "IN_USE"

    assert client.post(f"/routes/{route_id}/status", json={"action": "pause"}, headers=headers).json()["status"] == "PAUSED"
    assert client.post(f"/routes/{route_id}/status", json={"action": "resume"}, headers=headers).json()["status"] == "IN_PROGRESS"

    response = client.post(f"/routes/{route_id}/status", json={"action": "finish"}, headers=headers)
    data = response.json()
    assert data["status"] == "COMPLETED"
    assert data["actual_duration"] is not None
    db.expire_all()
    assert db.get(Vehicle, vehicle.id).status == "AVAILABLE"

    response = client.post(f"/routes/{route_id}/status", json={"action": "start"}, headers=headers)
    assert response.status_code == 400


def test_cancel_keeps_vehicle_in_maintenance(client, db, headers, vehicle):
    route_id = _create_route(client, headers, vehicle.id).json()["id"]
    db.get(Vehicle, vehicle.id).status = "MAINTENANCE"
    db.commit()

    response = client.post(f"/routes/{route_id}/status", json={"status": "CANCELLED"}, headers=headers)
    assert response.json()["status"] == "CANCELLED"
    db.expire_all()
    assert db.get(Vehicle, vehicle.id).status == "MAINTENANCE"


def test_status_update_needs_action_or_status(client, headers, vehicle):
    route_id = _create_route(client, headers, vehicle.id).json()["id"]
    response = client.post(f"/routes/{route_id}/status", json={}, headers=headers)
    assert response.status_code == 422


def test_delete_route_in_progress_is_refused(client, headers, vehicle):
    route_id = _create_route(client, headers, vehicle.id).json()["id"]
    client.post(f"/routes/{route_id}/status", json={"action": "start"}, headers=headers)

    response = client.delete(f"/routes/{route_id}", headers=headers)
    assert response.status_code == 400


def test_delete_route_requires_manager(client, headers, driver_headers, vehicle):
    route_id = _create_route(client, headers, vehicle.id).json()["id"]
    assert client.delete(f"/routes/{route_id}", headers=driver_headers).status_code == 403
    assert client.delete(f"/routes/{route_id}", headers=headers).status_code == 200


def test_stop_insertion_shifts_following_stops(client, headers, vehicle):
    route_id = _create_route(client, headers, vehicle.id).json()["id"]
    first = _add_stop(client, headers, route_id, "A", latitude=41.0, longitude=29.0).json()
    second = _add_stop(client, headers, route_id, "B", latitude=41.1, longitude=29.1).json()
    assert (first["sequence"], second["sequence"]) == (1, 2)

    inserted = _add_stop(client, headers, route_id, "Between", sequence=2, item_count=5, weight=10).json()
    assert inserted["sequence"] == 2

    route = client.get(f"/routes/{route_id}", headers=headers).json()
    assert [s["address"] for s in route["stops"]] == ["A", "Between", "B"]
    assert route["total_items"] == 5
    assert route["total_weight"] == 10.0
    assert route["total_distance"] > 0


def test_reorder_stops(client, headers, vehicle):
    route_id = _create_route(client, headers, vehicle.id).json()["id"]
    ids = [_add_stop(client, headers, route_id, name).json()["id"] for name in ("A", "B", "C")]

    response = client.put(f"/routes/{route_id}/stops/reorder", json={"stop_ids": ids[::-1]}, headers=headers)
    assert response.status_code == 200
    assert [s["address"] for s in response.json()["stops"]] == ["C", "B", "A"]

    response = client.put(f"/routes/{route_id}/stops/reorder", json={"stop_ids": ids[:2]}, headers=headers)
    assert response.status_code == 400


def test_remove_stop_resequences(client, headers, vehicle):
    route_id = _create_route(client, headers, vehicle.id).json()["id"]
    ids = [_add_stop(client, headers, route_id, name).json()["id"] for name in ("A", "B", "C")]

    response = client.delete(f"/routes/{route_id}/stops/{ids[0]}", headers=headers)
    assert response.status_code == 200

    stops = client.get(f"/routes/{route_id}", headers=headers).json()["stops"]
    assert [(s["address"], s["sequence"]) for s in stops] == [("B", 1), ("C", 2)]


def test_stop_linked_to_unknown_order(client, headers, vehicle):
    route_id = _create_route(client, headers, vehicle.id).json()["id"]
    response = _add_stop(client, headers, route_id, "A", order_ids=["missing"])
    assert response.status_code == 404


def test_stop_status_flow(client, headers, vehicle, order):
    route_id = _create_route(client, headers, vehicle.id).json()["id"]
    stop = _add_stop(client, headers, route_id, "A", order_ids=[order.id]).json()
    failing = _add_stop(client, headers, route_id, "B").json()

    url = f"/routes/{route_id}/stops/{stop['id']}/status"
    response = client.post(url, json={"status": "ARRIVED"}, headers=headers)
    assert response.json()["actual_arrival"] is not None

    response = client.post(url, json={"status": "COMPLETED"}, headers=headers)
    data = response.json()
    assert data["status"] == "COMPLETED"
    assert data["actual_departure"] is not None
    assert data["order_links"][0]["is_completed"] is True

    assert client.post(url, json={"status": "PENDING"}, headers=headers).status_code == 400

    failing_url = f"/routes/{route_id}/stops/{failing['id']}/status"
    assert client.post(failing_url, json={"status": "FAILED"}, headers=headers).status_code == 400
    response = client.post(failing_url, json={"status": "FAILED", "failure_reason": "Nobody home"}, headers=headers)
    assert response.json()["failure_reason"] == "Nobody home"


def test_completed_route_cannot_be_edited(client, headers, vehicle):
    route_id = _create_route(client, headers, vehicle.id).json()["id"]
    client.post(f"/routes/{route_id}/status", json={"action": "cancel"}, headers=headers)

    assert _add_stop(client, headers, route_id, "A").status_code == 400
    assert client.patch(f"/routes/{route_id}", json={"notes": "x"}, headers=headers).status_code == 400


def test_route_from_orders_sorts_by_driver_distance(client, db, business, headers, vehicle):
    near = make_customer(db, business, phone="+905320000001", latitude=41.01, longitude=28.98)
    far = make_customer(db, business, phone="+905320000002", latitude=41.20, longitude=29.20)
    unlocated = make_customer(
        db, business, phone="+905320000003", latitude=None, longitude=None, city=None, address=None
    )
    far_order = make_order(db, business, far, number="ORD-1", status="READY_FOR_DELIVERY")
    near_order = make_order(db, business, near, number="ORD-2", status="CONFIRMED")
    lost_order = make_order(
        db, business, unlocated, number="ORD-3", status="PENDING", pickup_address=None, delivery_address=None
    )

    response = client.post(
        "/routes/from-orders",
        json={
            "route_name": "Express",
            "vehicle_id": vehicle.id,
            "order_ids": [lost_order.id, far_order.id, near_order.id, far_order.id],
            "driver_location": {"lat": 41.0082, "lng": 28.9784},
        },
        headers=headers,
    )
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["planned_date"] == date.today().isoformat()
    assert data["status"] == "PLANNED"
    stops = data["stops"]
    assert [s["order_links"][0]["order_id"] for s in stops] == [near_order.id, far_order.id, lost_order.id]
    assert [s["stop_type"] for s in stops] == ["PICKUP", "DELIVERY", "PICKUP"]
    assert stops[2]["address"] == "Address not provided"
    assert stops[0]["weight"] == 4.0
    assert data["total_items"] == 6


def test_route_from_orders_with_unknown_order(client, headers, vehicle):
    response = client.post(
        "/routes/from-orders",
        json={"route_name": "Express", "vehicle_id": vehicle.id, "order_ids": ["nope"]},
        headers=headers,
    )
    assert response.status_code == 404


def test_list_today_and_stats(client, headers, vehicle):
    today = date.today().isoformat()
    _create_route(client, headers, vehicle.id, planned_date=today, route_name="Today")
    _create_route(client, headers, vehicle.id, route_name="Tomorrow")

    listing = client.get("/routes", params={"search": "Tom"}, headers=headers).json()
    assert [r["route_name"] for r in listing["items"]] == ["Tomorrow"]

    todays = client.get("/routes/today", headers=headers).json()
    assert [r["route_name"] for r in todays] == ["Today"]

    stats = client.get("/routes/stats", headers=headers).json()
    assert stats["total_routes"] == 2
    assert stats["by_status"] == {"PLANNED": 2}


def test_stop_update_ignores_null_for_required_fields(client, headers, vehicle):
    route_id = _create_route(client, headers, vehicle.id).json()["id"]
    stop = _add_stop(client, headers, route_id, "Moda Caddesi 5", item_count=4, weight=8).json()

    response = client.patch(
        f"/routes/{route_id}/stops/{stop['id']}",
        json={"address": None, "item_count": None, "weight": None, "notes": "Ring twice"},
        headers=headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["address"] == "Moda Caddesi 5"
    assert body["item_count"] == 4
    assert body["weight"] == 8.0
    assert body["notes"] == "Ring twice"
