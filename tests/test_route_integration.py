from datetime import date, timedelta

from laundryops.services.order_route_integration import OrderRouteIntegrationService
from laundryops.services.location_service import DEPOT
from tests.conftest import make_customer, make_order, make_vehicle

TARGET_DATE = (date.today() + timedelta(days=1)).isoformat()


def _customer_at(db, business, phone, latitude, longitude):
    return make_customer(db, business, phone=phone, latitude=latitude, longitude=longitude)


def test_candidates_sorted_by_priority_and_exclude_routed_orders(client, db, business, headers, vehicle, customer):
    normal = make_order(db, business, customer, number="ORD-1", status="PENDING")
    urgent = make_order(db, business, customer, number="ORD-2", status="READY_FOR_DELIVERY", priority="URGENT")
    make_order(db, business, customer, number="ORD-3", status="IN_PROGRESS")
    routed = make_order(db, business, customer, number="ORD-4", status="CONFIRMED")

    route = client.post(
        "/routes",
        json={"route_name": "R", "vehicle_id": vehicle.id, "planned_date": TARGET_DATE},
        headers=headers,
    ).json()
    client.post(
        f"/routes/{route['id']}/stops",
        json={"stop_type": "PICKUP", "address": "A", "order_ids": [routed.id]},
        headers=headers,
    )

    candidates = client.get("/route-integration/available-orders", headers=headers).json()
    assert [c["order_id"] for c in candidates] == [urgent.id, normal.id]
    assert candidates[0]["estimated_weight"] == 4.0

    pickups = client.get("/orders/available-for-route", params={"type": "pickup"}, headers=headers).json()
    assert [c["order_id"] for c in pickups] == [normal.id]


def test_assign_orders_respects_capacity(client, db, business, headers, customer):
    small_van = make_vehicle(db, business, plate="34XYZ99", max_weight_kg=10.0, max_item_count=None)
    make_order(db, business, customer, number="ORD-1", quantity=2)
    make_order(db, business, customer, number="ORD-2", quantity=2)
    make_order(db, business, customer, number="ORD-3", quantity=2)

    route = client.post(
        "/routes",
        json={"route_name": "R", "vehicle_id": small_van.id, "planned_date": TARGET_DATE},
        headers=headers,
    ).json()

    response = client.post("/route-integration/assign-orders", json={"route_id": route["id"]}, headers=headers)
    assert response.status_code == 200, response.text
    result = response.json()["data"]
    assert result["assigned_stops"] == 2
    assert len(result["skipped_orders"]) == 1

    detail = client.get(f"/routes/{route['id']}", headers=headers).json()
    assert detail["total_weight"] == 8.0
    assert [s["sequence"] for s in detail["stops"]] == [1, 2]


def test_assign_orders_only_to_planned_routes(client, headers, vehicle):
    route = client.post(
        "/routes",
        json={"route_name": "R", "vehicle_id": vehicle.id, "planned_date": TARGET_DATE},
        headers=headers,
    ).json()
    client.post(f"/routes/{route['id']}/status", json={"action": "start"}, headers=headers)

    response = client.post("/route-integration/assign-orders", json={"route_id": route["id"]}, headers=headers)
    assert response.status_code == 400


def test_generate_routes_one_route_per_cluster(client, db, business, headers):
    make_vehicle(db, business, plate="34AAA01")
    kadikoy = _customer_at(db, business, "+905320000001", 40.990, 29.030)
    besiktas = _customer_at(db, business, "+905320000002", 41.043, 29.007)
    make_order(db, business, kadikoy, number="ORD-1")
    make_order(db, business, kadikoy, number="ORD-2", status="READY_FOR_DELIVERY")
    make_order(db, business, besiktas, number="ORD-3")

    response = client.post("/route-integration/generate-routes", json={"target_date": TARGET_DATE}, headers=headers)
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert len(data["generated_routes"]) == 1
    assert data["generated_routes"][0]["stop_count"] == 2
    assert data["unassigned_orders"] == ["ORD-3"]

    route = client.get(f"/routes/{data['generated_routes'][0]['route_id']}", headers=headers).json()
    assert [s["stop_type"] for s in route["stops"]] == ["PICKUP", "DELIVERY"]
    assert route["planned_start_time"].endswith("09:00:00")


def test_generate_routes_without_vehicles(client, headers, order):
    response = client.post("/route-integration/generate-routes", json={"target_date": TARGET_DATE}, headers=headers)
    assert response.json()["success"] is False


def test_group_orders_by_location_puts_unlocated_on_depot():
    candidates = [
        {"coordinates": None, "pickup_address": None, "order_number": "A"},
        {"coordinates": DEPOT._replace(latitude=41.001), "pickup_address": "Fatih, Istanbul", "order_number": "B"},
    ]
    groups = OrderRouteIntegrationService.group_orders_by_location(candidates)
    assert groups[0]["key"] == "default"
    assert groups[0]["center"] == DEPOT
    assert groups[1]["center_name"] == "Fatih"


def test_nearby_delivery_orders(client, db, business, headers):
    close = _customer_at(db, business, "+905320000001", 41.010, 28.980)
    distant = _customer_at(db, business, "+905320000002", 41.300, 29.300)
    near_order = make_order(db, business, close, number="ORD-1", status="READY_FOR_DELIVERY")
    make_order(db, business, distant, number="ORD-2", status="READY_FOR_DELIVERY")
    make_order(db, business, close, number="ORD-3", status="PENDING")

    response = client.get(
        "/route-integration/nearby-orders",
        params={"lat": 41.0082, "lng": 28.9784, "radius_km": 2},
        headers=headers,
    )
    results = response.json()
    assert [r["order_id"] for r in results] == [near_order.id]
    assert results[0]["distance_km"] < 2


def test_suggest_pickup_route_chains_nearest(client, db, business, headers, vehicle):
    first = _customer_at(db, business, "+905320000001", 41.010, 28.980)
    second = _customer_at(db, business, "+905320000002", 41.050, 29.000)
    third = _customer_at(db, business, "+905320000003", 41.100, 29.050)
    make_order(db, business, third, number="ORD-3")
    o1 = make_order(db, business, first, number="ORD-1")
    o2 = make_order(db, business, second, number="ORD-2")

    response = client.post(
        "/route-integration/suggest-pickup-route",
        json={"vehicle_id": vehicle.id, "location": {"lat": 41.0082, "lng": 28.9784}, "max_stops": 2},
        headers=headers,
    )
    assert response.status_code == 200, response.text
    assert [r["order_id"] for r in response.json()] == [o1.id, o2.id]


def test_remove_order_from_route(client, db, business, headers, vehicle, customer):
    first = make_order(db, business, customer, number="ORD-1")
    second = make_order(db, business, customer, number="ORD-2")
    route = client.post(
        "/routes",
        json={"route_name": "R", "vehicle_id": vehicle.id, "planned_date": TARGET_DATE},
        headers=headers,
    ).json()
    client.post("/route-integration/assign-orders", json={"route_id": route["id"]}, headers=headers)

    response = client.post(
        "/route-integration/remove-order", json={"route_id": route["id"], "order_id": first.id}, headers=headers
    )
    assert response.json()["message"] == "Order removed from route"

    detail = client.get(f"/routes/{route['id']}", headers=headers).json()
    assert [s["order_links"][0]["order_id"] for s in detail["stops"]] == [second.id]
    assert detail["stops"][0]["sequence"] == 1

    response = client.post(
        "/route-integration/remove-order", json={"route_id": route["id"], "order_id": first.id}, headers=headers
    )
    assert response.json()["message"] == "Order not linked to the route"


def test_remove_order_from_started_route(client, headers, vehicle, order):
    route = client.post(
        "/routes",
        json={"route_name": "R", "vehicle_id": vehicle.id, "planned_date": TARGET_DATE},
        headers=headers,
    ).json()
    client.post(f"/routes/{route['id']}/status", json={"action": "start"}, headers=headers)

    response = client.post(
        "/route-integration/remove-order", json={"route_id": route["id"], "order_id": order.id}, headers=headers
    )
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "ROUTE_NOT_MODIFIABLE"


def test_remove_order_from_shared_stop_keeps_other_orders_load(client, db, business, headers, vehicle, customer):
    shirts = make_order(db, business, customer, number="ORD-1", quantity=2)
    suits = make_order(db, business, customer, number="ORD-2", quantity=3)
    route = client.post(
        "/routes",
        json={"route_name": "R", "vehicle_id": vehicle.id, "planned_date": TARGET_DATE},
        headers=headers,
    ).json()
    client.post(
        f"/routes/{route['id']}/stops",
        json={
            "stop_type": "PICKUP",
            "address": customer.address,
            "item_count": 5,
            "weight": 10,
            "order_ids": [shirts.id, suits.id],
        },
        headers=headers,
    )

    response = client.post(
        "/route-integration/remove-order", json={"route_id": route["id"], "order_id": shirts.id}, headers=headers
    )
    assert response.json()["message"] == "Order removed from route"

    detail = client.get(f"/routes/{route['id']}", headers=headers).json()
    [stop] = detail["stops"]
    assert [link["order_id"] for link in stop["order_links"]] == [suits.id]
    assert stop["item_count"] == 3
    assert stop["weight"] == 6.0
    assert detail["total_items"] == 3
    assert detail["total_weight"] == 6.0
