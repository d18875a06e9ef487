from laundryops.domain.orders import service as order_service

from tests.conftest import make_order


def _create_order(client, headers, customer_id):
    return client.post(
        "/orders",
        json={
            "customer_id": customer_id,
            "items": [{"service_name": "Gömlek Yıkama", "quantity": 1, "unit_price": 40}],
            "send_notification": False,
        },
        headers=headers,
    )


def test_get_business_profile(client, headers, business):
    response = client.get("/business/me", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == business.id
    assert body["name"] == "Temiz Kuru Temizleme"
    assert body["plan"] == "FREE"


def test_update_business_profile(client, headers):
    response = client.patch(
        "/business/me",
        json={
            "name": "Temiz Yıkama",
            "phone": "0216 555 44 33",
            "latitude": 40.99,
            "longitude": 29.03,
            "tax_office": "Kadıköy",
        },
        headers=headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Temiz Yıkama"
    assert body["phone"] == "+902165554433"
    assert body["latitude"] == 40.99
    assert body["tax_office"] == "Kadıköy"


def test_update_business_keeps_name_on_null(client, headers):
    response = client.patch("/business/me", json={"name": None, "city": "Ankara"}, headers=headers)

    assert response.status_code == 200
    assert response.json()["name"] == "Temiz Kuru Temizleme"
    assert response.json()["city"] == "Ankara"


def test_update_business_validation(client, headers):
    assert client.patch("/business/me", json={"latitude": 41.0}, headers=headers).status_code == 422
    assert client.patch("/business/me", json={"business_type": "BAKERY"}, headers=headers).status_code == 422


def test_driver_cannot_update_business(client, driver_headers):
    response = client.patch("/business/me", json={"name": "X"}, headers=driver_headers)

    assert response.status_code == 403


def test_plan_entitlements(client, db, headers, business):
    free = client.get("/business/plan", headers=headers).json()
    assert free["plan"] == "FREE"
    assert free["entitlements"]["route_integration"] is False
    assert free["entitlements"]["photo_limit"] == 10

    business.plan = "PRO"
    db.commit()

    pro = client.get("/business/plan", headers=headers).json()
    assert pro["plan"] == "PRO"
    assert pro["entitlements"]["whatsapp_pro_features"] is True


def test_daily_usage_counts_todays_orders(client, db, business, headers, customer):
    make_order(db, business, customer)

    usage = client.get("/orders/daily-usage", headers=headers).json()

    assert usage == {"plan": "FREE", "count": 1, "limit": 50}


def test_free_plan_daily_order_limit(client, db, business, headers, customer, monkeypatch):
    monkeypatch.setattr(order_service, "FREE_DAILY_ORDER_LIMIT", 2)

    assert _create_order(client, headers, customer.id).status_code == 201
    assert _create_order(client, headers, customer.id).status_code == 201
    blocked = _create_order(client, headers, customer.id)
    assert blocked.status_code == 402

    business.plan = "PRO"
    db.commit()

    assert _create_order(client, headers, customer.id).status_code == 201
    usage = client.get("/orders/daily-usage", headers=headers).json()
    assert usage["count"] == 3
    assert usage["limit"] is None
