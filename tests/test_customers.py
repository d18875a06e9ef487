import pytest

from laundryops.shared.validators import validate_phone
from tests.conftest import auth_headers, make_customer, make_order, make_user


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("0532 111 22 33", "+905321112233"),
        ("532-111-22-33", "+905321112233"),
        ("+90 532 111 22 33", "+905321112233"),
        ("905321112233", "+905321112233"),
        ("0049 30 1234567", "+49301234567"),
    ],
)
def test_validate_phone_normalizes_to_e164(raw, expected):
    assert validate_phone(raw) == expected


@pytest.mark.parametrize("raw", ["12345", "0532 111 22", "+1234"])
def test_validate_phone_rejects_bad_numbers(raw):
    with pytest.raises(ValueError):
        validate_phone(raw)


def test_create_customer_defaults_whatsapp_to_phone(client, headers):
    response = client.post(
        "/customers",
        json={"first_name": "Mehmet", "last_name": "Demir", "phone": "0532 444 55 66", "email": "Mehmet@Example.com"},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["phone"] == "+905324445566"
    assert data["whatsapp"] == "+905324445566"
    assert data["email"] == "mehmet@example.com"
    assert data["full_name"] == "Mehmet Demir"
    assert data["customer_type"] == "INDIVIDUAL"


def test_create_customer_rejects_duplicate_phone(client, headers, customer):
    response = client.post(
        "/customers",
        json={"first_name": "Other", "last_name": "Person", "phone": "0532 111 22 33"},
        headers=headers,
    )
    assert response.status_code == 409


def test_create_customer_requires_both_coordinates(client, headers):
    response = client.post(
        "/customers",
        json={"first_name": "Ali", "last_name": "Kaya", "phone": "05325556677", "latitude": 41.0},
        headers=headers,
    )
    assert response.status_code == 422


def test_customers_are_scoped_to_the_business(client, db, customer):
    from laundryops.models import Business

    other_business = Business(name="Other Laundry")
    db.add(other_business)
    db.commit()
    outsider = make_user(db, other_business, "OWNER", email="outsider@example.com")

    response = client.get(f"/customers/{customer.id}", headers=auth_headers(outsider))
    assert response.status_code == 404

    response = client.get("/customers", headers=auth_headers(outsider))
    assert response.json()["total"] == 0


def test_list_customers_searches_name_and_phone(client, db, business, headers, customer):
    make_customer(db, business, phone="+905329998877", first_name="Zeynep", last_name="Arslan")

    response = client.get("/customers", params={"search": "Zeynep"}, headers=headers)
    assert response.json()["total"] == 1

    response = client.get("/customers", params={"search": "1112233"}, headers=headers)
    items = response.json()["items"]
    assert [c["id"] for c in items] == [customer.id]


def test_update_customer_keeps_required_fields(client, headers, customer):
    response = client.patch(
        f"/customers/{customer.id}",
        json={"first_name": None, "notes": "Ring twice"},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["first_name"] == "Ayşe"
    assert response.json()["notes"] == "Ring twice"


def test_delete_customer_with_open_order_is_refused(client, db, business, headers, customer):
    make_order(db, business, customer, status="IN_PROGRESS")
    response = client.delete(f"/customers/{customer.id}", headers=headers)
    assert response.status_code == 400


def test_delete_customer_with_history_deactivates(client, db, business, headers, customer):
    make_order(db, business, customer, status="COMPLETED")
    response = client.delete(f"/customers/{customer.id}", headers=headers)
    assert response.status_code == 200
    assert response.json()["deactivated"] is True

    response = client.get(f"/customers/{customer.id}", headers=headers)
    assert response.json()["is_active"] is False


def test_delete_customer_without_orders(client, headers, customer):
    response = client.delete(f"/customers/{customer.id}", headers=headers)
    assert response.json() == {"message": "Customer deleted", "deactivated": False}
    assert client.get(f"/customers/{customer.id}", headers=headers).status_code == 404


def test_verify_whatsapp(client, db, business, headers):
    customer = make_customer(db, business, whatsapp="+905321112233")
    response = client.post(f"/customers/{customer.id}/verify-whatsapp", headers=headers)
    assert response.status_code == 200
    assert response.json()["whatsapp_verified"] is True


def test_verify_whatsapp_without_number(client, db, business, headers):
    customer = make_customer(db, business, phone="+905320000000", whatsapp=None)
    response = client.post(f"/customers/{customer.id}/verify-whatsapp", headers=headers)
    assert response.status_code == 400


def test_customer_orders_and_stats(client, db, business, headers, customer):
    make_order(db, business, customer, number="ORD-20260101-0001")
    make_order(db, business, customer, number="ORD-20260101-0002", status="COMPLETED")

    orders = client.get(f"/customers/{customer.id}/orders", headers=headers).json()
    assert {o["order_number"] for o in orders} == {"ORD-20260101-0001", "ORD-20260101-0002"}

    stats = client.get("/customers/stats", headers=headers).json()
    assert stats["total_customers"] == 1
    assert stats["with_orders"] == 1
    assert stats["average_orders_per_customer"] == 2.0
