from datetime import date, timedelta

from laundryops.models import Order
from laundryops.models_invoice import Invoice
from laundryops.services.invoice_service import InvoiceService
from tests.conftest import make_order


def _issue(client, headers, order_id, **overrides):
    payload = {"order_id": order_id}
    payload.update(overrides)
    return client.post("/invoices", json=payload, headers=headers)


def test_issue_invoice_snapshots_order(client, headers, order, customer):
    response = _issue(client, headers, order.id, customer_tax_number="1234567890")
    assert response.status_code == 201, response.text
    data = response.json()
    year = date.today().year
    assert data["invoice_number"] == f"INV{year}000001"
    assert data["status"] == "DRAFT"
    assert data["currency"] == "TRY"
    assert data["customer_name"] == customer.full_name
    assert data["customer_tax_number"] == "1234567890"
    assert data["total_amount"] == 118.0
    assert data["due_date"] == (date.today() + timedelta(days=15)).isoformat()
    assert [(i["description"], i["quantity"], i["line_total"]) for i in data["items"]] == [("Gömlek Yıkama", 2, 100.0)]


def test_one_invoice_per_order(client, headers, order):
    _issue(client, headers, order.id)
    assert _issue(client, headers, order.id).status_code == 409


def test_cancelled_orders_are_not_invoiced(client, db, business, headers, customer):
    cancelled = make_order(db, business, customer, status="CANCELLED")
    assert _issue(client, headers, cancelled.id).status_code == 400
    assert _issue(client, headers, "missing").status_code == 404


def test_invoice_numbers_restart_each_year(db, business, customer):
    service = InvoiceService(db)
    order = make_order(db, business, customer)
    db.add(
        Invoice(
            business_id=business.id,
            order_id=order.id,
            customer_id=customer.id,
            invoice_number="INV2025000041",
            invoice_date=date(2025, 12, 30),
            customer_name="Ayşe Yılmaz",
        )
    )
    db.commit()

    assert service.generate_invoice_number(business.id, 2025) == "INV2025000042"
    assert service.generate_invoice_number(business.id, 2026) == "INV2026000001"


def test_paying_invoice_settles_order(client, db, headers, order):
    invoice = _issue(client, headers, order.id).json()
    url = f"/invoices/{invoice['id']}/status"

    assert client.post(url, json={"status": "PAID"}, headers=headers).status_code == 400

    response = client.post(url, json={"status": "SENT"}, headers=headers)
    assert response.json()["sent_at"] is not None

    response = client.post(url, json={"status": "PAID", "payment_method": "CASH"}, headers=headers)
    data = response.json()
    assert data["payment_status"] == "PAID"
    assert data["payment_method"] == "CASH"

    db.expire_all()
    settled = db.get(Order, order.id)
    assert settled.paid_amount == settled.total_amount
    assert settled.payment_status == "PAID"
    assert settled.payment_method == "CASH"


def test_refund_marks_order_refunded(client, db, headers, order):
    invoice = _issue(client, headers, order.id).json()
    url = f"/invoices/{invoice['id']}/status"
    for status in ("SENT", "PAID", "REFUNDED"):
        client.post(url, json={"status": status}, headers=headers)

    db.expire_all()
    assert db.get(Order, order.id).payment_status == "REFUNDED"


def test_cancel_requires_reason(client, headers, order):
    invoice = _issue(client, headers, order.id).json()
    url = f"/invoices/{invoice['id']}/status"

    assert client.post(url, json={"status": "CANCELLED"}, headers=headers).status_code == 400
    response = client.post(url, json={"status": "CANCELLED", "reason": "Duplicate"}, headers=headers)
    assert response.json()["cancellation_reason"] == "Duplicate"


def test_unknown_payment_method(client, headers, order):
    invoice = _issue(client, headers, order.id).json()
    url = f"/invoices/{invoice['id']}/status"
    client.post(url, json={"status": "SENT"}, headers=headers)
    response = client.post(url, json={"status": "PAID", "payment_method": "BARTER"}, headers=headers)
    assert response.status_code == 400


def test_invoiced_order_cannot_be_deleted(client, db, business, headers, customer):
    order = make_order(db, business, customer, status="PENDING")
    _issue(client, headers, order.id)
    assert client.delete(f"/orders/{order.id}", headers=headers).status_code == 409


def test_mark_overdue_endpoint_and_stats(client, db, headers, order):
    invoice = _issue(client, headers, order.id, due_days=0).json()
    client.post(f"/invoices/{invoice['id']}/status", json={"status": "SENT"}, headers=headers)

    stored = db.get(Invoice, invoice["id"])
    stored.due_date = date.today() - timedelta(days=1)
    db.commit()

    response = client.post("/invoices/mark-overdue", headers=headers)
    assert response.json() == {"sent_to_overdue": 1}

    stats = client.get("/invoices/stats", headers=headers).json()
    assert stats["overdue_count"] == 1
    assert stats["outstanding_amount"] == 118.0
    assert stats["by_status"]["OVERDUE"] == {"count": 1, "amount": 118.0}


def test_list_invoices_search(client, headers, order):
    _issue(client, headers, order.id)
    year = date.today().year

    listing = client.get("/invoices", params={"search": f"INV{year}"}, headers=headers).json()
    assert listing["total"] == 1
    assert client.get("/invoices", params={"status": "PAID"}, headers=headers).json()["total"] == 0
