from datetime import date, timedelta

import pytest
from fastapi import HTTPException

from laundryops.models_invoice import Invoice
from laundryops.services.status_automation import (
    allowed_transitions,
    ensure_status_transition,
    mark_overdue_invoices,
    validate_status_transition,
)


@pytest.mark.parametrize(
    "entity, current, new, expected",
    [
        ("order", "PENDING", "CONFIRMED", True),
        ("order", "PENDING", "DELIVERED", False),
        ("order", "DELIVERED", "COMPLETED", True),
        ("order", "COMPLETED", "CANCELLED", False),
        ("route", "PLANNED", "IN_PROGRESS", True),
        ("route", "PAUSED", "COMPLETED", False),
        ("stop", "PENDING", "SKIPPED", True),
        ("stop", "ARRIVED", "SKIPPED", False),
        ("invoice", "SENT", "OVERDUE", True),
        ("invoice", "DRAFT", "PAID", False),
        ("assignment", "assigned", "accepted", True),
        ("assignment", "rejected", "accepted", False),
    ],
)
def test_validate_status_transition(entity, current, new, expected):
    assert validate_status_transition(entity, current, new) is expected


def test_same_status_is_a_no_op():
    assert validate_status_transition("order", "COMPLETED", "COMPLETED")
    ensure_status_transition("route", "CANCELLED", "CANCELLED")


def test_terminal_states_have_no_targets():
    assert allowed_transitions("order", "CANCELLED") == []
    assert allowed_transitions("invoice", "REFUNDED") == []


def test_ensure_status_transition_reports_allowed_targets():
    with pytest.raises(HTTPException) as exc_info:
        ensure_status_transition("order", "PENDING", "DELIVERED")

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail["allowed"] == ["CONFIRMED", "CANCELLED"]


def test_ensure_status_transition_rejects_unknown_status():
    with pytest.raises(HTTPException) as exc_info:
        ensure_status_transition("route", "PLANNED", "FLYING")
    assert exc_info.value.status_code == 400


def _invoice(db, business, order, number, status, due_date):
    invoice = Invoice(
        business_id=business.id,
        order_id=order.id,
        customer_id=order.customer_id,
        invoice_number=number,
        invoice_date=date.today() - timedelta(days=30),
        due_date=due_date,
        status=status,
        customer_name="Ayşe Yılmaz",
        total_amount=118.0,
    )
    db.add(invoice)
    db.commit()
    return invoice


def test_mark_overdue_invoices_only_moves_sent_past_due(db, business, customer):
    from tests.conftest import make_order

    today = date(2026, 3, 10)
    late = _invoice(db, business, make_order(db, business, customer, "ORD-1"), "INV2026000001", "SENT", date(2026, 3, 1))
    draft = _invoice(db, business, make_order(db, business, customer, "ORD-2"), "INV2026000002", "DRAFT", date(2026, 3, 1))
    not_due = _invoice(db, business, make_order(db, business, customer, "ORD-3"), "INV2026000003", "SENT", date(2026, 3, 20))

    summary = mark_overdue_invoices(db, business.id, today=today)

    assert summary == {"sent_to_overdue": 1}
    db.expire_all()
    assert late.status == "OVERDUE"
    assert draft.status == "DRAFT"
    assert not_due.status == "SENT"
