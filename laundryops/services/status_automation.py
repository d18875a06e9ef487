"""
Status transition tables for orders, routes, stops, invoices and route assignments
Also holds the scheduled job that moves unpaid invoices past their due date to OVERDUE
"""

import logging
from datetime import date
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

ORDER_TRANSITIONS = {
    "PENDING": ["CONFIRMED", "CANCELLED"],
    "CONFIRMED": ["READY_FOR_PICKUP", "CANCELLED"],
    "READY_FOR_PICKUP": ["IN_PROGRESS", "CANCELLED"],
    "IN_PROGRESS": ["READY_FOR_DELIVERY", "CANCELLED"],
    "READY_FOR_DELIVERY": ["OUT_FOR_DELIVERY", "CANCELLED"],
    "OUT_FOR_DELIVERY": ["DELIVERED", "CANCELLED"],
    "DELIVERED": ["COMPLETED"],
    "COMPLETED": [],  # Terminal state
    "CANCELLED": [],  # Terminal state
}

ROUTE_TRANSITIONS = {
    "PLANNED": ["ASSIGNED", "IN_PROGRESS", "CANCELLED"],
    "ASSIGNED": ["PLANNED", "IN_PROGRESS", "CANCELLED"],
    "IN_PROGRESS": ["PAUSED", "COMPLETED", "CANCELLED"],
    "PAUSED": ["IN_PROGRESS", "CANCELLED"],
    "COMPLETED": [],
    "CANCELLED": [],
}

STOP_TRANSITIONS = {
    "PENDING": ["EN_ROUTE", "ARRIVED", "IN_PROGRESS", "COMPLETED", "FAILED", "SKIPPED"],
    "EN_ROUTE": ["ARRIVED", "FAILED", "SKIPPED"],
    "ARRIVED": ["IN_PROGRESS", "COMPLETED", "FAILED"],
    "IN_PROGRESS": ["COMPLETED", "FAILED"],
    "COMPLETED": [],
    "FAILED": [],
    "SKIPPED": [],
}

INVOICE_TRANSITIONS = {
    "DRAFT": ["SENT", "CANCELLED"],
    "SENT": ["PAID", "OVERDUE", "CANCELLED"],
    "OVERDUE": ["PAID", "CANCELLED"],
    "PAID": ["REFUNDED"],
    "CANCELLED": [],
    "REFUNDED": [],
}

ASSIGNMENT_TRANSITIONS = {
    "assigned": ["accepted", "rejected"],
    "accepted": ["completed"],
    "rejected": [],
    "completed": [],
}

TRANSITION_TABLES = {
    "order": ORDER_TRANSITIONS,
    "route": ROUTE_TRANSITIONS,
    "stop": STOP_TRANSITIONS,
    "invoice": INVOICE_TRANSITIONS,
    "assignment": ASSIGNMENT_TRANSITIONS,
}

# Routes that still hold their vehicle and orders
ACTIVE_ROUTE_STATUSES = ("PLANNED", "ASSIGNED", "IN_PROGRESS")
# Routes whose stops may still change status
OPEN_ROUTE_STATUSES = ("PLANNED", "ASSIGNED", "IN_PROGRESS", "PAUSED")
ACTIVE_ASSIGNMENT_STATUSES = ("assigned", "accepted")


def allowed_transitions(entity: str, current_status: str) -> list[str]:
    return list(TRANSITION_TABLES[entity].get(current_status, []))


def validate_status_transition(entity: str, current_status: str, new_status: str) -> bool:
    """
    Validate if a status transition is allowed for ``entity``

    Same status is accepted as a no-op.
    """
    if current_status == new_status:
        return True
    return new_status in TRANSITION_TABLES[entity].get(current_status, [])


def ensure_status_transition(entity: str, current_status: str, new_status: str) -> None:
    """Raise 400 with the allowed targets when the transition is not permitted"""
    table = TRANSITION_TABLES[entity]
    if new_status not in table:
        raise HTTPException(status_code=400, detail=f"Invalid {entity} status: {new_status}")

    if not validate_status_transition(entity, current_status, new_status):
        logger.warning(f"⚠️ Rejected {entity} transition: {current_status} → {new_status}")
        raise HTTPException(
            status_code=400,
            detail={
                "message": f"Cannot change {entity} status from {current_status} to {new_status}",
                "from": current_status,
                "to": new_status,
                "allowed": allowed_transitions(entity, current_status),
            },
        )


def mark_overdue_invoices(db: Session, business_id: Optional[str] = None, today: Optional[date] = None) -> dict:
    """
    Move SENT invoices whose due date has passed to OVERDUE
    Should be run as a scheduled job (e.g., daily cron)

    Returns:
        dict: Summary of status changes made
    """
    from ..models_invoice import Invoice

    today = today or date.today()
    summary = {"sent_to_overdue": 0}

    try:
        query = db.query(Invoice).filter(
            Invoice.status == "SENT",
            Invoice.due_date.isnot(None),
            Invoice.due_date < today,
        )
        if business_id:
            query = query.filter(Invoice.business_id == business_id)

        for invoice in query.all():
            invoice.status = "OVERDUE"
            summary["sent_to_overdue"] += 1
            logger.info(f"✅ Invoice {invoice.invoice_number} transitioned: SENT → OVERDUE")

        if summary["sent_to_overdue"]:
            db.commit()
            logger.info(f"📊 Invoice status automation summary: {summary}")
        return summary

    except Exception as e:
        logger.error(f"❌ Error updating invoice statuses: {str(e)}")
        db.rollback()
        raise
