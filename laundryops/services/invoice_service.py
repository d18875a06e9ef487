"""
Invoices issued from orders
One invoice per order with a customer and line item snapshot taken at issue time
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload, selectinload

from ..config import DEFAULT_CURRENCY, INVOICE_DUE_DAYS
from ..domain.orders.schemas import PAYMENT_METHODS
from ..models import Order
from ..models_invoice import Invoice, InvoiceItem
from ..schemas import InvoiceCreate, InvoiceStatusUpdate
from .status_automation import ensure_status_transition

logger = logging.getLogger(__name__)

INVOICE_PREFIX = "INV"


def _money(value: float) -> float:
    return round(value or 0.0, 2)


class InvoiceService:
    """Service layer for invoice business logic"""

    def __init__(self, db: Session):
        self.db = db

    def get_invoice(self, invoice_id: str, business_id: str) -> Invoice:
        invoice = (
            self.db.query(Invoice)
            .options(selectinload(Invoice.items))
            .filter(Invoice.id == invoice_id, Invoice.business_id == business_id)
            .first()
        )
        if not invoice:
            raise HTTPException(status_code=404, detail="Invoice not found")
        return invoice

    def list_invoices(
        self,
        business_id: str,
        status: Optional[str] = None,
        customer_id: Optional[str] = None,
        order_id: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Invoice], int]:
        query = self.db.query(Invoice).filter(Invoice.business_id == business_id)
        if status:
            query = query.filter(Invoice.status == status)
        if customer_id:
            query = query.filter(Invoice.customer_id == customer_id)
        if order_id:
            query = query.filter(Invoice.order_id == order_id)
        if date_from:
            query = query.filter(Invoice.invoice_date >= date_from)
        if date_to:
            query = query.filter(Invoice.invoice_date <= date_to)
        if search:
            term = f"%{search}%"
            query = query.filter(
                or_(Invoice.invoice_number.ilike(term), Invoice.customer_name.ilike(term))
            )

        total = query.count()
        invoices = (
            query.options(selectinload(Invoice.items))
            .order_by(Invoice.invoice_date.desc(), Invoice.invoice_number.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return invoices, total

    def generate_invoice_number(self, business_id: str, year: Optional[int] = None) -> str:
        """INV<year><nnnnnn>, sequential per business, restarting every year"""
        prefix = f"{INVOICE_PREFIX}{year or date.today().year}"
        numbers = (
            self.db.query(Invoice.invoice_number)
            .filter(Invoice.business_id == business_id, Invoice.invoice_number.like(f"{prefix}%"))
            .all()
        )
        last = 0
        for (number,) in numbers:
            suffix = number[len(prefix):]
            if suffix.isdigit():
                last = max(last, int(suffix))
        return f"{prefix}{last + 1:06d}"

    def create_invoice(self, data: InvoiceCreate, business_id: str) -> Invoice:
        order = (
            self.db.query(Order)
            .options(joinedload(Order.customer), selectinload(Order.items))
            .filter(Order.id == data.order_id, Order.business_id == business_id)
            .first()
        )
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")
        if order.status == "CANCELLED":
            raise HTTPException(status_code=400, detail="Cannot invoice a cancelled order")

        existing = self.db.query(Invoice.id).filter(Invoice.order_id == order.id).first()
        if existing:
            raise HTTPException(status_code=409, detail="Invoice already exists for this order")

        customer = order.customer
        today = date.today()
        due_days = INVOICE_DUE_DAYS if data.due_days is None else data.due_days

        invoice = Invoice(
            business_id=business_id,
            order_id=order.id,
            customer_id=customer.id,
            invoice_number=self.generate_invoice_number(business_id, today.year),
            invoice_date=today,
            due_date=today + timedelta(days=due_days),
            status="DRAFT",
            customer_name=customer.full_name,
            customer_phone=customer.phone,
            customer_email=customer.email,
            customer_address=customer.address,
            customer_tax_number=data.customer_tax_number or customer.tax_number,
            currency=DEFAULT_CURRENCY,
            subtotal=_money(order.subtotal),
            discount_amount=_money(order.discount_amount),
            tax_amount=_money(order.tax_amount),
            total_amount=_money(order.total_amount),
            payment_status=order.payment_status if order.payment_status == "PAID" else "PENDING",
            payment_method=order.payment_method,
            notes=data.notes,
        )

        for item in order.items:
            invoice.items.append(
                InvoiceItem(
                    description=item.service_name,
                    quantity=item.quantity,
                    unit_price=_money(item.unit_price),
                    line_total=_money(item.total_price),
                    vat_rate=item.vat_rate,
                    vat_amount=_money(item.vat_amount),
                )
            )
        if not order.items:
            # Orders priced by a manual total get a single line
            invoice.items.append(
                InvoiceItem(
                    description=f"Order {order.order_number}",
                    quantity=1,
                    unit_price=_money(order.subtotal),
                    line_total=_money(order.subtotal),
                    vat_rate=0.0,
                    vat_amount=_money(order.tax_amount),
                )
            )

        self.db.add(invoice)
        self.db.commit()
        self.db.refresh(invoice)
        logger.info(f"✅ Invoice created: {invoice.invoice_number} for order {order.order_number}")
        return invoice

    def change_status(self, invoice_id: str, data: InvoiceStatusUpdate, business_id: str) -> Invoice:
        """
        Move an invoice through DRAFT → SENT → PAID / OVERDUE / CANCELLED

        Paying an invoice settles the order's payment. Cancelling requires a reason.
        """
        invoice = self.get_invoice(invoice_id, business_id)
        ensure_status_transition("invoice", invoice.status, data.status)
        if data.status == invoice.status:
            return invoice

        if data.status == "CANCELLED" and not (data.reason and data.reason.strip()):
            raise HTTPException(status_code=400, detail="Cancellation reason is required")
        if data.payment_method and data.payment_method not in PAYMENT_METHODS:
            raise HTTPException(
                status_code=400, detail=f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}"
            )

        now = datetime.utcnow()
        previous = invoice.status
        invoice.status = data.status

        if data.status == "SENT":
            invoice.sent_at = now
        elif data.status == "PAID":
            invoice.paid_at = now
            invoice.payment_status = "PAID"
            if data.payment_method:
                invoice.payment_method = data.payment_method
            order = self.db.query(Order).filter(Order.id == invoice.order_id).first()
            if order:
                order.paid_amount = order.total_amount
                order.payment_status = "PAID"
                if invoice.payment_method:
                    order.payment_method = invoice.payment_method
        elif data.status == "CANCELLED":
            invoice.cancelled_at = now
            invoice.cancellation_reason = data.reason.strip()
        elif data.status == "REFUNDED":
            invoice.payment_status = "REFUNDED"
            order = self.db.query(Order).filter(Order.id == invoice.order_id).first()
            if order:
                order.payment_status = "REFUNDED"

        self.db.commit()
        self.db.refresh(invoice)
        logger.info(f"✅ Invoice {invoice.invoice_number} transitioned: {previous} → {data.status}")
        return invoice

    def get_stats(self, business_id: str) -> dict:
        invoices = self.db.query(Invoice).filter(Invoice.business_id == business_id).all()

        by_status: dict[str, dict] = {}
        for invoice in invoices:
            bucket = by_status.setdefault(invoice.status, {"count": 0, "amount": 0.0})
            bucket["count"] += 1
            bucket["amount"] = _money(bucket["amount"] + invoice.total_amount)

        outstanding = sum(i.total_amount for i in invoices if i.status in ("SENT", "OVERDUE"))
        paid = sum(i.total_amount for i in invoices if i.status == "PAID")
        return {
            "total_invoices": len(invoices),
            "by_status": by_status,
            "total_amount": _money(sum(i.total_amount for i in invoices if i.status != "CANCELLED")),
            "paid_amount": _money(paid),
            "outstanding_amount": _money(outstanding),
            "overdue_count": by_status.get("OVERDUE", {}).get("count", 0),
        }
