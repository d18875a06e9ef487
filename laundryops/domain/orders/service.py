"""Order service - Business logic for order operations"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...cache import invalidate_business_stats
from ...config import DEFAULT_VAT_RATE, FREE_DAILY_ORDER_LIMIT
from ...models import Order, OrderItem, User
from ...services.status_automation import ensure_status_transition
from .repository import OrderRepository
from .schemas import OrderCreate, OrderUpdate

logger = logging.getLogger(__name__)

DELETABLE_STATUSES = ("PENDING", "CANCELLED")

# Columns that cannot be cleared by an update
REQUIRED_ORDER_FIELDS = ("priority", "paid_amount", "payment_status")


def _money(value: float) -> float:
    return round(value, 2)


def derive_payment_status(total_amount: float, paid_amount: float) -> str:
    if paid_amount <= 0:
        return "PENDING"
    if paid_amount + 0.005 < total_amount:
        return "PARTIAL"
    return "PAID"


class OrderService:
    """Service layer for order business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = OrderRepository()

    def list_orders(self, user: User, **filters) -> tuple[list[Order], int]:
        return self.repo.list_orders(self.db, user.business_id, **filters)

    def get_order(self, order_id: str, user: User) -> Order:
        order = self.repo.get_order_by_id(self.db, order_id, user.business_id)
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")
        return order

    def generate_order_number(self, business_id: str, now: Optional[datetime] = None) -> str:
        """ORD-<yyyymmdd>-<nnnn>, sequential per business per day"""
        prefix = f"ORD-{(now or datetime.utcnow()).strftime('%Y%m%d')}-"
        existing = self.repo.get_order_numbers_with_prefix(self.db, business_id, prefix)
        last = 0
        for number in existing:
            suffix = number[len(prefix):]
            if suffix.isdigit():
                last = max(last, int(suffix))
        return f"{prefix}{last + 1:04d}"

    def _build_items(self, data: OrderCreate, business_id: str) -> list[OrderItem]:
        service_ids = [item.service_id for item in data.items if item.service_id]
        services = self.repo.get_services(self.db, service_ids, business_id)

        items = []
        for item in data.items:
            if item.service_id:
                service = services.get(item.service_id)
                if not service or not service.is_active:
                    raise HTTPException(
                        status_code=400, detail=f"Service not found or inactive: {item.service_id}"
                    )
                unit_price = item.unit_price if item.unit_price is not None else service.base_price
                name = item.service_name or service.name
                description = item.service_description or service.description
            else:
                unit_price = item.unit_price
                name = item.service_name
                description = item.service_description

            total_price = _money(item.quantity * unit_price)
            items.append(
                OrderItem(
                    service_id=item.service_id,
                    service_name=name,
                    service_description=description,
                    is_manual_entry=item.service_id is None,
                    quantity=item.quantity,
                    unit_price=_money(unit_price),
                    total_price=total_price,
                    vat_rate=DEFAULT_VAT_RATE,
                    vat_amount=_money(total_price * DEFAULT_VAT_RATE / 100),
                    notes=item.notes,
                )
            )
        return items

    @staticmethod
    def _apply_totals(order: Order, manual_total: Optional[float] = None) -> None:
        """Recompute subtotal, VAT and total from items and discount"""
        if order.items:
            order.subtotal = _money(sum(item.total_price for item in order.items))
            order.tax_amount = _money(sum(item.vat_amount for item in order.items))
        elif manual_total is not None:
            order.subtotal = _money(manual_total)
            order.tax_amount = 0.0

        gross = order.subtotal + order.tax_amount
        discount = order.discount_amount or 0.0
        if discount > gross + 0.005:
            raise HTTPException(status_code=400, detail="Discount cannot exceed the order total")
        order.total_amount = _money(gross - discount)

    def create_order(self, data: OrderCreate, user: User) -> Order:
        """Create an order with catalogue or manual items"""
        customer = self.repo.get_customer(self.db, data.customer_id, user.business_id)
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        if not customer.is_active:
            raise HTTPException(status_code=400, detail="Customer is inactive")
        if not data.items and data.total_amount is None:
            raise HTTPException(status_code=400, detail="Order needs items or a total_amount")

        usage = self.get_daily_usage(user)
        if usage["limit"] is not None and usage["count"] >= usage["limit"]:
            logger.warning(f"⚠️ Business {user.business_id} reached the daily order limit")
            raise HTTPException(
                status_code=402,
                detail=f"The FREE plan allows {usage['limit']} orders per day. Upgrade to PRO for more.",
            )

        order = Order(
            business_id=user.business_id,
            customer_id=customer.id,
            order_number=self.generate_order_number(user.business_id),
            status="PENDING",
            priority=data.priority,
            pickup_address=data.pickup_address or customer.address,
            pickup_date=data.pickup_date,
            delivery_address=data.delivery_address or customer.address,
            delivery_date=data.delivery_date,
            discount_amount=data.discount_amount,
            discount_reason=data.discount_reason,
            payment_method=data.payment_method,
            notes=data.notes,
            special_instructions=data.special_instructions,
            reference_code=data.reference_code,
            assigned_user_id=data.assigned_user_id,
        )
        order.items = self._build_items(data, user.business_id)
        self._apply_totals(order, data.total_amount)

        order = self.repo.save(self.db, order)
        invalidate_business_stats(user.business_id)
        logger.info(f"✅ Order {order.order_number} created: {order.total_amount:.2f}")
        return order

    def update_order(self, order_id: str, data: OrderUpdate, user: User) -> Order:
        order = self.get_order(order_id, user)
        updates = data.model_dump(exclude_unset=True)
        for required in REQUIRED_ORDER_FIELDS:
            if required in updates and updates[required] is None:
                del updates[required]

        if order.status in ("COMPLETED", "CANCELLED"):
            allowed_on_closed = {"notes", "paid_amount", "payment_status", "payment_method"}
            blocked = set(updates) - allowed_on_closed
            if blocked:
                raise HTTPException(
                    status_code=400,
                    detail=f"Cannot change {', '.join(sorted(blocked))} on a {order.status} order",
                )

        explicit_payment_status = updates.pop("payment_status", None)
        for key, value in updates.items():
            setattr(order, key, value)

        if "discount_amount" in updates:
            order.discount_amount = updates["discount_amount"] or 0.0
            self._apply_totals(order)

        if explicit_payment_status:
            order.payment_status = explicit_payment_status
        elif "paid_amount" in updates or "discount_amount" in updates:
            order.payment_status = derive_payment_status(order.total_amount, order.paid_amount)

        order = self.repo.save(self.db, order)
        invalidate_business_stats(user.business_id)
        return order

    def change_status(self, order_id: str, new_status: str, user: User, notes: Optional[str] = None) -> tuple[Order, str]:
        """
        Move an order through its workflow.

        Returns the order and the previous status.
        """
        order = self.get_order(order_id, user)
        previous = order.status
        ensure_status_transition("order", previous, new_status)

        if previous == new_status:
            return order, previous

        order.status = new_status
        if notes:
            order.notes = f"{order.notes}\n{notes}" if order.notes else notes
        order = self.repo.save(self.db, order)
        invalidate_business_stats(user.business_id)
        logger.info(f"✅ Order {order.order_number} transitioned: {previous} → {new_status}")
        return order, previous

    def delete_order(self, order_id: str, user: User) -> dict:
        order = self.get_order(order_id, user)
        if order.status not in DELETABLE_STATUSES:
            raise HTTPException(
                status_code=409,
                detail=f"Only PENDING or CANCELLED orders can be deleted (status: {order.status})",
            )
        if self.repo.is_linked_to_active_route(self.db, order.id):
            raise HTTPException(
                status_code=409, detail="Order is assigned to an active route and cannot be deleted"
            )
        if self.repo.has_invoice(self.db, order.id):
            raise HTTPException(status_code=409, detail="Order has an invoice and cannot be deleted")

        number = order.order_number
        self.repo.delete_order(self.db, order)
        invalidate_business_stats(user.business_id)
        logger.info(f"🗑️ Order {number} deleted")
        return {"message": "Order deleted"}

    def get_daily_usage(self, user: User) -> dict:
        """Orders created today against the plan's daily limit (None means unlimited)"""
        plan = user.business.plan if user.business else "FREE"
        start_of_day = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        count = self.repo.count_created_since(self.db, user.business_id, start_of_day)
        return {"plan": plan, "count": count, "limit": None if plan == "PRO" else FREE_DAILY_ORDER_LIMIT}

    def get_stats(self, user: User, days: int = 30) -> dict:
        since = datetime.utcnow() - timedelta(days=days)
        stats = self.repo.get_stats(self.db, user.business_id, since)
        stats["period_days"] = days
        return stats
