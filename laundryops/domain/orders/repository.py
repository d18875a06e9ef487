"""Order repository - Database operations for orders"""

from datetime import datetime
from typing import Optional

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session, joinedload, selectinload

from ...models import Customer, Order, Service
from ...models_routing import Route, RouteStop, RouteStopOrder
from ...services.status_automation import ACTIVE_ROUTE_STATUSES

PRIORITY_RANK = case(
    (Order.priority == "URGENT", 4),
    (Order.priority == "HIGH", 3),
    (Order.priority == "NORMAL", 2),
    (Order.priority == "LOW", 1),
    else_=0,
)

SORTABLE_COLUMNS = {
    "created_at": Order.created_at,
    "order_number": Order.order_number,
    "total_amount": Order.total_amount,
    "pickup_date": Order.pickup_date,
    "delivery_date": Order.delivery_date,
    "status": Order.status,
    "priority": PRIORITY_RANK,
}


class OrderRepository:
    """Repository for order database operations"""

    @staticmethod
    def list_orders(
        db: Session,
        business_id: str,
        statuses: Optional[list[str]] = None,
        priority: Optional[str] = None,
        customer_id: Optional[str] = None,
        search: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Order], int]:
        query = db.query(Order).join(Customer, Order.customer_id == Customer.id).filter(
            Order.business_id == business_id
        )

        if statuses:
            query = query.filter(Order.status.in_(statuses))
        if priority:
            query = query.filter(Order.priority == priority)
        if customer_id:
            query = query.filter(Order.customer_id == customer_id)
        if search:
            term = f"%{search}%"
            query = query.filter(
                or_(
                    Order.order_number.ilike(term),
                    Order.notes.ilike(term),
                    Customer.first_name.ilike(term),
                    Customer.last_name.ilike(term),
                    Customer.phone.ilike(term),
                )
            )
        if date_from:
            query = query.filter(Order.created_at >= date_from)
        if date_to:
            query = query.filter(Order.created_at <= date_to)

        total = query.count()

        column = SORTABLE_COLUMNS.get(sort_by, Order.created_at)
        ordering = column.asc() if sort_order == "asc" else column.desc()
        orders = (
            query.options(joinedload(Order.customer), selectinload(Order.items))
            .order_by(ordering, Order.order_number.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return orders, total

    @staticmethod
    def get_order_by_id(db: Session, order_id: str, business_id: str) -> Optional[Order]:
        return (
            db.query(Order)
            .options(joinedload(Order.customer), selectinload(Order.items))
            .filter(Order.id == order_id, Order.business_id == business_id)
            .first()
        )

    @staticmethod
    def get_customer(db: Session, customer_id: str, business_id: str) -> Optional[Customer]:
        return (
            db.query(Customer)
            .filter(Customer.id == customer_id, Customer.business_id == business_id)
            .first()
        )

    @staticmethod
    def get_services(db: Session, service_ids: list[str], business_id: str) -> dict[str, Service]:
        if not service_ids:
            return {}
        services = (
            db.query(Service)
            .filter(Service.id.in_(service_ids), Service.business_id == business_id)
            .all()
        )
        return {s.id: s for s in services}

    @staticmethod
    def get_order_numbers_with_prefix(db: Session, business_id: str, prefix: str) -> list[str]:
        rows = (
            db.query(Order.order_number)
            .filter(Order.business_id == business_id, Order.order_number.like(f"{prefix}%"))
            .all()
        )
        return [row[0] for row in rows]

    @staticmethod
    def is_linked_to_active_route(db: Session, order_id: str) -> bool:
        link = (
            db.query(RouteStopOrder.id)
            .join(RouteStop, RouteStopOrder.route_stop_id == RouteStop.id)
            .join(Route, RouteStop.route_id == Route.id)
            .filter(RouteStopOrder.order_id == order_id, Route.status.in_(ACTIVE_ROUTE_STATUSES))
            .first()
        )
        return link is not None

    @staticmethod
    def has_invoice(db: Session, order_id: str) -> bool:
        from ...models_invoice import Invoice

        return db.query(Invoice.id).filter(Invoice.order_id == order_id).first() is not None

    @staticmethod
    def count_created_since(db: Session, business_id: str, since: datetime) -> int:
        return db.query(Order).filter(Order.business_id == business_id, Order.created_at >= since).count()

    @staticmethod
    def save(db: Session, order: Order) -> Order:
        db.add(order)
        db.commit()
        db.refresh(order)
        return order

    @staticmethod
    def delete_order(db: Session, order: Order) -> None:
        db.delete(order)
        db.commit()

    @staticmethod
    def get_stats(db: Session, business_id: str, since: datetime) -> dict:
        base_filter = (Order.business_id == business_id, Order.created_at >= since)

        status_rows = (
            db.query(Order.status, func.count(Order.id))
            .filter(*base_filter)
            .group_by(Order.status)
            .all()
        )
        by_status = {status: count for status, count in status_rows}
        total_orders = sum(by_status.values())

        revenue_row = (
            db.query(func.sum(Order.total_amount), func.sum(Order.paid_amount))
            .filter(*base_filter, Order.status != "CANCELLED")
            .one()
        )
        total_revenue = float(revenue_row[0] or 0)
        paid_revenue = float(revenue_row[1] or 0)
        billable = total_orders - by_status.get("CANCELLED", 0)

        completed = (
            db.query(Order.created_at, Order.updated_at)
            .filter(*base_filter, Order.status == "COMPLETED")
            .all()
        )
        durations = [
            (updated - created).total_seconds() / 3600
            for created, updated in completed
            if created and updated
        ]

        return {
            "total_orders": total_orders,
            "by_status": by_status,
            "total_revenue": round(total_revenue, 2),
            "paid_revenue": round(paid_revenue, 2),
            "pending_revenue": round(total_revenue - paid_revenue, 2),
            "average_order_value": round(total_revenue / billable, 2) if billable else 0.0,
            "average_processing_hours": round(sum(durations) / len(durations), 2) if durations else None,
        }
