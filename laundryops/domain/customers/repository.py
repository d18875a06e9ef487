"""Customer repository - Database operations for customers"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ...models import Customer, Order


class CustomerRepository:
    """Repository for customer database operations"""

    @staticmethod
    def list_customers(
        db: Session,
        business_id: str,
        search: Optional[str] = None,
        city: Optional[str] = None,
        district: Optional[str] = None,
        is_active: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Customer], int]:
        """Filtered page of customers plus the unpaginated total"""
        query = db.query(Customer).filter(Customer.business_id == business_id)

        if search:
            term = f"%{search}%"
            query = query.filter(
                or_(
                    Customer.first_name.ilike(term),
                    Customer.last_name.ilike(term),
                    Customer.phone.ilike(term),
                    Customer.email.ilike(term),
                )
            )
        if city:
            query = query.filter(Customer.city.ilike(city))
        if district:
            query = query.filter(Customer.district.ilike(district))
        if is_active is not None:
            query = query.filter(Customer.is_active == is_active)

        total = query.count()
        customers = (
            query.order_by(Customer.created_at.desc(), Customer.last_name.asc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return customers, total

    @staticmethod
    def get_customer_by_id(db: Session, customer_id: str, business_id: str) -> Optional[Customer]:
        return (
            db.query(Customer)
            .filter(Customer.id == customer_id, Customer.business_id == business_id)
            .first()
        )

    @staticmethod
    def get_customer_by_phone(
        db: Session, phone: str, business_id: str, exclude_id: Optional[str] = None
    ) -> Optional[Customer]:
        query = db.query(Customer).filter(Customer.business_id == business_id, Customer.phone == phone)
        if exclude_id:
            query = query.filter(Customer.id != exclude_id)
        return query.first()

    @staticmethod
    def create_customer(db: Session, business_id: str, **customer_data) -> Customer:
        customer = Customer(business_id=business_id, **customer_data)
        db.add(customer)
        db.commit()
        db.refresh(customer)
        return customer

    @staticmethod
    def update_customer(db: Session, customer: Customer, **updates) -> Customer:
        """Update a customer with provided fields"""
        for key, value in updates.items():
            if hasattr(customer, key):
                setattr(customer, key, value)

        db.commit()
        db.refresh(customer)
        return customer

    @staticmethod
    def delete_customer(db: Session, customer: Customer) -> None:
        db.delete(customer)
        db.commit()

    @staticmethod
    def count_orders(db: Session, customer_id: str, statuses: Optional[tuple] = None) -> int:
        query = db.query(func.count(Order.id)).filter(Order.customer_id == customer_id)
        if statuses:
            query = query.filter(Order.status.in_(statuses))
        return query.scalar() or 0

    @staticmethod
    def get_customer_orders(db: Session, customer_id: str, business_id: str, limit: int = 50) -> list[Order]:
        return (
            db.query(Order)
            .filter(Order.customer_id == customer_id, Order.business_id == business_id)
            .order_by(Order.created_at.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def get_stats(db: Session, business_id: str, month_start: datetime) -> dict:
        """Aggregate customer counts for a business"""
        base = db.query(func.count(Customer.id)).filter(Customer.business_id == business_id)

        total = base.scalar() or 0
        active = base.filter(Customer.is_active.is_(True)).scalar() or 0
        with_whatsapp = base.filter(Customer.whatsapp.isnot(None)).scalar() or 0
        new_this_month = base.filter(Customer.created_at >= month_start).scalar() or 0

        with_orders = (
            db.query(func.count(func.distinct(Order.customer_id)))
            .filter(Order.business_id == business_id)
            .scalar()
            or 0
        )
        total_orders = (
            db.query(func.count(Order.id)).filter(Order.business_id == business_id).scalar() or 0
        )

        city_rows = (
            db.query(Customer.city, func.count(Customer.id))
            .filter(Customer.business_id == business_id, Customer.city.isnot(None))
            .group_by(Customer.city)
            .all()
        )

        return {
            "total_customers": total,
            "active_customers": active,
            "inactive_customers": total - active,
            "with_whatsapp": with_whatsapp,
            "with_orders": with_orders,
            "new_this_month": new_this_month,
            "average_orders_per_customer": round(total_orders / total, 2) if total else 0.0,
            "by_city": {city: count for city, count in city_rows},
        }
