"""Customer service - Business logic for customer operations"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...cache import invalidate_business_stats
from ...models import Customer, Order, User
from .repository import CustomerRepository
from .schemas import CustomerCreate, CustomerUpdate

logger = logging.getLogger(__name__)

OPEN_ORDER_STATUSES = (
    "PENDING",
    "CONFIRMED",
    "READY_FOR_PICKUP",
    "IN_PROGRESS",
    "READY_FOR_DELIVERY",
    "OUT_FOR_DELIVERY",
    "DELIVERED",
)


class CustomerService:
    """Service layer for customer business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = CustomerRepository()

    def list_customers(
        self,
        user: User,
        search: Optional[str] = None,
        city: Optional[str] = None,
        district: Optional[str] = None,
        is_active: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Customer], int]:
        return self.repo.list_customers(
            self.db, user.business_id, search, city, district, is_active, limit, offset
        )

    def get_customer(self, customer_id: str, user: User) -> Customer:
        customer = self.repo.get_customer_by_id(self.db, customer_id, user.business_id)
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        return customer

    def _ensure_phone_available(self, phone: str, business_id: str, exclude_id: Optional[str] = None):
        if self.repo.get_customer_by_phone(self.db, phone, business_id, exclude_id):
            raise HTTPException(
                status_code=409, detail="A customer with this phone number already exists"
            )

    def create_customer(self, data: CustomerCreate, user: User) -> Customer:
        """Create a new customer, phone must be unique within the business"""
        self._ensure_phone_available(data.phone, user.business_id)

        customer_data = data.model_dump(exclude_none=True)
        customer_data.setdefault("whatsapp", data.phone)
        customer = self.repo.create_customer(self.db, user.business_id, **customer_data)
        invalidate_business_stats(user.business_id)
        logger.info(f"✅ Customer {customer.id} created for business {user.business_id}")
        return customer

    def update_customer(self, customer_id: str, data: CustomerUpdate, user: User) -> Customer:
        customer = self.get_customer(customer_id, user)
        updates = data.model_dump(exclude_unset=True)

        if updates.get("phone") and updates["phone"] != customer.phone:
            self._ensure_phone_available(updates["phone"], user.business_id, exclude_id=customer.id)
        for required in ("first_name", "last_name", "phone"):
            if required in updates and updates[required] is None:
                del updates[required]

        return self.repo.update_customer(self.db, customer, **updates)

    def delete_customer(self, customer_id: str, user: User) -> dict:
        """
        Remove a customer.

        Customers with open orders cannot be removed. Customers with order
        history are deactivated so their orders and invoices stay intact.
        """
        customer = self.get_customer(customer_id, user)

        open_orders = self.repo.count_orders(self.db, customer.id, OPEN_ORDER_STATUSES)
        if open_orders:
            raise HTTPException(
                status_code=400,
                detail=f"Customer has {open_orders} open orders and cannot be deleted",
            )

        invalidate_business_stats(user.business_id)
        if self.repo.count_orders(self.db, customer.id):
            self.repo.update_customer(self.db, customer, is_active=False)
            logger.info(f"🗄️ Customer {customer.id} deactivated (has order history)")
            return {"message": "Customer deactivated", "deactivated": True}

        self.repo.delete_customer(self.db, customer)
        logger.info(f"🗑️ Customer {customer_id} deleted")
        return {"message": "Customer deleted", "deactivated": False}

    def get_customer_orders(self, customer_id: str, user: User, limit: int = 50) -> list[Order]:
        customer = self.get_customer(customer_id, user)
        return self.repo.get_customer_orders(self.db, customer.id, user.business_id, limit)

    def verify_whatsapp(self, customer_id: str, user: User) -> Customer:
        customer = self.get_customer(customer_id, user)
        if not customer.whatsapp:
            raise HTTPException(status_code=400, detail="Customer does not have a WhatsApp number")
        return self.repo.update_customer(self.db, customer, whatsapp_verified=True)

    def get_stats(self, user: User) -> dict:
        now = datetime.utcnow()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        return self.repo.get_stats(self.db, user.business_id, month_start)
