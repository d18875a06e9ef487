"""Customer router - FastAPI endpoints for customer operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ..orders.schemas import OrderSummary
from .schemas import (
    CustomerCreate,
    CustomerListResponse,
    CustomerResponse,
    CustomerStats,
    CustomerUpdate,
)
from .service import CustomerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/customers", tags=["Customers"])


def get_customer_service(db: Session = Depends(get_db)) -> CustomerService:
    """Dependency injection for CustomerService"""
    return CustomerService(db)


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("", response_model=CustomerListResponse)
async def list_customers(
    search: Optional[str] = Query(None, description="Name, phone or email"),
    city: Optional[str] = Query(None),
    district: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    """List customers of the current business"""
    customers, total = service.list_customers(
        current_user, search, city, district, is_active, limit, offset
    )
    return CustomerListResponse(
        items=[CustomerResponse.model_validate(c) for c in customers],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=CustomerStats)
async def get_customer_stats(
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    return service.get_stats(current_user)


@router.get("/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: str,
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    return service.get_customer(customer_id, current_user)


@router.post("", response_model=CustomerResponse, status_code=201)
async def create_customer(
    data: CustomerCreate,
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    """Create a new customer"""
    return service.create_customer(data, current_user)


@router.patch("/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    customer_id: str,
    data: CustomerUpdate,
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    return service.update_customer(customer_id, data, current_user)


@router.delete("/{customer_id}")
async def delete_customer(
    customer_id: str,
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    """Delete a customer, or deactivate one that has order history"""
    return service.delete_customer(customer_id, current_user)


# ============================================================================
# RELATED DATA
# ============================================================================


@router.get("/{customer_id}/orders", response_model=list[OrderSummary])
async def get_customer_orders(
    customer_id: str,
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    return service.get_customer_orders(customer_id, current_user, limit)


@router.post("/{customer_id}/verify-whatsapp", response_model=CustomerResponse)
async def verify_customer_whatsapp(
    customer_id: str,
    current_user: User = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service),
):
    """Mark the customer's WhatsApp number as verified"""
    return service.verify_whatsapp(customer_id, current_user)
