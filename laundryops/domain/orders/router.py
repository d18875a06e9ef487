"""Order router - FastAPI endpoints for order operations"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...schemas import RouteCandidateResponse
from ...services.order_route_integration import OrderRouteIntegrationService
from ...services.whatsapp_service import send_order_status_notification
from .schemas import (
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    OrderStats,
    OrderStatusUpdate,
    OrderUpdate,
)
from .service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["Orders"])


def get_order_service(db: Session = Depends(get_db)) -> OrderService:
    """Dependency injection for OrderService"""
    return OrderService(db)


# ============================================================================
# LISTING AND STATS
# ============================================================================


@router.get("", response_model=OrderListResponse)
async def list_orders(
    status: Optional[str] = Query(None, description="Comma separated statuses"),
    priority: Optional[str] = Query(None),
    customer_id: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Order number, notes, customer name or phone"),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    statuses = [s.strip().upper() for s in status.split(",") if s.strip()] if status else None
    orders, total = service.list_orders(
        current_user,
        statuses=statuses,
        priority=priority,
        customer_id=customer_id,
        search=search,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        offset=offset,
    )
    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in orders],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=OrderStats)
async def get_order_stats(
    days: int = Query(30, ge=1, le=365),
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    return service.get_stats(current_user, days)


@router.get("/daily-usage")
async def get_daily_usage(
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    return service.get_daily_usage(current_user)


@router.get("/available-for-route", response_model=list[RouteCandidateResponse])
async def get_orders_available_for_route(
    type: Optional[str] = Query(None, pattern="^(pickup|delivery)$", description="Only pickups or deliveries"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Orders waiting for a pickup or delivery trip that are not on an active route"""
    include_types = (type,) if type else ("pickup", "delivery")
    return OrderRouteIntegrationService(db).get_orders_ready_for_routes(current_user.business_id, include_types)


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    return service.get_order(order_id, current_user)


@router.post("", response_model=OrderResponse, status_code=201)
async def create_order(
    data: OrderCreate,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
    db: Session = Depends(get_db),
):
    """Create a new order, optionally notifying the customer on WhatsApp"""
    order = service.create_order(data, current_user)
    if data.send_notification:
        await send_order_status_notification(db, order, "CONFIRMED")
    return order


@router.patch("/{order_id}", response_model=OrderResponse)
async def update_order(
    order_id: str,
    data: OrderUpdate,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    return service.update_order(order_id, data, current_user)


@router.delete("/{order_id}")
async def delete_order(
    order_id: str,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    return service.delete_order(order_id, current_user)


# ============================================================================
# WORKFLOW
# ============================================================================


@router.post("/{order_id}/status", response_model=OrderResponse)
async def change_order_status(
    order_id: str,
    data: OrderStatusUpdate,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
    db: Session = Depends(get_db),
):
    """Move an order to its next status and notify the customer"""
    order, previous = service.change_status(order_id, data.status, current_user, data.notes)
    if data.send_notification and previous != order.status:
        await send_order_status_notification(db, order)
    return order
