"""
Delivery Route Routes

Route planning, status changes and stop management for the delivery fleet.
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_roles
from ..database import get_db
from ..models import User
from ..schemas import (
    MessageResponse,
    RouteCreate,
    RouteDetailResponse,
    RouteFromOrders,
    RouteListResponse,
    RouteResponse,
    RouteStatusUpdate,
    RouteStopCreate,
    RouteStopResponse,
    RouteStopUpdate,
    RouteUpdate,
    StopReorder,
    StopStatusUpdate,
)
from ..services.route_service import RouteService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/routes", tags=["Delivery Routes"])


def get_route_service(db: Session = Depends(get_db)) -> RouteService:
    return RouteService(db)


# ============================================================================
# VIEWS
# ============================================================================


@router.get("", response_model=RouteListResponse)
async def list_routes(
    status: Optional[str] = Query(None, description="Comma separated statuses"),
    route_type: Optional[str] = Query(None),
    vehicle_id: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    search: Optional[str] = Query(None),
    sort_by: str = Query("planned_date"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    service: RouteService = Depends(get_route_service),
):
    statuses = [s.strip().upper() for s in status.split(",") if s.strip()] if status else None
    routes, total = service.list_routes(
        current_user.business_id,
        status=statuses,
        route_type=route_type,
        vehicle_id=vehicle_id,
        date_from=date_from,
        date_to=date_to,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        offset=offset,
    )
    return RouteListResponse(
        items=[RouteResponse.model_validate(r) for r in routes],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/today", response_model=List[RouteDetailResponse])
async def get_today_routes(
    current_user: User = Depends(get_current_user),
    service: RouteService = Depends(get_route_service),
):
    return service.get_today_routes(current_user.business_id)


@router.get("/stats")
async def get_route_stats(
    days: int = Query(30, ge=1, le=365),
    current_user: User = Depends(get_current_user),
    service: RouteService = Depends(get_route_service),
):
    return service.get_stats(current_user.business_id, days)


@router.post("/from-orders", response_model=RouteDetailResponse, status_code=201)
async def create_route_from_orders(
    data: RouteFromOrders,
    current_user: User = Depends(get_current_user),
    service: RouteService = Depends(get_route_service),
):
    """Create today's route with one stop per order, nearest to the driver first"""
    return service.create_route_from_orders(data, current_user.business_id)


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("/{route_id}", response_model=RouteDetailResponse)
async def get_route(
    route_id: str,
    current_user: User = Depends(get_current_user),
    service: RouteService = Depends(get_route_service),
):
    return service.get_route(route_id, current_user.business_id)


@router.post("", response_model=RouteResponse, status_code=201)
async def create_route(
    data: RouteCreate,
    current_user: User = Depends(get_current_user),
    service: RouteService = Depends(get_route_service),
):
    return service.create_route(data, current_user.business_id)


@router.patch("/{route_id}", response_model=RouteResponse)
async def update_route(
    route_id: str,
    data: RouteUpdate,
    current_user: User = Depends(get_current_user),
    service: RouteService = Depends(get_route_service),
):
    return service.update_route(route_id, data, current_user.business_id)


@router.delete("/{route_id}", response_model=MessageResponse)
async def delete_route(
    route_id: str,
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    service: RouteService = Depends(get_route_service),
):
    return service.delete_route(route_id, current_user.business_id)


@router.post("/{route_id}/status", response_model=RouteResponse)
async def change_route_status(
    route_id: str,
    data: RouteStatusUpdate,
    current_user: User = Depends(get_current_user),
    service: RouteService = Depends(get_route_service),
):
    """Start, pause, resume, finish or cancel a route"""
    return service.change_status(route_id, data, current_user.business_id)


# ============================================================================
# STOPS
# ============================================================================


@router.post("/{route_id}/stops", response_model=RouteStopResponse, status_code=201)
async def add_route_stop(
    route_id: str,
    data: RouteStopCreate,
    current_user: User = Depends(get_current_user),
    service: RouteService = Depends(get_route_service),
):
    return service.add_stop(route_id, data, current_user.business_id)


@router.put("/{route_id}/stops/reorder", response_model=RouteDetailResponse)
async def reorder_route_stops(
    route_id: str,
    data: StopReorder,
    current_user: User = Depends(get_current_user),
    service: RouteService = Depends(get_route_service),
):
    return service.reorder_stops(route_id, data.stop_ids, current_user.business_id)


@router.patch("/{route_id}/stops/{stop_id}", response_model=RouteStopResponse)
async def update_route_stop(
    route_id: str,
    stop_id: str,
    data: RouteStopUpdate,
    current_user: User = Depends(get_current_user),
    service: RouteService = Depends(get_route_service),
):
    return service.update_stop(route_id, stop_id, data, current_user.business_id)


@router.delete("/{route_id}/stops/{stop_id}", response_model=MessageResponse)
async def remove_route_stop(
    route_id: str,
    stop_id: str,
    current_user: User = Depends(get_current_user),
    service: RouteService = Depends(get_route_service),
):
    return service.remove_stop(route_id, stop_id, current_user.business_id)


@router.post("/{route_id}/stops/{stop_id}/status", response_model=RouteStopResponse)
async def change_stop_status(
    route_id: str,
    stop_id: str,
    data: StopStatusUpdate,
    current_user: User = Depends(get_current_user),
    service: RouteService = Depends(get_route_service),
):
    return service.change_stop_status(route_id, stop_id, data, current_user.business_id)
