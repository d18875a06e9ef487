"""
Route Assignment Routes

Dispatchers assign drivers to routes; drivers accept or reject their assignments.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_roles
from ..database import get_db
from ..models import User
from ..schemas import AssignmentCreate, AssignmentReject, MessageResponse, RouteAssignmentResponse
from ..services.route_assignment_service import RouteAssignmentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/route-assignments", tags=["Route Assignments"])


def get_assignment_service(db: Session = Depends(get_db)) -> RouteAssignmentService:
    return RouteAssignmentService(db)


@router.get("", response_model=List[RouteAssignmentResponse])
async def list_route_assignments(
    status: Optional[str] = Query(None),
    driver_id: Optional[str] = Query(None),
    route_id: Optional[str] = Query(None),
    vehicle_id: Optional[str] = Query(None),
    mine: bool = Query(False, description="Only assignments of the current driver"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    service: RouteAssignmentService = Depends(get_assignment_service),
):
    return service.list_assignments(
        current_user.business_id,
        status=status,
        driver_id=current_user.id if mine else driver_id,
        route_id=route_id,
        vehicle_id=vehicle_id,
        limit=limit,
        offset=offset,
    )


@router.get("/stats")
async def get_route_assignment_stats(
    days: int = Query(30, ge=1, le=365),
    current_user: User = Depends(get_current_user),
    service: RouteAssignmentService = Depends(get_assignment_service),
):
    return service.get_stats(current_user.business_id, days)


@router.get("/{assignment_id}", response_model=RouteAssignmentResponse)
async def get_route_assignment(
    assignment_id: str,
    current_user: User = Depends(get_current_user),
    service: RouteAssignmentService = Depends(get_assignment_service),
):
    return service.get_assignment(assignment_id, current_user.business_id)


@router.post("", response_model=RouteAssignmentResponse, status_code=201)
async def create_route_assignment(
    data: AssignmentCreate,
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    service: RouteAssignmentService = Depends(get_assignment_service),
):
    """Assign a driver to a route"""
    return service.create_assignment(data, current_user)


@router.post("/{assignment_id}/accept", response_model=RouteAssignmentResponse)
async def accept_route_assignment(
    assignment_id: str,
    current_user: User = Depends(get_current_user),
    service: RouteAssignmentService = Depends(get_assignment_service),
):
    return service.accept_assignment(assignment_id, current_user)


@router.post("/{assignment_id}/reject", response_model=RouteAssignmentResponse)
async def reject_route_assignment(
    assignment_id: str,
    data: Optional[AssignmentReject] = None,
    current_user: User = Depends(get_current_user),
    service: RouteAssignmentService = Depends(get_assignment_service),
):
    return service.reject_assignment(assignment_id, current_user, data.reason if data else None)


@router.post("/{assignment_id}/complete", response_model=RouteAssignmentResponse)
async def complete_route_assignment(
    assignment_id: str,
    current_user: User = Depends(get_current_user),
    service: RouteAssignmentService = Depends(get_assignment_service),
):
    return service.complete_assignment(assignment_id, current_user.business_id)


@router.delete("/{assignment_id}", response_model=MessageResponse)
async def delete_route_assignment(
    assignment_id: str,
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    service: RouteAssignmentService = Depends(get_assignment_service),
):
    return service.delete_assignment(assignment_id, current_user.business_id)
