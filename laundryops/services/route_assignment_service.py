"""
Driver assignments for delivery routes
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session, joinedload

from ..models import User
from ..models_routing import Route, RouteAssignment
from ..schemas import AssignmentCreate
from .status_automation import ACTIVE_ASSIGNMENT_STATUSES, ensure_status_transition

logger = logging.getLogger(__name__)

# Route status that follows each assignment outcome
ROUTE_STATUS_FOR_ASSIGNMENT = {
    "accepted": "ASSIGNED",
    "rejected": "PLANNED",
    "completed": "COMPLETED",
}


class RouteAssignmentService:
    """Service layer for assigning drivers to routes"""

    def __init__(self, db: Session):
        self.db = db

    def _query(self, business_id: str):
        return (
            self.db.query(RouteAssignment)
            .join(Route, RouteAssignment.route_id == Route.id)
            .options(joinedload(RouteAssignment.route))
            .filter(Route.business_id == business_id)
        )

    def get_assignment(self, assignment_id: str, business_id: str) -> RouteAssignment:
        assignment = self._query(business_id).filter(RouteAssignment.id == assignment_id).first()
        if not assignment:
            raise HTTPException(status_code=404, detail="Route assignment not found")
        return assignment

    def _has_active_assignment(self, route_id: str) -> bool:
        return (
            self.db.query(RouteAssignment.id)
            .filter(
                RouteAssignment.route_id == route_id,
                RouteAssignment.status.in_(ACTIVE_ASSIGNMENT_STATUSES),
            )
            .first()
            is not None
        )

    def list_assignments(
        self,
        business_id: str,
        status: Optional[str] = None,
        driver_id: Optional[str] = None,
        route_id: Optional[str] = None,
        vehicle_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[RouteAssignment]:
        query = self._query(business_id)
        if status:
            query = query.filter(RouteAssignment.status == status)
        if driver_id:
            query = query.filter(RouteAssignment.driver_id == driver_id)
        if route_id:
            query = query.filter(RouteAssignment.route_id == route_id)
        if vehicle_id:
            query = query.filter(RouteAssignment.vehicle_id == vehicle_id)
        return query.order_by(RouteAssignment.assigned_at.desc()).offset(offset).limit(limit).all()

    def create_assignment(self, data: AssignmentCreate, user: User) -> RouteAssignment:
        """
        Assign a driver to a route and move the route to ASSIGNED

        A route holds at most one assigned/accepted assignment, and a driver
        at most one per planned date.
        """
        business_id = user.business_id
        route = (
            self.db.query(Route)
            .filter(Route.id == data.route_id, Route.business_id == business_id)
            .first()
        )
        if not route:
            raise HTTPException(status_code=404, detail="Route not found")

        vehicle_id = data.vehicle_id or route.vehicle_id
        if vehicle_id != route.vehicle_id:
            raise HTTPException(status_code=400, detail="Vehicle does not match route vehicle")

        driver = (
            self.db.query(User)
            .filter(
                User.id == data.driver_id,
                User.business_id == business_id,
                User.role == "DRIVER",
                User.is_active.is_(True),
            )
            .first()
        )
        if not driver:
            raise HTTPException(status_code=404, detail="Driver not found or not available")

        if self._has_active_assignment(route.id):
            raise HTTPException(status_code=409, detail="Route already has an active assignment")

        busy = (
            self.db.query(RouteAssignment)
            .join(Route, RouteAssignment.route_id == Route.id)
            .filter(
                RouteAssignment.driver_id == driver.id,
                RouteAssignment.status.in_(ACTIVE_ASSIGNMENT_STATUSES),
                Route.planned_date == route.planned_date,
            )
            .first()
        )
        if busy:
            raise HTTPException(status_code=409, detail="Driver already has an assignment for this date")

        if route.status != "ASSIGNED":
            ensure_status_transition("route", route.status, "ASSIGNED")

        assignment = RouteAssignment(
            route_id=route.id,
            vehicle_id=vehicle_id,
            driver_id=driver.id,
            assigned_by_id=user.id,
            status="assigned",
            assigned_at=datetime.utcnow(),
            notes=data.notes,
        )
        self.db.add(assignment)
        route.status = "ASSIGNED"
        self.db.commit()
        self.db.refresh(assignment)
        logger.info(f"✅ Route {route.route_name} assigned to driver {driver.email}")
        return assignment

    def _apply_status(self, assignment: RouteAssignment, new_status: str, reason: Optional[str] = None):
        ensure_status_transition("assignment", assignment.status, new_status)

        now = datetime.utcnow()
        assignment.status = new_status
        if new_status == "accepted":
            assignment.accepted_at = now
        elif new_status == "rejected":
            assignment.rejected_at = now
            assignment.rejection_reason = reason
        elif new_status == "completed":
            assignment.completed_at = now

        route = assignment.route
        route_status = ROUTE_STATUS_FOR_ASSIGNMENT[new_status]
        if route_status == "COMPLETED":
            applies = route.status not in ("COMPLETED", "CANCELLED")
        else:
            # A driver answering late never pulls a started route back
            applies = route.status in ("PLANNED", "ASSIGNED")
        if applies and route.status != route_status:
            previous = route.status
            route.status = route_status
            if route_status == "COMPLETED":
                route.actual_end_time = now
                if route.actual_start_time:
                    route.actual_duration = max(0, round((now - route.actual_start_time).total_seconds() / 60))
                if route.vehicle and route.vehicle.status == "IN_USE":
                    route.vehicle.status = "AVAILABLE"
            logger.info(f"✅ Route {route.route_name} transitioned: {previous} → {route_status}")

        self.db.commit()
        self.db.refresh(assignment)
        return assignment

    def _get_own_assignment(self, assignment_id: str, user: User) -> RouteAssignment:
        assignment = self.get_assignment(assignment_id, user.business_id)
        if assignment.driver_id != user.id:
            raise HTTPException(
                status_code=404, detail="Route assignment not found or not assigned to this driver"
            )
        return assignment

    def accept_assignment(self, assignment_id: str, user: User) -> RouteAssignment:
        assignment = self._get_own_assignment(assignment_id, user)
        if assignment.status != "assigned":
            raise HTTPException(status_code=400, detail="Assignment cannot be accepted in current status")
        return self._apply_status(assignment, "accepted")

    def reject_assignment(self, assignment_id: str, user: User, reason: Optional[str] = None) -> RouteAssignment:
        assignment = self._get_own_assignment(assignment_id, user)
        if assignment.status != "assigned":
            raise HTTPException(status_code=400, detail="Assignment cannot be rejected in current status")
        return self._apply_status(assignment, "rejected", reason)

    def complete_assignment(self, assignment_id: str, business_id: str) -> RouteAssignment:
        assignment = self.get_assignment(assignment_id, business_id)
        if assignment.status != "accepted":
            raise HTTPException(status_code=400, detail="Assignment must be accepted before completion")
        return self._apply_status(assignment, "completed")

    def delete_assignment(self, assignment_id: str, business_id: str) -> dict:
        assignment = self.get_assignment(assignment_id, business_id)
        route = assignment.route
        if assignment.status == "accepted" and route.status == "IN_PROGRESS":
            raise HTTPException(status_code=400, detail="Cannot delete assignment for route in progress")

        was_active = assignment.status in ACTIVE_ASSIGNMENT_STATUSES
        self.db.delete(assignment)
        self.db.flush()
        if was_active and route.status == "ASSIGNED" and not self._has_active_assignment(route.id):
            route.status = "PLANNED"
        self.db.commit()
        logger.info(f"🗑️ Assignment {assignment_id} deleted from route {route.route_name}")
        return {"message": "Route assignment deleted successfully"}

    def get_stats(self, business_id: str, days: int = 30) -> dict:
        since = datetime.utcnow() - timedelta(days=days)
        assignments = self._query(business_id).filter(RouteAssignment.assigned_at >= since).all()

        by_status: dict[str, int] = {}
        for assignment in assignments:
            by_status[assignment.status] = by_status.get(assignment.status, 0) + 1

        completed = [a for a in assignments if a.status == "completed" and a.completed_at and a.assigned_at]
        hours = [(a.completed_at - a.assigned_at).total_seconds() / 3600 for a in completed]
        on_time = [
            a
            for a in completed
            if a.route.actual_end_time and a.route.planned_end_time
            and a.route.actual_end_time <= a.route.planned_end_time
        ]
        return {
            "total": len(assignments),
            "by_status": by_status,
            "average_completion_hours": round(sum(hours) / len(hours), 1) if hours else 0.0,
            "on_time_completion_rate": round(len(on_time) / len(completed) * 100) if completed else 0,
            "pending_assignments": by_status.get("assigned", 0),
        }
