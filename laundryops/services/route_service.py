"""
Delivery route management
Route CRUD, the route and stop status machines, stop editing and route creation from orders
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload, selectinload

from ..models import Customer, Order
from ..models_routing import DeliveryZone, Route, RouteStop, RouteStopOrder, Vehicle
from ..schemas import (
    RouteCreate,
    RouteFromOrders,
    RouteStatusUpdate,
    RouteStopCreate,
    RouteStopUpdate,
    RouteUpdate,
    StopStatusUpdate,
)
from . import location_service
from .location_service import Coordinates
from .order_route_integration import KG_PER_ITEM
from .status_automation import (
    ACTIVE_ASSIGNMENT_STATUSES,
    ACTIVE_ROUTE_STATUSES,
    OPEN_ROUTE_STATUSES,
    ensure_status_transition,
)

logger = logging.getLogger(__name__)

ROUTE_ACTIONS = {
    "start": "IN_PROGRESS",
    "pause": "PAUSED",
    "resume": "IN_PROGRESS",
    "finish": "COMPLETED",
    "cancel": "CANCELLED",
}
TERMINAL_STOP_STATUSES = ("COMPLETED", "FAILED", "SKIPPED")

# Order statuses that decide the stop kind of a route built from explicit orders
FROM_ORDERS_PICKUP_STATUSES = ("PENDING", "CONFIRMED", "IN_PROGRESS", "READY_FOR_PICKUP")
FROM_ORDERS_DELIVERY_STATUSES = ("READY_FOR_DELIVERY", "OUT_FOR_DELIVERY", "DELIVERED")
NO_ADDRESS = "Address not provided"

# Stop columns that cannot be cleared by an update
REQUIRED_STOP_FIELDS = ("address", "item_count", "weight")

SORTABLE_COLUMNS = {
    "planned_date": Route.planned_date,
    "created_at": Route.created_at,
    "route_name": Route.route_name,
    "status": Route.status,
    "total_distance": Route.total_distance,
}


def _minutes_between(start: datetime, end: datetime) -> int:
    return max(0, round((end - start).total_seconds() / 60))


class RouteService:
    """Service layer for delivery routes and their stops"""

    def __init__(self, db: Session):
        self.db = db

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    def get_route(self, route_id: str, business_id: str) -> Route:
        route = (
            self.db.query(Route)
            .options(
                joinedload(Route.vehicle),
                selectinload(Route.stops).selectinload(RouteStop.order_links),
                selectinload(Route.assignments),
            )
            .filter(Route.id == route_id, Route.business_id == business_id)
            .first()
        )
        if not route:
            raise HTTPException(status_code=404, detail="Route not found")
        return route

    def get_stop(self, route: Route, stop_id: str) -> RouteStop:
        for stop in route.stops:
            if stop.id == stop_id:
                return stop
        raise HTTPException(status_code=404, detail="Route stop not found")

    def _get_available_vehicle(self, vehicle_id: str, business_id: str) -> Vehicle:
        vehicle = (
            self.db.query(Vehicle)
            .filter(
                Vehicle.id == vehicle_id,
                Vehicle.business_id == business_id,
                Vehicle.is_active.is_(True),
            )
            .first()
        )
        if not vehicle:
            raise HTTPException(status_code=404, detail="Vehicle not found or not available")
        return vehicle

    def _ensure_vehicle_free(
        self, vehicle_id: str, planned_date: date, exclude_route_id: Optional[str] = None
    ) -> None:
        query = self.db.query(Route).filter(
            Route.vehicle_id == vehicle_id,
            Route.planned_date == planned_date,
            Route.status.in_(ACTIVE_ROUTE_STATUSES),
        )
        if exclude_route_id:
            query = query.filter(Route.id != exclude_route_id)
        clash = query.first()
        if clash:
            raise HTTPException(
                status_code=409,
                detail=f"Vehicle already has an active route on {planned_date.isoformat()}: {clash.route_name}",
            )

    def _validate_zone(self, zone_id: Optional[str], business_id: str) -> None:
        if not zone_id:
            return
        exists = (
            self.db.query(DeliveryZone.id)
            .filter(DeliveryZone.id == zone_id, DeliveryZone.business_id == business_id)
            .first()
        )
        if not exists:
            raise HTTPException(status_code=404, detail="Delivery zone not found")

    # ========================================================================
    # CRUD
    # ========================================================================

    def list_routes(
        self,
        business_id: str,
        status: Optional[list[str]] = None,
        route_type: Optional[str] = None,
        vehicle_id: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        search: Optional[str] = None,
        sort_by: str = "planned_date",
        sort_order: str = "desc",
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Route], int]:
        query = self.db.query(Route).filter(Route.business_id == business_id)

        if status:
            query = query.filter(Route.status.in_(status))
        if route_type:
            query = query.filter(Route.route_type == route_type)
        if vehicle_id:
            query = query.filter(Route.vehicle_id == vehicle_id)
        if date_from:
            query = query.filter(Route.planned_date >= date_from)
        if date_to:
            query = query.filter(Route.planned_date <= date_to)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(Route.route_name.ilike(term), Route.notes.ilike(term)))

        total = query.count()
        column = SORTABLE_COLUMNS.get(sort_by, Route.planned_date)
        query = query.order_by(column.asc() if sort_order == "asc" else column.desc())
        routes = query.options(selectinload(Route.stops)).offset(offset).limit(limit).all()
        return routes, total

    def create_route(self, data: RouteCreate, business_id: str) -> Route:
        self._get_available_vehicle(data.vehicle_id, business_id)
        self._ensure_vehicle_free(data.vehicle_id, data.planned_date)

        route = Route(business_id=business_id, status="PLANNED", **data.model_dump())
        self.db.add(route)
        self.db.commit()
        self.db.refresh(route)
        logger.info(f"✅ Route created: {route.route_name} ({route.planned_date})")
        return route

    def update_route(self, route_id: str, data: RouteUpdate, business_id: str) -> Route:
        route = self.get_route(route_id, business_id)
        if route.status in ("COMPLETED", "CANCELLED"):
            raise HTTPException(status_code=400, detail="Cannot modify completed or cancelled route")

        update_data = data.model_dump(exclude_unset=True)
        for required in ("route_name", "vehicle_id", "planned_date", "route_type", "optimized_for"):
            if required in update_data and update_data[required] is None:
                del update_data[required]
        vehicle_id = update_data.get("vehicle_id", route.vehicle_id)
        planned_date = update_data.get("planned_date", route.planned_date)
        if vehicle_id != route.vehicle_id or planned_date != route.planned_date:
            if vehicle_id != route.vehicle_id:
                self._get_available_vehicle(vehicle_id, business_id)
            self._ensure_vehicle_free(vehicle_id, planned_date, exclude_route_id=route.id)

        for field, value in update_data.items():
            setattr(route, field, value)

        start = route.planned_start_time
        end = route.planned_end_time
        if start and end and end <= start:
            raise HTTPException(status_code=400, detail="planned_end_time must be after planned_start_time")

        self.db.commit()
        self.db.refresh(route)
        return route

    def delete_route(self, route_id: str, business_id: str) -> dict:
        route = self.get_route(route_id, business_id)
        if route.status == "IN_PROGRESS":
            raise HTTPException(status_code=400, detail="Cannot delete route that is in progress")

        name = route.route_name
        self.db.delete(route)
        self.db.commit()
        logger.info(f"🗑️ Route deleted: {name}")
        return {"message": "Route deleted successfully"}

    # ========================================================================
    # ROUTE STATUS
    # ========================================================================

    def change_status(self, route_id: str, data: RouteStatusUpdate, business_id: str) -> Route:
        """
        Apply a route action or explicit status

        Starting puts the vehicle IN_USE; finishing or cancelling releases it.
        Finishing also records the actual duration.
        """
        route = self.get_route(route_id, business_id)
        new_status = ROUTE_ACTIONS[data.action] if data.action else data.status
        if data.action == "resume" and route.status != "PAUSED":
            raise HTTPException(status_code=400, detail="Only paused routes can be resumed")

        ensure_status_transition("route", route.status, new_status)
        if new_status == route.status:
            return route

        now = datetime.utcnow()
        previous = route.status
        route.status = new_status

        if new_status == "IN_PROGRESS" and not route.actual_start_time:
            route.actual_start_time = now
        if new_status in ("IN_PROGRESS", "PAUSED"):
            route.vehicle.status = "IN_USE"
        elif new_status in ("COMPLETED", "CANCELLED") and route.vehicle.status == "IN_USE":
            route.vehicle.status = "AVAILABLE"

        if new_status == "COMPLETED":
            route.actual_end_time = now
            if route.actual_start_time:
                route.actual_duration = _minutes_between(route.actual_start_time, now)
            for assignment in route.assignments:
                if assignment.status == "accepted":
                    assignment.status = "completed"
                    assignment.completed_at = now
        elif new_status == "CANCELLED":
            for assignment in route.assignments:
                if assignment.status in ACTIVE_ASSIGNMENT_STATUSES:
                    assignment.status = "rejected"
                    assignment.rejected_at = now
                    assignment.rejection_reason = "Route cancelled"

        if data.notes:
            route.notes = f"{route.notes}\n{data.notes}" if route.notes else data.notes

        self.db.commit()
        self.db.refresh(route)
        logger.info(f"✅ Route {route.route_name} transitioned: {previous} → {new_status}")
        return route

    # ========================================================================
    # STOPS
    # ========================================================================

    def _ensure_route_editable(self, route: Route) -> None:
        if route.status in ("COMPLETED", "CANCELLED"):
            raise HTTPException(status_code=400, detail="Cannot modify completed or cancelled route")

    def _recalculate_totals(self, route: Route) -> None:
        route.total_items = sum(s.item_count or 0 for s in route.stops)
        route.total_weight = round(sum(s.weight or 0 for s in route.stops), 2)
        waypoints = [
            Coordinates(s.latitude, s.longitude)
            for s in sorted(route.stops, key=lambda s: s.sequence)
            if s.latitude is not None and s.longitude is not None
        ]
        route.total_distance = round(location_service.calculate_route_distance(waypoints), 2)
        route.estimated_duration = location_service.estimate_travel_time(route.total_distance)

    def _link_orders(self, stop: RouteStop, order_ids: list[str], business_id: str) -> None:
        if not order_ids:
            return
        orders = (
            self.db.query(Order)
            .filter(Order.id.in_(order_ids), Order.business_id == business_id)
            .all()
        )
        found = {order.id for order in orders}
        missing = [order_id for order_id in order_ids if order_id not in found]
        if missing:
            raise HTTPException(status_code=404, detail=f"Orders not found: {', '.join(missing)}")

        action = "delivery" if stop.stop_type == "DELIVERY" else "pickup"
        for index, order_id in enumerate(order_ids, start=1):
            stop.order_links.append(RouteStopOrder(order_id=order_id, action_type=action, sequence=index))

    def add_stop(self, route_id: str, data: RouteStopCreate, business_id: str) -> RouteStop:
        route = self.get_route(route_id, business_id)
        self._ensure_route_editable(route)
        self._validate_zone(data.delivery_zone_id, business_id)

        last_sequence = max((s.sequence for s in route.stops), default=0)
        sequence = data.sequence or last_sequence + 1
        if data.sequence and data.sequence <= last_sequence:
            # Make room for the new stop
            for stop in route.stops:
                if stop.sequence >= data.sequence:
                    stop.sequence += 1

        stop_data = data.model_dump(exclude={"order_ids", "sequence"})
        stop = RouteStop(route_id=route.id, sequence=sequence, status="PENDING", **stop_data)
        self._link_orders(stop, data.order_ids, business_id)
        route.stops.append(stop)
        route.stops.sort(key=lambda s: s.sequence)
        self._recalculate_totals(route)

        self.db.commit()
        self.db.refresh(stop)
        logger.info(f"✅ Stop {sequence} added to route {route.route_name}")
        return stop

    def update_stop(self, route_id: str, stop_id: str, data: RouteStopUpdate, business_id: str) -> RouteStop:
        route = self.get_route(route_id, business_id)
        self._ensure_route_editable(route)
        stop = self.get_stop(route, stop_id)

        update_data = data.model_dump(exclude_unset=True)
        if "delivery_zone_id" in update_data:
            self._validate_zone(update_data["delivery_zone_id"], business_id)
        for field, value in update_data.items():
            if value is None and field in REQUIRED_STOP_FIELDS:
                continue
            setattr(stop, field, value)

        self._recalculate_totals(route)
        self.db.commit()
        self.db.refresh(stop)
        return stop

    def remove_stop(self, route_id: str, stop_id: str, business_id: str) -> dict:
        route = self.get_route(route_id, business_id)
        self._ensure_route_editable(route)
        stop = self.get_stop(route, stop_id)
        if route.status == "IN_PROGRESS" and stop.status == "COMPLETED":
            raise HTTPException(status_code=400, detail="Cannot remove completed stop from active route")

        route.stops.remove(stop)
        for index, remaining in enumerate(sorted(route.stops, key=lambda s: s.sequence), start=1):
            remaining.sequence = index
        self._recalculate_totals(route)
        self.db.commit()
        logger.info(f"🗑️ Stop removed from route {route.route_name}")
        return {"message": "Route stop removed successfully"}

    def reorder_stops(self, route_id: str, stop_ids: list[str], business_id: str) -> Route:
        """Assign sequences 1..n following ``stop_ids``, which must list every stop exactly once"""
        route = self.get_route(route_id, business_id)
        self._ensure_route_editable(route)

        current_ids = {stop.id for stop in route.stops}
        if len(stop_ids) != len(set(stop_ids)) or set(stop_ids) != current_ids:
            raise HTTPException(status_code=400, detail="stop_ids must list every stop of the route exactly once")

        position = {stop_id: index for index, stop_id in enumerate(stop_ids, start=1)}
        for stop in route.stops:
            stop.sequence = position[stop.id]
        route.stops.sort(key=lambda s: s.sequence)
        self._recalculate_totals(route)

        self.db.commit()
        self.db.refresh(route)
        return route

    def change_stop_status(
        self, route_id: str, stop_id: str, data: StopStatusUpdate, business_id: str
    ) -> RouteStop:
        route = self.get_route(route_id, business_id)
        if route.status not in OPEN_ROUTE_STATUSES:
            raise HTTPException(
                status_code=400, detail=f"Cannot change stops of a {route.status.lower()} route"
            )
        stop = self.get_stop(route, stop_id)

        ensure_status_transition("stop", stop.status, data.status)
        if data.status == "FAILED" and not (data.failure_reason and data.failure_reason.strip()):
            raise HTTPException(status_code=400, detail="failure_reason is required when a stop fails")
        if data.status == stop.status:
            return stop

        now = datetime.utcnow()
        previous = stop.status
        stop.status = data.status
        if data.status == "ARRIVED":
            stop.actual_arrival = now
        if data.status in TERMINAL_STOP_STATUSES:
            if not stop.actual_arrival and data.status == "COMPLETED":
                stop.actual_arrival = now
            stop.actual_departure = now
        if data.status == "FAILED":
            stop.failure_reason = data.failure_reason.strip()
        if data.status == "COMPLETED":
            for link in stop.order_links:
                link.is_completed = True
        if data.notes:
            stop.notes = data.notes

        self.db.commit()
        self.db.refresh(stop)
        logger.info(f"✅ Stop {stop.sequence} of route {route.route_name}: {previous} → {data.status}")
        return stop

    # ========================================================================
    # FROM ORDERS
    # ========================================================================

    def create_route_from_orders(self, data: RouteFromOrders, business_id: str) -> Route:
        """
        Build a MIXED route for today from explicit orders

        One stop per order. Stops are ordered by distance from the driver's
        location when given; stops without coordinates go last.
        """
        self._get_available_vehicle(data.vehicle_id, business_id)

        orders = (
            self.db.query(Order)
            .options(joinedload(Order.customer), selectinload(Order.items))
            .filter(Order.id.in_(data.order_ids), Order.business_id == business_id)
            .all()
        )
        by_id = {order.id: order for order in orders}
        missing = [order_id for order_id in data.order_ids if order_id not in by_id]
        if missing:
            raise HTTPException(status_code=404, detail=f"Orders not found: {', '.join(missing)}")

        today = date.today()
        self._ensure_vehicle_free(data.vehicle_id, today)

        stops = []
        for order_id in dict.fromkeys(data.order_ids):
            order = by_id[order_id]
            customer: Customer = order.customer
            is_delivery = (
                order.status in FROM_ORDERS_DELIVERY_STATUSES
                and order.status not in FROM_ORDERS_PICKUP_STATUSES
            )
            stop_type = "DELIVERY" if is_delivery else "PICKUP"
            address = (order.delivery_address if is_delivery else order.pickup_address) or customer.address

            point = location_service.coordinates_of(customer.latitude, customer.longitude)
            if point is None and (address or customer.city):
                point = location_service.geocode_address(address, customer.city)

            item_count = order.item_count
            stop = RouteStop(
                stop_type=stop_type,
                status="PENDING",
                sequence=0,
                address=address or NO_ADDRESS,
                latitude=point.latitude if point else None,
                longitude=point.longitude if point else None,
                customer_name=customer.full_name,
                customer_phone=customer.phone,
                planned_arrival=order.delivery_date if is_delivery else order.pickup_date,
                item_count=item_count,
                weight=float(item_count * KG_PER_ITEM),
            )
            stop.order_links.append(RouteStopOrder(order_id=order.id, action_type=stop_type.lower()))
            stops.append(stop)

        if data.driver_location:
            origin = Coordinates(data.driver_location.lat, data.driver_location.lng)
            located = [
                s for s, _ in location_service.sort_by_distance(
                    origin, stops, lambda s: location_service.coordinates_of(s.latitude, s.longitude)
                )
            ]
            stops = located + [s for s in stops if s.latitude is None or s.longitude is None]

        route = Route(
            business_id=business_id,
            vehicle_id=data.vehicle_id,
            route_name=data.route_name,
            route_type="MIXED",
            status="PLANNED",
            planned_date=today,
        )
        for index, stop in enumerate(stops, start=1):
            stop.sequence = index
            route.stops.append(stop)
        self._recalculate_totals(route)

        self.db.add(route)
        self.db.commit()
        self.db.refresh(route)
        logger.info(f"✅ Route {route.route_name} created from {len(stops)} orders")
        return route

    # ========================================================================
    # VIEWS
    # ========================================================================

    def get_today_routes(self, business_id: str, today: Optional[date] = None) -> list[Route]:
        return (
            self.db.query(Route)
            .options(selectinload(Route.stops).selectinload(RouteStop.order_links))
            .filter(Route.business_id == business_id, Route.planned_date == (today or date.today()))
            .order_by(Route.planned_start_time.asc(), Route.created_at.asc())
            .all()
        )

    def get_stats(self, business_id: str, days: int = 30) -> dict:
        since = date.today() - timedelta(days=days)
        routes = (
            self.db.query(Route)
            .options(selectinload(Route.stops))
            .filter(Route.business_id == business_id, Route.planned_date >= since)
            .all()
        )

        by_status: dict[str, int] = {}
        by_type: dict[str, int] = {}
        for route in routes:
            by_status[route.status] = by_status.get(route.status, 0) + 1
            by_type[route.route_type] = by_type.get(route.route_type, 0) + 1

        distances = [r.total_distance for r in routes if r.total_distance is not None]
        completed = [r for r in routes if r.status == "COMPLETED"]
        timed = [r for r in completed if r.actual_end_time and r.planned_end_time]
        on_time = [r for r in timed if r.actual_end_time <= r.planned_end_time]

        return {
            "period_days": days,
            "total_routes": len(routes),
            "by_status": by_status,
            "by_type": by_type,
            "total_distance": round(sum(distances), 2),
            "average_distance": round(sum(distances) / len(distances), 2) if distances else 0.0,
            "completed_routes": len(completed),
            "on_time_percentage": round(len(on_time) / len(timed) * 100, 1) if timed else 0.0,
            "average_stops": round(sum(len(r.stops) for r in routes) / len(routes), 1) if routes else 0.0,
        }

