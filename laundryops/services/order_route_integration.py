"""
Order ↔ Route integration
Greedy assignment of ready orders to delivery routes by proximity, priority and vehicle capacity
"""

import logging
from datetime import date, datetime, time
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload, selectinload

from ..models import Order
from ..models_routing import Route, RouteStop, RouteStopOrder, Vehicle
from . import location_service
from .location_service import DEPOT, Coordinates
from .status_automation import ACTIVE_ROUTE_STATUSES

logger = logging.getLogger(__name__)

PICKUP_STATUSES = ("PENDING", "CONFIRMED")
DELIVERY_STATUSES = ("READY_FOR_DELIVERY", "OUT_FOR_DELIVERY")
PRIORITY_WEIGHTS = {"URGENT": 4, "HIGH": 3, "NORMAL": 2, "LOW": 1}
KG_PER_ITEM = 2
DEFAULT_MAX_STOPS = 20
NO_COORDINATES_DISTANCE = 999  # km, sorts orders without coordinates behind located ones
ROUTE_DAY_START = time(9, 0)
ROUTE_DAY_END = time(17, 0)


def stop_type_for_status(status: str) -> str:
    return "PICKUP" if status in PICKUP_STATUSES else "DELIVERY"


def _capacity_left(limit, used) -> float:
    return float("inf") if limit is None else limit - used


def _to_candidate(order: Order) -> dict:
    customer = order.customer
    coordinates = location_service.coordinates_of(customer.latitude, customer.longitude)
    item_count = sum(item.quantity for item in order.items)
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "customer_id": order.customer_id,
        "customer_name": customer.full_name,
        "customer_phone": customer.phone,
        "status": order.status,
        "priority": order.priority,
        "pickup_address": order.pickup_address or customer.address,
        "delivery_address": order.delivery_address or customer.address,
        "pickup_date": order.pickup_date,
        "delivery_date": order.delivery_date,
        "created_at": order.created_at,
        "latitude": coordinates.latitude if coordinates else None,
        "longitude": coordinates.longitude if coordinates else None,
        "coordinates": coordinates,
        "item_count": item_count,
        "estimated_weight": float(item_count * KG_PER_ITEM),
        "total_amount": order.total_amount,
    }


def _candidate_sort_key(candidate: dict):
    return (
        -PRIORITY_WEIGHTS.get(candidate["priority"], 0),
        candidate["pickup_date"] or datetime.max,
        candidate["delivery_date"] or datetime.max,
        candidate["created_at"] or datetime.max,
    )


def _candidate_coordinates(candidate: dict) -> Optional[Coordinates]:
    return candidate["coordinates"]


class OrderRouteIntegrationService:
    """Builds and edits routes from orders that are waiting for a pickup or delivery trip"""

    def __init__(self, db: Session):
        self.db = db

    # ========================================================================
    # CANDIDATES
    # ========================================================================

    def get_orders_ready_for_routes(
        self, business_id: str, include_types: tuple = ("pickup", "delivery")
    ) -> list[dict]:
        """
        Orders waiting for a pickup or delivery that are not on an active route

        Ordered by priority (urgent first), then pickup date, delivery date and
        creation time.
        """
        statuses = []
        if "pickup" in include_types:
            statuses.extend(PICKUP_STATUSES)
        if "delivery" in include_types:
            statuses.extend(DELIVERY_STATUSES)
        if not statuses:
            return []

        routed_order_ids = (
            select(RouteStopOrder.order_id)
            .join(RouteStop, RouteStopOrder.route_stop_id == RouteStop.id)
            .join(Route, RouteStop.route_id == Route.id)
            .where(Route.business_id == business_id, Route.status.in_(ACTIVE_ROUTE_STATUSES))
        )

        orders = (
            self.db.query(Order)
            .options(joinedload(Order.customer), selectinload(Order.items))
            .filter(
                Order.business_id == business_id,
                Order.status.in_(statuses),
                ~Order.id.in_(routed_order_ids),
            )
            .all()
        )

        candidates = [_to_candidate(order) for order in orders]
        candidates.sort(key=_candidate_sort_key)
        return candidates

    # ========================================================================
    # STOP HELPERS
    # ========================================================================

    @staticmethod
    def _build_stop(route: Route, sequence: int, candidate: dict) -> RouteStop:
        stop_type = stop_type_for_status(candidate["status"])
        address = candidate["pickup_address"] if stop_type == "PICKUP" else candidate["delivery_address"]
        stop = RouteStop(
            route_id=route.id,
            stop_type=stop_type,
            sequence=sequence,
            status="PENDING",
            address=address or "Address not provided",
            latitude=candidate["latitude"],
            longitude=candidate["longitude"],
            customer_name=candidate["customer_name"],
            customer_phone=candidate["customer_phone"],
            item_count=candidate["item_count"],
            weight=candidate["estimated_weight"],
            planned_arrival=candidate["pickup_date"] if stop_type == "PICKUP" else candidate["delivery_date"],
        )
        stop.order_links.append(
            RouteStopOrder(order_id=candidate["order_id"], action_type=stop_type.lower(), sequence=1)
        )
        return stop

    def _get_route(self, route_id: str, business_id: str) -> Route:
        route = (
            self.db.query(Route)
            .options(joinedload(Route.vehicle), selectinload(Route.stops))
            .filter(Route.id == route_id, Route.business_id == business_id)
            .first()
        )
        if not route:
            raise HTTPException(status_code=404, detail="Route not found")
        return route

    # ========================================================================
    # ASSIGN TO EXISTING ROUTE
    # ========================================================================

    def assign_orders_to_route(
        self, route_id: str, business_id: str, max_stops: Optional[int] = None
    ) -> dict:
        """
        Fill a PLANNED route with ready orders

        Orders are taken nearest first relative to the centre of the route's
        existing stops. Each assigned order reduces the remaining vehicle
        weight and item capacity; orders that no longer fit are skipped.
        """
        route = self._get_route(route_id, business_id)
        if route.status != "PLANNED":
            raise HTTPException(status_code=400, detail="Can only assign orders to planned routes")

        candidates = self.get_orders_ready_for_routes(business_id)
        result = {
            "success": True,
            "route_id": route.id,
            "route_name": route.route_name,
            "assigned_stops": 0,
            "assigned_orders": [],
            "skipped_orders": [],
            "message": "No orders available for assignment",
        }
        if not candidates:
            return result

        stop_points = [
            Coordinates(s.latitude, s.longitude)
            for s in route.stops
            if s.latitude is not None and s.longitude is not None
        ]
        if stop_points:
            center = location_service.get_center_point(stop_points)
            located = [c for c, _ in location_service.sort_by_distance(center, candidates, _candidate_coordinates)]
            candidates = located + [c for c in candidates if c["coordinates"] is None]

        vehicle = route.vehicle
        weight_left = _capacity_left(vehicle.max_weight_kg, route.total_weight or 0)
        items_left = _capacity_left(vehicle.max_item_count, route.total_items or 0)
        slots_left = (max_stops or DEFAULT_MAX_STOPS) - len(route.stops)
        next_sequence = max((s.sequence for s in route.stops), default=0) + 1

        for candidate in candidates:
            if slots_left <= 0:
                break
            if candidate["estimated_weight"] > weight_left or candidate["item_count"] > items_left:
                result["skipped_orders"].append(candidate["order_number"])
                continue

            route.stops.append(self._build_stop(route, next_sequence, candidate))
            next_sequence += 1
            slots_left -= 1
            weight_left -= candidate["estimated_weight"]
            items_left -= candidate["item_count"]
            route.total_weight = (route.total_weight or 0) + candidate["estimated_weight"]
            route.total_items = (route.total_items or 0) + candidate["item_count"]
            result["assigned_orders"].append(candidate["order_number"])

        self._refresh_route_metrics(route)
        self.db.commit()

        result["assigned_stops"] = len(result["assigned_orders"])
        result["message"] = f"Successfully assigned {result['assigned_stops']} orders to route"
        logger.info(
            f"✅ Route {route.route_name}: assigned {result['assigned_stops']} orders, "
            f"skipped {len(result['skipped_orders'])}"
        )
        return result

    # ========================================================================
    # AUTO GENERATION
    # ========================================================================

    def _available_vehicles(self, business_id: str, target_date: date) -> list[Vehicle]:
        busy_vehicle_ids = select(Route.vehicle_id).where(
            Route.business_id == business_id,
            Route.planned_date == target_date,
            Route.status.in_(ACTIVE_ROUTE_STATUSES),
        )
        return (
            self.db.query(Vehicle)
            .filter(
                Vehicle.business_id == business_id,
                Vehicle.is_active.is_(True),
                Vehicle.status == "AVAILABLE",
                ~Vehicle.id.in_(busy_vehicle_ids),
            )
            .order_by(Vehicle.plate_number.asc())
            .all()
        )

    @staticmethod
    def group_orders_by_location(candidates: list[dict]) -> list[dict]:
        """
        Cluster candidates on coordinates rounded to two decimals (about 1 km)

        Candidates without coordinates share one cluster centred on the depot.
        Clusters keep the order in which their first candidate appeared.
        """
        groups: dict[str, dict] = {}
        for candidate in candidates:
            point = candidate["coordinates"]
            if point:
                key = f"{round(point.latitude, 2)},{round(point.longitude, 2)}"
                center = point
                address = candidate["pickup_address"] or ""
                center_name = address.split(",")[0].strip() or "Location Cluster"
            else:
                key = "default"
                center = DEPOT
                center_name = "Mixed Location"

            group = groups.setdefault(
                key,
                {"key": key, "center": center, "center_name": center_name, "orders": []},
            )
            group["orders"].append(candidate)
        return list(groups.values())

    @staticmethod
    def sort_by_priority_and_location(candidates: list[dict], reference: Coordinates) -> list[dict]:
        def sort_key(candidate):
            point = candidate["coordinates"]
            distance = (
                location_service.calculate_distance(reference, point) if point else NO_COORDINATES_DISTANCE
            )
            return (-PRIORITY_WEIGHTS.get(candidate["priority"], 2), distance)

        return sorted(candidates, key=sort_key)

    def optimize_order_sequence(self, candidates: list[dict], start: Coordinates) -> list[dict]:
        """Pickups first, then deliveries, each by priority then distance from ``start``"""
        pickups = [c for c in candidates if c["status"] in PICKUP_STATUSES]
        deliveries = [c for c in candidates if c["status"] in DELIVERY_STATUSES]
        return self.sort_by_priority_and_location(pickups, start) + self.sort_by_priority_and_location(
            deliveries, start
        )

    def generate_optimal_routes(
        self, business_id: str, target_date: date, max_stops: Optional[int] = None
    ) -> dict:
        """
        Create one PLANNED route per location cluster, one vehicle per route

        Clusters beyond the number of free vehicles, and cluster members that
        exceed the vehicle's capacity or the stop limit, are reported as
        unassigned.
        """
        vehicles = self._available_vehicles(business_id, target_date)
        if not vehicles:
            return {
                "success": False,
                "generated_routes": [],
                "unassigned_orders": [],
                "message": "No available vehicles for the target date",
            }

        candidates = self.get_orders_ready_for_routes(business_id)
        if not candidates:
            return {
                "success": True,
                "generated_routes": [],
                "unassigned_orders": [],
                "message": "No orders available for routing",
            }

        stop_limit = max_stops or DEFAULT_MAX_STOPS
        generated = []
        unassigned = []
        vehicle_index = 0

        for group in self.group_orders_by_location(candidates):
            if vehicle_index >= len(vehicles):
                unassigned.extend(c["order_number"] for c in group["orders"])
                continue

            vehicle = vehicles[vehicle_index]
            sequence = self.optimize_order_sequence(group["orders"], group["center"])

            weight_left = _capacity_left(vehicle.max_weight_kg, 0)
            items_left = _capacity_left(vehicle.max_item_count, 0)
            selected = []
            for candidate in sequence:
                fits = (
                    len(selected) < stop_limit
                    and candidate["estimated_weight"] <= weight_left
                    and candidate["item_count"] <= items_left
                )
                if not fits:
                    unassigned.append(candidate["order_number"])
                    continue
                selected.append(candidate)
                weight_left -= candidate["estimated_weight"]
                items_left -= candidate["item_count"]

            if not selected:
                continue

            route_name = f"Auto Route - {group['center_name']} - {target_date.isoformat()}"
            route = Route(
                business_id=business_id,
                vehicle_id=vehicle.id,
                route_name=route_name,
                route_type="MIXED",
                status="PLANNED",
                planned_date=target_date,
                planned_start_time=datetime.combine(target_date, ROUTE_DAY_START),
                planned_end_time=datetime.combine(target_date, ROUTE_DAY_END),
                optimized_for="distance",
                total_weight=sum(c["estimated_weight"] for c in selected),
                total_items=sum(c["item_count"] for c in selected),
            )
            self.db.add(route)
            self.db.flush()
            for index, candidate in enumerate(selected, start=1):
                route.stops.append(self._build_stop(route, index, candidate))

            waypoints = [c["coordinates"] for c in selected if c["coordinates"]]
            route.total_distance = round(location_service.calculate_route_distance(waypoints), 2)
            route.estimated_duration = location_service.estimate_travel_time(route.total_distance)

            generated.append(
                {
                    "route_id": route.id,
                    "route_name": route_name,
                    "vehicle_id": vehicle.id,
                    "stop_count": len(selected),
                    "total_distance": route.total_distance,
                    "estimated_duration": route.estimated_duration,
                }
            )
            vehicle_index += 1

        self.db.commit()
        total_stops = sum(r["stop_count"] for r in generated)
        logger.info(
            f"📊 Generated {len(generated)} routes for {target_date}: "
            f"{total_stops} stops, {len(unassigned)} unassigned orders"
        )
        return {
            "success": True,
            "generated_routes": generated,
            "unassigned_orders": unassigned,
            "message": f"Generated {len(generated)} routes with {total_stops} stops",
        }

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    def get_nearby_delivery_orders(
        self, business_id: str, location: Coordinates, radius_km: float = 5
    ) -> list[dict]:
        nearby = []
        for candidate in self.get_orders_ready_for_routes(business_id, ("delivery",)):
            point = candidate["coordinates"]
            if point and location_service.is_within_radius(location, point, radius_km):
                candidate["distance_km"] = round(location_service.calculate_distance(location, point), 3)
                nearby.append(candidate)
        return nearby

    def suggest_pickup_route(
        self, business_id: str, vehicle_id: str, location: Coordinates, max_stops: int = 10
    ) -> list[dict]:
        """
        Chain pickups nearest-neighbour style from the vehicle's position

        Stops once ``max_stops`` are chosen; pickups that would overflow the
        vehicle capacity are passed over.
        """
        vehicle = (
            self.db.query(Vehicle)
            .filter(Vehicle.id == vehicle_id, Vehicle.business_id == business_id, Vehicle.is_active.is_(True))
            .first()
        )
        if not vehicle:
            raise HTTPException(status_code=404, detail="Vehicle not found")

        located = [
            c for c in self.get_orders_ready_for_routes(business_id, ("pickup",)) if c["coordinates"]
        ]
        chain = location_service.optimize_route(location, located, _candidate_coordinates)

        weight_left = _capacity_left(vehicle.max_weight_kg, 0)
        items_left = _capacity_left(vehicle.max_item_count, 0)
        suggested = []
        previous = location
        for candidate in chain:
            if len(suggested) >= max_stops:
                break
            if candidate["estimated_weight"] > weight_left or candidate["item_count"] > items_left:
                continue
            candidate["distance_km"] = round(
                location_service.calculate_distance(previous, candidate["coordinates"]), 3
            )
            suggested.append(candidate)
            previous = candidate["coordinates"]
            weight_left -= candidate["estimated_weight"]
            items_left -= candidate["item_count"]
        return suggested

    # ========================================================================
    # REMOVAL
    # ========================================================================

    def remove_order_from_route(self, route_id: str, order_id: str, business_id: str) -> dict:
        route = self._get_route(route_id, business_id)
        if route.status not in ("PLANNED", "ASSIGNED"):
            raise HTTPException(
                status_code=409,
                detail={
                    "message": "Only PLANNED or ASSIGNED routes can be modified",
                    "code": "ROUTE_NOT_MODIFIABLE",
                    "route_status": route.status,
                },
            )

        link = (
            self.db.query(RouteStopOrder)
            .join(RouteStop, RouteStopOrder.route_stop_id == RouteStop.id)
            .filter(RouteStopOrder.order_id == order_id, RouteStop.route_id == route.id)
            .first()
        )
        if not link:
            return {"success": True, "message": "Order not linked to the route"}

        stop = link.stop
        removed_items = sum(item.quantity for item in link.order.items) if link.order else 0
        stop.order_links.remove(link)
        if not stop.order_links:
            route.stops.remove(stop)
            for index, remaining in enumerate(route.stops, start=1):
                remaining.sequence = index
        else:
            # The stop keeps serving its other orders
            stop.item_count = max(0, (stop.item_count or 0) - removed_items)
            stop.weight = max(0.0, (stop.weight or 0.0) - removed_items * KG_PER_ITEM)

        route.total_items = sum(s.item_count or 0 for s in route.stops)
        route.total_weight = sum(s.weight or 0 for s in route.stops)
        self._refresh_route_metrics(route)
        self.db.commit()
        logger.info(f"🗑️ Order {order_id} removed from route {route.route_name}")
        return {"success": True, "message": "Order removed from route"}

    @staticmethod
    def _refresh_route_metrics(route: Route) -> None:
        waypoints = [
            Coordinates(s.latitude, s.longitude)
            for s in sorted(route.stops, key=lambda s: s.sequence)
            if s.latitude is not None and s.longitude is not None
        ]
        route.total_distance = round(location_service.calculate_route_distance(waypoints), 2)
        route.estimated_duration = location_service.estimate_travel_time(route.total_distance)
