"""
Delivery Zone Routes

Handles the districts a business serves and point-in-zone lookups.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from ..auth import get_current_user, require_roles
from ..database import get_db
from ..models import User
from ..models_routing import DeliveryZone, Route, RouteStop, Vehicle, VehicleDeliveryZone
from ..schemas import DeliveryZoneCreate, DeliveryZoneResponse, DeliveryZoneUpdate, IdList
from ..services import location_service
from ..services.location_service import Coordinates
from ..services.status_automation import ACTIVE_ROUTE_STATUSES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/delivery-zones", tags=["Delivery Zones"])

REQUIRED_ZONE_FIELDS = ("name", "city", "district", "priority", "is_active")


def _serialize_days(days: Optional[list[int]]) -> Optional[str]:
    return ",".join(str(day) for day in days) if days else None


def _get_zone(db: Session, zone_id: str, business_id: str) -> DeliveryZone:
    zone = (
        db.query(DeliveryZone)
        .options(selectinload(DeliveryZone.vehicle_links))
        .filter(DeliveryZone.id == zone_id, DeliveryZone.business_id == business_id)
        .first()
    )
    if not zone:
        raise HTTPException(status_code=404, detail="Delivery zone not found")
    return zone


def _ensure_unique_district(
    db: Session, business_id: str, city: str, district: str, exclude_id: Optional[str] = None
):
    query = db.query(DeliveryZone.id).filter(
        DeliveryZone.business_id == business_id,
        func.lower(DeliveryZone.city) == city.strip().lower(),
        func.lower(DeliveryZone.district) == district.strip().lower(),
    )
    if exclude_id:
        query = query.filter(DeliveryZone.id != exclude_id)
    if query.first():
        raise HTTPException(status_code=409, detail="A delivery zone for this city and district already exists")


def _zone_center(zone: DeliveryZone) -> Optional[Coordinates]:
    return location_service.coordinates_of(zone.center_lat, zone.center_lng)


def _active_zones(db: Session, business_id: str) -> list[DeliveryZone]:
    return (
        db.query(DeliveryZone)
        .options(selectinload(DeliveryZone.vehicle_links))
        .filter(DeliveryZone.business_id == business_id, DeliveryZone.is_active.is_(True))
        .order_by(DeliveryZone.priority.asc(), DeliveryZone.name.asc())
        .all()
    )


# Routes
@router.get("", response_model=List[DeliveryZoneResponse])
async def list_delivery_zones(
    city: Optional[str] = Query(None),
    district: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = (
        db.query(DeliveryZone)
        .options(selectinload(DeliveryZone.vehicle_links))
        .filter(DeliveryZone.business_id == current_user.business_id)
    )
    if city:
        query = query.filter(DeliveryZone.city.ilike(city))
    if district:
        query = query.filter(DeliveryZone.district.ilike(district))
    if is_active is not None:
        query = query.filter(DeliveryZone.is_active.is_(is_active))
    if search:
        term = f"%{search}%"
        query = query.filter(
            or_(
                DeliveryZone.name.ilike(term),
                DeliveryZone.district.ilike(term),
                DeliveryZone.neighborhood.ilike(term),
            )
        )
    return query.order_by(DeliveryZone.priority.asc(), DeliveryZone.name.asc()).all()


@router.get("/stats")
async def get_delivery_zone_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    zones = (
        db.query(DeliveryZone)
        .options(selectinload(DeliveryZone.vehicle_links))
        .filter(DeliveryZone.business_id == current_user.business_id)
        .all()
    )
    active = [z for z in zones if z.is_active]

    by_city: dict[str, int] = {}
    by_priority: dict[int, int] = {}
    for zone in active:
        by_city[zone.city] = by_city.get(zone.city, 0) + 1
        by_priority[zone.priority] = by_priority.get(zone.priority, 0) + 1

    fees = [z.delivery_fee for z in active]
    return {
        "total_zones": len(zones),
        "active_zones": len(active),
        "by_city": by_city,
        "by_priority": by_priority,
        "zones_with_vehicles": sum(1 for z in active if z.vehicle_links),
        "zones_without_vehicles": sum(1 for z in active if not z.vehicle_links),
        "average_delivery_fee": round(sum(fees) / len(fees), 2) if fees else 0.0,
    }


@router.get("/cities")
async def get_delivery_zone_cities(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Cities with at least one active zone and their districts"""
    cities: dict[str, list[str]] = {}
    for zone in _active_zones(db, current_user.business_id):
        cities.setdefault(zone.city, []).append(zone.district)
    return [
        {"city": city, "districts": sorted(set(districts))}
        for city, districts in sorted(cities.items())
    ]


@router.get("/search", response_model=List[DeliveryZoneResponse])
async def search_delivery_zones(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(10, gt=0, le=500),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Active zones whose centre lies within ``radius_km`` of the point, nearest first"""
    origin = Coordinates(lat, lng)
    results = []
    for zone, distance in location_service.sort_by_distance(
        origin, _active_zones(db, current_user.business_id), _zone_center
    ):
        if distance > radius_km:
            break
        response = DeliveryZoneResponse.model_validate(zone)
        response.distance_km = round(distance, 3)
        results.append(response)
    return results


@router.get("/locate", response_model=Optional[DeliveryZoneResponse])
async def locate_delivery_zone(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """First active zone (by priority) whose radius covers the point, or null"""
    point = Coordinates(lat, lng)
    for zone in _active_zones(db, current_user.business_id):
        center = _zone_center(zone)
        if center is None or zone.radius_km is None:
            continue
        if location_service.is_within_radius(center, point, zone.radius_km):
            response = DeliveryZoneResponse.model_validate(zone)
            response.distance_km = round(location_service.calculate_distance(center, point), 3)
            return response
    return None


@router.get("/{zone_id}", response_model=DeliveryZoneResponse)
async def get_delivery_zone(
    zone_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _get_zone(db, zone_id, current_user.business_id)


@router.post("", response_model=DeliveryZoneResponse, status_code=201)
async def create_delivery_zone(
    data: DeliveryZoneCreate,
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    db: Session = Depends(get_db),
):
    _ensure_unique_district(db, current_user.business_id, data.city, data.district)

    values = data.model_dump(exclude_none=True)
    values["service_days"] = _serialize_days(data.service_days)
    zone = DeliveryZone(business_id=current_user.business_id, **values)
    db.add(zone)
    db.commit()
    db.refresh(zone)
    logger.info(f"✅ Delivery zone created: {zone.name} ({zone.city}/{zone.district})")
    return zone


@router.patch("/{zone_id}", response_model=DeliveryZoneResponse)
async def update_delivery_zone(
    zone_id: str,
    data: DeliveryZoneUpdate,
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    db: Session = Depends(get_db),
):
    zone = _get_zone(db, zone_id, current_user.business_id)
    updates = data.model_dump(exclude_unset=True)

    city = updates.get("city") or zone.city
    district = updates.get("district") or zone.district
    if city != zone.city or district != zone.district:
        _ensure_unique_district(db, current_user.business_id, city, district, exclude_id=zone.id)

    if "service_days" in updates:
        updates["service_days"] = _serialize_days(updates["service_days"])
    for key, value in updates.items():
        if value is None and key in REQUIRED_ZONE_FIELDS:
            continue
        setattr(zone, key, value)

    if (zone.center_lat is None) != (zone.center_lng is None):
        raise HTTPException(status_code=400, detail="center_lat and center_lng must be provided together")

    db.commit()
    db.refresh(zone)
    return zone


@router.delete("/{zone_id}")
async def delete_delivery_zone(
    zone_id: str,
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    db: Session = Depends(get_db),
):
    zone = _get_zone(db, zone_id, current_user.business_id)

    in_use = (
        db.query(RouteStop.id)
        .join(Route, RouteStop.route_id == Route.id)
        .filter(RouteStop.delivery_zone_id == zone.id, Route.status.in_(ACTIVE_ROUTE_STATUSES))
        .first()
    )
    if in_use:
        raise HTTPException(status_code=400, detail="Cannot delete delivery zone used by active routes")

    # Finished routes keep their stops but lose the zone reference
    db.query(RouteStop).filter(RouteStop.delivery_zone_id == zone.id).update(
        {RouteStop.delivery_zone_id: None}, synchronize_session=False
    )
    db.delete(zone)
    db.commit()
    logger.info(f"🗑️ Delivery zone deleted: {zone_id}")
    return {"message": "Delivery zone deleted successfully"}


@router.put("/{zone_id}/vehicles", response_model=DeliveryZoneResponse)
async def set_delivery_zone_vehicles(
    zone_id: str,
    data: IdList,
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    db: Session = Depends(get_db),
):
    """Replace the vehicles serving a zone; every vehicle must be active and of the business"""
    zone = _get_zone(db, zone_id, current_user.business_id)
    vehicle_ids = list(dict.fromkeys(data.ids))

    if vehicle_ids:
        found = (
            db.query(func.count(Vehicle.id))
            .filter(
                Vehicle.id.in_(vehicle_ids),
                Vehicle.business_id == current_user.business_id,
                Vehicle.is_active.is_(True),
            )
            .scalar()
        )
        if found != len(vehicle_ids):
            raise HTTPException(status_code=400, detail="One or more vehicles were not found or are inactive")

    zone.vehicle_links.clear()
    db.flush()
    for vehicle_id in vehicle_ids:
        zone.vehicle_links.append(VehicleDeliveryZone(vehicle_id=vehicle_id))
    db.commit()
    db.refresh(zone)
    logger.info(f"✅ Delivery zone {zone.name} now served by {len(vehicle_ids)} vehicles")
    return zone
