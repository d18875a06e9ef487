"""
Vehicle Management Routes
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_roles
from ..database import get_db
from ..models import User
from ..models_routing import DeliveryZone, Route, Vehicle, VehicleDeliveryZone
from ..schemas import IdList, VehicleCreate, VehicleResponse, VehicleUpdate
from ..services.status_automation import ACTIVE_ROUTE_STATUSES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vehicles", tags=["Vehicles"])

# Columns that cannot be cleared by an update
REQUIRED_VEHICLE_FIELDS = ("plate_number", "status", "has_refrigeration", "has_hanging_rack", "current_km")


def _get_vehicle(db: Session, vehicle_id: str, business_id: str) -> Vehicle:
    vehicle = (
        db.query(Vehicle)
        .filter(Vehicle.id == vehicle_id, Vehicle.business_id == business_id)
        .first()
    )
    if not vehicle:
        raise HTTPException(status_code=404, detail="Vehicle not found")
    return vehicle


def _ensure_plate_free(db: Session, plate_number: str, exclude_id: Optional[str] = None):
    query = db.query(Vehicle.id).filter(Vehicle.plate_number == plate_number)
    if exclude_id:
        query = query.filter(Vehicle.id != exclude_id)
    if query.first():
        raise HTTPException(status_code=409, detail="A vehicle with this plate number already exists")


def _validate_driver(db: Session, driver_id: str, business_id: str, exclude_vehicle_id: Optional[str] = None):
    """The driver must be an active DRIVER of the business without another active vehicle"""
    driver = (
        db.query(User)
        .filter(
            User.id == driver_id,
            User.business_id == business_id,
            User.role == "DRIVER",
            User.is_active.is_(True),
        )
        .first()
    )
    if not driver:
        raise HTTPException(status_code=400, detail="Driver not found or not an active driver")

    query = db.query(Vehicle).filter(
        Vehicle.assigned_driver_id == driver_id,
        Vehicle.is_active.is_(True),
    )
    if exclude_vehicle_id:
        query = query.filter(Vehicle.id != exclude_vehicle_id)
    other = query.first()
    if other:
        raise HTTPException(
            status_code=409, detail=f"Driver is already assigned to vehicle {other.plate_number}"
        )


def _has_active_routes(db: Session, vehicle_id: str) -> bool:
    return (
        db.query(Route.id)
        .filter(Route.vehicle_id == vehicle_id, Route.status.in_(ACTIVE_ROUTE_STATUSES))
        .first()
        is not None
    )


# Routes
@router.get("", response_model=List[VehicleResponse])
async def list_vehicles(
    status: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(True),
    search: Optional[str] = Query(None, description="Plate, brand or model"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(Vehicle).filter(Vehicle.business_id == current_user.business_id)
    if status:
        query = query.filter(Vehicle.status == status)
    if is_active is not None:
        query = query.filter(Vehicle.is_active.is_(is_active))
    if search:
        term = f"%{search}%"
        query = query.filter(
            or_(Vehicle.plate_number.ilike(term), Vehicle.brand.ilike(term), Vehicle.model.ilike(term))
        )
    return query.order_by(Vehicle.plate_number.asc()).all()


@router.get("/stats")
async def get_vehicle_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Fleet counts by status and capacity totals for active vehicles"""
    vehicles = db.query(Vehicle).filter(Vehicle.business_id == current_user.business_id).all()
    active = [v for v in vehicles if v.is_active]

    by_status: dict[str, int] = {}
    for vehicle in active:
        by_status[vehicle.status] = by_status.get(vehicle.status, 0) + 1

    return {
        "total_vehicles": len(vehicles),
        "active_vehicles": len(active),
        "by_status": by_status,
        "available": by_status.get("AVAILABLE", 0),
        "in_use": by_status.get("IN_USE", 0),
        "in_maintenance": by_status.get("MAINTENANCE", 0),
        "with_driver": sum(1 for v in active if v.assigned_driver_id),
        "total_weight_capacity": round(sum(v.max_weight_kg or 0 for v in active), 2),
        "total_item_capacity": sum(v.max_item_count or 0 for v in active),
    }


@router.get("/available", response_model=List[VehicleResponse])
async def get_available_vehicles(
    planned_date: Optional[date] = Query(None, description="Exclude vehicles with an active route on this date"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(Vehicle).filter(
        Vehicle.business_id == current_user.business_id,
        Vehicle.is_active.is_(True),
        Vehicle.status == "AVAILABLE",
    )
    if planned_date:
        busy = select(Route.vehicle_id).where(
            Route.business_id == current_user.business_id,
            Route.planned_date == planned_date,
            Route.status.in_(ACTIVE_ROUTE_STATUSES),
        )
        query = query.filter(~Vehicle.id.in_(busy))
    return query.order_by(Vehicle.plate_number.asc()).all()


@router.get("/{vehicle_id}", response_model=VehicleResponse)
async def get_vehicle(
    vehicle_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _get_vehicle(db, vehicle_id, current_user.business_id)


@router.post("", response_model=VehicleResponse, status_code=201)
async def create_vehicle(
    data: VehicleCreate,
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    db: Session = Depends(get_db),
):
    _ensure_plate_free(db, data.plate_number)
    if data.assigned_driver_id:
        _validate_driver(db, data.assigned_driver_id, current_user.business_id)

    vehicle = Vehicle(
        business_id=current_user.business_id,
        status="AVAILABLE",
        **data.model_dump(exclude_none=True),
    )
    db.add(vehicle)
    db.commit()
    db.refresh(vehicle)
    logger.info(f"✅ Vehicle created: {vehicle.plate_number}")
    return vehicle


@router.patch("/{vehicle_id}", response_model=VehicleResponse)
async def update_vehicle(
    vehicle_id: str,
    data: VehicleUpdate,
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    db: Session = Depends(get_db),
):
    vehicle = _get_vehicle(db, vehicle_id, current_user.business_id)
    updates = data.model_dump(exclude_unset=True)

    if updates.get("plate_number") and updates["plate_number"] != vehicle.plate_number:
        _ensure_plate_free(db, updates["plate_number"], exclude_id=vehicle.id)
    if updates.get("assigned_driver_id") and updates["assigned_driver_id"] != vehicle.assigned_driver_id:
        _validate_driver(db, updates["assigned_driver_id"], current_user.business_id, exclude_vehicle_id=vehicle.id)
    if updates.get("status") and updates["status"] != "IN_USE" and vehicle.status == "IN_USE":
        in_progress = (
            db.query(Route.id)
            .filter(Route.vehicle_id == vehicle.id, Route.status.in_(("IN_PROGRESS", "PAUSED")))
            .first()
        )
        if in_progress:
            raise HTTPException(status_code=400, detail="Vehicle is on a route in progress")

    for key, value in updates.items():
        if value is None and key in REQUIRED_VEHICLE_FIELDS:
            continue
        setattr(vehicle, key, value)

    db.commit()
    db.refresh(vehicle)
    return vehicle


@router.delete("/{vehicle_id}")
async def delete_vehicle(
    vehicle_id: str,
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    db: Session = Depends(get_db),
):
    """Retire a vehicle; its history is kept"""
    vehicle = _get_vehicle(db, vehicle_id, current_user.business_id)
    if _has_active_routes(db, vehicle.id):
        raise HTTPException(status_code=400, detail="Cannot delete vehicle with active routes")

    vehicle.is_active = False
    vehicle.status = "RETIRED"
    vehicle.assigned_driver_id = None
    db.commit()
    logger.info(f"🗑️ Vehicle retired: {vehicle.plate_number}")
    return {"message": "Vehicle deleted successfully"}


@router.put("/{vehicle_id}/delivery-zones", response_model=VehicleResponse)
async def set_vehicle_delivery_zones(
    vehicle_id: str,
    data: IdList,
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    db: Session = Depends(get_db),
):
    """Replace the delivery zones a vehicle serves"""
    vehicle = _get_vehicle(db, vehicle_id, current_user.business_id)
    zone_ids = list(dict.fromkeys(data.ids))

    if zone_ids:
        found = (
            db.query(func.count(DeliveryZone.id))
            .filter(DeliveryZone.id.in_(zone_ids), DeliveryZone.business_id == current_user.business_id)
            .scalar()
        )
        if found != len(zone_ids):
            raise HTTPException(status_code=400, detail="One or more delivery zones were not found")

    vehicle.zone_links.clear()
    db.flush()
    for zone_id in zone_ids:
        vehicle.zone_links.append(VehicleDeliveryZone(delivery_zone_id=zone_id))
    db.commit()
    db.refresh(vehicle)
    logger.info(f"✅ Vehicle {vehicle.plate_number} now serves {len(zone_ids)} zones")
    return vehicle
