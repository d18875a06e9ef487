"""
Vehicle Tracking Routes

GPS positions reported by driver devices.
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import User
from ..models_routing import Route, Vehicle, VehicleTrackingLog
from ..rate_limiter import create_rate_limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vehicle-tracking", tags=["Vehicle Tracking"])

# Devices report every few seconds; allow two per second per client
rate_limit_tracking = create_rate_limiter(limit=120, window_seconds=60, key_prefix="vehicle_tracking")


class LocationUpdate(BaseModel):
    vehicle_id: str
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    route_id: Optional[str] = None
    accuracy: Optional[float] = Field(None, ge=0, description="Meters")
    heading: Optional[float] = Field(None, ge=0, lt=360, description="Degrees")
    speed: Optional[float] = Field(None, ge=0, description="km/h")
    battery_level: Optional[int] = Field(None, ge=0, le=100)
    status: Optional[str] = Field(None, pattern="^(MOVING|STOPPED|IDLE)$")
    timestamp: Optional[datetime] = None


class TrackingLogResponse(BaseModel):
    id: str
    vehicle_id: str
    driver_id: Optional[str]
    route_id: Optional[str]
    latitude: float
    longitude: float
    accuracy: Optional[float]
    heading: Optional[float]
    speed: Optional[float]
    battery_level: Optional[int]
    status: Optional[str]
    timestamp: datetime

    class Config:
        from_attributes = True


class LatestPositionResponse(TrackingLogResponse):
    plate_number: str
    vehicle_status: str


@router.post("/update-location")
async def update_location(
    data: LocationUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_tracking),
):
    """Store a GPS position for an active vehicle of the business"""
    vehicle = (
        db.query(Vehicle)
        .filter(
            Vehicle.id == data.vehicle_id,
            Vehicle.business_id == current_user.business_id,
            Vehicle.is_active.is_(True),
        )
        .first()
    )
    if not vehicle:
        raise HTTPException(status_code=404, detail="Vehicle not found or inactive")

    if data.route_id:
        route = (
            db.query(Route.id)
            .filter(Route.id == data.route_id, Route.business_id == current_user.business_id)
            .first()
        )
        if not route:
            raise HTTPException(status_code=404, detail="Route not found")

    log = VehicleTrackingLog(
        vehicle_id=vehicle.id,
        driver_id=current_user.id if current_user.role == "DRIVER" else vehicle.assigned_driver_id,
        route_id=data.route_id,
        latitude=data.latitude,
        longitude=data.longitude,
        accuracy=data.accuracy,
        heading=data.heading,
        speed=data.speed,
        battery_level=data.battery_level,
        status=data.status,
        timestamp=data.timestamp or datetime.utcnow(),
    )
    db.add(log)
    db.commit()
    logger.debug(f"📍 Vehicle {vehicle.plate_number} at {data.latitude:.5f}, {data.longitude:.5f}")
    return {"success": True, "id": log.id, "timestamp": log.timestamp}


@router.get("", response_model=List[TrackingLogResponse])
async def list_tracking_logs(
    vehicle_id: Optional[str] = Query(None),
    route_id: Optional[str] = Query(None),
    since: Optional[datetime] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = (
        db.query(VehicleTrackingLog)
        .join(Vehicle, VehicleTrackingLog.vehicle_id == Vehicle.id)
        .filter(Vehicle.business_id == current_user.business_id)
    )
    if vehicle_id:
        query = query.filter(VehicleTrackingLog.vehicle_id == vehicle_id)
    if route_id:
        query = query.filter(VehicleTrackingLog.route_id == route_id)
    if since:
        query = query.filter(VehicleTrackingLog.timestamp >= since)
    return query.order_by(VehicleTrackingLog.timestamp.desc()).limit(limit).all()


@router.get("/latest", response_model=List[LatestPositionResponse])
async def get_latest_positions(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Last known position of every active vehicle that has reported one"""
    latest = (
        db.query(
            VehicleTrackingLog.vehicle_id,
            func.max(VehicleTrackingLog.timestamp).label("last_seen"),
        )
        .join(Vehicle, VehicleTrackingLog.vehicle_id == Vehicle.id)
        .filter(Vehicle.business_id == current_user.business_id, Vehicle.is_active.is_(True))
        .group_by(VehicleTrackingLog.vehicle_id)
        .subquery()
    )
    rows = (
        db.query(VehicleTrackingLog, Vehicle)
        .join(
            latest,
            (VehicleTrackingLog.vehicle_id == latest.c.vehicle_id)
            & (VehicleTrackingLog.timestamp == latest.c.last_seen),
        )
        .join(Vehicle, VehicleTrackingLog.vehicle_id == Vehicle.id)
        .order_by(Vehicle.plate_number.asc())
        .all()
    )

    positions = []
    seen = set()
    for log, vehicle in rows:
        if vehicle.id in seen:
            continue
        seen.add(vehicle.id)
        position = LatestPositionResponse(
            **TrackingLogResponse.model_validate(log).model_dump(),
            plate_number=vehicle.plate_number,
            vehicle_status=vehicle.status,
        )
        positions.append(position)
    return positions
