"""
Service Catalogue Routes

Priced services a business offers (washing, dry cleaning, carpet cleaning, ...).
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import OrderItem, Service, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/services", tags=["Services"])

SERVICE_CATEGORIES = (
    "LAUNDRY",
    "DRY_CLEANING",
    "CARPET_CLEANING",
    "UPHOLSTERY_CLEANING",
    "CURTAIN_CLEANING",
    "OTHER",
)
SERVICE_UNITS = ("piece", "kg", "m2", "hour")


# Schemas
class ServiceBase(BaseModel):
    description: Optional[str] = None
    category: Optional[str] = None
    base_price: Optional[float] = Field(None, ge=0)
    unit: Optional[str] = None
    estimated_duration_hours: Optional[int] = Field(None, ge=0)

    @field_validator("category")
    @classmethod
    def validate_category(cls, v):
        if v is not None and v not in SERVICE_CATEGORIES:
            raise ValueError(f"category must be one of: {', '.join(SERVICE_CATEGORIES)}")
        return v

    @field_validator("unit")
    @classmethod
    def validate_unit(cls, v):
        if v is not None and v not in SERVICE_UNITS:
            raise ValueError(f"unit must be one of: {', '.join(SERVICE_UNITS)}")
        return v


class ServiceCreate(ServiceBase):
    name: str = Field(..., min_length=1, max_length=255)
    category: str = "LAUNDRY"
    base_price: float = Field(0, ge=0)
    unit: str = "piece"


class ServiceUpdate(ServiceBase):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    is_active: Optional[bool] = None


class ServiceResponse(BaseModel):
    id: str
    name: str
    description: Optional[str]
    category: str
    base_price: float
    unit: str
    estimated_duration_hours: Optional[int]
    is_active: bool
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


def _get_service(db: Session, service_id: str, business_id: str) -> Service:
    service = (
        db.query(Service)
        .filter(Service.id == service_id, Service.business_id == business_id)
        .first()
    )
    if not service:
        raise HTTPException(status_code=404, detail="Service not found")
    return service


def _ensure_unique_name(db: Session, business_id: str, name: str, exclude_id: Optional[str] = None):
    query = db.query(Service.id).filter(
        Service.business_id == business_id, func.lower(Service.name) == name.strip().lower()
    )
    if exclude_id:
        query = query.filter(Service.id != exclude_id)
    if query.first():
        raise HTTPException(status_code=409, detail="A service with this name already exists")


# Routes
@router.get("", response_model=List[ServiceResponse])
async def list_services(
    category: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(Service).filter(Service.business_id == current_user.business_id)
    if category:
        query = query.filter(Service.category == category)
    if is_active is not None:
        query = query.filter(Service.is_active.is_(is_active))
    if search:
        query = query.filter(Service.name.ilike(f"%{search}%"))
    return query.order_by(Service.category.asc(), Service.name.asc()).all()


@router.get("/{service_id}", response_model=ServiceResponse)
async def get_service(
    service_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _get_service(db, service_id, current_user.business_id)


@router.post("", response_model=ServiceResponse, status_code=201)
async def create_service(
    data: ServiceCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Add a service to the business catalogue"""
    _ensure_unique_name(db, current_user.business_id, data.name)

    service = Service(business_id=current_user.business_id, **data.model_dump(exclude_none=True))
    service.name = data.name.strip()
    db.add(service)
    db.commit()
    db.refresh(service)
    logger.info(f"✅ Service created: {service.name} ({service.category})")
    return service


@router.patch("/{service_id}", response_model=ServiceResponse)
async def update_service(
    service_id: str,
    data: ServiceUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = _get_service(db, service_id, current_user.business_id)
    updates = data.model_dump(exclude_unset=True)
    if updates.get("name"):
        _ensure_unique_name(db, current_user.business_id, updates["name"], exclude_id=service.id)
        updates["name"] = updates["name"].strip()

    for key, value in updates.items():
        if value is not None:
            setattr(service, key, value)

    db.commit()
    db.refresh(service)
    return service


@router.delete("/{service_id}")
async def delete_service(
    service_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete a service, or deactivate it when orders already use it"""
    service = _get_service(db, service_id, current_user.business_id)

    in_use = db.query(OrderItem.id).filter(OrderItem.service_id == service.id).first()
    if in_use:
        service.is_active = False
        db.commit()
        logger.info(f"⚠️ Service {service.name} is used by orders, deactivated instead of deleted")
        return {"message": "Service is used by orders and was deactivated", "deactivated": True}

    db.delete(service)
    db.commit()
    logger.info(f"🗑️ Service deleted: {service_id}")
    return {"message": "Service deleted successfully", "deactivated": False}
