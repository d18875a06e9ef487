"""
Business Profile Routes
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_roles
from ..database import get_db
from ..models import Business, User
from ..shared.validators import validate_coordinates, validate_email, validate_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/business", tags=["Business"])

BUSINESS_TYPES = ("LAUNDRY", "DRY_CLEANING", "CARPET_CLEANING", "UPHOLSTERY_CLEANING", "OTHER")


class BusinessUpdate(BaseModel):
    name: Optional[str] = None
    business_type: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    tax_number: Optional[str] = None
    tax_office: Optional[str] = None

    @field_validator("business_type")
    @classmethod
    def validate_business_type(cls, v):
        if v is not None and v not in BUSINESS_TYPES:
            raise ValueError(f"business_type must be one of: {', '.join(BUSINESS_TYPES)}")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone_field(cls, v):
        return validate_phone(v)

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v)

    @model_validator(mode="after")
    def validate_location(self):
        validate_coordinates(self.latitude, self.longitude)
        return self


class BusinessResponse(BaseModel):
    id: str
    name: str
    business_type: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    tax_number: Optional[str] = None
    tax_office: Optional[str] = None
    plan: str
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Columns that cannot be cleared by an update
REQUIRED_BUSINESS_FIELDS = ("name", "business_type")


def get_plan_entitlements(plan: str) -> dict:
    """Features unlocked by a subscription plan"""
    is_pro = plan == "PRO"
    return {
        "plan": plan,
        "whatsapp_pro_features": is_pro,
        "route_integration": is_pro,
        "photo_limit": 20 if is_pro else 10,
    }


def _get_business(db: Session, user: User) -> Business:
    business = db.query(Business).filter(Business.id == user.business_id).first()
    if not business:
        raise HTTPException(status_code=404, detail="Business not found")
    return business


@router.get("/me", response_model=BusinessResponse)
async def get_my_business(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _get_business(db, current_user)


@router.patch("/me", response_model=BusinessResponse)
async def update_my_business(
    data: BusinessUpdate,
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    db: Session = Depends(get_db),
):
    business = _get_business(db, current_user)
    updates = data.model_dump(exclude_unset=True)
    for field, value in updates.items():
        if value is None and field in REQUIRED_BUSINESS_FIELDS:
            continue
        setattr(business, field, value)

    db.commit()
    db.refresh(business)
    logger.info(f"🏢 Business {business.name} updated: {list(updates)}")
    return business


@router.get("/plan")
async def get_my_plan(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    business = _get_business(db, current_user)
    return {"plan": business.plan, "entitlements": get_plan_entitlements(business.plan)}
