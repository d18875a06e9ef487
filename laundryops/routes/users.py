"""
Staff Management Routes
Owners and managers maintain the people working for their business
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, field_validator
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_roles
from ..database import get_db
from ..models import User
from ..models_routing import Vehicle
from ..shared.validators import validate_email, validate_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])

USER_ROLES = ("OWNER", "MANAGER", "EMPLOYEE", "DRIVER")
# Only an owner may hand out these roles
PRIVILEGED_ROLES = ("OWNER", "MANAGER")


def _check_role(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in USER_ROLES:
        raise ValueError(f"role must be one of: {', '.join(USER_ROLES)}")
    return value


class UserCreate(BaseModel):
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: str = "EMPLOYEE"

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def validate_phone_field(cls, v):
        return validate_phone(v)

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        return _check_role(v)


class UserUpdate(BaseModel):
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def validate_phone_field(cls, v):
        return validate_phone(v)

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        return _check_role(v)


class UserResponse(BaseModel):
    id: str
    business_id: Optional[str] = None
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: str
    phone: Optional[str] = None
    role: str
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Columns that cannot be cleared by an update
REQUIRED_USER_FIELDS = ("email", "role")


def _get_user(db: Session, user_id: str, business_id: str) -> User:
    user = db.query(User).filter(User.id == user_id, User.business_id == business_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _ensure_email_free(db: Session, email: str, exclude_id: Optional[str] = None):
    query = db.query(User.id).filter(User.email == email)
    if exclude_id:
        query = query.filter(User.id != exclude_id)
    if query.first():
        raise HTTPException(status_code=409, detail="A user with this email already exists")


def verify_role_assignment(current_user: User, role: Optional[str], target: Optional[User] = None) -> None:
    """Managers cannot grant privileged roles or edit an owner"""
    if current_user.role == "OWNER":
        return
    if role in PRIVILEGED_ROLES or (target is not None and target.role == "OWNER"):
        logger.warning(f"🚫 {current_user.email} tried to assign role {role} without owner rights")
        raise HTTPException(status_code=403, detail="Insufficient permissions to assign this role")


# Routes
@router.get("", response_model=List[UserResponse])
async def list_users(
    role: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, description="Name or email"),
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    db: Session = Depends(get_db),
):
    query = db.query(User).filter(User.business_id == current_user.business_id)
    if role:
        query = query.filter(User.role == role.upper())
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    if search:
        term = f"%{search}%"
        query = query.filter(
            or_(User.first_name.ilike(term), User.last_name.ilike(term), User.email.ilike(term))
        )
    return query.order_by(User.created_at.asc()).all()


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.get("/stats")
async def get_user_stats(
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    db: Session = Depends(get_db),
):
    users = db.query(User).filter(User.business_id == current_user.business_id).all()
    today = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)

    by_role: dict[str, int] = {}
    for user in users:
        by_role[user.role] = by_role.get(user.role, 0) + 1

    return {
        "total_users": len(users),
        "active_users": sum(1 for u in users if u.is_active),
        "by_role": by_role,
        "logged_in_today": sum(1 for u in users if u.last_login_at and u.last_login_at >= today),
    }


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    db: Session = Depends(get_db),
):
    return _get_user(db, user_id, current_user.business_id)


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    data: UserCreate,
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    db: Session = Depends(get_db),
):
    verify_role_assignment(current_user, data.role)
    _ensure_email_free(db, data.email)

    user = User(business_id=current_user.business_id, **data.model_dump())
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"✅ User {user.email} created with role {user.role}")
    return user


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    data: UserUpdate,
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    db: Session = Depends(get_db),
):
    user = _get_user(db, user_id, current_user.business_id)
    updates = data.model_dump(exclude_unset=True)
    for required in REQUIRED_USER_FIELDS:
        if required in updates and updates[required] is None:
            del updates[required]

    verify_role_assignment(current_user, updates.get("role"), user)
    if "role" in updates and user.id == current_user.id and updates["role"] != user.role:
        raise HTTPException(status_code=400, detail="You cannot change your own role")
    if "email" in updates and updates["email"] != user.email:
        _ensure_email_free(db, updates["email"], exclude_id=user.id)

    if user.role == "DRIVER" and updates.get("role", "DRIVER") != "DRIVER":
        _release_vehicles(db, user)
    for field, value in updates.items():
        setattr(user, field, value)

    db.commit()
    db.refresh(user)
    logger.info(f"✏️ User {user.email} updated: {list(updates)}")
    return user


@router.post("/{user_id}/activate", response_model=UserResponse)
async def activate_user(
    user_id: str,
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    db: Session = Depends(get_db),
):
    user = _get_user(db, user_id, current_user.business_id)
    verify_role_assignment(current_user, None, user)
    user.is_active = True
    db.commit()
    db.refresh(user)
    logger.info(f"✅ User {user.email} activated")
    return user


@router.post("/{user_id}/deactivate", response_model=UserResponse)
async def deactivate_user(
    user_id: str,
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    db: Session = Depends(get_db),
):
    """Deactivated users can no longer authenticate; drivers give up their vehicle"""
    user = _get_user(db, user_id, current_user.business_id)
    if user.id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")
    verify_role_assignment(current_user, None, user)

    user.is_active = False
    _release_vehicles(db, user)
    db.commit()
    db.refresh(user)
    logger.info(f"🚫 User {user.email} deactivated")
    return user


def _release_vehicles(db: Session, user: User) -> None:
    vehicles = db.query(Vehicle).filter(Vehicle.assigned_driver_id == user.id).all()
    for vehicle in vehicles:
        vehicle.assigned_driver_id = None
        logger.info(f"🚚 Driver {user.email} unlinked from vehicle {vehicle.plate_number}")
