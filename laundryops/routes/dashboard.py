"""
Dashboard Routes

Headline numbers for the business home screen, cached in Redis.
"""

import logging
from datetime import date, datetime, time

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..cache import build_stats_key, cache
from ..config import STATS_CACHE_TTL
from ..database import get_db
from ..models import Customer, Order, User
from ..models_routing import Route, Vehicle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])

OPEN_ORDER_STATUSES = (
    "PENDING",
    "CONFIRMED",
    "READY_FOR_PICKUP",
    "IN_PROGRESS",
    "READY_FOR_DELIVERY",
    "OUT_FOR_DELIVERY",
)


def compute_dashboard_stats(db: Session, business_id: str, today: date) -> dict:
    start_of_day = datetime.combine(today, time.min)
    start_of_month = datetime.combine(today.replace(day=1), time.min)

    def count_orders(*criteria):
        return (
            db.query(func.count(Order.id))
            .filter(Order.business_id == business_id, *criteria)
            .scalar()
        )

    revenue_this_month = (
        db.query(func.coalesce(func.sum(Order.total_amount), 0.0))
        .filter(
            Order.business_id == business_id,
            Order.created_at >= start_of_month,
            Order.status != "CANCELLED",
        )
        .scalar()
    )
    active_customers = (
        db.query(func.count(Customer.id))
        .filter(Customer.business_id == business_id, Customer.is_active.is_(True))
        .scalar()
    )
    todays_routes = (
        db.query(func.count(Route.id))
        .filter(
            Route.business_id == business_id,
            Route.planned_date == today,
            Route.status != "CANCELLED",
        )
        .scalar()
    )
    vehicles_in_use = (
        db.query(func.count(Vehicle.id))
        .filter(
            Vehicle.business_id == business_id,
            Vehicle.is_active.is_(True),
            Vehicle.status == "IN_USE",
        )
        .scalar()
    )

    return {
        "todays_orders": count_orders(Order.created_at >= start_of_day),
        "pending_orders": count_orders(Order.status.in_(OPEN_ORDER_STATUSES)),
        "ready_for_delivery": count_orders(Order.status == "READY_FOR_DELIVERY"),
        "revenue_this_month": round(float(revenue_this_month or 0), 2),
        "active_customers": active_customers,
        "todays_routes": todays_routes,
        "vehicles_in_use": vehicles_in_use,
        "generated_at": datetime.utcnow().isoformat(),
    }


@router.get("/stats")
async def get_dashboard_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Cached for a short time; order writes invalidate the cache"""
    today = date.today()
    cache_key = build_stats_key(current_user.business_id, "dashboard", today.isoformat())

    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    stats = compute_dashboard_stats(db, current_user.business_id, today)
    cache.set(cache_key, stats, ttl=STATS_CACHE_TTL)
    logger.debug(f"📊 Dashboard stats computed for business {current_user.business_id}")
    return stats
