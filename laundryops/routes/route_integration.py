"""
Route Integration Routes

Builds delivery routes from orders that are waiting for a pickup or a delivery.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import User
from ..rate_limiter import create_rate_limiter
from ..schemas import (
    AssignOrdersRequest,
    GenerateRoutesRequest,
    IntegrationResult,
    RemoveOrderRequest,
    RouteCandidateResponse,
    SuggestPickupRequest,
)
from ..services.location_service import Coordinates
from ..services.order_route_integration import OrderRouteIntegrationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/route-integration", tags=["Route Integration"])

# Route generation touches every open order of the business
rate_limit_generate = create_rate_limiter(limit=10, window_seconds=60, key_prefix="route_generation")


def get_integration_service(db: Session = Depends(get_db)) -> OrderRouteIntegrationService:
    return OrderRouteIntegrationService(db)


@router.get("/available-orders", response_model=List[RouteCandidateResponse])
async def get_available_orders(
    type: Optional[str] = Query(None, pattern="^(pickup|delivery)$"),
    current_user: User = Depends(get_current_user),
    service: OrderRouteIntegrationService = Depends(get_integration_service),
):
    include_types = (type,) if type else ("pickup", "delivery")
    return service.get_orders_ready_for_routes(current_user.business_id, include_types)


@router.post("/assign-orders", response_model=IntegrationResult)
async def assign_orders_to_route(
    data: AssignOrdersRequest,
    current_user: User = Depends(get_current_user),
    service: OrderRouteIntegrationService = Depends(get_integration_service),
):
    """Fill a planned route with the nearest ready orders that fit the vehicle"""
    try:
        result = service.assign_orders_to_route(data.route_id, current_user.business_id, data.max_stops)
        return IntegrationResult(success=result["success"], message=result["message"], data=result)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Error assigning orders to route {data.route_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to assign orders to route")


@router.post("/generate-routes", response_model=IntegrationResult)
async def generate_routes(
    data: GenerateRoutesRequest,
    current_user: User = Depends(get_current_user),
    service: OrderRouteIntegrationService = Depends(get_integration_service),
    _: None = Depends(rate_limit_generate),
):
    """Create one route per location cluster for the free vehicles of the target date"""
    try:
        result = service.generate_optimal_routes(current_user.business_id, data.target_date, data.max_stops)
        return IntegrationResult(success=result["success"], message=result["message"], data=result)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Error generating routes for {data.target_date}: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate routes")


@router.get("/nearby-orders", response_model=List[RouteCandidateResponse])
async def get_nearby_orders(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(5, gt=0, le=100),
    current_user: User = Depends(get_current_user),
    service: OrderRouteIntegrationService = Depends(get_integration_service),
):
    """Deliveries whose customer lies within ``radius_km`` of the point"""
    return service.get_nearby_delivery_orders(current_user.business_id, Coordinates(lat, lng), radius_km)


@router.post("/suggest-pickup-route", response_model=List[RouteCandidateResponse])
async def suggest_pickup_route(
    data: SuggestPickupRequest,
    current_user: User = Depends(get_current_user),
    service: OrderRouteIntegrationService = Depends(get_integration_service),
):
    return service.suggest_pickup_route(
        current_user.business_id,
        data.vehicle_id,
        Coordinates(data.location.lat, data.location.lng),
        data.max_stops,
    )


@router.post("/remove-order", response_model=IntegrationResult)
async def remove_order_from_route(
    data: RemoveOrderRequest,
    current_user: User = Depends(get_current_user),
    service: OrderRouteIntegrationService = Depends(get_integration_service),
):
    result = service.remove_order_from_route(data.route_id, data.order_id, current_user.business_id)
    return IntegrationResult(success=result["success"], message=result["message"])
