from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .shared.validators import validate_coordinates, validate_time_of_day

ROUTE_STATUSES = ("PLANNED", "ASSIGNED", "IN_PROGRESS", "PAUSED", "COMPLETED", "CANCELLED")
ROUTE_TYPES = ("PICKUP_ONLY", "DELIVERY_ONLY", "MIXED", "RETURN")
STOP_TYPES = ("PICKUP", "DELIVERY", "DEPOT", "BREAK")
STOP_STATUSES = ("PENDING", "EN_ROUTE", "ARRIVED", "IN_PROGRESS", "COMPLETED", "FAILED", "SKIPPED")
VEHICLE_STATUSES = ("AVAILABLE", "IN_USE", "MAINTENANCE", "OUT_OF_SERVICE", "RETIRED")
FUEL_TYPES = ("GASOLINE", "DIESEL", "LPG", "ELECTRIC", "HYBRID")
OPTIMIZATION_TARGETS = ("distance", "time", "priority")


def _check_choice(value, choices, field_name):
    if value is not None and value not in choices:
        raise ValueError(f"{field_name} must be one of: {', '.join(choices)}")
    return value


class MessageResponse(BaseModel):
    message: str


class LatLng(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


# ============================================================================
# VEHICLES
# ============================================================================


class VehicleBase(BaseModel):
    brand: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = Field(None, ge=1950, le=2100)
    color: Optional[str] = None
    max_weight_kg: Optional[float] = Field(None, gt=0)
    max_item_count: Optional[int] = Field(None, gt=0)
    max_volume_m3: Optional[float] = Field(None, gt=0)
    assigned_driver_id: Optional[str] = None
    has_refrigeration: Optional[bool] = None
    has_hanging_rack: Optional[bool] = None
    fuel_type: Optional[str] = None
    fuel_consumption_per_100km: Optional[float] = Field(None, ge=0)
    cost_per_km: Optional[float] = Field(None, ge=0)
    current_km: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = None

    @field_validator("fuel_type")
    @classmethod
    def validate_fuel_type(cls, v):
        return _check_choice(v, FUEL_TYPES, "fuel_type")


class VehicleCreate(VehicleBase):
    plate_number: str = Field(..., min_length=2, max_length=20)

    @field_validator("plate_number")
    @classmethod
    def normalize_plate(cls, v):
        return " ".join(v.upper().split())


class VehicleUpdate(VehicleBase):
    plate_number: Optional[str] = Field(None, min_length=2, max_length=20)
    status: Optional[str] = None

    @field_validator("plate_number")
    @classmethod
    def normalize_plate(cls, v):
        return " ".join(v.upper().split()) if v else v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _check_choice(v, VEHICLE_STATUSES, "status")


class VehicleResponse(BaseModel):
    id: str
    plate_number: str
    brand: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    color: Optional[str] = None
    max_weight_kg: Optional[float] = None
    max_item_count: Optional[int] = None
    max_volume_m3: Optional[float] = None
    status: str
    assigned_driver_id: Optional[str] = None
    has_refrigeration: bool
    has_hanging_rack: bool
    fuel_type: Optional[str] = None
    fuel_consumption_per_100km: Optional[float] = None
    cost_per_km: Optional[float] = None
    current_km: int
    notes: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class IdList(BaseModel):
    ids: list[str] = []


# ============================================================================
# DELIVERY ZONES
# ============================================================================


class DeliveryZoneBase(BaseModel):
    neighborhood: Optional[str] = None
    center_lat: Optional[float] = None
    center_lng: Optional[float] = None
    radius_km: Optional[float] = Field(None, gt=0)
    service_start_time: Optional[str] = None
    service_end_time: Optional[str] = None
    service_days: Optional[list[int]] = None
    delivery_fee: Optional[float] = Field(None, ge=0)

    @field_validator("service_start_time", "service_end_time")
    @classmethod
    def validate_times(cls, v):
        return validate_time_of_day(v)

    @field_validator("service_days")
    @classmethod
    def validate_days(cls, v):
        if v is not None and any(day < 1 or day > 7 for day in v):
            raise ValueError("service_days must contain weekday numbers 1 (Monday) to 7 (Sunday)")
        return sorted(set(v)) if v is not None else v

    @model_validator(mode="after")
    def check_center(self):
        validate_coordinates(self.center_lat, self.center_lng)
        if self.service_start_time and self.service_end_time:
            if self.service_start_time >= self.service_end_time:
                raise ValueError("service_start_time must be before service_end_time")
        return self


class DeliveryZoneCreate(DeliveryZoneBase):
    name: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    district: str = Field(..., min_length=1, max_length=100)
    priority: int = Field(1, ge=1, le=5)


class DeliveryZoneUpdate(DeliveryZoneBase):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    city: Optional[str] = Field(None, min_length=1, max_length=100)
    district: Optional[str] = Field(None, min_length=1, max_length=100)
    priority: Optional[int] = Field(None, ge=1, le=5)
    is_active: Optional[bool] = None


class DeliveryZoneResponse(BaseModel):
    id: str
    name: str
    city: str
    district: str
    neighborhood: Optional[str] = None
    center_lat: Optional[float] = None
    center_lng: Optional[float] = None
    radius_km: Optional[float] = None
    priority: int
    service_start_time: Optional[str] = None
    service_end_time: Optional[str] = None
    service_days: Optional[list[int]] = None
    delivery_fee: float
    is_active: bool
    vehicle_ids: list[str] = []
    distance_km: Optional[float] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("service_days", mode="before")
    @classmethod
    def parse_days(cls, v):
        if isinstance(v, str):
            return [int(day) for day in v.split(",") if day]
        return v


# ============================================================================
# ROUTES AND STOPS
# ============================================================================


class RouteCreate(BaseModel):
    route_name: str = Field(..., min_length=1, max_length=255)
    vehicle_id: str
    planned_date: date
    route_type: str = "MIXED"
    planned_start_time: Optional[datetime] = None
    planned_end_time: Optional[datetime] = None
    optimized_for: str = "distance"
    notes: Optional[str] = None
    driver_instructions: Optional[str] = None

    @field_validator("route_type")
    @classmethod
    def validate_route_type(cls, v):
        return _check_choice(v, ROUTE_TYPES, "route_type")

    @field_validator("optimized_for")
    @classmethod
    def validate_optimized_for(cls, v):
        return _check_choice(v, OPTIMIZATION_TARGETS, "optimized_for")

    @model_validator(mode="after")
    def check_times(self):
        if self.planned_start_time and self.planned_end_time:
            if self.planned_end_time <= self.planned_start_time:
                raise ValueError("planned_end_time must be after planned_start_time")
        return self


class RouteUpdate(BaseModel):
    route_name: Optional[str] = Field(None, min_length=1, max_length=255)
    vehicle_id: Optional[str] = None
    planned_date: Optional[date] = None
    route_type: Optional[str] = None
    planned_start_time: Optional[datetime] = None
    planned_end_time: Optional[datetime] = None
    optimized_for: Optional[str] = None
    notes: Optional[str] = None
    driver_instructions: Optional[str] = None

    @field_validator("route_type")
    @classmethod
    def validate_route_type(cls, v):
        return _check_choice(v, ROUTE_TYPES, "route_type")

    @field_validator("optimized_for")
    @classmethod
    def validate_optimized_for(cls, v):
        return _check_choice(v, OPTIMIZATION_TARGETS, "optimized_for")


class RouteStatusUpdate(BaseModel):
    """Either a named action (start, pause, resume, finish, cancel) or an explicit status"""

    action: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("action")
    @classmethod
    def validate_action(cls, v):
        return _check_choice(v, ("start", "pause", "resume", "finish", "cancel"), "action")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _check_choice(v, ROUTE_STATUSES, "status")

    @model_validator(mode="after")
    def check_one(self):
        if not self.action and not self.status:
            raise ValueError("Provide an action or a status")
        return self


class RouteStopCreate(BaseModel):
    stop_type: str
    address: str = Field(..., min_length=1)
    sequence: Optional[int] = Field(None, ge=1)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    delivery_zone_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    planned_arrival: Optional[datetime] = None
    planned_departure: Optional[datetime] = None
    item_count: int = Field(0, ge=0)
    weight: float = Field(0, ge=0)
    notes: Optional[str] = None
    order_ids: list[str] = []

    @field_validator("stop_type")
    @classmethod
    def validate_stop_type(cls, v):
        return _check_choice(v, STOP_TYPES, "stop_type")

    @model_validator(mode="after")
    def check_coordinates(self):
        validate_coordinates(self.latitude, self.longitude)
        return self


class RouteStopUpdate(BaseModel):
    address: Optional[str] = Field(None, min_length=1)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    delivery_zone_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    planned_arrival: Optional[datetime] = None
    planned_departure: Optional[datetime] = None
    item_count: Optional[int] = Field(None, ge=0)
    weight: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_coordinates(self):
        validate_coordinates(self.latitude, self.longitude)
        return self


class StopStatusUpdate(BaseModel):
    status: str
    failure_reason: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _check_choice(v, STOP_STATUSES, "status")


class StopReorder(BaseModel):
    stop_ids: list[str] = Field(..., min_length=1)


class RouteFromOrders(BaseModel):
    route_name: str = Field(..., min_length=1, max_length=255)
    vehicle_id: str
    order_ids: list[str] = Field(..., min_length=1)
    driver_location: Optional[LatLng] = None


class RouteStopOrderResponse(BaseModel):
    order_id: str
    action_type: str
    is_completed: bool

    class Config:
        from_attributes = True


class RouteStopResponse(BaseModel):
    id: str
    route_id: str
    stop_type: str
    sequence: int
    status: str
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    delivery_zone_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    planned_arrival: Optional[datetime] = None
    planned_departure: Optional[datetime] = None
    actual_arrival: Optional[datetime] = None
    actual_departure: Optional[datetime] = None
    item_count: int
    weight: float
    notes: Optional[str] = None
    failure_reason: Optional[str] = None
    order_links: list[RouteStopOrderResponse] = []

    class Config:
        from_attributes = True


class RouteAssignmentResponse(BaseModel):
    id: str
    route_id: str
    vehicle_id: str
    driver_id: str
    assigned_by_id: Optional[str] = None
    status: str
    assigned_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class RouteResponse(BaseModel):
    id: str
    route_name: str
    vehicle_id: str
    route_type: str
    status: str
    planned_date: date
    planned_start_time: Optional[datetime] = None
    planned_end_time: Optional[datetime] = None
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    total_distance: Optional[float] = None
    estimated_duration: Optional[int] = None
    actual_duration: Optional[int] = None
    total_weight: float
    total_items: int
    optimized_for: str
    notes: Optional[str] = None
    driver_instructions: Optional[str] = None
    stop_count: int = 0
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RouteDetailResponse(RouteResponse):
    stops: list[RouteStopResponse] = []
    assignments: list[RouteAssignmentResponse] = []


class RouteListResponse(BaseModel):
    items: list[RouteResponse]
    total: int
    limit: int
    offset: int


class AssignmentCreate(BaseModel):
    route_id: str
    driver_id: str
    vehicle_id: Optional[str] = None
    notes: Optional[str] = None


class AssignmentReject(BaseModel):
    reason: Optional[str] = None


# ============================================================================
# ROUTE INTEGRATION
# ============================================================================


class RouteCandidateResponse(BaseModel):
    order_id: str
    order_number: str
    customer_id: str
    customer_name: str
    customer_phone: Optional[str] = None
    status: str
    priority: str
    pickup_address: Optional[str] = None
    delivery_address: Optional[str] = None
    pickup_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    item_count: int
    estimated_weight: float
    total_amount: float
    distance_km: Optional[float] = None


class AssignOrdersRequest(BaseModel):
    route_id: str
    max_stops: Optional[int] = Field(None, ge=1, le=100)


class GenerateRoutesRequest(BaseModel):
    target_date: date
    max_stops: Optional[int] = Field(None, ge=1, le=100)


class SuggestPickupRequest(BaseModel):
    vehicle_id: str
    location: LatLng
    max_stops: int = Field(10, ge=1, le=50)


class RemoveOrderRequest(BaseModel):
    route_id: str
    order_id: str


class IntegrationResult(BaseModel):
    success: bool
    message: str
    data: Optional[Any] = None


# ============================================================================
# INVOICES
# ============================================================================

INVOICE_STATUSES = ("DRAFT", "SENT", "PAID", "OVERDUE", "CANCELLED", "REFUNDED")


class InvoiceCreate(BaseModel):
    order_id: str
    customer_tax_number: Optional[str] = None
    notes: Optional[str] = None
    due_days: Optional[int] = Field(None, ge=0, le=365)


class InvoiceStatusUpdate(BaseModel):
    status: str
    payment_method: Optional[str] = None
    reason: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _check_choice(v, INVOICE_STATUSES, "status")


class InvoiceItemResponse(BaseModel):
    id: str
    description: str
    quantity: int
    unit_price: float
    line_total: float
    vat_rate: float
    vat_amount: float

    class Config:
        from_attributes = True


class InvoiceResponse(BaseModel):
    id: str
    order_id: str
    customer_id: str
    invoice_number: str
    invoice_date: date
    due_date: Optional[date] = None
    status: str
    customer_name: str
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    customer_address: Optional[str] = None
    customer_tax_number: Optional[str] = None
    currency: str
    subtotal: float
    discount_amount: float
    tax_amount: float
    total_amount: float
    payment_status: str
    payment_method: Optional[str] = None
    paid_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    notes: Optional[str] = None
    items: list[InvoiceItemResponse] = []
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InvoiceListResponse(BaseModel):
    items: list[InvoiceResponse]
    total: int
    limit: int
    offset: int
