"""Order domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

ORDER_STATUSES = (
    "PENDING",
    "CONFIRMED",
    "READY_FOR_PICKUP",
    "IN_PROGRESS",
    "READY_FOR_DELIVERY",
    "OUT_FOR_DELIVERY",
    "DELIVERED",
    "COMPLETED",
    "CANCELLED",
)
PRIORITIES = ("LOW", "NORMAL", "HIGH", "URGENT")
PAYMENT_STATUSES = ("PENDING", "PARTIAL", "PAID", "REFUNDED", "CANCELLED")
PAYMENT_METHODS = ("CASH", "CREDIT_CARD", "BANK_TRANSFER", "MOBILE_PAYMENT")


def _check_choice(value, choices, field_name):
    if value is not None and value not in choices:
        raise ValueError(f"{field_name} must be one of: {', '.join(choices)}")
    return value


class OrderItemCreate(BaseModel):
    """Either a catalogue service (service_id) or a manual entry (service_name)"""

    service_id: Optional[str] = None
    service_name: Optional[str] = Field(None, max_length=255)
    service_description: Optional[str] = None
    quantity: int = Field(1, ge=1)
    unit_price: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_source(self):
        if not self.service_id and not self.service_name:
            raise ValueError("Each item needs a service_id or a service_name")
        if not self.service_id and self.unit_price is None:
            raise ValueError("Manual items need a unit_price")
        return self


class OrderCreate(BaseModel):
    customer_id: str
    items: list[OrderItemCreate] = []
    total_amount: Optional[float] = Field(None, ge=0)  # used when no items are given
    priority: str = "NORMAL"
    pickup_address: Optional[str] = None
    pickup_date: Optional[datetime] = None
    delivery_address: Optional[str] = None
    delivery_date: Optional[datetime] = None
    discount_amount: float = Field(0, ge=0)
    discount_reason: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    special_instructions: Optional[str] = None
    reference_code: Optional[str] = None
    assigned_user_id: Optional[str] = None
    send_notification: bool = True

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v):
        return _check_choice(v, PRIORITIES, "priority")

    @field_validator("payment_method")
    @classmethod
    def validate_payment_method(cls, v):
        return _check_choice(v, PAYMENT_METHODS, "payment_method")


class OrderUpdate(BaseModel):
    priority: Optional[str] = None
    pickup_address: Optional[str] = None
    pickup_date: Optional[datetime] = None
    delivery_address: Optional[str] = None
    delivery_date: Optional[datetime] = None
    discount_amount: Optional[float] = Field(None, ge=0)
    discount_reason: Optional[str] = None
    paid_amount: Optional[float] = Field(None, ge=0)
    payment_status: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    special_instructions: Optional[str] = None
    reference_code: Optional[str] = None
    assigned_user_id: Optional[str] = None

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v):
        return _check_choice(v, PRIORITIES, "priority")

    @field_validator("payment_status")
    @classmethod
    def validate_payment_status(cls, v):
        return _check_choice(v, PAYMENT_STATUSES, "payment_status")

    @field_validator("payment_method")
    @classmethod
    def validate_payment_method(cls, v):
        return _check_choice(v, PAYMENT_METHODS, "payment_method")


class OrderStatusUpdate(BaseModel):
    status: str
    notes: Optional[str] = None
    send_notification: bool = True

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _check_choice(v, ORDER_STATUSES, "status")


class OrderItemResponse(BaseModel):
    id: str
    service_id: Optional[str] = None
    service_name: str
    service_description: Optional[str] = None
    is_manual_entry: bool
    quantity: int
    unit_price: float
    total_price: float
    vat_rate: float
    vat_amount: float
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class OrderSummary(BaseModel):
    id: str
    order_number: str
    customer_id: str
    status: str
    priority: str
    total_amount: float
    paid_amount: float
    payment_status: str
    pickup_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrderResponse(OrderSummary):
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    pickup_address: Optional[str] = None
    delivery_address: Optional[str] = None
    subtotal: float
    tax_amount: float
    discount_amount: float
    discount_reason: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    special_instructions: Optional[str] = None
    reference_code: Optional[str] = None
    assigned_user_id: Optional[str] = None
    updated_at: Optional[datetime] = None
    items: list[OrderItemResponse] = []


class OrderListResponse(BaseModel):
    items: list[OrderResponse]
    total: int
    limit: int
    offset: int


class OrderStats(BaseModel):
    period_days: int
    total_orders: int
    by_status: dict[str, int]
    total_revenue: float
    paid_revenue: float
    pending_revenue: float
    average_order_value: float
    average_processing_hours: Optional[float] = None
