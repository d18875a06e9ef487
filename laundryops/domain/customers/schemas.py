"""Customer domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.validators import validate_coordinates, validate_email, validate_phone


class CustomerBase(BaseModel):
    email: Optional[str] = None
    whatsapp: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    customer_type: Optional[str] = None
    tax_number: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("whatsapp")
    @classmethod
    def validate_whatsapp(cls, v):
        if v:
            return validate_phone(v)
        return v

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v):
        return validate_email(v)

    @field_validator("customer_type")
    @classmethod
    def validate_customer_type(cls, v):
        if v and v not in ("INDIVIDUAL", "CORPORATE"):
            raise ValueError("customer_type must be INDIVIDUAL or CORPORATE")
        return v

    @model_validator(mode="after")
    def check_coordinates(self):
        validate_coordinates(self.latitude, self.longitude)
        return self


class CustomerCreate(CustomerBase):
    """Schema for creating a new customer"""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: str

    @field_validator("phone")
    @classmethod
    def validate_phone_number(cls, v):
        return validate_phone(v)


class CustomerUpdate(CustomerBase):
    """Schema for updating an existing customer"""

    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = None
    whatsapp_verified: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("phone")
    @classmethod
    def validate_phone_number(cls, v):
        if v:
            return validate_phone(v)
        return v


class CustomerResponse(BaseModel):
    id: str
    first_name: str
    last_name: str
    full_name: str
    phone: str
    whatsapp: Optional[str] = None
    whatsapp_verified: bool
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    customer_type: str
    tax_number: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CustomerListResponse(BaseModel):
    items: list[CustomerResponse]
    total: int
    limit: int
    offset: int


class CustomerStats(BaseModel):
    total_customers: int
    active_customers: int
    inactive_customers: int
    with_whatsapp: int
    with_orders: int
    new_this_month: int
    average_orders_per_customer: float
    by_city: dict[str, int]
