import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_id():
    """Generate a string UUID primary key"""
    return str(uuid.uuid4())


class Business(Base):
    __tablename__ = "businesses"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    business_type = Column(String(50), default="LAUNDRY", nullable=False)  # see BusinessType
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    city = Column(String(100), nullable=True)
    district = Column(String(100), nullable=True)
    latitude = Column(Float, nullable=True)  # Depot location for route planning
    longitude = Column(Float, nullable=True)
    tax_number = Column(String(50), nullable=True)
    tax_office = Column(String(100), nullable=True)
    plan = Column(String(20), default="FREE", nullable=False)  # FREE, PRO
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    users = relationship("User", back_populates="business")
    customers = relationship("Customer", back_populates="business")


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), default="EMPLOYEE", nullable=False)  # OWNER, MANAGER, EMPLOYEE, DRIVER
    is_active = Column(Boolean, default=True, nullable=False)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    business = relationship("Business", back_populates="users")

    @property
    def full_name(self):
        return " ".join(part for part in (self.first_name, self.last_name) if part) or self.email


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (UniqueConstraint("business_id", "phone", name="uq_customer_business_phone"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(50), nullable=False)  # E.164
    whatsapp = Column(String(50), nullable=True)  # E.164, defaults to phone
    whatsapp_verified = Column(Boolean, default=False, nullable=False)
    email = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)
    city = Column(String(100), nullable=True)
    district = Column(String(100), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    customer_type = Column(String(20), default="INDIVIDUAL", nullable=False)  # INDIVIDUAL, CORPORATE
    tax_number = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    business = relationship("Business", back_populates="customers")
    orders = relationship("Order", back_populates="customer")

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()


class Service(Base):
    __tablename__ = "services"
    __table_args__ = (UniqueConstraint("business_id", "name", name="uq_service_business_name"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), default="LAUNDRY", nullable=False)  # see ServiceCategory
    base_price = Column(Float, default=0.0, nullable=False)
    unit = Column(String(20), default="piece", nullable=False)  # piece, kg, m2, hour
    estimated_duration_hours = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (UniqueConstraint("business_id", "order_number", name="uq_order_business_number"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False, index=True)
    assigned_user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    order_number = Column(String(30), nullable=False, index=True)
    status = Column(String(30), default="PENDING", nullable=False, index=True)  # see OrderStatus
    priority = Column(String(10), default="NORMAL", nullable=False)  # LOW, NORMAL, HIGH, URGENT

    pickup_address = Column(Text, nullable=True)
    pickup_date = Column(DateTime, nullable=True)
    delivery_address = Column(Text, nullable=True)
    delivery_date = Column(DateTime, nullable=True)

    subtotal = Column(Float, default=0.0, nullable=False)
    tax_amount = Column(Float, default=0.0, nullable=False)
    discount_amount = Column(Float, default=0.0, nullable=False)
    discount_reason = Column(String(255), nullable=True)
    total_amount = Column(Float, default=0.0, nullable=False)
    paid_amount = Column(Float, default=0.0, nullable=False)
    payment_status = Column(String(20), default="PENDING", nullable=False)  # see PaymentStatus
    payment_method = Column(String(20), nullable=True)  # CASH, CREDIT_CARD, BANK_TRANSFER, MOBILE_PAYMENT

    notes = Column(Text, nullable=True)
    special_instructions = Column(Text, nullable=True)
    reference_code = Column(String(100), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), index=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")

    @property
    def customer_name(self):
        return self.customer.full_name if self.customer else None

    @property
    def customer_phone(self):
        return self.customer.phone if self.customer else None

    @property
    def item_count(self):
        return sum(item.quantity for item in self.items)


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=generate_id)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=True)  # null for manual entries
    service_name = Column(String(255), nullable=False)
    service_description = Column(Text, nullable=True)
    is_manual_entry = Column(Boolean, default=False, nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    unit_price = Column(Float, default=0.0, nullable=False)
    total_price = Column(Float, default=0.0, nullable=False)
    vat_rate = Column(Float, default=0.0, nullable=False)
    vat_amount = Column(Float, default=0.0, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    order = relationship("Order", back_populates="items")
