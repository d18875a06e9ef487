"""
Invoice Models for Order Billing
"""

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .models import generate_id


class Invoice(Base):
    """Invoice issued for a single order"""

    __tablename__ = "invoices"
    __table_args__ = (UniqueConstraint("business_id", "invoice_number", name="uq_invoice_business_number"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    order_id = Column(String(36), ForeignKey("orders.id"), unique=True, nullable=False)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False, index=True)

    invoice_number = Column(String(30), nullable=False, index=True)  # INV<year><6 digits>
    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    status = Column(String(20), default="DRAFT", nullable=False)  # DRAFT, SENT, PAID, OVERDUE, CANCELLED, REFUNDED

    # Customer snapshot at time of issue
    customer_name = Column(String(255), nullable=False)
    customer_phone = Column(String(50), nullable=True)
    customer_email = Column(String(255), nullable=True)
    customer_address = Column(Text, nullable=True)
    customer_tax_number = Column(String(50), nullable=True)

    currency = Column(String(3), default="TRY", nullable=False)
    subtotal = Column(Float, default=0.0, nullable=False)
    discount_amount = Column(Float, default=0.0, nullable=False)
    tax_amount = Column(Float, default=0.0, nullable=False)
    total_amount = Column(Float, default=0.0, nullable=False)

    payment_status = Column(String(20), default="PENDING", nullable=False)
    payment_method = Column(String(20), nullable=True)
    paid_at = Column(DateTime, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    items = relationship("InvoiceItem", back_populates="invoice", cascade="all, delete-orphan")


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(String(36), primary_key=True, default=generate_id)
    invoice_id = Column(String(36), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    description = Column(String(255), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    unit_price = Column(Float, default=0.0, nullable=False)
    line_total = Column(Float, default=0.0, nullable=False)  # excluding VAT
    vat_rate = Column(Float, default=0.0, nullable=False)
    vat_amount = Column(Float, default=0.0, nullable=False)

    invoice = relationship("Invoice", back_populates="items")
