"""
WhatsApp Cloud API Models
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from .database import Base
from .models import generate_id


class WhatsAppSettings(Base):
    """Per-business WhatsApp Cloud API credentials and notification switches"""

    __tablename__ = "whatsapp_settings"

    id = Column(String(36), primary_key=True, default=generate_id)
    business_id = Column(String(36), ForeignKey("businesses.id"), unique=True, nullable=False)
    access_token = Column(Text, nullable=True)
    phone_number_id = Column(String(64), nullable=True)
    business_account_id = Column(String(64), nullable=True)
    is_enabled = Column(Boolean, default=False, nullable=False)
    send_order_notifications = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class WhatsAppTemplate(Base):
    __tablename__ = "whatsapp_templates"
    __table_args__ = (UniqueConstraint("business_id", "name", name="uq_whatsapp_template_name"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)  # template name registered with Meta
    display_name = Column(String(255), nullable=True)
    category = Column(String(30), default="UTILITY", nullable=False)  # UTILITY, MARKETING, AUTHENTICATION
    language = Column(String(10), default="tr", nullable=False)
    components = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class WhatsAppMessage(Base):
    """Log of WhatsApp messages sent and received"""

    __tablename__ = "whatsapp_messages"

    id = Column(String(36), primary_key=True, default=generate_id)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=True, index=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=True)
    direction = Column(String(10), default="OUTGOING", nullable=False)  # OUTGOING, INCOMING
    phone = Column(String(50), nullable=False)
    message_type = Column(String(20), default="text", nullable=False)  # text, template
    template_name = Column(String(100), nullable=True)
    content = Column(Text, nullable=True)
    wa_message_id = Column(String(128), nullable=True, index=True)
    status = Column(String(20), default="pending", nullable=False)  # pending, sent, delivered, read, failed, received
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
