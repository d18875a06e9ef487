"""
WhatsApp Routes

Cloud API settings, message templates, outbound messages and the Meta webhook.
"""

import json
import logging
from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_roles
from ..config import WHATSAPP_WEBHOOK_VERIFY_TOKEN
from ..database import get_db
from ..models import Customer, User
from ..models_whatsapp import WhatsAppMessage, WhatsAppSettings, WhatsAppTemplate
from ..rate_limiter import create_rate_limiter
from ..services.whatsapp_service import (
    WhatsAppNotConfigured,
    encrypt_credential,
    get_settings,
    process_webhook,
    send_whatsapp_message,
    verify_webhook_signature,
)
from ..shared.validators import validate_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/whatsapp", tags=["WhatsApp"])

rate_limit_send = create_rate_limiter(limit=60, window_seconds=60, key_prefix="whatsapp_send")


# Schemas
class WhatsAppSettingsUpdate(BaseModel):
    access_token: Optional[str] = Field(None, description="Stored encrypted; omit to keep the current token")
    phone_number_id: Optional[str] = None
    business_account_id: Optional[str] = None
    is_enabled: Optional[bool] = None
    send_order_notifications: Optional[bool] = None


class WhatsAppSettingsResponse(BaseModel):
    phone_number_id: Optional[str] = None
    business_account_id: Optional[str] = None
    is_enabled: bool = False
    send_order_notifications: bool = True
    has_access_token: bool = False
    updated_at: Optional[datetime] = None


class TemplateUpsert(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, pattern="^[a-z0-9_]+$")
    display_name: Optional[str] = None
    category: str = Field("UTILITY", pattern="^(UTILITY|MARKETING|AUTHENTICATION)$")
    language: str = "tr"
    components: Optional[List[dict[str, Any]]] = None
    is_active: bool = True


class TemplateResponse(BaseModel):
    id: str
    name: str
    display_name: Optional[str]
    category: str
    language: str
    components: Optional[List[dict[str, Any]]]
    is_active: bool

    class Config:
        from_attributes = True


class SendMessageRequest(BaseModel):
    customer_id: Optional[str] = None
    phone: Optional[str] = None
    order_id: Optional[str] = None
    text: Optional[str] = Field(None, max_length=4096)
    template_name: Optional[str] = None
    language: str = "tr"
    parameters: List[str] = []

    @model_validator(mode="after")
    def check_target_and_body(self):
        if not self.customer_id and not self.phone:
            raise ValueError("Provide customer_id or phone")
        if not self.text and not self.template_name:
            raise ValueError("Provide text or template_name")
        if self.phone:
            self.phone = validate_phone(self.phone)
        return self


class MessageResponse(BaseModel):
    id: str
    customer_id: Optional[str]
    order_id: Optional[str]
    direction: str
    phone: str
    message_type: str
    template_name: Optional[str]
    content: Optional[str]
    wa_message_id: Optional[str]
    status: str
    error_message: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


def _settings_response(settings: Optional[WhatsAppSettings]) -> WhatsAppSettingsResponse:
    if not settings:
        return WhatsAppSettingsResponse()
    return WhatsAppSettingsResponse(
        phone_number_id=settings.phone_number_id,
        business_account_id=settings.business_account_id,
        is_enabled=settings.is_enabled,
        send_order_notifications=settings.send_order_notifications,
        has_access_token=bool(settings.access_token),
        updated_at=settings.updated_at,
    )


# ============================================================================
# SETTINGS
# ============================================================================


@router.get("/settings", response_model=WhatsAppSettingsResponse)
async def get_whatsapp_settings(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """The access token itself is never returned"""
    return _settings_response(get_settings(db, current_user.business_id))


@router.put("/settings", response_model=WhatsAppSettingsResponse)
async def update_whatsapp_settings(
    data: WhatsAppSettingsUpdate,
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    db: Session = Depends(get_db),
):
    settings = get_settings(db, current_user.business_id)
    if not settings:
        settings = WhatsAppSettings(business_id=current_user.business_id)
        db.add(settings)

    updates = data.model_dump(exclude_unset=True)
    token = updates.pop("access_token", None)
    if token:
        settings.access_token = encrypt_credential(token)
    for key, value in updates.items():
        if value is not None:
            setattr(settings, key, value)

    if settings.is_enabled and (not settings.access_token or not settings.phone_number_id):
        db.rollback()
        raise HTTPException(
            status_code=400, detail="An access token and phone number id are required to enable WhatsApp"
        )

    db.commit()
    db.refresh(settings)
    logger.info(f"✅ WhatsApp settings updated for business {current_user.business_id}")
    return _settings_response(settings)


# ============================================================================
# TEMPLATES
# ============================================================================


@router.get("/templates", response_model=List[TemplateResponse])
async def list_templates(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return (
        db.query(WhatsAppTemplate)
        .filter(WhatsAppTemplate.business_id == current_user.business_id)
        .order_by(WhatsAppTemplate.name.asc())
        .all()
    )


@router.put("/templates", response_model=TemplateResponse)
async def upsert_template(
    data: TemplateUpsert,
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    db: Session = Depends(get_db),
):
    """Create a template or update the one with the same name"""
    template = (
        db.query(WhatsAppTemplate)
        .filter(
            WhatsAppTemplate.business_id == current_user.business_id,
            WhatsAppTemplate.name == data.name,
        )
        .first()
    )
    if not template:
        template = WhatsAppTemplate(business_id=current_user.business_id, name=data.name)
        db.add(template)

    for key, value in data.model_dump(exclude={"name"}).items():
        setattr(template, key, value)

    db.commit()
    db.refresh(template)
    return template


@router.delete("/templates/{template_id}")
async def delete_template(
    template_id: str,
    current_user: User = Depends(require_roles("OWNER", "MANAGER")),
    db: Session = Depends(get_db),
):
    template = (
        db.query(WhatsAppTemplate)
        .filter(
            WhatsAppTemplate.id == template_id,
            WhatsAppTemplate.business_id == current_user.business_id,
        )
        .first()
    )
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")

    db.delete(template)
    db.commit()
    return {"message": "Template deleted successfully"}


# ============================================================================
# MESSAGES
# ============================================================================


@router.post("/send", response_model=MessageResponse)
async def send_message(
    data: SendMessageRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_send),
):
    """Send a text or template message to a customer or a phone number"""
    phone = data.phone
    customer_id = None
    if data.customer_id:
        customer = (
            db.query(Customer)
            .filter(Customer.id == data.customer_id, Customer.business_id == current_user.business_id)
            .first()
        )
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        customer_id = customer.id
        phone = phone or customer.whatsapp or customer.phone

    try:
        success, error, message = await send_whatsapp_message(
            db,
            current_user.business_id,
            phone,
            text=data.text,
            template_name=data.template_name,
            language=data.language,
            parameters=data.parameters,
            customer_id=customer_id,
            order_id=data.order_id,
        )
    except WhatsAppNotConfigured as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not success:
        raise HTTPException(
            status_code=502,
            detail={"message": "WhatsApp API rejected the message", "error": error, "message_id": message.id},
        )
    return message


@router.get("/messages", response_model=List[MessageResponse])
async def list_messages(
    customer_id: Optional[str] = Query(None),
    order_id: Optional[str] = Query(None),
    direction: Optional[str] = Query(None, pattern="^(OUTGOING|INCOMING)$"),
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(WhatsAppMessage).filter(WhatsAppMessage.business_id == current_user.business_id)
    if customer_id:
        query = query.filter(WhatsAppMessage.customer_id == customer_id)
    if order_id:
        query = query.filter(WhatsAppMessage.order_id == order_id)
    if direction:
        query = query.filter(WhatsAppMessage.direction == direction)
    if status:
        query = query.filter(WhatsAppMessage.status == status)
    return query.order_by(WhatsAppMessage.created_at.desc()).offset(offset).limit(limit).all()


# ============================================================================
# WEBHOOK
# ============================================================================


@router.get("/webhook", response_class=PlainTextResponse)
async def verify_webhook(
    mode: Optional[str] = Query(None, alias="hub.mode"),
    token: Optional[str] = Query(None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(None, alias="hub.challenge"),
):
    """Meta subscription handshake: echo the challenge when the verify token matches"""
    if mode == "subscribe" and WHATSAPP_WEBHOOK_VERIFY_TOKEN and token == WHATSAPP_WEBHOOK_VERIFY_TOKEN:
        logger.info("✅ WhatsApp webhook verified")
        return challenge or ""
    logger.warning("⚠️ WhatsApp webhook verification failed")
    raise HTTPException(status_code=403, detail="Webhook verification failed")


@router.post("/webhook")
async def receive_webhook(request: Request, db: Session = Depends(get_db)):
    body = await request.body()
    if not verify_webhook_signature(body, request.headers.get("X-Hub-Signature-256")):
        logger.warning("⚠️ WhatsApp webhook with invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    return process_webhook(db, payload)
