"""
WhatsApp Cloud API Service
Sends text and template messages, logs them, and applies webhook status updates
"""

import base64
import hashlib
import hmac
import logging
import re
from datetime import datetime
from typing import Any, Optional

import httpx
from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session

from ..config import (
    SECRET_KEY,
    WHATSAPP_API_BASE_URL,
    WHATSAPP_APP_SECRET,
    WHATSAPP_REQUEST_TIMEOUT,
)
from ..models import Order
from ..models_whatsapp import WhatsAppMessage, WhatsAppSettings

logger = logging.getLogger(__name__)

# Encryption for stored access tokens
cipher_suite = Fernet(base64.urlsafe_b64encode(hashlib.sha256(SECRET_KEY.encode()).digest()))

# Replaced in tests with httpx.MockTransport
HTTP_TRANSPORT: Optional[httpx.AsyncBaseTransport] = None

ORDER_STATUS_TEMPLATES = {
    "CONFIRMED": "order_confirmation",
    "IN_PROGRESS": "order_status_update",
    "READY_FOR_PICKUP": "order_ready",
    "READY_FOR_DELIVERY": "order_ready",
    "OUT_FOR_DELIVERY": "order_delivery",
    "DELIVERED": "order_status_update",
    "COMPLETED": "order_status_update",
}

STATUS_TRANSLATIONS = {
    "PENDING": "Beklemede",
    "CONFIRMED": "Onaylandı",
    "READY_FOR_PICKUP": "Teslim Almaya Hazır",
    "IN_PROGRESS": "İşlemde",
    "READY_FOR_DELIVERY": "Teslimat İçin Hazır",
    "OUT_FOR_DELIVERY": "Yolda",
    "DELIVERED": "Teslim Edildi",
    "COMPLETED": "Tamamlandı",
    "CANCELLED": "İptal Edildi",
}

# Delivery receipts never move a message backwards
STATUS_RANK = {"pending": 0, "sent": 1, "delivered": 2, "read": 3, "failed": 4}


class WhatsAppNotConfigured(Exception):
    """Raised when a business has no usable WhatsApp settings"""

    pass


def encrypt_credential(value: str) -> str:
    return cipher_suite.encrypt(value.encode()).decode()


def decrypt_credential(encrypted_value: str) -> str:
    return cipher_suite.decrypt(encrypted_value.encode()).decode()


def format_phone_number(phone: str) -> str:
    """Cloud API expects digits only, including the country code"""
    return re.sub(r"\D", "", phone or "")


def get_settings(db: Session, business_id: str) -> Optional[WhatsAppSettings]:
    return db.query(WhatsAppSettings).filter(WhatsAppSettings.business_id == business_id).first()


def _load_credentials(db: Session, business_id: str) -> tuple[WhatsAppSettings, str]:
    settings = get_settings(db, business_id)
    if not settings or not settings.is_enabled:
        raise WhatsAppNotConfigured("WhatsApp is not enabled for this business")
    if not settings.access_token or not settings.phone_number_id:
        raise WhatsAppNotConfigured("WhatsApp access token or phone number id is missing")
    try:
        return settings, decrypt_credential(settings.access_token)
    except InvalidToken as e:
        logger.error(f"❌ Failed to decrypt WhatsApp token for business {business_id}")
        raise WhatsAppNotConfigured("Stored WhatsApp credentials are unreadable") from e


def build_text_payload(to_phone: str, body: str) -> dict:
    return {
        "messaging_product": "whatsapp",
        "to": format_phone_number(to_phone),
        "type": "text",
        "text": {"body": body},
    }


def build_template_payload(
    to_phone: str, template_name: str, language: str = "tr", parameters: Optional[list[str]] = None
) -> dict:
    template: dict[str, Any] = {"name": template_name, "language": {"code": language}}
    if parameters:
        template["components"] = [
            {
                "type": "body",
                "parameters": [{"type": "text", "text": str(p)} for p in parameters],
            }
        ]
    return {
        "messaging_product": "whatsapp",
        "to": format_phone_number(to_phone),
        "type": "template",
        "template": template,
    }


def _extract_error(response: httpx.Response) -> str:
    try:
        error = response.json().get("error", {})
        return error.get("message") or f"HTTP {response.status_code}"
    except ValueError:
        return f"HTTP {response.status_code}"


async def send_whatsapp_message(
    db: Session,
    business_id: str,
    to_phone: str,
    text: Optional[str] = None,
    template_name: Optional[str] = None,
    language: str = "tr",
    parameters: Optional[list[str]] = None,
    customer_id: Optional[str] = None,
    order_id: Optional[str] = None,
) -> tuple[bool, Optional[str], WhatsAppMessage]:
    """
    Send a text or template message through the Cloud API

    Every attempt that reaches the API is logged as a WhatsAppMessage.

    Returns:
        Tuple of (success, error_message, logged message)

    Raises:
        WhatsAppNotConfigured: settings missing or disabled
    """
    settings, access_token = _load_credentials(db, business_id)

    if template_name:
        payload = build_template_payload(to_phone, template_name, language, parameters)
        content = " | ".join(str(p) for p in parameters or [])
    else:
        payload = build_text_payload(to_phone, text or "")
        content = text

    message = WhatsAppMessage(
        business_id=business_id,
        customer_id=customer_id,
        order_id=order_id,
        direction="OUTGOING",
        phone=to_phone,
        message_type="template" if template_name else "text",
        template_name=template_name,
        content=content,
        status="pending",
    )

    url = f"{WHATSAPP_API_BASE_URL}/{settings.phone_number_id}/messages"
    logger.info(f"📱 Sending WhatsApp {message.message_type} message to {to_phone}")
    try:
        async with httpx.AsyncClient(timeout=WHATSAPP_REQUEST_TIMEOUT, transport=HTTP_TRANSPORT) as client:
            response = await client.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        if response.status_code in (200, 201):
            messages = response.json().get("messages") or [{}]
            message.wa_message_id = messages[0].get("id")
            message.status = "sent"
            error = None
            logger.info(f"✅ WhatsApp message sent: {message.wa_message_id}")
        else:
            error = _extract_error(response)
            message.status = "failed"
            message.error_message = error
            logger.error(f"❌ WhatsApp API error ({response.status_code}): {error}")
    except httpx.HTTPError as e:
        error = f"WhatsApp API request failed: {e}"
        message.status = "failed"
        message.error_message = error
        logger.error(f"❌ {error}")

    db.add(message)
    db.commit()
    db.refresh(message)
    return message.status == "sent", error, message


async def send_order_status_notification(db: Session, order: Order, status: Optional[str] = None) -> bool:
    """
    Notify the customer about an order status through a WhatsApp template

    Never raises: a failed notification must not fail the order operation.
    """
    status = status or order.status
    template_name = ORDER_STATUS_TEMPLATES.get(status)
    if not template_name:
        return False

    try:
        settings = get_settings(db, order.business_id)
        if not settings or not settings.is_enabled or not settings.send_order_notifications:
            return False

        customer = order.customer
        phone = customer.whatsapp or customer.phone if customer else None
        if not phone:
            return False

        parameters = [
            customer.full_name,
            order.order_number,
            STATUS_TRANSLATIONS.get(status, status),
            f"{order.total_amount:.2f}",
        ]
        success, error, _ = await send_whatsapp_message(
            db,
            order.business_id,
            phone,
            template_name=template_name,
            parameters=parameters,
            customer_id=customer.id,
            order_id=order.id,
        )
        if not success:
            logger.warning(f"⚠️ Order notification for {order.order_number} failed: {error}")
        return success
    except Exception as e:
        db.rollback()
        logger.warning(f"⚠️ Could not send order notification for {order.order_number}: {e}")
        return False


def verify_webhook_signature(body: bytes, signature: Optional[str]) -> bool:
    """Check X-Hub-Signature-256; accepted when no app secret is configured"""
    if not WHATSAPP_APP_SECRET:
        return True
    if not signature:
        return False
    expected = "sha256=" + hmac.new(WHATSAPP_APP_SECRET.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


def process_webhook(db: Session, payload: dict) -> dict:
    """
    Apply a Cloud API webhook delivery

    Status receipts update logged outgoing messages. Incoming messages are
    stored against the business owning the receiving phone number id.
    """
    summary = {"statuses_updated": 0, "messages_received": 0}

    for entry in payload.get("entry", []):
        for change in entry.get("changes", []):
            value = change.get("value", {})
            phone_number_id = value.get("metadata", {}).get("phone_number_id")

            for status in value.get("statuses", []):
                message = (
                    db.query(WhatsAppMessage).filter(WhatsAppMessage.wa_message_id == status.get("id")).first()
                )
                new_status = status.get("status")
                if not message or new_status not in STATUS_RANK:
                    continue
                if STATUS_RANK[new_status] <= STATUS_RANK.get(message.status, 0):
                    continue
                message.status = new_status
                errors = status.get("errors") or []
                if errors:
                    message.error_message = errors[0].get("message") or errors[0].get("title")
                summary["statuses_updated"] += 1

            incoming = value.get("messages", [])
            if not incoming:
                continue
            settings = (
                db.query(WhatsAppSettings)
                .filter(WhatsAppSettings.phone_number_id == phone_number_id)
                .first()
            )
            if not settings:
                logger.warning(f"⚠️ Webhook for unknown phone number id: {phone_number_id}")
                continue

            seen: set[str] = set()
            for item in incoming:
                wa_message_id = item.get("id")
                if wa_message_id and (wa_message_id in seen or _is_stored(db, settings.business_id, wa_message_id)):
                    # Meta retries deliveries it considers unacknowledged
                    logger.debug(f"Skipping duplicate WhatsApp message {wa_message_id}")
                    continue
                if wa_message_id:
                    seen.add(wa_message_id)
                received = WhatsAppMessage(
                    business_id=settings.business_id,
                    customer_id=_find_customer_id(db, settings.business_id, item.get("from")),
                    direction="INCOMING",
                    phone=f"+{item.get('from', '')}",
                    message_type=item.get("type", "text"),
                    content=(item.get("text") or {}).get("body"),
                    wa_message_id=wa_message_id,
                    status="received",
                )
                if item.get("timestamp"):
                    received.created_at = datetime.utcfromtimestamp(int(item["timestamp"]))
                db.add(received)
                summary["messages_received"] += 1

    db.commit()
    logger.info(f"📊 WhatsApp webhook processed: {summary}")
    return summary


def _is_stored(db: Session, business_id: str, wa_message_id: str) -> bool:
    return (
        db.query(WhatsAppMessage.id)
        .filter(
            WhatsAppMessage.business_id == business_id,
            WhatsAppMessage.wa_message_id == wa_message_id,
        )
        .first()
        is not None
    )


def _find_customer_id(db: Session, business_id: str, wa_id: Optional[str]) -> Optional[str]:
    from ..models import Customer

    if not wa_id:
        return None
    phone = f"+{wa_id}"
    customer = (
        db.query(Customer)
        .filter(
            Customer.business_id == business_id,
            (Customer.whatsapp == phone) | (Customer.phone == phone),
        )
        .first()
    )
    return customer.id if customer else None
