import hashlib
import hmac
import json

import httpx
import pytest

from laundryops.models_whatsapp import WhatsAppMessage, WhatsAppSettings
from laundryops.services import whatsapp_service
from laundryops.services.whatsapp_service import decrypt_credential, encrypt_credential


@pytest.fixture
def sent_requests(monkeypatch):
    """Capture Cloud API calls and answer them like Meta does"""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"messages": [{"id": f"wamid.{len(requests)}"}]})

    monkeypatch.setattr(whatsapp_service, "HTTP_TRANSPORT", httpx.MockTransport(handler))
    return requests


@pytest.fixture
def enabled(db, business):
    settings = WhatsAppSettings(
        business_id=business.id,
        access_token=encrypt_credential("meta-token"),
        phone_number_id="1098765",
        is_enabled=True,
    )
    db.add(settings)
    db.commit()
    return settings


def test_credentials_round_trip():
    encrypted = encrypt_credential("meta-token")
    assert encrypted != "meta-token"
    assert decrypt_credential(encrypted) == "meta-token"


def test_settings_never_expose_token(client, db, business, headers):
    response = client.put(
        "/whatsapp/settings",
        json={"access_token": "meta-token", "phone_number_id": "1098765", "is_enabled": True},
        headers=headers,
    )
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["has_access_token"] is True
    assert "access_token" not in data

    stored = db.query(WhatsAppSettings).filter(WhatsAppSettings.business_id == business.id).one()
    assert stored.access_token != "meta-token"


def test_enabling_requires_credentials(client, headers):
    response = client.put("/whatsapp/settings", json={"is_enabled": True}, headers=headers)
    assert response.status_code == 400
    assert client.get("/whatsapp/settings", headers=headers).json()["is_enabled"] is False


def test_send_text_to_customer(client, headers, customer, enabled, sent_requests):
    response = client.post("/whatsapp/send", json={"customer_id": customer.id, "text": "Merhaba"}, headers=headers)
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["status"] == "sent"
    assert data["wa_message_id"] == "wamid.1"

    request = sent_requests[0]
    assert request.url.path.endswith("/1098765/messages")
    assert request.headers["Authorization"] == "Bearer meta-token"
    body = json.loads(request.content)
    assert body["to"] == "905321112233"
    assert body["text"] == {"body": "Merhaba"}


def test_send_without_settings(client, headers, customer):
    response = client.post("/whatsapp/send", json={"customer_id": customer.id, "text": "Merhaba"}, headers=headers)
    assert response.status_code == 400


def test_send_requires_target_and_body(client, headers):
    assert client.post("/whatsapp/send", json={"text": "Merhaba"}, headers=headers).status_code == 422
    assert client.post("/whatsapp/send", json={"phone": "+905321112233"}, headers=headers).status_code == 422


def test_api_error_is_logged(client, db, headers, enabled, monkeypatch):
    def handler(request):
        return httpx.Response(400, json={"error": {"message": "Invalid parameter"}})

    monkeypatch.setattr(whatsapp_service, "HTTP_TRANSPORT", httpx.MockTransport(handler))
    response = client.post(
        "/whatsapp/send", json={"phone": "+905321112233", "template_name": "hello_world"}, headers=headers
    )
    assert response.status_code == 502
    assert response.json()["detail"]["error"] == "Invalid parameter"

    message = db.query(WhatsAppMessage).one()
    assert message.status == "failed"
    assert message.error_message == "Invalid parameter"


def test_order_creation_sends_confirmation(client, headers, customer, enabled, sent_requests):
    response = client.post(
        "/orders",
        json={"customer_id": customer.id, "items": [{"service_name": "Takım Elbise", "unit_price": 250}]},
        headers=headers,
    )
    assert response.status_code == 201, response.text

    body = json.loads(sent_requests[0].content)
    assert body["template"]["name"] == "order_confirmation"
    parameters = [p["text"] for p in body["template"]["components"][0]["parameters"]]
    assert parameters[0] == "Ayşe Yılmaz"
    assert parameters[1] == response.json()["order_number"]
    assert parameters[2] == "Onaylandı"

    messages = client.get("/whatsapp/messages", params={"order_id": response.json()["id"]}, headers=headers).json()
    assert len(messages) == 1


def test_notification_failure_does_not_fail_order(client, headers, customer, enabled, monkeypatch):
    def handler(request):
        raise httpx.ConnectError("unreachable")

    monkeypatch.setattr(whatsapp_service, "HTTP_TRANSPORT", httpx.MockTransport(handler))
    response = client.post(
        "/orders",
        json={"customer_id": customer.id, "items": [{"service_name": "Takım Elbise", "unit_price": 250}]},
        headers=headers,
    )
    assert response.status_code == 201


def test_templates_upsert_and_delete(client, headers):
    payload = {"name": "order_ready", "display_name": "Sipariş hazır", "components": [{"type": "BODY"}]}
    created = client.put("/whatsapp/templates", json=payload, headers=headers).json()

    payload["display_name"] = "Siparişiniz hazır"
    updated = client.put("/whatsapp/templates", json=payload, headers=headers).json()
    assert updated["id"] == created["id"]
    assert updated["display_name"] == "Siparişiniz hazır"

    assert client.put("/whatsapp/templates", json={"name": "Bad Name"}, headers=headers).status_code == 422
    assert client.delete(f"/whatsapp/templates/{created['id']}", headers=headers).status_code == 200
    assert client.get("/whatsapp/templates", headers=headers).json() == []


def test_webhook_verification(client):
    params = {"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "1158201444"}
    response = client.get("/whatsapp/webhook", params=params)
    assert response.status_code == 200
    assert response.text == "1158201444"

    params["hub.verify_token"] = "wrong"
    assert client.get("/whatsapp/webhook", params=params).status_code == 403


def _webhook(phone_number_id, statuses=(), messages=()):
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "changes": [
                    {
                        "value": {
                            "metadata": {"phone_number_id": phone_number_id},
                            "statuses": list(statuses),
                            "messages": list(messages),
                        }
                    }
                ]
            }
        ],
    }


def test_webhook_status_receipts_never_go_backwards(client, db, business, enabled):
    db.add(
        WhatsAppMessage(
            business_id=business.id,
            direction="OUTGOING",
            phone="+905321112233",
            message_type="text",
            wa_message_id="wamid.1",
            status="sent",
        )
    )
    db.commit()

    payload = _webhook("1098765", statuses=[{"id": "wamid.1", "status": "read"}, {"id": "wamid.1", "status": "delivered"}])
    response = client.post("/whatsapp/webhook", json=payload)
    assert response.json() == {"statuses_updated": 1, "messages_received": 0}

    db.expire_all()
    assert db.query(WhatsAppMessage).one().status == "read"


def test_webhook_stores_incoming_messages(client, db, customer, enabled):
    incoming = {"from": "905321112233", "id": "wamid.in", "timestamp": "1767225600", "type": "text", "text": {"body": "Siparişim ne zaman hazır?"}}
    response = client.post("/whatsapp/webhook", json=_webhook("1098765", messages=[incoming]))
    assert response.json()["messages_received"] == 1

    message = db.query(WhatsAppMessage).one()
    assert message.direction == "INCOMING"
    assert message.customer_id == customer.id
    assert message.status == "received"

    unknown = client.post("/whatsapp/webhook", json=_webhook("999", messages=[incoming]))
    assert unknown.json()["messages_received"] == 0


def test_webhook_rejects_invalid_json(client):
    response = client.post("/whatsapp/webhook", content=b"not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400


def test_webhook_signature(monkeypatch):
    monkeypatch.setattr(whatsapp_service, "WHATSAPP_APP_SECRET", "app-secret")
    body = b'{"entry": []}'
    signature = "sha256=" + hmac.new(b"app-secret", body, hashlib.sha256).hexdigest()

    assert whatsapp_service.verify_webhook_signature(body, signature) is True
    assert whatsapp_service.verify_webhook_signature(body, "sha256=bad") is False
    assert whatsapp_service.verify_webhook_signature(body, None) is False


def test_webhook_ignores_redelivered_messages(client, db, customer, enabled):
    incoming = {"from": "905321112233", "id": "wamid.in", "type": "text", "text": {"body": "Merhaba"}}

    first = client.post("/whatsapp/webhook", json=_webhook("1098765", messages=[incoming, incoming]))
    retry = client.post("/whatsapp/webhook", json=_webhook("1098765", messages=[incoming]))

    assert first.json()["messages_received"] == 1
    assert retry.json()["messages_received"] == 0
    assert db.query(WhatsAppMessage).filter(WhatsAppMessage.wa_message_id == "wamid.in").count() == 1
