from datetime import timedelta

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from laundryops import database, rate_limiter
from laundryops.auth import create_access_token
from laundryops.cache import build_stats_key
from laundryops.rate_limiter import check_rate_limit, create_rate_limiter
from tests.conftest import make_order


class FakeRedis:
    def __init__(self, values=None):
        self.values = dict(values or {})
        self.expiry = {}

    def get(self, key):
        return self.values.get(key)

    def ttl(self, key):
        return self.expiry.get(key, 30)

    def set(self, key, value, ex=None):
        self.values[key] = str(value)
        self.expiry[key] = ex


@pytest.fixture(autouse=True)
def clear_counters():
    rate_limiter.memory_cache.clear()
    yield
    rate_limiter.memory_cache.clear()


def test_fixed_window_in_memory():
    results = [check_rate_limit("test:login", 3, 60, None) for _ in range(4)]
    assert [allowed for allowed, _, _ in results] == [True, True, True, False]
    assert results[-1][1] == 3
    assert 0 < results[-1][2] <= 60


def test_window_resumes_from_redis():
    client = FakeRedis({"test:shared": "5"})
    allowed, count, ttl = check_rate_limit("test:shared", 6, 60, client)
    assert allowed is True
    assert count == 6
    assert ttl == 30

    allowed, _, _ = check_rate_limit("test:shared", 6, 60, client)
    assert allowed is False


def test_limiter_dependency_returns_429(monkeypatch):
    monkeypatch.setattr(rate_limiter, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(rate_limiter, "get_redis_client", lambda: None)
    limited = create_rate_limiter(limit=1, window_seconds=60, key_prefix="test_dependency")

    app = FastAPI()

    @app.get("/ping")
    async def ping(_: None = Depends(limited)):
        return {"ok": True}

    client = TestClient(app)
    assert client.get("/ping").status_code == 200
    response = client.get("/ping")
    assert response.status_code == 429
    assert "Retry-After" in response.headers


def test_missing_and_invalid_tokens(client, owner):
    assert client.get("/customers").status_code in (401, 403)
    assert client.get("/customers", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401

    expired = create_access_token(owner, expires_delta=timedelta(minutes=-5))
    response = client.get("/customers", headers={"Authorization": f"Bearer {expired}"})
    assert response.status_code == 401
    assert response.headers.get("X-Token-Expired") == "true"


def test_inactive_user_is_rejected(client, db, owner, headers):
    owner.is_active = False
    db.commit()
    assert client.get("/customers", headers=headers).status_code == 401


def test_health_endpoints(client):
    assert client.get("/").json() == {"message": "LaundryOps API is running"}
    assert client.get("/health").json() == {"status": "healthy"}

    database = client.get("/health/database").json()
    assert database["status"] == "healthy"
    assert database["database"]["connected"] is True

    # Caching is switched off in tests
    assert client.get("/health/cache").json() == {"available": False}


def test_dashboard_stats(client, db, business, headers, customer):
    make_order(db, business, customer, status="READY_FOR_DELIVERY")
    make_order(db, business, customer, number="ORD-20260101-0002", status="CANCELLED")

    stats = client.get("/dashboard/stats", headers=headers).json()
    assert stats["pending_orders"] == 1
    assert stats["ready_for_delivery"] == 1
    assert stats["active_customers"] == 1
    assert stats["vehicles_in_use"] == 0


def test_stats_cache_keys():
    assert build_stats_key("b1", "dashboard", "2026-01-01") == "stats:b1:dashboard:2026-01-01"
    assert build_stats_key("b1", "orders") == "stats:b1:orders"


def test_service_catalogue(client, db, business, headers, customer):
    response = client.post(
        "/services", json={"name": "Halı Yıkama", "category": "CARPET_CLEANING", "base_price": 60, "unit": "m2"}, headers=headers
    )
    assert response.status_code == 201, response.text
    service = response.json()

    assert client.post("/services", json={"name": "halı yıkama"}, headers=headers).status_code == 409
    assert client.post("/services", json={"name": "Ütü", "unit": "box"}, headers=headers).status_code == 422

    listed = client.get("/services", params={"category": "CARPET_CLEANING"}, headers=headers).json()
    assert [s["id"] for s in listed] == [service["id"]]

    client.post(
        "/orders",
        json={"customer_id": customer.id, "items": [{"service_id": service["id"], "quantity": 3}], "send_notification": False},
        headers=headers,
    )
    deleted = client.delete(f"/services/{service['id']}", headers=headers).json()
    assert deleted["deactivated"] is True
    assert client.get(f"/services/{service['id']}", headers=headers).json()["is_active"] is False


class RecordingSession:
    def __init__(self):
        self.calls = []

    def rollback(self):
        self.calls.append("rollback")

    def close(self):
        self.calls.append("close")


def test_get_db_rolls_back_when_endpoint_fails(monkeypatch):
    session = RecordingSession()
    monkeypatch.setattr(database, "SessionLocal", lambda: session)

    dependency = database.get_db()
    assert next(dependency) is session
    with pytest.raises(RuntimeError):
        dependency.throw(RuntimeError("write failed"))

    assert session.calls == ["rollback", "close"]


def test_get_db_closes_without_rollback_on_success(monkeypatch):
    session = RecordingSession()
    monkeypatch.setattr(database, "SessionLocal", lambda: session)

    dependency = database.get_db()
    next(dependency)
    dependency.close()

    assert session.calls == ["close"]
