import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["CACHE_ENABLED"] = "false"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ["WHATSAPP_WEBHOOK_VERIFY_TOKEN"] = "verify-me"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from laundryops.auth import create_access_token  # noqa: E402
from laundryops.database import Base, SessionLocal, engine  # noqa: E402
from laundryops.main import app  # noqa: E402
from laundryops.models import Business, Customer, Order, OrderItem, User  # noqa: E402
from laundryops.models_routing import Vehicle  # noqa: E402


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def business(db):
    business = Business(name="Temiz Kuru Temizleme", city="Istanbul")
    db.add(business)
    db.commit()
    db.refresh(business)
    return business


def make_user(db, business, role="OWNER", email=None):
    user = User(
        business_id=business.id,
        email=email or f"{role.lower()}@example.com",
        first_name=role.title(),
        last_name="User",
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def owner(db, business):
    return make_user(db, business, "OWNER")


@pytest.fixture
def driver(db, business):
    return make_user(db, business, "DRIVER")


@pytest.fixture
def headers(owner):
    return auth_headers(owner)


@pytest.fixture
def driver_headers(driver):
    return auth_headers(driver)


def make_customer(db, business, phone="+905321112233", **overrides):
    values = {
        "business_id": business.id,
        "first_name": "Ayşe",
        "last_name": "Yılmaz",
        "phone": phone,
        "address": "Bağdat Caddesi 10, Kadıköy, Istanbul",
        "city": "Istanbul",
        "district": "Kadıköy",
        "latitude": 40.9900,
        "longitude": 29.0300,
    }
    values.update(overrides)
    customer = Customer(**values)
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


@pytest.fixture
def customer(db, business):
    return make_customer(db, business)


def make_order(db, business, customer, number="ORD-20260101-0001", status="CONFIRMED", quantity=2, **overrides):
    values = {
        "business_id": business.id,
        "customer_id": customer.id,
        "order_number": number,
        "status": status,
        "pickup_address": customer.address,
        "delivery_address": customer.address,
        "subtotal": 100.0,
        "tax_amount": 18.0,
        "total_amount": 118.0,
    }
    values.update(overrides)
    order = Order(**values)
    order.items = [
        OrderItem(
            service_name="Gömlek Yıkama",
            quantity=quantity,
            unit_price=50.0,
            total_price=100.0,
            vat_rate=18.0,
            vat_amount=18.0,
        )
    ]
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


@pytest.fixture
def order(db, business, customer):
    return make_order(db, business, customer)


def make_vehicle(db, business, plate="34ABC123", **overrides):
    values = {
        "business_id": business.id,
        "plate_number": plate,
        "brand": "Ford",
        "model": "Transit",
        "max_weight_kg": 500.0,
        "max_item_count": 200,
    }
    values.update(overrides)
    vehicle = Vehicle(**values)
    db.add(vehicle)
    db.commit()
    db.refresh(vehicle)
    return vehicle


@pytest.fixture
def vehicle(db, business):
    return make_vehicle(db, business)
