import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_laundryops.db")
os.environ.setdefault("DB_POOL_DISABLED", "true")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("PUSH_GATEWAY_URL", "http://push.test/send")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_BACKEND", "cache+memory://")
os.environ.setdefault("ORDER_NUMBER_RETRY_DELAY", "0.01")

import pytest
from httpx import AsyncClient, ASGITransport

from laundryops.main import app
from laundryops.db.session import engine, AsyncSessionLocal
from laundryops.models.base import Base
from laundryops.models import audit, directory, notification, order  # noqa: F401  registers tables
from laundryops.models.directory import Store, Customer, Driver
from laundryops.models.notification import UserPreferences
from laundryops.core.config import settings
from laundryops.core.enums import PrincipalRole
from laundryops.core.rate_limit import rate_limited
from laundryops.core.security import create_access_token
from laundryops.services import tasks

BUSINESS_ID = 1
OTHER_BUSINESS_ID = 2


async def _no_rate_limit():
    return None


@pytest.fixture(autouse=True)
def disable_rate_limit():
    app.dependency_overrides[rate_limited] = _no_rate_limit
    yield
    app.dependency_overrides.pop(rate_limited, None)


class FakePushTask:
    def __init__(self):
        self.payloads = []

    def delay(self, payload):
        self.payloads.append(payload)


@pytest.fixture(autouse=True)
def push_outbox(monkeypatch):
    fake = FakePushTask()
    monkeypatch.setattr(tasks, "dispatch_customer_push", fake)
    return fake.payloads


@pytest.fixture
async def setup_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db_session(setup_db):
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
async def seeded(db_session):
    """Two tenants with stores, customers and drivers; ids are fixed by insertion order."""
    db_session.add_all([
        Store(id=1, business_id=BUSINESS_ID, name="Downtown Cleaners", is_active=True),
        Store(id=2, business_id=BUSINESS_ID, name="Closed Branch", is_active=False),
        Store(id=3, business_id=OTHER_BUSINESS_ID, name="Rival Laundry", is_active=True),
        Customer(id=1, business_id=BUSINESS_ID, full_name="Alice Brown", phone="555-0101",
                 push_token="ExponentPushToken[alice]", push_enabled=True),
        Customer(id=2, business_id=BUSINESS_ID, full_name="Bob Stone", phone="555-0102"),
        Customer(id=3, business_id=OTHER_BUSINESS_ID, full_name="Carol White", phone="555-0103"),
        Driver(id=1, business_id=BUSINESS_ID, full_name="Dan Driver", is_active=True),
        Driver(id=2, business_id=BUSINESS_ID, full_name="Eve Driver", is_active=True),
        Driver(id=3, business_id=BUSINESS_ID, full_name="Frank Retired", is_active=False),
        Driver(id=4, business_id=OTHER_BUSINESS_ID, full_name="Gina Elsewhere", is_active=True),
        UserPreferences(user_id=7, notify_new_orders=True, notify_order_complete=False),
    ])
    await db_session.commit()
    return {"business_id": BUSINESS_ID, "store_id": 1, "customer_id": 1}


@pytest.fixture
async def test_client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def staff_token():
    return create_access_token("staff_1", PrincipalRole.OWNER, BUSINESS_ID, user_id=1, name="Olivia Owner")


@pytest.fixture
def staff_headers(staff_token):
    return auth(staff_token)


@pytest.fixture
def readonly_headers():
    return auth(create_access_token(
        "staff_2", PrincipalRole.STAFF, BUSINESS_ID, user_id=2, can_write=False,
    ))


@pytest.fixture
def other_business_headers():
    return auth(create_access_token("staff_9", PrincipalRole.OWNER, OTHER_BUSINESS_ID, user_id=9))


@pytest.fixture
def super_admin_headers():
    return auth(create_access_token("root", PrincipalRole.OWNER, BUSINESS_ID, user_id=99, is_super_admin=True))


@pytest.fixture
def driver_headers():
    return auth(create_access_token(
        "driver_1", PrincipalRole.DRIVER, BUSINESS_ID, driver_id=1, name="Dan Driver",
    ))


@pytest.fixture
def driver_2_headers():
    return auth(create_access_token(
        "driver_2", PrincipalRole.DRIVER, BUSINESS_ID, driver_id=2, name="Eve Driver",
    ))


@pytest.fixture
def customer_headers():
    return auth(create_access_token(
        "customer_1", PrincipalRole.CUSTOMER, BUSINESS_ID, customer_id=1, name="Alice Brown",
    ))


@pytest.fixture
def other_customer_headers():
    return auth(create_access_token(
        "customer_2", PrincipalRole.CUSTOMER, BUSINESS_ID, customer_id=2, name="Bob Stone",
    ))


@pytest.fixture
def valid_order_data():
    return {
        "store_id": 1,
        "customer_id": 1,
        "priority": "NORMAL",
        "notes": "Handle with care",
        "items": [
            {"item_name": "Shirt", "service_name": "Wash & Iron", "quantity": 3, "unit_price": 50},
            {"item_name": "Suit", "service_name": "Dry Clean", "quantity": 1, "unit_price": 100},
        ],
    }


@pytest.fixture
def create_order_factory(test_client, staff_headers, valid_order_data):
    async def _create_order(**overrides):
        data = {**valid_order_data, **overrides}
        response = await test_client.post("/orders", json=data, headers=staff_headers)
        assert response.status_code == 200, response.text
        return response.json()

    return _create_order


@pytest.fixture
def transition(test_client, staff_headers):
    async def _transition(order_id, expected, target, headers=None, notes=None):
        return await test_client.post(
            f"/orders/{order_id}/status",
            json={"expected_status": expected, "status": target, "notes": notes},
            headers=headers or staff_headers,
        )

    return _transition


@pytest.fixture
def app_settings():
    return settings


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
    config.addinivalue_line(
        "markers", "concurrency: marks tests that race concurrent requests"
    )
    config.addinivalue_line(
        "markers", "notifications: marks tests related to notification emission"
    )
    config.addinivalue_line(
        "markers", "idempotency: marks tests related to idempotency"
    )
