"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool, Pool

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.core.exceptions import UpstreamServiceError
from backend.app.core.identity import issue_token
from backend.app.domain.payments.settlement import (
    IntentHandle, SettlementConfirmation, SETTLEMENT_SUCCEEDED
)
from backend.app.services.payment_gateway import PaymentGateway, get_payment_gateway
from backend.app.services import tracking_cache

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

CUSTOMER_ID = 101
OTHER_CUSTOMER_ID = 202
AGENT_ID = 303
ADMIN_ID = 404


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.broken = False
    
    def _check(self):
        if self.broken:
            raise RedisConnectionError("redis unavailable")
    
    async def ping(self):
        self._check()
        return True
    
    async def get(self, key):
        self._check()
        return self.store.get(key)
        
    async def set(self, key, value, ex=None):
        self._check()
        self.store[key] = value
        return True
    
    async def delete(self, key):
        self._check()
        return 1 if self.store.pop(key, None) is not None else 0


class FakePaymentGateway(PaymentGateway):
    """In-process gateway; intents settle with `next_status` unless overridden per intent."""
    
    method = "card"
    
    def __init__(self):
        self.intents = {}
        self.statuses = {}
        self.next_status = SETTLEMENT_SUCCEEDED
        self.fail = False
    
    async def create_intent(self, intent):
        if self.fail:
            raise UpstreamServiceError("Payment gateway error")
        intent_id = f"pi_test_{len(self.intents) + 1}"
        self.intents[intent_id] = intent
        return IntentHandle(intent_id=intent_id, client_secret=f"{intent_id}_secret")
    
    async def retrieve_confirmation(self, intent_id):
        if self.fail:
            raise UpstreamServiceError("Payment gateway error")
        return SettlementConfirmation(
            intent_id=intent_id,
            status=self.statuses.get(intent_id, self.next_status),
            transaction_id=f"ch_{intent_id}",
            method=self.method,
        )


@pytest.fixture
async def db_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    yield engine
    
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def redis_mock():
    return MockRedis()


@pytest.fixture
def payment_gateway():
    return FakePaymentGateway()


@pytest.fixture(autouse=True)
def apply_overrides(session_factory, redis_mock, payment_gateway, monkeypatch):
    """Point the app at the test database, the mock Redis and the fake gateway."""
    monkeypatch.setattr(tracking_cache, "redis_client", redis_mock)
    
    async def override_get_db():
        async with session_factory() as session:
            yield session
    
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: payment_gateway
    yield
    app.dependency_overrides = {}


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def identity(user_id: int, role: str) -> dict:
    return {"sub": f"user{user_id}", "user_id": user_id, "role": role}


def headers_for(user: dict) -> dict:
    token = issue_token(user["user_id"], user["role"], subject=user["sub"])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer():
    return identity(CUSTOMER_ID, "customer")


@pytest.fixture
def other_customer():
    return identity(OTHER_CUSTOMER_ID, "customer")


@pytest.fixture
def agent():
    return identity(AGENT_ID, "agent")


@pytest.fixture
def admin():
    return identity(ADMIN_ID, "admin")


@pytest.fixture
def customer_headers(customer):
    return headers_for(customer)


@pytest.fixture
def other_customer_headers(other_customer):
    return headers_for(other_customer)


@pytest.fixture
def agent_headers(agent):
    return headers_for(agent)


@pytest.fixture
def admin_headers(admin):
    return headers_for(admin)


@pytest.fixture
def shipment_payload():
    """Factory for a valid create-shipment body."""
    def build(service_class: str = "standard", weight_kg: float = 1.2, declared_value: float = 150):
        return {
            "sender": {
                "name": "Ada Sender",
                "email": "ada@example.com",
                "phone": "+1-555-0100",
                "address": {
                    "street": "1 Market St",
                    "city": "San Francisco",
                    "state": "CA",
                    "postal_code": "94105",
                    "country": "United States",
                },
            },
            "recipient": {
                "name": "Grace Recipient",
                "email": "grace@example.com",
                "phone": "+1-555-0199",
                "address": {
                    "street": "200 Park Ave",
                    "city": "New York",
                    "state": "NY",
                    "postal_code": "10166",
                    "country": "United States",
                },
            },
            "package": {
                "weight_kg": weight_kg,
                "length_cm": 30.0,
                "width_cm": 20.0,
                "height_cm": 15.0,
                "description": "Books",
                "declared_value": declared_value,
            },
            "service_class": service_class,
        }
    return build


@pytest.fixture
async def created_shipment(client, customer_headers, shipment_payload):
    """A standard shipment owned by the customer."""
    response = await client.post("/v1/shipments", json=shipment_payload(), headers=customer_headers)
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def set_status(client, admin_headers):
    """Move a shipment to a status through the admin endpoint."""
    async def move(shipment_id: int, status: str, location: str = "Oakland Hub"):
        response = await client.put(
            f"/v1/admin/shipments/{shipment_id}/status",
            json={"status": status, "location": location, "description": f"Status set to {status}"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        return response.json()
    return move
