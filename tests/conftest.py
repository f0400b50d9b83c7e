"""Shared pytest fixtures for testing."""

import hashlib
import hmac
import json
import os
import time
from typing import AsyncGenerator, Callable, List

# Set test environment before the application settings are imported
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["CACHE_ENABLED"] = "false"
os.environ["LOG_TO_FILE"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["API_KEY"] = "test-api-key"
os.environ["ENCRYPTION_MASTER_KEY"] = "test-master-key-with-at-least-32-characters"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from eventrelay.database.base import Base
from eventrelay.database.connection import build_sessionmaker, get_db
from eventrelay.models import *  # noqa: F401,F403
from eventrelay.services.destination_registry import destination_registry
from eventrelay.services.event_router import event_router
from eventrelay.services.inbound_webhook_service import inbound_webhook_service
from eventrelay.services.webhook_forwarder import webhook_forwarder

API_KEY = os.environ["API_KEY"]
STRIPE_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def db_engine():
    """In-memory SQLite shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_sessionmaker(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_live_state():
    """Registry and router are process-wide; start every test empty."""
    destination_registry.clear()
    event_router.routes = []
    event_router.bound_destinations = set()
    event_router.initialized = False
    yield
    destination_registry.clear()
    event_router.routes = []
    event_router.bound_destinations = set()
    event_router.initialized = False


class OutboundRecorder:
    """httpx.MockTransport handler that records every outbound request."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.responder: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(
            200, json={"ok": True}
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        return self.responder(request)

    def to(self, url: str) -> List[httpx.Request]:
        return [request for request in self.requests if str(request.url) == url]


@pytest.fixture
def outbound(monkeypatch) -> OutboundRecorder:
    recorder = OutboundRecorder()
    monkeypatch.setattr(webhook_forwarder, "transport", httpx.MockTransport(recorder))
    return recorder


@pytest.fixture
def wired_services(monkeypatch, session_factory):
    """Point the module-level services at the test database."""
    monkeypatch.setattr(event_router, "session_factory", session_factory)
    monkeypatch.setattr(inbound_webhook_service, "session_factory", session_factory)
    return session_factory


# =============================================================================
# API Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def app(wired_services, outbound):
    from eventrelay.main import app as fastapi_app

    async def override_get_db():
        async with wired_services() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Authenticated client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-API-Key": API_KEY},
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def anonymous_client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# =============================================================================
# Helpers
# =============================================================================


def stripe_signature(payload: bytes, secret: str = STRIPE_SECRET, timestamp: int = None) -> str:
    """Build a ``Stripe-Signature`` header the way Stripe signs deliveries."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def stripe_event(event_id: str = "evt_1", event_type: str = "payment_intent.succeeded") -> bytes:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": 1704067200,
        "api_version": "2023-10-16",
        "data": {"object": {"id": "pi_1", "object": "payment_intent", "amount": 500, "currency": "usd"}},
    }).encode("utf-8")


@pytest.fixture
def sign_stripe():
    return stripe_signature


@pytest.fixture
def make_stripe_event():
    return stripe_event
