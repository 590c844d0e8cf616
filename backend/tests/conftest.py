"""Shared test configuration and fixtures.

Every test gets a fresh in-memory SQLite database (aiosqlite + StaticPool),
so no external PostgreSQL instance is needed. All Stripe API calls are mocked;
webhook payloads are signed locally with the test webhook secret.
"""

import os

# Settings are read at import time, so the environment is configured first.
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_threadifier")
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_threadifier"
os.environ["STRIPE_PRICE_PROFESSIONAL_MONTHLY"] = "price_pro_monthly"
os.environ["STRIPE_PRICE_PROFESSIONAL_YEARLY"] = "price_pro_yearly"
os.environ["STRIPE_PRICE_TEAM_MONTHLY"] = "price_team_monthly"
os.environ["STRIPE_PRICE_TEAM_YEARLY"] = "price_team_yearly"
os.environ["IDENTITY_TOKEN_KEY"] = "test-identity-key"
os.environ["ADMIN_EMAILS"] = '["admin@threadifier.test"]'

import hashlib  # noqa: E402
import hmac  # noqa: E402
import json  # noqa: E402
import time  # noqa: E402
import uuid  # noqa: E402
from collections.abc import AsyncGenerator  # noqa: E402
from datetime import datetime, timedelta, timezone  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from jose import jwt  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from threadifier.billing.plans import PriceConfig  # noqa: E402
from threadifier.config import settings  # noqa: E402
from threadifier.database import Base, get_db  # noqa: E402
from threadifier.main import app  # noqa: E402
from threadifier.models import User  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def db_engine():
    """Create an in-memory database with all tables."""
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
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to use the test DB session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Users and identity tokens
# ---------------------------------------------------------------------------


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory: insert a user row and return it."""

    async def _make_user(user_id: str | None = None, **fields) -> User:
        user_id = user_id or f"uid-{uuid.uuid4().hex[:8]}"
        fields.setdefault("email", f"{user_id}@test.com")
        user = User(id=user_id, **fields)
        db_session.add(user)
        await db_session.flush()
        return user

    return _make_user


def make_identity_token(uid: str, expires_in: timedelta = timedelta(hours=1), **claims) -> str:
    """Mint an ID token the way the identity provider would."""
    now = datetime.now(timezone.utc)
    payload = {"sub": uid, "iat": now, "exp": now + expires_in, **claims}
    return jwt.encode(payload, settings.identity_token_key, algorithm=settings.identity_token_algorithm)


@pytest.fixture
def auth_headers_for():
    def _headers(uid: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_identity_token(uid)}"}

    return _headers


# ---------------------------------------------------------------------------
# Stripe fakes
# ---------------------------------------------------------------------------


class StripeObj(SimpleNamespace):
    """SimpleNamespace with bracket notation support (like Stripe API objects)."""

    def __getitem__(self, key: str):
        return getattr(self, key)


@pytest.fixture
def price_config() -> PriceConfig:
    return PriceConfig(
        professional=frozenset({"price_pro_monthly", "price_pro_yearly"}),
        team=frozenset({"price_team_monthly", "price_team_yearly"}),
    )


@pytest.fixture
def make_stripe_sub():
    """Factory: fake Stripe Subscription object."""

    def _make(
        price_id: str | None = "price_pro_monthly",
        status: str = "active",
        period_end: int = 1702600000,
        cancel_at_period_end: bool = False,
        sub_id: str = "sub_test_123",
        customer: str = "cus_test_123",
        user_id: str | None = None,
    ) -> StripeObj:
        items = [StripeObj(price=StripeObj(id=price_id), current_period_end=period_end)] if price_id else []
        return StripeObj(
            id=sub_id,
            customer=customer,
            status=status,
            cancel_at_period_end=cancel_at_period_end,
            metadata={"userId": user_id} if user_id else {},
            items=StripeObj(data=items),
        )

    return _make


@pytest.fixture
def make_event():
    """Factory: fake Stripe Event wrapping ``data_object``."""

    def _make(event_type: str, data_object, event_id: str | None = None) -> StripeObj:
        if isinstance(data_object, dict):
            data_object = StripeObj(**data_object)
        return StripeObj(
            type=event_type,
            id=event_id or f"evt_test_{uuid.uuid4().hex[:8]}",
            data=StripeObj(object=data_object),
        )

    return _make


def sign_payload(payload: bytes, secret: str | None = None) -> str:
    """Build a ``stripe-signature`` header using Stripe's v1 HMAC-SHA256 scheme."""
    secret = secret or settings.stripe_webhook_secret
    timestamp = int(time.time())
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def post_webhook(client: AsyncClient):
    """Send a correctly signed Stripe event to the webhook endpoint."""

    async def _post(event: dict):
        payload = json.dumps(event).encode()
        return await client.post(
            "/api/v1/webhooks/stripe",
            content=payload,
            headers={"stripe-signature": sign_payload(payload), "content-type": "application/json"},
        )

    return _post


def stripe_event_payload(event_type: str, data_object: dict, event_id: str | None = None) -> dict:
    """Raw JSON body of a Stripe event, as Stripe would POST it."""
    return {
        "id": event_id or f"evt_{uuid.uuid4().hex[:12]}",
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "livemode": False,
        "api_version": "2025-05-28.basil",
        "data": {"object": data_object},
    }


@pytest.fixture
def event_payload():
    return stripe_event_payload
