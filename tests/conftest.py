"""
Test configuration and shared fixtures.

Uses SQLite in-memory database for fast, isolated tests. Stripe and RabbitMQ
are replaced by mocks of the gateway and publisher.
"""
import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from invoice_service.models.base import Base
from invoice_service.models.enums import InvoiceStatus, PaymentKind
from invoice_service.models.invoice import Invoice
from invoice_service.services.event_publisher import EventPublisher
from invoice_service.services.stripe_gateway import (
    StripeCustomer,
    StripeGateway,
    StripeInvoice,
    StripePaymentIntent,
    StripePrice,
    StripeSubscription,
)

# SQLite async engine for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
)

TestingSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

WEBHOOK_SECRET = "whsec_test"

# Unit amounts for the prices the gateway mock knows about
PRICES = {
    "price_basic": 500,
    "price_pro": 1500,
    "price_free": None,
}


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables and provide a test database session."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestingSessionLocal() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def mock_gateway() -> MagicMock:
    """Stripe gateway mock configured for successful flows."""
    gateway = MagicMock(spec=StripeGateway)

    customer = StripeCustomer(id="cus_123", email="customer@example.com")
    gateway.create_customer.return_value = customer
    gateway.find_or_create_customer_by_email.return_value = customer

    gateway.create_subscription.return_value = StripeSubscription(
        id="sub_123",
        status="incomplete",
        latest_invoice=StripeInvoice(
            id="in_123",
            status="open",
            payment_intent=StripePaymentIntent(
                id="pi_sub_123",
                status="requires_confirmation",
                customer="cus_123",
                invoice="in_123",
            ),
        ),
    )
    gateway.confirm_payment_intent.return_value = StripePaymentIntent(
        id="pi_sub_123",
        status="succeeded",
        customer="cus_123",
        invoice="in_123",
    )
    gateway.create_payment_intent.return_value = StripePaymentIntent(
        id="pi_one_123",
        status="succeeded",
        amount=2000,
        customer="cus_123",
    )
    gateway.get_price.side_effect = lambda price_id: StripePrice(
        id=price_id, unit_amount=PRICES.get(price_id)
    )
    return gateway


@pytest.fixture
def mock_publisher() -> MagicMock:
    """RabbitMQ publisher mock; inspect publish_raw / publish_enveloped calls."""
    return MagicMock(spec=EventPublisher)


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    mock_gateway: MagicMock,
    mock_publisher: MagicMock,
) -> AsyncGenerator[AsyncClient, None]:
    """Test HTTP client with overridden database, Stripe, queue and lock dependencies."""
    from invoice_service.api.deps import (
        get_event_publisher,
        get_stripe_gateway,
        get_webhook_lock,
    )
    from invoice_service.database import get_async_session
    from invoice_service.main import app

    async def override_get_async_session():
        yield db_session

    async def override_get_webhook_lock():
        return None

    app.dependency_overrides[get_async_session] = override_get_async_session
    app.dependency_overrides[get_stripe_gateway] = lambda: mock_gateway
    app.dependency_overrides[get_event_publisher] = lambda: mock_publisher
    app.dependency_overrides[get_webhook_lock] = override_get_webhook_lock

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


def make_invoice(**kwargs) -> Invoice:
    """Helper to build an Invoice with sensible defaults."""
    defaults = {
        "user_id": "user_1",
        "customer_id": "cus_123",
        "customer_email": "customer@example.com",
        "customer_full_name": None,
        "items": [{"price": "price_basic"}],
        "subscription_id": "sub_123",
        "job_id": "job_1",
        "payment_kind": PaymentKind.SUBSCRIPTION.value,
        "status": InvoiceStatus.OPEN.value,
        "last_payment_intent_id": "pi_sub_123",
        "invoice_id_provided_by_stripe": "in_123",
    }
    defaults.update(kwargs)
    return Invoice(**defaults)


@pytest_asyncio.fixture
async def subscription_invoice(db_session: AsyncSession) -> Invoice:
    """A stored subscription invoice awaiting payment."""
    invoice = make_invoice()
    db_session.add(invoice)
    await db_session.commit()
    await db_session.refresh(invoice)
    return invoice


@pytest_asyncio.fixture
async def one_time_invoice(db_session: AsyncSession) -> Invoice:
    """A stored one-time payment invoice, keyed by its payment intent."""
    invoice = make_invoice(
        customer_full_name="Jane Doe",
        subscription_id=None,
        job_id=None,
        payment_kind=PaymentKind.ONE_TIME.value,
        status=InvoiceStatus.PROCESSING.value,
        last_payment_intent_id="pi_one_123",
        invoice_id_provided_by_stripe="pi_one_123",
    )
    db_session.add(invoice)
    await db_session.commit()
    await db_session.refresh(invoice)
    return invoice


@pytest_asyncio.fixture
async def stale_invoices(db_session: AsyncSession) -> dict[str, Invoice]:
    """Invoices in various states, for reconciliation tests."""
    long_ago = datetime.now(timezone.utc) - timedelta(hours=2)
    invoices = {
        "stale_open": make_invoice(
            invoice_id_provided_by_stripe="in_stale_open",
            last_payment_intent_id="pi_stale_open",
            updated_at=long_ago,
        ),
        "stale_processing": make_invoice(
            invoice_id_provided_by_stripe="in_stale_processing",
            last_payment_intent_id="pi_stale_processing",
            status=InvoiceStatus.PROCESSING.value,
            updated_at=long_ago,
        ),
        "stale_broken": make_invoice(
            invoice_id_provided_by_stripe="in_stale_broken",
            last_payment_intent_id="pi_stale_broken",
            updated_at=long_ago,
        ),
        "settled": make_invoice(
            invoice_id_provided_by_stripe="in_settled",
            last_payment_intent_id="pi_settled",
            status=InvoiceStatus.SUCCEEDED.value,
            updated_at=long_ago,
        ),
        "recent": make_invoice(
            invoice_id_provided_by_stripe="in_recent",
            last_payment_intent_id="pi_recent",
        ),
    }
    for invoice in invoices.values():
        db_session.add(invoice)
    await db_session.commit()
    for invoice in invoices.values():
        await db_session.refresh(invoice)
    return invoices


@pytest.fixture
def invoice_factory():
    """Factory for unsaved Invoice objects."""
    return make_invoice


@pytest.fixture
def session_maker(db_session: AsyncSession) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database (tables already created)."""
    return TestingSessionLocal


@pytest.fixture
def signed_webhook():
    """
    Build a webhook payload and a valid Stripe-Signature header for it.

    Usage:
        payload, signature = signed_webhook(event_dict)
    """
    def sign(event: dict, secret: str = WEBHOOK_SECRET) -> tuple[bytes, str]:
        payload = json.dumps(event).encode()
        timestamp = int(time.time())
        digest = hmac.new(
            secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256
        ).hexdigest()
        return payload, f"t={timestamp},v1={digest}"

    return sign


def payment_intent_event(
    event_id: str = "evt_1",
    intent_id: str = "pi_sub_123",
    customer: str = "cus_123",
    invoice: str | None = "in_123",
) -> dict:
    """A payment_intent.succeeded event body as Stripe sends it."""
    return {
        "id": event_id,
        "object": "event",
        "type": "payment_intent.succeeded",
        "data": {
            "object": {
                "id": intent_id,
                "object": "payment_intent",
                "customer": customer,
                "invoice": invoice,
                "status": "succeeded",
                "amount": 2000,
                "currency": "usd",
            }
        },
    }


@pytest.fixture
def stripe_event_body():
    """Factory for payment_intent.succeeded event bodies."""
    return payment_intent_event
