"""
API dependencies: service wiring, request tracking and optional authentication.
"""
import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_service.config import get_settings
from invoice_service.database import get_async_session
from invoice_service.services.auth import TokenClaims, decode_token
from invoice_service.services.event_publisher import EventPublisher
from invoice_service.services.event_publisher import (
    get_event_publisher as get_shared_event_publisher,
)
from invoice_service.services.invoices import InvoiceService
from invoice_service.services.redis_client import WebhookEventLock, get_redis_client
from invoice_service.services.stripe_gateway import StripeGateway
from invoice_service.services.tracking import TrackingContext

logger = logging.getLogger(__name__)
settings = get_settings()

CORRELATION_HEADER = "X-Correlation-ID"

# Bearer token extraction; missing tokens are handled in get_token_claims
bearer_scheme = HTTPBearer(auto_error=False)


def get_stripe_gateway() -> StripeGateway:
    return StripeGateway()


def get_event_publisher() -> EventPublisher:
    return get_shared_event_publisher()


async def get_webhook_lock() -> Optional[WebhookEventLock]:
    """Redelivery lock, or None when disabled in settings."""
    if not settings.webhook_lock_enabled:
        return None
    client = await get_redis_client()
    return WebhookEventLock(client)


def get_invoice_service(
    db: AsyncSession = Depends(get_async_session),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    publisher: EventPublisher = Depends(get_event_publisher),
    event_lock: Optional[WebhookEventLock] = Depends(get_webhook_lock),
) -> InvoiceService:
    return InvoiceService(db, gateway, publisher, event_lock)


def get_tracking_context(request: Request) -> TrackingContext:
    """
    Tracking context for the current request.

    Reuses the id set by the correlation middleware, then the request header.
    """
    correlation_id = getattr(request.state, "correlation_id", None) or request.headers.get(
        CORRELATION_HEADER
    )
    ctx = TrackingContext.from_header(correlation_id)
    request.state.correlation_id = ctx.correlation_id
    return ctx


async def get_token_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[TokenClaims]:
    """
    Decode the bearer token if one was sent.

    Returns:
        Token claims, or None for a missing or invalid token

    Raises:
        HTTPException: 401 if authentication is required and no valid token was sent
    """
    claims = decode_token(credentials.credentials) if credentials else None

    if claims is None or claims.type not in (None, "access"):
        if settings.auth_required:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Could not validate credentials",
                headers={"WWW-Authenticate": "Bearer"},
            )
        if credentials is None:
            logger.debug("Request without bearer token")
        return None

    return claims
