# API routes
from invoice_service.api.deps import (
    CORRELATION_HEADER,
    bearer_scheme,
    get_event_publisher,
    get_invoice_service,
    get_stripe_gateway,
    get_token_claims,
    get_tracking_context,
    get_webhook_lock,
)

__all__ = [
    "CORRELATION_HEADER",
    "bearer_scheme",
    "get_stripe_gateway",
    "get_event_publisher",
    "get_webhook_lock",
    "get_invoice_service",
    "get_tracking_context",
    "get_token_claims",
]
