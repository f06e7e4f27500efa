"""
SQLAlchemy models for the application.
"""
from invoice_service.models.base import Base, TimestampMixin, UUIDMixin
from invoice_service.models.enums import (
    InvoiceStatus,
    NotificationPattern,
    PaymentKind,
    WebhookEventType,
    WebhookOutcome,
)
from invoice_service.models.invoice import Invoice
from invoice_service.models.webhook_event import ProcessedWebhookEvent

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # Enums
    "InvoiceStatus",
    "NotificationPattern",
    "PaymentKind",
    "WebhookEventType",
    "WebhookOutcome",
    # Models
    "Invoice",
    "ProcessedWebhookEvent",
]
