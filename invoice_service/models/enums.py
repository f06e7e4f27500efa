"""
Enum types for database models and queue messages.
"""
import logging
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class PaymentKind(str, Enum):
    """How an invoice was paid for; part of the invoice natural key."""
    SUBSCRIPTION = "subscription"
    ONE_TIME = "one_time"


class InvoiceStatus(str, Enum):
    """
    Recognized Stripe statuses.

    Covers the invoice, payment intent and subscription vocabularies.
    Anything else is stored as UNKNOWN.
    """
    # Invoice
    DRAFT = "draft"
    OPEN = "open"
    PAID = "paid"
    UNCOLLECTIBLE = "uncollectible"
    VOID = "void"
    # Payment intent
    REQUIRES_PAYMENT_METHOD = "requires_payment_method"
    REQUIRES_CONFIRMATION = "requires_confirmation"
    REQUIRES_ACTION = "requires_action"
    PROCESSING = "processing"
    REQUIRES_CAPTURE = "requires_capture"
    CANCELED = "canceled"
    SUCCEEDED = "succeeded"
    # Subscription
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    UNPAID = "unpaid"
    PAUSED = "paused"

    UNKNOWN = "unknown"

    @classmethod
    def from_provider(cls, value: Optional[str]) -> "InvoiceStatus":
        """Map a raw Stripe status string to a recognized tag."""
        try:
            return cls(value)
        except ValueError:
            logger.warning(f"Unrecognized provider status {value!r}, storing as unknown")
            return cls.UNKNOWN


# Statuses the reconciliation job never revisits
SETTLED_STATUSES = [InvoiceStatus.SUCCEEDED.value, InvoiceStatus.PAID.value]

# Final or unrecognized statuses; reconciliation skips these too
TERMINAL_STATUSES = [
    InvoiceStatus.CANCELED.value,
    InvoiceStatus.VOID.value,
    InvoiceStatus.UNCOLLECTIBLE.value,
    InvoiceStatus.INCOMPLETE_EXPIRED.value,
    InvoiceStatus.UNKNOWN.value,
]


class WebhookEventType(str, Enum):
    """Stripe webhook event types the service dispatches on."""
    INVOICE_CREATED = "invoice.created"
    INVOICE_UPDATED = "invoice.updated"
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    UNHANDLED = "unhandled"

    @classmethod
    def from_stripe(cls, event_type: str) -> "WebhookEventType":
        try:
            member = cls(event_type)
        except ValueError:
            return cls.UNHANDLED
        return member


class WebhookOutcome(str, Enum):
    """What happened to a webhook delivery."""
    PROCESSED = "processed"
    IGNORED = "ignored"
    NOT_FOUND = "not_found"
    DUPLICATE = "duplicate"
    IN_PROGRESS = "in_progress"


class NotificationPattern(str, Enum):
    """Event patterns understood by the notification and plan services."""
    INVOICE_STATUS_UPDATE = "invoice-status-update"
    PLANS_TO_CREATE = "plans-to-create"
    PAYMENT_RECEIVED_NOTIFICATION = "payment-received-notification"
    PAYMENT_IN_PROGRESS_NOTIFICATION = "payment-in-progress-notification"
    PLAN_IS_ACTIVE_NOTIFICATION = "plan-is-active-notification"
