# Pydantic schemas
from invoice_service.schemas.invoice import (
    InvoiceResponse,
    NotificationMessage,
    PaymentCreate,
    PlanMessage,
    ResponseAPI,
    SubscriptionCreate,
    to_message,
)

__all__ = [
    # Requests
    "SubscriptionCreate",
    "PaymentCreate",
    # Responses
    "InvoiceResponse",
    "ResponseAPI",
    # Queue messages
    "PlanMessage",
    "NotificationMessage",
    "to_message",
]
