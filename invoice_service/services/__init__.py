# Business logic services
from invoice_service.services.auth import TokenClaims, create_access_token, decode_token
from invoice_service.services.errors import (
    ConfigurationMissing,
    InvoiceNotFound,
    InvoiceServiceError,
    ProviderError,
    PublishFailed,
    SignatureInvalid,
    StorageFault,
)
from invoice_service.services.event_publisher import (
    EventPublisher,
    close_event_publisher,
    get_event_publisher,
)
from invoice_service.services.invoice_repository import (
    InvoiceRepository,
    WebhookEventRepository,
)
from invoice_service.services.invoices import InvoiceService, extract_description
from invoice_service.services.redis_client import (
    WebhookEventLock,
    close_redis_client,
    get_redis_client,
)
from invoice_service.services.stripe_gateway import StripeGateway
from invoice_service.services.tracking import TrackingContext

__all__ = [
    "TokenClaims",
    "create_access_token",
    "decode_token",
    "InvoiceServiceError",
    "ProviderError",
    "SignatureInvalid",
    "ConfigurationMissing",
    "InvoiceNotFound",
    "PublishFailed",
    "StorageFault",
    "EventPublisher",
    "get_event_publisher",
    "close_event_publisher",
    "InvoiceRepository",
    "WebhookEventRepository",
    "InvoiceService",
    "extract_description",
    "WebhookEventLock",
    "get_redis_client",
    "close_redis_client",
    "StripeGateway",
    "TrackingContext",
]
