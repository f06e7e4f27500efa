"""
Error kinds raised by the invoice services.

Routes catch InvoiceServiceError once and turn it into an error envelope.
"""
from typing import Optional


class InvoiceServiceError(Exception):
    """Base exception for invoice service errors."""

    pass


class ProviderError(InvoiceServiceError):
    """A Stripe call failed (card declined, invalid payment method, network fault)."""

    pass


class SignatureInvalid(InvoiceServiceError):
    """Webhook signature did not match the configured secret."""

    pass


class ConfigurationMissing(InvoiceServiceError):
    """A required setting (e.g. the webhook secret) is not configured."""

    pass


class InvoiceNotFound(InvoiceServiceError):
    """No invoice matches the natural key carried by a webhook event."""

    def __init__(self, customer_id: Optional[str], provider_invoice_id: Optional[str]):
        self.customer_id = customer_id
        self.provider_invoice_id = provider_invoice_id
        super().__init__(
            f"Invoice not found for customer={customer_id} stripe_id={provider_invoice_id}"
        )


class PublishFailed(InvoiceServiceError):
    """Publishing a message to the queue failed."""

    def __init__(self, destination: str, cause: Exception):
        self.destination = destination
        self.cause = cause
        super().__init__(f"Failed to publish message to {destination}: {cause}")


class StorageFault(InvoiceServiceError):
    """The database rejected a read or write."""

    pass
