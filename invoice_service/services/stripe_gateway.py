"""
Stripe gateway.

Thin wrapper over the stripe SDK used by the invoice service:
- Customer lookup/creation
- Subscription creation
- Payment intent creation, confirmation and retrieval
- Price lookup
- Webhook signature verification

Stripe errors are re-raised as ProviderError so callers never depend on
the SDK's exception hierarchy.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional

import stripe

from invoice_service.config import get_settings
from invoice_service.services.errors import (
    ConfigurationMissing,
    ProviderError,
    SignatureInvalid,
)

logger = logging.getLogger(__name__)
settings = get_settings()

# Configure Stripe
stripe.api_key = settings.stripe_secret_key
# Invoice.payment_intent and PaymentIntent.invoice are gone from newer API versions
stripe.api_version = settings.stripe_api_version


@dataclass
class StripeCustomer:
    id: str
    email: Optional[str] = None


@dataclass
class StripePaymentIntent:
    id: str
    status: Optional[str] = None
    amount: Optional[int] = None
    customer: Optional[str] = None
    invoice: Optional[str] = None


@dataclass
class StripeInvoice:
    id: str
    status: Optional[str] = None
    payment_intent: Optional[StripePaymentIntent] = None


@dataclass
class StripeSubscription:
    id: str
    status: Optional[str] = None
    latest_invoice: Optional[StripeInvoice] = None


@dataclass
class StripePrice:
    id: str
    unit_amount: Optional[int] = None


@dataclass
class StripeEvent:
    """A verified webhook event; data_object is the event's data.object."""
    id: str
    type: str
    data_object: Mapping[str, Any]


def price_ids(items: Optional[Iterable[Mapping[str, Any]]]) -> List[str]:
    """Price references of the given line items, skipping items without one."""
    if not items:
        return []
    return [str(item["price"]) for item in items if item.get("price")]


def _id_of(value: Any) -> Optional[str]:
    """Return the id of an expanded Stripe object, or the value if it is already an id."""
    if value is None or isinstance(value, str):
        return value
    return value.id


def _to_payment_intent(intent: Any) -> StripePaymentIntent:
    return StripePaymentIntent(
        id=intent.id,
        status=intent.status,
        amount=getattr(intent, "amount", None),
        customer=_id_of(getattr(intent, "customer", None)),
        invoice=_id_of(getattr(intent, "invoice", None)),
    )


class StripeGateway:
    """Stripe operations needed by the invoice service."""

    def __init__(self, webhook_secret: Optional[str] = None):
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.stripe_webhook_secret
        )

    def create_customer(
        self,
        email: str,
        payment_method: str,
        full_name: Optional[str] = None,
    ) -> StripeCustomer:
        """Create a customer with the payment method attached as the invoice default."""
        logger.info(f"Creating Stripe customer with email: {email}")
        params = {
            "email": email,
            "payment_method": payment_method,
            "invoice_settings": {"default_payment_method": payment_method},
        }
        if full_name:
            params["name"] = full_name

        try:
            customer = stripe.Customer.create(**params)
        except stripe.StripeError as e:
            logger.error(f"Failed to create Stripe customer for {email}: {e}")
            raise ProviderError(f"Failed to create customer: {e.user_message or e}") from e

        return StripeCustomer(id=customer.id, email=customer.email)

    def find_or_create_customer_by_email(
        self,
        email: str,
        payment_method: str,
        full_name: Optional[str] = None,
    ) -> StripeCustomer:
        """
        Reuse the first Stripe customer with this email, or create one.

        An existing customer is reused as-is; its payment methods are not checked.
        """
        try:
            customers = stripe.Customer.list(email=email, limit=1)
        except stripe.StripeError as e:
            logger.error(f"Failed to search Stripe customers for {email}: {e}")
            raise ProviderError(f"Failed to search customers: {e.user_message or e}") from e

        if customers.data:
            customer = customers.data[0]
            logger.info(f"Using existing Stripe customer {customer.id} for {email}")
            return StripeCustomer(id=customer.id, email=customer.email)

        return self.create_customer(email, payment_method, full_name=full_name)

    def create_subscription(
        self,
        customer_id: str,
        items: List[Mapping[str, Any]],
        payment_method: str,
    ) -> StripeSubscription:
        """
        Create an incomplete subscription; its first payment intent is confirmed separately.

        Args:
            customer_id: Stripe customer id
            items: Line items; every item with a "price" becomes a subscription item
            payment_method: Payment method saved as the subscription default

        Returns:
            Subscription with its latest invoice and payment intent
        """
        logger.info(f"Creating subscription for customer: {customer_id}")
        try:
            subscription = stripe.Subscription.create(
                customer=customer_id,
                items=[{"price": price_id} for price_id in price_ids(items)],
                default_payment_method=payment_method,
                payment_behavior="default_incomplete",
                payment_settings={"save_default_payment_method": "on_subscription"},
                expand=["latest_invoice.payment_intent", "pending_setup_intent"],
            )
        except stripe.StripeError as e:
            logger.error(f"Failed to create subscription for customer {customer_id}: {e}")
            raise ProviderError(f"Failed to create subscription: {e.user_message or e}") from e

        latest_invoice = None
        raw_invoice = subscription.latest_invoice
        if raw_invoice is not None and not isinstance(raw_invoice, str):
            raw_intent = getattr(raw_invoice, "payment_intent", None)
            latest_invoice = StripeInvoice(
                id=raw_invoice.id,
                status=raw_invoice.status,
                payment_intent=(
                    _to_payment_intent(raw_intent)
                    if raw_intent is not None and not isinstance(raw_intent, str)
                    else None
                ),
            )

        return StripeSubscription(
            id=subscription.id,
            status=subscription.status,
            latest_invoice=latest_invoice,
        )

    def create_payment_intent(
        self,
        customer_id: str,
        payment_method: str,
        amount: int,
        currency: str,
    ) -> StripePaymentIntent:
        """Create and confirm a payment intent in one call (one-time payments)."""
        logger.info(f"Creating payment intent for customer {customer_id}: {amount} {currency}")
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency,
                customer=customer_id,
                payment_method=payment_method,
                confirm=True,
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
            )
        except stripe.StripeError as e:
            logger.error(f"Failed to create payment intent for customer {customer_id}: {e}")
            raise ProviderError(f"Failed to create payment intent: {e.user_message or e}") from e

        return _to_payment_intent(intent)

    def confirm_payment_intent(
        self,
        payment_intent_id: str,
        payment_method: str,
    ) -> StripePaymentIntent:
        """Confirm an existing payment intent with the given payment method."""
        logger.info(f"Confirming payment intent: {payment_intent_id}")
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id)
            confirmed = intent.confirm(payment_method=payment_method)
        except stripe.StripeError as e:
            logger.error(f"Failed to confirm payment intent {payment_intent_id}: {e}")
            raise ProviderError(f"Failed to confirm payment intent: {e.user_message or e}") from e

        return _to_payment_intent(confirmed)

    def retrieve_payment_intent(self, payment_intent_id: str) -> StripePaymentIntent:
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.StripeError as e:
            logger.error(f"Failed to retrieve payment intent {payment_intent_id}: {e}")
            raise ProviderError(f"Failed to retrieve payment intent: {e.user_message or e}") from e

        return _to_payment_intent(intent)

    def get_price(self, price_id: str) -> StripePrice:
        try:
            price = stripe.Price.retrieve(price_id)
        except stripe.StripeError as e:
            logger.error(f"Failed to retrieve price {price_id}: {e}")
            raise ProviderError(f"Failed to retrieve price {price_id}: {e.user_message or e}") from e

        return StripePrice(id=price.id, unit_amount=price.unit_amount)

    def construct_event(self, payload: bytes, signature: str) -> StripeEvent:
        """
        Verify a webhook payload against its Stripe-Signature header.

        Raises:
            ConfigurationMissing: No webhook secret configured
            SignatureInvalid: Signature does not match
            ProviderError: Payload is not a valid event
        """
        if not self.webhook_secret:
            message = "Webhook secret not found, please review the configuration"
            logger.error(message)
            raise ConfigurationMissing(message)

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.error(f"Webhook signature verification failed: {e}")
            raise SignatureInvalid(f"Invalid webhook signature: {e}") from e
        except ValueError as e:
            logger.error(f"Invalid webhook payload: {e}")
            raise ProviderError(f"Invalid webhook payload: {e}") from e

        # Handlers read data.object as a plain mapping, not an SDK object
        body = json.loads(payload)
        return StripeEvent(
            id=event.id,
            type=event.type,
            data_object=body["data"]["object"],
        )
