"""Tests for the Stripe gateway wrapper."""
from unittest.mock import MagicMock, patch

import pytest
import stripe

from invoice_service.config import get_settings
from invoice_service.services.errors import (
    ConfigurationMissing,
    ProviderError,
    SignatureInvalid,
)
from invoice_service.services.stripe_gateway import StripeGateway, price_ids


def stripe_object(**kwargs) -> MagicMock:
    obj = MagicMock()
    for key, value in kwargs.items():
        setattr(obj, key, value)
    return obj


@pytest.fixture
def gateway() -> StripeGateway:
    return StripeGateway(webhook_secret="whsec_test")


class TestPriceIds:
    def test_skips_items_without_price(self):
        assert price_ids([{"price": "price_a"}, {"name": "x"}, {"price": None}]) == ["price_a"]

    def test_empty(self):
        assert price_ids([]) == []
        assert price_ids(None) == []


class TestCustomers:
    def test_create_customer(self, gateway):
        with patch("stripe.Customer.create") as create:
            create.return_value = stripe_object(id="cus_1", email="a@example.com")

            customer = gateway.create_customer("a@example.com", "pm_card_visa", full_name="Ann")

        assert customer.id == "cus_1"
        kwargs = create.call_args.kwargs
        assert kwargs["email"] == "a@example.com"
        assert kwargs["payment_method"] == "pm_card_visa"
        assert kwargs["invoice_settings"] == {"default_payment_method": "pm_card_visa"}
        assert kwargs["name"] == "Ann"

    def test_create_customer_error(self, gateway):
        with patch("stripe.Customer.create", side_effect=stripe.StripeError("boom")):
            with pytest.raises(ProviderError, match="Failed to create customer"):
                gateway.create_customer("a@example.com", "pm_card_visa")

    def test_reuses_existing_customer(self, gateway):
        existing = stripe_object(id="cus_existing", email="a@example.com")
        with patch("stripe.Customer.list") as list_customers, \
             patch("stripe.Customer.create") as create:
            list_customers.return_value = stripe_object(data=[existing])

            customer = gateway.find_or_create_customer_by_email("a@example.com", "pm_card_visa")

        assert customer.id == "cus_existing"
        list_customers.assert_called_once_with(email="a@example.com", limit=1)
        create.assert_not_called()

    def test_creates_when_no_customer(self, gateway):
        with patch("stripe.Customer.list") as list_customers, \
             patch("stripe.Customer.create") as create:
            list_customers.return_value = stripe_object(data=[])
            create.return_value = stripe_object(id="cus_new", email="a@example.com")

            customer = gateway.find_or_create_customer_by_email(
                "a@example.com", "pm_card_visa", full_name="Ann"
            )

        assert customer.id == "cus_new"
        assert create.call_args.kwargs["name"] == "Ann"


class TestSubscriptions:
    def test_create_subscription(self, gateway):
        intent = stripe_object(id="pi_1", status="requires_confirmation", amount=500, customer="cus_1", invoice="in_1")
        latest_invoice = stripe_object(id="in_1", status="open", payment_intent=intent)
        with patch("stripe.Subscription.create") as create:
            create.return_value = stripe_object(id="sub_1", status="incomplete", latest_invoice=latest_invoice)

            subscription = gateway.create_subscription(
                "cus_1", [{"price": "price_a"}, {"name": "no price"}], "pm_card_visa"
            )

        assert subscription.id == "sub_1"
        assert subscription.latest_invoice.id == "in_1"
        assert subscription.latest_invoice.payment_intent.id == "pi_1"
        kwargs = create.call_args.kwargs
        assert kwargs["items"] == [{"price": "price_a"}]
        assert kwargs["payment_behavior"] == "default_incomplete"
        assert "latest_invoice.payment_intent" in kwargs["expand"]

    def test_unexpanded_invoice(self, gateway):
        with patch("stripe.Subscription.create") as create:
            create.return_value = stripe_object(id="sub_1", status="incomplete", latest_invoice="in_1")

            subscription = gateway.create_subscription("cus_1", [{"price": "price_a"}], "pm_card_visa")

        assert subscription.latest_invoice is None


class TestPaymentIntents:
    def test_create_payment_intent(self, gateway):
        with patch("stripe.PaymentIntent.create") as create:
            create.return_value = stripe_object(
                id="pi_1", status="succeeded", amount=2000, customer="cus_1", invoice=None
            )

            intent = gateway.create_payment_intent("cus_1", "pm_card_visa", 2000, "usd")

        assert intent.status == "succeeded"
        assert intent.invoice is None
        kwargs = create.call_args.kwargs
        assert kwargs["amount"] == 2000
        assert kwargs["currency"] == "usd"
        assert kwargs["confirm"] is True

    def test_confirm_payment_intent(self, gateway):
        retrieved = MagicMock()
        retrieved.confirm.return_value = stripe_object(
            id="pi_1", status="succeeded", amount=500, customer="cus_1", invoice="in_1"
        )
        with patch("stripe.PaymentIntent.retrieve", return_value=retrieved):
            intent = gateway.confirm_payment_intent("pi_1", "pm_card_visa")

        retrieved.confirm.assert_called_once_with(payment_method="pm_card_visa")
        assert intent.status == "succeeded"
        assert intent.invoice == "in_1"

    def test_confirm_error(self, gateway):
        with patch("stripe.PaymentIntent.retrieve", side_effect=stripe.StripeError("declined")):
            with pytest.raises(ProviderError, match="Failed to confirm payment intent"):
                gateway.confirm_payment_intent("pi_1", "pm_card_visa")

    def test_get_price(self, gateway):
        with patch("stripe.Price.retrieve", return_value=stripe_object(id="price_a", unit_amount=500)):
            price = gateway.get_price("price_a")

        assert price.unit_amount == 500


class TestConstructEvent:
    def test_valid_event(self, gateway, signed_webhook, stripe_event_body):
        payload, signature = signed_webhook(stripe_event_body(customer="cus_1", invoice=None))

        result = gateway.construct_event(payload, signature)

        assert result.id == "evt_1"
        assert result.type == "payment_intent.succeeded"
        assert isinstance(result.data_object, dict)
        assert result.data_object["customer"] == "cus_1"
        assert result.data_object.get("invoice") is None

    def test_tampered_payload(self, gateway, signed_webhook, stripe_event_body):
        payload, signature = signed_webhook(stripe_event_body())

        with pytest.raises(SignatureInvalid):
            gateway.construct_event(payload.replace(b"pi_sub_123", b"pi_other"), signature)

    def test_wrong_secret(self, gateway, signed_webhook, stripe_event_body):
        payload, signature = signed_webhook(stripe_event_body(), secret="whsec_other")

        with pytest.raises(SignatureInvalid):
            gateway.construct_event(payload, signature)

    def test_invalid_signature(self, gateway):
        error = stripe.SignatureVerificationError("No signatures found", "sig")
        with patch("stripe.Webhook.construct_event", side_effect=error):
            with pytest.raises(SignatureInvalid):
                gateway.construct_event(b"{}", "sig")

    def test_invalid_payload(self, gateway):
        with patch("stripe.Webhook.construct_event", side_effect=ValueError("bad json")):
            with pytest.raises(ProviderError, match="Invalid webhook payload"):
                gateway.construct_event(b"not json", "sig")

    def test_missing_secret(self):
        gateway = StripeGateway(webhook_secret="")

        with patch("stripe.Webhook.construct_event") as construct:
            with pytest.raises(ConfigurationMissing):
                gateway.construct_event(b"{}", "sig")

        construct.assert_not_called()


def test_api_version_is_pinned():
    assert stripe.api_version == get_settings().stripe_api_version
