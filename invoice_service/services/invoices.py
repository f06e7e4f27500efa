"""
Invoice orchestration service.

Handles:
- Subscription creation (Stripe customer + subscription + invoice)
- One-time payments (Stripe payment intent + invoice)
- Stripe webhook processing and invoice status reconciliation
- Plan and notification messages for downstream services

Every step runs in order: Stripe -> database -> queue. There is no
distributed transaction; Stripe webhooks and the reconciliation task bring
the stored status back in line with Stripe.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from invoice_service.config import get_settings
from invoice_service.models.enums import (
    InvoiceStatus,
    NotificationPattern,
    PaymentKind,
    WebhookEventType,
    WebhookOutcome,
)
from invoice_service.models.invoice import Invoice
from invoice_service.schemas.invoice import (
    NotificationMessage,
    PaymentCreate,
    PlanMessage,
    SubscriptionCreate,
    to_message,
)
from invoice_service.services.errors import InvoiceNotFound, ProviderError
from invoice_service.services.event_publisher import EventPublisher
from invoice_service.services.invoice_repository import (
    InvoiceRepository,
    WebhookEventRepository,
)
from invoice_service.services.redis_client import WebhookEventLock
from invoice_service.services.stripe_gateway import (
    StripeEvent,
    StripeGateway,
    price_ids,
)
from invoice_service.services.tracking import TrackingContext

logger = logging.getLogger(__name__)
settings = get_settings()


def extract_description(items: Any) -> str:
    """Plan description: the price references of all items, concatenated."""
    if not isinstance(items, list):
        return ""
    return "".join(price_ids(item for item in items if isinstance(item, dict)))


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class InvoiceService:
    """Coordinates Stripe, the invoice store and the message queue."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: StripeGateway,
        publisher: EventPublisher,
        event_lock: Optional[WebhookEventLock] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.publisher = publisher
        self.event_lock = event_lock
        self.invoices = InvoiceRepository(db)
        self.webhook_events = WebhookEventRepository(db)

    async def list_invoices(self) -> list[Invoice]:
        logger.info("Retrieving all invoices")
        return await self.invoices.list_all()

    async def create_subscription_and_invoice(
        self,
        data: SubscriptionCreate,
        ctx: TrackingContext,
    ) -> dict:
        """
        Create a Stripe subscription, store its invoice and announce the new plan.

        Args:
            data: Validated subscription request
            ctx: Tracking context for this request

        Returns:
            {"status", "message", "data": Invoice}

        Raises:
            ProviderError: A Stripe call failed
            StorageFault: The invoice could not be saved
            PublishFailed: A queue message could not be sent
        """
        start = time.monotonic()
        ctx.user_id = data.user_id
        logger.info(
            f"{ctx.tracking_info()} Starting subscription creation | email={data.email} | "
            f"jobId={data.job_id or 'NOT_PROVIDED'}"
        )

        customer = self.gateway.create_customer(data.email, data.payment_method)
        ctx.customer_id = customer.id
        logger.info(f"{ctx.tracking_info()} Created Stripe customer {customer.id}")

        subscription = self.gateway.create_subscription(
            customer.id, data.items, data.payment_method
        )
        ctx.subscription_id = subscription.id
        logger.info(
            f"{ctx.tracking_info()} Created Stripe subscription {subscription.id} "
            f"| status={subscription.status}"
        )

        latest_invoice = subscription.latest_invoice
        if latest_invoice is None or latest_invoice.payment_intent is None:
            raise ProviderError(
                f"Subscription {subscription.id} has no payment intent on its latest invoice"
            )
        payment_intent = latest_invoice.payment_intent
        ctx.payment_intent_id = payment_intent.id

        # Persist before confirming so a failed confirmation still leaves a record
        invoice = await self.invoices.save(
            Invoice(
                user_id=data.user_id,
                customer_id=customer.id,
                customer_email=customer.email or data.email,
                items=data.items,
                subscription_id=subscription.id,
                job_id=data.job_id,
                payment_kind=PaymentKind.SUBSCRIPTION.value,
                status=InvoiceStatus.from_provider(latest_invoice.status).value,
                last_payment_intent_id=payment_intent.id,
                invoice_id_provided_by_stripe=latest_invoice.id,
            )
        )
        ctx.invoice_id = str(invoice.id)
        logger.info(
            f"{ctx.tracking_info()} Saved invoice | status={invoice.status} "
            f"| jobId={invoice.job_id or 'NULL'}"
        )

        confirmed = self.gateway.confirm_payment_intent(payment_intent.id, data.payment_method)
        logger.info(
            f"{ctx.tracking_info()} Payment intent {confirmed.id} confirmed | status={confirmed.status}"
        )

        subscription_status = InvoiceStatus.from_provider(subscription.status)
        self._publish_plan_creation(
            invoice,
            is_active=False,
            status=subscription_status,
            metadata=data.metadata,
            ctx=ctx,
        )
        self._notify(
            invoice,
            NotificationPattern.PAYMENT_IN_PROGRESS_NOTIFICATION,
            topic="Payment in progress",
            body="Waiting for payment",
            ctx=ctx,
        )

        logger.info(
            f"{ctx.tracking_info()} Subscription creation completed | duration={_elapsed_ms(start)}ms"
        )
        return {
            "status": subscription.status,
            "message": "New subscription created successfully.",
            "data": invoice,
        }

    async def create_one_time_payment_and_invoice(
        self,
        data: PaymentCreate,
        ctx: TrackingContext,
    ) -> dict:
        """
        Charge the items once, store the invoice and announce the plan.

        The plan is created active when Stripe reports the payment as succeeded.

        Returns:
            {"status", "message", "data": Invoice, "payment_intent_id"}
        """
        start = time.monotonic()
        ctx.user_id = data.user_id
        logger.info(
            f"{ctx.tracking_info()} Starting one-time payment | email={data.email} | "
            f"currency={data.currency} | jobId={data.job_id or 'NOT_PROVIDED'}"
        )

        customer = self.gateway.find_or_create_customer_by_email(
            data.email, data.payment_method, full_name=data.full_name
        )
        ctx.customer_id = customer.id

        total_amount = self._total_amount(data.items)
        logger.info(
            f"{ctx.tracking_info()} Total amount calculated | amount={total_amount} "
            f"{data.currency} | itemCount={len(data.items)}"
        )

        payment_intent = self.gateway.create_payment_intent(
            customer.id, data.payment_method, total_amount, data.currency
        )
        ctx.payment_intent_id = payment_intent.id
        logger.info(
            f"{ctx.tracking_info()} Payment intent {payment_intent.id} created | "
            f"status={payment_intent.status}"
        )

        status = InvoiceStatus.from_provider(payment_intent.status)
        invoice = await self.invoices.save(
            Invoice(
                user_id=data.user_id,
                customer_id=customer.id,
                customer_email=customer.email or data.email,
                customer_full_name=data.full_name,
                items=data.items,
                subscription_id=None,
                job_id=data.job_id,
                payment_kind=PaymentKind.ONE_TIME.value,
                status=status.value,
                last_payment_intent_id=payment_intent.id,
                # No Stripe invoice for one-time payments
                invoice_id_provided_by_stripe=payment_intent.id,
            )
        )
        ctx.invoice_id = str(invoice.id)
        logger.info(f"{ctx.tracking_info()} Saved invoice | status={invoice.status}")

        is_active = status is InvoiceStatus.SUCCEEDED
        self._publish_plan_creation(
            invoice,
            is_active=is_active,
            status=status,
            metadata=data.metadata,
            ctx=ctx,
        )
        if is_active:
            self._notify(
                invoice,
                NotificationPattern.PAYMENT_RECEIVED_NOTIFICATION,
                topic="Payment successful",
                body="Your payment has been processed successfully.",
                ctx=ctx,
            )
        else:
            self._notify(
                invoice,
                NotificationPattern.PAYMENT_IN_PROGRESS_NOTIFICATION,
                topic="Payment processing",
                body="Your payment is being processed.",
                ctx=ctx,
            )

        logger.info(
            f"{ctx.tracking_info()} One-time payment completed | isActive={is_active} "
            f"| duration={_elapsed_ms(start)}ms"
        )
        return {
            "status": payment_intent.status,
            "message": "One-time payment processed successfully.",
            "data": invoice,
            "payment_intent_id": payment_intent.id,
        }

    # --- Webhooks ---

    async def handle_webhook(
        self,
        payload: bytes,
        signature: str,
        ctx: TrackingContext,
    ) -> WebhookOutcome:
        """
        Verify and dispatch a Stripe webhook event.

        Already-recorded event ids are skipped. With a lock configured, a
        delivery that is being processed concurrently is skipped too. On
        failure the session is rolled back before the error propagates.

        Raises:
            SignatureInvalid, ConfigurationMissing: Event could not be verified
            StorageFault, PublishFailed: Processing failed; Stripe will redeliver
        """
        event = self.gateway.construct_event(payload, signature)
        logger.info(f"{ctx.tracking_info()} Webhook event loaded: {event.id} ({event.type})")

        if await self.webhook_events.is_processed(event.id):
            logger.info(f"{ctx.tracking_info()} Event {event.id} already processed, skipping")
            return WebhookOutcome.DUPLICATE

        if self.event_lock is not None and not await self.event_lock.acquire(event.id):
            logger.info(f"{ctx.tracking_info()} Event {event.id} is being processed by another delivery")
            return WebhookOutcome.IN_PROGRESS

        try:
            outcome = await self._dispatch(event, ctx)
            await self.webhook_events.mark_processed(event.id, event.type, outcome)
        except Exception:
            # Nothing from a failed delivery may be committed; the retry redoes it all
            await self.db.rollback()
            # Let Stripe's redelivery get through; on success the lock expires on its own
            if self.event_lock is not None:
                await self.event_lock.release(event.id)
            raise

        logger.info(f"{ctx.tracking_info()} Webhook processing ended for {event.type} ({event.id}): {outcome.value}")
        return outcome

    async def _dispatch(self, event: StripeEvent, ctx: TrackingContext) -> WebhookOutcome:
        event_type = WebhookEventType.from_stripe(event.type)

        if event_type is WebhookEventType.PAYMENT_INTENT_SUCCEEDED:
            return await self._handle_payment_intent_succeeded(event, ctx)
        elif event_type is WebhookEventType.INVOICE_CREATED:
            logger.warning("No implementation for invoice created")
            return WebhookOutcome.IGNORED
        elif event_type is WebhookEventType.INVOICE_UPDATED:
            logger.warning("No implementation for invoice updated")
            return WebhookOutcome.IGNORED
        else:
            logger.warning(f"Unhandled event type: {event.type}")
            return WebhookOutcome.IGNORED

    async def _handle_payment_intent_succeeded(
        self,
        event: StripeEvent,
        ctx: TrackingContext,
    ) -> WebhookOutcome:
        """Mark the matching invoice paid and activate its plan."""
        start = time.monotonic()
        intent = event.data_object
        payment_intent_id = intent.get("id")
        ctx.customer_id = intent.get("customer")
        ctx.payment_intent_id = payment_intent_id

        try:
            invoice = await self._get_invoice_for_payment_intent(intent)
        except InvoiceNotFound as e:
            logger.error(f"{ctx.tracking_info()} {e} | paymentIntentId={payment_intent_id}")
            return WebhookOutcome.NOT_FOUND

        ctx.user_id = invoice.user_id
        ctx.invoice_id = str(invoice.id)

        if invoice.status == InvoiceStatus.SUCCEEDED.value:
            # Plan already activated by an earlier delivery or by reconciliation
            logger.info(f"{ctx.tracking_info()} Invoice already succeeded, nothing to activate")
            return WebhookOutcome.IGNORED

        old_status = invoice.status
        new_status = InvoiceStatus.from_provider(intent.get("status"))
        invoice.status = new_status.value
        await self.invoices.save(invoice)
        logger.info(
            f"{ctx.tracking_info()} Invoice status updated | oldStatus={old_status} "
            f"| newStatus={new_status.value}"
        )

        self._activate_plan(invoice, new_status, ctx)

        logger.info(
            f"{ctx.tracking_info()} payment_intent.succeeded processed | duration={_elapsed_ms(start)}ms"
        )
        return WebhookOutcome.PROCESSED

    async def _get_invoice_for_payment_intent(self, intent: Any) -> Invoice:
        """
        Find the invoice a payment intent belongs to.

        Subscription intents carry their Stripe invoice id; one-time payment
        invoices are keyed by the intent id itself.

        Raises:
            InvoiceNotFound: No matching invoice
        """
        customer_id = intent.get("customer")
        provider_invoice_id = intent.get("invoice")
        if provider_invoice_id:
            payment_kind = PaymentKind.SUBSCRIPTION
        else:
            payment_kind = PaymentKind.ONE_TIME
            provider_invoice_id = intent.get("id")

        invoice = await self.invoices.find_by_customer_and_provider_invoice_id(
            customer_id, provider_invoice_id, payment_kind
        )
        if invoice is None:
            raise InvoiceNotFound(customer_id, provider_invoice_id)
        return invoice

    # --- Reconciliation ---

    async def reconcile_invoice(self, invoice: Invoice, ctx: TrackingContext) -> bool:
        """
        Refresh an invoice's status from its last payment intent.

        Activates the plan when the intent turned out to have succeeded.
        Returns True if the stored status changed.
        """
        ctx.user_id = invoice.user_id
        ctx.invoice_id = str(invoice.id)
        ctx.payment_intent_id = invoice.last_payment_intent_id

        intent = self.gateway.retrieve_payment_intent(invoice.last_payment_intent_id)
        new_status = InvoiceStatus.from_provider(intent.status)
        if new_status == invoice.status:
            return False

        old_status = invoice.status
        invoice.status = new_status.value
        await self.invoices.save(invoice)
        logger.info(
            f"{ctx.tracking_info()} Invoice reconciled | oldStatus={old_status} "
            f"| newStatus={new_status.value}"
        )

        if new_status is InvoiceStatus.SUCCEEDED:
            self._activate_plan(invoice, new_status, ctx)
        return True

    # --- Messages ---

    def _total_amount(self, items: list[dict]) -> int:
        """Sum of unit amounts; items without a price count as zero."""
        total = 0
        for price_id in price_ids(items):
            unit_amount = self.gateway.get_price(price_id).unit_amount
            if unit_amount is not None:
                total += unit_amount
        return total

    def _publish_plan_creation(
        self,
        invoice: Invoice,
        is_active: bool,
        status: InvoiceStatus,
        metadata: Optional[dict],
        ctx: TrackingContext,
    ) -> None:
        message = PlanMessage(
            user_id=invoice.user_id,
            invoice_id=invoice.id,
            description=extract_description(invoice.items),
            items=invoice.items,
            is_active=is_active,
            status=status.value,
            duration_in_days=settings.plan_duration_days,
            job_id=invoice.job_id,
            metadata=metadata,
        )
        if invoice.job_id is None:
            logger.warning(f"{ctx.tracking_info()} No job ID to include in plan creation message")
        self.publisher.publish_raw(settings.plans_to_create_queue, to_message(message), ctx)
        logger.info(f"{ctx.tracking_info()} Plan creation message sent | isActive={is_active}")

    def _activate_plan(
        self,
        invoice: Invoice,
        status: InvoiceStatus,
        ctx: TrackingContext,
    ) -> None:
        """Tell the plan service to activate the plan and the user that payment arrived."""
        message = PlanMessage(
            user_id=invoice.user_id,
            invoice_id=invoice.id,
            description=extract_description(invoice.items),
            items=invoice.items,
            is_active=True,
            status=status.value,
            job_id=invoice.job_id,
        )
        self.publisher.publish_raw(
            settings.invoice_status_on_related_plans_queue, to_message(message), ctx
        )
        logger.info(f"{ctx.tracking_info()} Plan status update message sent | isActive=true")

        self._notify(
            invoice,
            NotificationPattern.PAYMENT_RECEIVED_NOTIFICATION,
            topic="Payment received",
            body="Your payment has been received successfully.",
            ctx=ctx,
        )

    def _notify(
        self,
        invoice: Invoice,
        pattern: NotificationPattern,
        topic: str,
        body: str,
        ctx: TrackingContext,
    ) -> None:
        message = NotificationMessage(
            user_id=invoice.user_id,
            user_email=invoice.customer_email,
            full_name=invoice.customer_full_name,
            topic=topic,
            body=body,
            event_type=pattern.value,
            created_at=datetime.now(timezone.utc),
        )
        self.publisher.publish_enveloped(
            settings.notification_events_queue, pattern, to_message(message), ctx
        )
        logger.info(f"{ctx.tracking_info()} Notification sent | pattern={pattern.value}")
