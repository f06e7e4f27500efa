"""
Persistence for invoices and the processed-webhook-event ledger.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_service.models.enums import (
    SETTLED_STATUSES,
    TERMINAL_STATUSES,
    PaymentKind,
    WebhookOutcome,
)
from invoice_service.models.invoice import Invoice
from invoice_service.models.webhook_event import ProcessedWebhookEvent
from invoice_service.services.errors import StorageFault

logger = logging.getLogger(__name__)


class InvoiceRepository:
    """Invoice storage on top of an async session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def save(self, invoice: Invoice) -> Invoice:
        """
        Insert a new invoice or update an existing one.

        Returns the invoice with generated fields (id, timestamps) loaded.

        Raises:
            StorageFault: If the database rejects the write; the session is rolled back
        """
        try:
            self.db.add(invoice)
            await self.db.flush()
            await self.db.refresh(invoice)
        except SQLAlchemyError as e:
            logger.error(f"Failed to save invoice for user {invoice.user_id}: {e}")
            await self.db.rollback()
            raise StorageFault(f"Failed to save invoice: {e}") from e

        return invoice

    async def find_by_customer_and_provider_invoice_id(
        self,
        customer_id: str,
        provider_invoice_id: str,
        payment_kind: Optional[PaymentKind] = None,
    ) -> Optional[Invoice]:
        """
        Look up an invoice by its natural key.

        With payment_kind the key is unique; without it the oldest match wins.
        """
        query = select(Invoice).where(
            Invoice.customer_id == customer_id,
            Invoice.invoice_id_provided_by_stripe == provider_invoice_id,
        )
        if payment_kind is not None:
            query = query.where(Invoice.payment_kind == PaymentKind(payment_kind).value)

        try:
            result = await self.db.execute(query.order_by(Invoice.created_at))
        except SQLAlchemyError as e:
            raise StorageFault(f"Failed to look up invoice: {e}") from e

        return result.scalars().first()

    async def list_all(self) -> list[Invoice]:
        """All invoices, newest first."""
        try:
            result = await self.db.execute(
                select(Invoice).order_by(Invoice.created_at.desc())
            )
        except SQLAlchemyError as e:
            raise StorageFault(f"Failed to list invoices: {e}") from e

        return list(result.scalars().all())

    async def list_unsettled(self, older_than: datetime) -> list[Invoice]:
        """
        Invoices still waiting for payment that were last touched before older_than.

        Settled and terminal invoices are left out.
        """
        try:
            result = await self.db.execute(
                select(Invoice)
                .where(
                    Invoice.status.not_in(SETTLED_STATUSES + TERMINAL_STATUSES),
                    Invoice.updated_at < older_than,
                )
                .order_by(Invoice.updated_at)
            )
        except SQLAlchemyError as e:
            raise StorageFault(f"Failed to list unsettled invoices: {e}") from e

        return list(result.scalars().all())


class WebhookEventRepository:
    """Ledger of Stripe event ids that were already dispatched."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def is_processed(self, event_id: str) -> bool:
        try:
            result = await self.db.execute(
                select(ProcessedWebhookEvent.id).where(
                    ProcessedWebhookEvent.event_id == event_id
                )
            )
        except SQLAlchemyError as e:
            raise StorageFault(f"Failed to check webhook event {event_id}: {e}") from e

        return result.scalar_one_or_none() is not None

    async def mark_processed(
        self,
        event_id: str,
        event_type: str,
        outcome: WebhookOutcome,
    ) -> ProcessedWebhookEvent:
        """
        Record an event id.

        Raises:
            StorageFault: Including when a concurrent delivery recorded it first
        """
        record = ProcessedWebhookEvent(
            event_id=event_id,
            event_type=event_type,
            status=WebhookOutcome(outcome).value,
        )
        try:
            self.db.add(record)
            await self.db.flush()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to record webhook event {event_id}: {e}")
            raise StorageFault(f"Failed to record webhook event {event_id}: {e}") from e

        return record
