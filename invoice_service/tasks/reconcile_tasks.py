"""
Celery tasks for invoice reconciliation.

Contains:
- reconcile_unsettled_invoices: Re-check invoices that never received a
  payment webhook against Stripe (scheduled)
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from invoice_service.config import get_settings
from invoice_service.database import build_engine, session_scope
from invoice_service.models.invoice import Invoice
from invoice_service.services.event_publisher import EventPublisher
from invoice_service.services.invoice_repository import InvoiceRepository
from invoice_service.services.invoices import InvoiceService
from invoice_service.services.stripe_gateway import StripeGateway
from invoice_service.services.tracking import TrackingContext
from invoice_service.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)
settings = get_settings()


def get_async_session_for_celery():
    """Create an async session maker bound to a task-local engine."""
    engine = build_engine(settings.database_url)
    session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    return session_maker, engine


def run_async(coro):
    """Run async coroutine in sync Celery task."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def reconcile_invoices(
    session_maker: async_sessionmaker[AsyncSession],
    gateway: StripeGateway,
    publisher: EventPublisher,
    grace_minutes: Optional[int] = None,
) -> dict:
    """
    Reconcile every unsettled invoice older than the grace period.

    Each invoice is handled in its own transaction; a failure is logged and
    counted, and the loop moves on.

    Returns:
        Dict with checked, updated and failed counts
    """
    grace = grace_minutes if grace_minutes is not None else settings.reconcile_grace_minutes
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=grace)
    stats = {"checked": 0, "updated": 0, "failed": 0}

    async with session_maker() as session:
        invoices = await InvoiceRepository(session).list_unsettled(cutoff)
        invoice_ids = [invoice.id for invoice in invoices]

    logger.info(f"Found {len(invoice_ids)} unsettled invoices to reconcile")

    for invoice_id in invoice_ids:
        stats["checked"] += 1
        ctx = TrackingContext(invoice_id=str(invoice_id))
        try:
            async with session_scope(session_maker) as session:
                invoice = await session.get(Invoice, invoice_id)
                if invoice is None:
                    continue
                service = InvoiceService(session, gateway, publisher)
                if await service.reconcile_invoice(invoice, ctx):
                    stats["updated"] += 1
        except Exception as e:
            stats["failed"] += 1
            logger.error(f"{ctx.tracking_info()} Failed to reconcile invoice: {e}")

    return stats


@celery_app.task(
    bind=True,
    name="invoice_service.tasks.reconcile_tasks.reconcile_unsettled_invoices",
)
def reconcile_unsettled_invoices(self) -> dict:
    """
    Periodic task: bring stale invoice statuses back in line with Stripe.

    Returns:
        Dict with checked, updated and failed counts
    """
    logger.info("Starting invoice reconciliation")

    async def _run() -> dict:
        session_maker, engine = get_async_session_for_celery()
        publisher = EventPublisher()
        try:
            return await reconcile_invoices(session_maker, StripeGateway(), publisher)
        finally:
            publisher.close()
            await engine.dispose()

    stats = run_async(_run())
    logger.info(
        f"Reconciliation complete: checked={stats['checked']}, "
        f"updated={stats['updated']}, failed={stats['failed']}"
    )
    return stats
