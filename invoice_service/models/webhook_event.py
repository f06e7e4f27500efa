"""
Ledger of Stripe webhook events that have already been dispatched.
"""
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from invoice_service.models.base import Base, TimestampMixin, UUIDMixin


class ProcessedWebhookEvent(Base, UUIDMixin, TimestampMixin):
    """One row per Stripe event id, written once the event has been handled."""

    __tablename__ = "processed_webhook_event"

    event_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
    )
    event_type: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
    )
    # WebhookOutcome value
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ProcessedWebhookEvent(event_id={self.event_id}, type={self.event_type}, status={self.status})>"
