"""
Invoice model: ties a user to a Stripe customer, subscription or payment intent.
"""
from typing import Any, Optional

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from invoice_service.models.base import Base, TimestampMixin, UUIDMixin
from invoice_service.models.enums import PaymentKind


class Invoice(Base, UUIDMixin, TimestampMixin):
    """Locally persisted invoice for a subscription or one-time payment."""

    __tablename__ = "invoice"

    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )
    customer_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )
    customer_email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )
    customer_full_name: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
    )
    # Line items exactly as received from the caller
    items: Mapped[Any] = mapped_column(
        JSON,
        nullable=False,
    )
    subscription_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,  # null for one-time payments
        index=True,
    )
    job_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )
    payment_kind: Mapped[str] = mapped_column(
        String(20),
        default=PaymentKind.SUBSCRIPTION.value,
        nullable=False,
    )
    # InvoiceStatus value
    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
    )
    last_payment_intent_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    # Stripe invoice id, or the payment intent id for one-time payments
    invoice_id_provided_by_stripe: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    __table_args__ = (
        Index(
            "ix_invoice_customer_kind_provider_invoice",
            "customer_id",
            "payment_kind",
            "invoice_id_provided_by_stripe",
            unique=True,
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Invoice(id={self.id}, customer_id={self.customer_id}, "
            f"stripe_id={self.invoice_id_provided_by_stripe}, status={self.status})>"
        )
