"""Add payment_kind natural key and processed webhook event ledger

Revision ID: 004_payment_kind_webhook_events
Revises: 003_add_customer_full_name
Create Date: 2026-10-15

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "004_payment_kind_webhook_events"
down_revision: Union[str, None] = "003_add_customer_full_name"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "invoice",
        sa.Column(
            "payment_kind",
            sa.String(20),
            nullable=False,
            server_default="subscription",
        ),
    )
    # Existing invoices without a subscription were one-time payments
    op.execute(
        "UPDATE invoice SET payment_kind = 'one_time' WHERE subscription_id IS NULL"
    )
    op.create_index(
        "ix_invoice_customer_kind_provider_invoice",
        "invoice",
        ["customer_id", "payment_kind", "invoice_id_provided_by_stripe"],
        unique=True,
    )

    op.create_table(
        "processed_webhook_event",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event_id", sa.String(255), nullable=False),
        sa.Column("event_type", sa.String(128), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_processed_webhook_event_event_id",
        "processed_webhook_event",
        ["event_id"],
        unique=True,
    )


def downgrade() -> None:
    op.drop_index("ix_processed_webhook_event_event_id", table_name="processed_webhook_event")
    op.drop_table("processed_webhook_event")
    op.drop_index("ix_invoice_customer_kind_provider_invoice", table_name="invoice")
    op.drop_column("invoice", "payment_kind")
