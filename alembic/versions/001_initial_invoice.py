"""Create invoice table

Revision ID: 001_initial_invoice
Revises:
Create Date: 2026-10-12

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial_invoice"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "invoice",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("customer_id", sa.String(255), nullable=False),
        sa.Column("customer_email", sa.String(255), nullable=False),
        # Null for one-time payments
        sa.Column("subscription_id", sa.String(255), nullable=True),
        sa.Column("invoice_id_provided_by_stripe", sa.String(255), nullable=False),
        sa.Column("last_payment_intent_id", sa.String(255), nullable=False),
        sa.Column("status", sa.String(50), nullable=False),
        sa.Column("items", sa.JSON(), nullable=False),
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
    op.create_index("ix_invoice_user_id", "invoice", ["user_id"])
    op.create_index("ix_invoice_customer_id", "invoice", ["customer_id"])
    op.create_index("ix_invoice_customer_email", "invoice", ["customer_email"])
    op.create_index("ix_invoice_subscription_id", "invoice", ["subscription_id"])
    op.create_index("ix_invoice_status", "invoice", ["status"])
    op.create_index("ix_invoice_created_at", "invoice", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_invoice_created_at", table_name="invoice")
    op.drop_index("ix_invoice_status", table_name="invoice")
    op.drop_index("ix_invoice_subscription_id", table_name="invoice")
    op.drop_index("ix_invoice_customer_email", table_name="invoice")
    op.drop_index("ix_invoice_customer_id", table_name="invoice")
    op.drop_index("ix_invoice_user_id", table_name="invoice")
    op.drop_table("invoice")
