"""Add customer_full_name to invoice

Revision ID: 003_add_customer_full_name
Revises: 002_add_job_id
Create Date: 2026-10-14

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "003_add_customer_full_name"
down_revision: Union[str, None] = "002_add_job_id"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "invoice",
        sa.Column("customer_full_name", sa.String(100), nullable=True),
    )
    op.create_index("ix_invoice_customer_full_name", "invoice", ["customer_full_name"])


def downgrade() -> None:
    op.drop_index("ix_invoice_customer_full_name", table_name="invoice")
    op.drop_column("invoice", "customer_full_name")
