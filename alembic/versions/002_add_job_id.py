"""Add job_id to invoice

Revision ID: 002_add_job_id
Revises: 001_initial_invoice
Create Date: 2026-10-13

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "002_add_job_id"
down_revision: Union[str, None] = "001_initial_invoice"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("invoice", sa.Column("job_id", sa.String(255), nullable=True))
    op.create_index("ix_invoice_job_id", "invoice", ["job_id"])


def downgrade() -> None:
    op.drop_index("ix_invoice_job_id", table_name="invoice")
    op.drop_column("invoice", "job_id")
