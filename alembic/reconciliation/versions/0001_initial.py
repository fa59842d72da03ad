"""initial reconciliation schema

Revision ID: 0001_reconciliation
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_reconciliation"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "transaction_records",
        sa.Column("order_tracking_id", sa.String(), nullable=False),
        sa.Column("merchant_reference", sa.String(), nullable=True),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("payment_status_description", sa.String(), nullable=True),
        sa.Column("payment_method", sa.String(), nullable=True),
        sa.Column("confirmation_code", sa.String(), nullable=True),
        sa.Column("payment_account", sa.String(), nullable=True),
        sa.Column("amount", sa.Float(), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=True),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("committed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("order_tracking_id"),
    )
    op.create_index("ix_transaction_records_merchant_reference", "transaction_records", ["merchant_reference"])
    op.create_index(
        "ix_transaction_records_payment_status_description",
        "transaction_records",
        ["payment_status_description"],
    )


def downgrade() -> None:
    op.drop_index("ix_transaction_records_payment_status_description", table_name="transaction_records")
    op.drop_index("ix_transaction_records_merchant_reference", table_name="transaction_records")
    op.drop_table("transaction_records")
