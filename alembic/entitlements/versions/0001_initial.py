"""initial entitlement schema

Revision ID: 0001_entitlements
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_entitlements"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "user_entitlements",
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("target_id", sa.String(), nullable=False),
        sa.Column("order_id", sa.String(), nullable=False),
        sa.Column("payment_id", sa.String(), nullable=False),
        sa.Column("granted_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("user_id", "target_id"),
    )
    op.create_index("ix_user_entitlements_order_id", "user_entitlements", ["order_id"])

    op.create_table(
        "payment_records",
        sa.Column("record_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("target_id", sa.String(), nullable=False),
        sa.Column("order_id", sa.String(), nullable=False),
        sa.Column("payment_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("record_id"),
        sa.UniqueConstraint("order_id", "payment_id", name="uq_payment_records_order_payment"),
    )
    op.create_index("ix_payment_records_user_id", "payment_records", ["user_id"])
    op.create_index("ix_payment_records_order_id", "payment_records", ["order_id"])

    op.create_table(
        "reconciliation_cases",
        sa.Column("case_id", sa.String(), nullable=False),
        sa.Column("order_id", sa.String(), nullable=False),
        sa.Column("payment_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("target_id", sa.String(), nullable=False),
        sa.Column("error", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("resolved_by", sa.String(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("case_id"),
        sa.UniqueConstraint("order_id", "payment_id", name="uq_reconciliation_order_payment"),
    )
    op.create_index("ix_reconciliation_cases_order_id", "reconciliation_cases", ["order_id"])
    op.create_index("ix_reconciliation_cases_user_id", "reconciliation_cases", ["user_id"])
    op.create_index("ix_reconciliation_cases_status", "reconciliation_cases", ["status"])


def downgrade() -> None:
    op.drop_index("ix_reconciliation_cases_status", table_name="reconciliation_cases")
    op.drop_index("ix_reconciliation_cases_user_id", table_name="reconciliation_cases")
    op.drop_index("ix_reconciliation_cases_order_id", table_name="reconciliation_cases")
    op.drop_table("reconciliation_cases")
    op.drop_index("ix_payment_records_order_id", table_name="payment_records")
    op.drop_index("ix_payment_records_user_id", table_name="payment_records")
    op.drop_table("payment_records")
    op.drop_index("ix_user_entitlements_order_id", table_name="user_entitlements")
    op.drop_table("user_entitlements")
