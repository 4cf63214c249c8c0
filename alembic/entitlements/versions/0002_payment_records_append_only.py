"""make payment records append-only

Revision ID: 0002_payment_records_append_only
Revises: 0001_entitlements
Create Date: 2026-10-19
"""

from alembic import op


revision = "0002_payment_records_append_only"
down_revision = "0001_entitlements"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE OR REPLACE FUNCTION reject_payment_record_change()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
            RAISE EXCEPTION 'payment_records is an audit trail; % is not allowed', TG_OP;
        END;
        $$;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_payment_records_append_only
        BEFORE UPDATE OR DELETE ON payment_records
        FOR EACH ROW
        EXECUTE FUNCTION reject_payment_record_change();
        """
    )


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_payment_records_append_only ON payment_records;")
    op.execute("DROP FUNCTION IF EXISTS reject_payment_record_change();")
