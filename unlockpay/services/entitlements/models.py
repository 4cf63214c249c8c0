"""Entitlement database models.

This DB is the source of truth for unlocked targets, the append-only payment
audit trail and the manual reconciliation queue.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from unlockpay.common.db import Base


class UserEntitlement(Base):
    """One member of a user's EntitlementSet; the composite key is the set."""

    __tablename__ = "user_entitlements"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    target_id: Mapped[str] = mapped_column(String, primary_key=True)
    order_id: Mapped[str] = mapped_column(String, index=True)
    payment_id: Mapped[str] = mapped_column(String)
    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class PaymentRecord(Base):
    """Immutable audit row for one verified, captured payment."""

    __tablename__ = "payment_records"
    __table_args__ = (
        UniqueConstraint("order_id", "payment_id", name="uq_payment_records_order_payment"),
    )

    record_id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id: Mapped[str] = mapped_column(String, index=True)
    target_id: Mapped[str] = mapped_column(String)
    order_id: Mapped[str] = mapped_column(String, index=True)
    payment_id: Mapped[str] = mapped_column(String)
    status: Mapped[str] = mapped_column(String, default="captured")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ReconciliationCase(Base):
    """Manual support queue entry for a paid but ungranted unlock."""

    __tablename__ = "reconciliation_cases"
    __table_args__ = (
        UniqueConstraint("order_id", "payment_id", name="uq_reconciliation_order_payment"),
    )

    case_id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    order_id: Mapped[str] = mapped_column(String, index=True)
    payment_id: Mapped[str] = mapped_column(String)
    user_id: Mapped[str] = mapped_column(String, index=True)
    target_id: Mapped[str] = mapped_column(String)
    error: Mapped[str] = mapped_column(String)
    status: Mapped[str] = mapped_column(String, index=True, default="PENDING")
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    resolved_by: Mapped[str | None] = mapped_column(String, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
