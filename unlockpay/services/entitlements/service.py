"""Entitlement grant logic and the manual reconciliation queue.

Grants are set-union writes: `INSERT ... ON CONFLICT DO NOTHING` on the
entitlement's composite key and on the payment record's `(order_id,
payment_id)` constraint. Both land in one transaction, so a grant is either
fully recorded or not at all, and concurrent duplicate grants converge.
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from unlockpay.common.db import insert_ignore
from unlockpay.common.errors import ClaimAlreadyUsed, EntitlementWriteError, ReconciliationError
from unlockpay.common.logging import logger
from unlockpay.common.metrics import entitlement_grants_total
from unlockpay.services.entitlements.models import PaymentRecord, ReconciliationCase, UserEntitlement

GRANTED = "GRANTED"
ALREADY_GRANTED = "ALREADY_GRANTED"


class EntitlementGrantManager:
    """Records unlocked targets and their audit trail after verification.

    Callers must hold a successful signature verification for the
    `(order_id, payment_id)` they pass; this class never checks signatures.
    """

    def __init__(self, session_factory, service_name: str = "entitlements") -> None:
        self.session_factory = session_factory
        self.service_name = service_name

    def grant(self, user_id: str, target_id: str, order_id: str, payment_id: str) -> str:
        """Add `target_id` to the user's set and append the PaymentRecord.

        Returns GRANTED or ALREADY_GRANTED. Raises `ClaimAlreadyUsed` when the
        payment is already recorded for a different user/target, and
        `EntitlementWriteError` when the store fails.
        """

        try:
            with self.session_factory() as db:
                insert_ignore(
                    db,
                    PaymentRecord,
                    {
                        "user_id": user_id,
                        "target_id": target_id,
                        "order_id": order_id,
                        "payment_id": payment_id,
                        "status": "captured",
                    },
                    index_elements=["order_id", "payment_id"],
                )
                record = db.execute(
                    select(PaymentRecord).where(
                        PaymentRecord.order_id == order_id,
                        PaymentRecord.payment_id == payment_id,
                    )
                ).scalar_one()
                if record.user_id != user_id or record.target_id != target_id:
                    db.rollback()
                    raise ClaimAlreadyUsed(order_id, payment_id)

                added = insert_ignore(
                    db,
                    UserEntitlement,
                    {
                        "user_id": user_id,
                        "target_id": target_id,
                        "order_id": order_id,
                        "payment_id": payment_id,
                    },
                    index_elements=["user_id", "target_id"],
                )
                db.commit()
        except SQLAlchemyError as exc:
            entitlement_grants_total.labels(service=self.service_name, result="FAILED").inc()
            raise EntitlementWriteError(order_id, exc) from exc

        result = GRANTED if added else ALREADY_GRANTED
        entitlement_grants_total.labels(service=self.service_name, result=result).inc()
        logger.info(
            "entitlement %s user_id=%s target_id=%s order_id=%s",
            result.lower(),
            user_id,
            target_id,
            order_id,
        )
        return result

    def entitlements_for(self, user_id: str) -> list[str]:
        """Return the user's EntitlementSet as a sorted list of target ids."""

        with self.session_factory() as db:
            return list(
                db.execute(
                    select(UserEntitlement.target_id)
                    .where(UserEntitlement.user_id == user_id)
                    .order_by(UserEntitlement.target_id)
                ).scalars()
            )

    def has_entitlement(self, user_id: str, target_id: str) -> bool:
        with self.session_factory() as db:
            return db.get(UserEntitlement, (user_id, target_id)) is not None

    def payment_records_for(self, order_id: str) -> list[PaymentRecord]:
        with self.session_factory() as db:
            return list(
                db.execute(
                    select(PaymentRecord)
                    .where(PaymentRecord.order_id == order_id)
                    .order_by(PaymentRecord.created_at.asc())
                ).scalars()
            )


class ReconciliationQueue:
    """Support queue for verified payments whose grant write failed."""

    def __init__(self, session_factory, grants: EntitlementGrantManager) -> None:
        self.session_factory = session_factory
        self.grants = grants

    def open_case(
        self, order_id: str, payment_id: str, user_id: str, target_id: str, error: str
    ) -> ReconciliationCase:
        """Create (or bump) the case for one paid-but-ungranted payment.

        Concurrent callers for the same `(order_id, payment_id)` converge on
        one row; each call counts one attempt.
        """

        key = (
            ReconciliationCase.order_id == order_id,
            ReconciliationCase.payment_id == payment_id,
        )
        with self.session_factory() as db:
            opened = insert_ignore(
                db,
                ReconciliationCase,
                {
                    "case_id": str(uuid4()),
                    "order_id": order_id,
                    "payment_id": payment_id,
                    "user_id": user_id,
                    "target_id": target_id,
                    "error": error,
                    "status": "PENDING",
                    "attempts": 1,
                },
                index_elements=["order_id", "payment_id"],
            )
            if not opened:
                db.execute(
                    update(ReconciliationCase)
                    .where(*key)
                    .values(error=error, status="PENDING", attempts=ReconciliationCase.attempts + 1)
                )
            case = db.execute(select(ReconciliationCase).where(*key)).scalar_one()
            db.commit()
            db.refresh(case)
            return case

    def list_cases(self, status: str = "PENDING", limit: int = 100) -> list[ReconciliationCase]:
        """Return queue rows for ops tooling, oldest first."""

        with self.session_factory() as db:
            return (
                db.execute(
                    select(ReconciliationCase)
                    .where(ReconciliationCase.status == status)
                    .order_by(ReconciliationCase.created_at.asc())
                    .limit(limit)
                )
                .scalars()
                .all()
            )

    def _pending_case(self, db, case_id: str) -> ReconciliationCase:
        case = db.get(ReconciliationCase, case_id)
        if case is None:
            raise ReconciliationError("case not found")
        if case.status != "PENDING":
            raise ReconciliationError(f"case already finalized with status={case.status}")
        return case

    def retry(self, case_id: str, operator: str) -> ReconciliationCase:
        """Re-run the grant for a pending case; resolves it on success.

        The payment was verified when the case was opened, so the grant is
        allowed without a fresh signature.
        """

        with self.session_factory() as db:
            case = self._pending_case(db, case_id)
            order_id, payment_id = case.order_id, case.payment_id
            user_id, target_id = case.user_id, case.target_id

        try:
            self.grants.grant(user_id, target_id, order_id, payment_id)
        except EntitlementWriteError as exc:
            with self.session_factory() as db:
                case = db.get(ReconciliationCase, case_id)
                case.attempts += 1
                case.error = str(exc.cause)
                db.commit()
            logger.error("reconciliation retry failed case_id=%s order_id=%s", case_id, order_id)
            raise
        return self.resolve(case_id, operator)

    def resolve(self, case_id: str, operator: str) -> ReconciliationCase:
        """Close a case after the entitlement was granted or handled out of band."""

        with self.session_factory() as db:
            case = self._pending_case(db, case_id)
            case.status = "RESOLVED"
            case.resolved_by = operator
            case.resolved_at = datetime.now(timezone.utc)
            db.commit()
            db.refresh(case)
            logger.info("reconciliation case resolved case_id=%s order_id=%s by=%s", case_id, case.order_id, operator)
            return case
