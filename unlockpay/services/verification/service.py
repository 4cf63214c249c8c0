"""Verification service: authenticate first, then grant.

Every grant in the system flows through this module, and only after a
signature check succeeded. The result is one of three tagged outcomes so the
HTTP layer cannot confuse "bad signature" with "paid but not granted".
"""

from unlockpay.common.errors import ClaimAlreadyUsed, EntitlementWriteError, GatewayNotConfigured
from unlockpay.common.logging import logger, order_id_ctx, user_id_ctx
from unlockpay.common.metrics import critical_reconciliation_total, verification_results_total
from unlockpay.common.notes import correlate
from unlockpay.services.entitlements.service import (
    ALREADY_GRANTED,
    EntitlementGrantManager,
    ReconciliationQueue,
)
from unlockpay.services.verification.schemas import (
    GrantFailedCritical,
    Unlocked,
    VerificationFailed,
    VerifyOutcome,
    VerifyRequest,
)
from unlockpay.services.verification.verifier import ConfirmationVerifier, WebhookVerifier

CAPTURE_EVENTS = frozenset({"payment.captured", "order.paid"})


class WebhookRejected(ValueError):
    """Webhook body failed authentication or lacks correlation data."""


class VerificationService:
    """Confirmation verifier gate in front of the Entitlement Grant Manager."""

    def __init__(
        self,
        verifier: ConfirmationVerifier | None,
        grants: EntitlementGrantManager,
        reconciliation: ReconciliationQueue,
        webhook_verifier: WebhookVerifier | None = None,
        service_name: str = "verification",
    ) -> None:
        self.verifier = verifier
        self.grants = grants
        self.reconciliation = reconciliation
        self.webhook_verifier = webhook_verifier
        self.service_name = service_name

    def verify(self, req: VerifyRequest) -> VerifyOutcome:
        """Check the claim's signature and, only on a match, grant the target.

        Raises `GatewayNotConfigured` when no key secret was provided.
        """

        if self.verifier is None:
            raise GatewayNotConfigured()
        if not self.verifier.verify(req.order_id, req.payment_id, req.signature):
            verification_results_total.labels(service=self.service_name, outcome="signature_mismatch").inc()
            logger.warning("invalid confirmation signature order_id=%s", req.order_id)
            return VerificationFailed(order_id=req.order_id, reason="Payment verification failed: Invalid signature.")

        logger.info("payment verified user_id=%s target_id=%s order_id=%s", req.user_id, req.target_id, req.order_id)
        return self._grant(req.user_id, req.target_id, req.order_id, req.payment_id, source="claim")

    def handle_webhook(self, raw_body: bytes, signature: str | None, event: dict) -> str | GrantFailedCritical:
        """Apply one authenticated gateway webhook event.

        Returns "ok", "ignored" or the critical outcome. Raises
        `WebhookRejected` for unauthenticated or uncorrelatable deliveries.
        """

        if self.webhook_verifier is None:
            raise WebhookRejected("webhook secret is not configured")
        if not self.webhook_verifier.verify(raw_body, signature):
            verification_results_total.labels(service=self.service_name, outcome="webhook_signature_mismatch").inc()
            logger.warning("invalid webhook signature event=%s", event.get("event"))
            raise WebhookRejected("Invalid webhook signature")

        event_type = event.get("event")
        if not isinstance(event_type, str) or event_type not in CAPTURE_EVENTS:
            return "ignored"
        entity = _mapping(_mapping(_mapping(event.get("payload")).get("payment")).get("entity"))
        order_id = entity.get("order_id")
        payment_id = entity.get("id")
        user_id, target_id = correlate(_mapping(entity.get("notes")))
        if not all(isinstance(value, str) and value for value in (order_id, payment_id, user_id, target_id)):
            raise WebhookRejected("webhook payment lacks order id, payment id or correlation notes")

        order_id_ctx.set(order_id)
        user_id_ctx.set(user_id)
        outcome = self._grant(user_id, target_id, order_id, payment_id, source="webhook")
        if isinstance(outcome, VerificationFailed):
            raise WebhookRejected(outcome.reason)
        if isinstance(outcome, GrantFailedCritical):
            return outcome
        return "ok"

    def _grant(
        self, user_id: str, target_id: str, order_id: str, payment_id: str, source: str
    ) -> VerifyOutcome:
        try:
            result = self.grants.grant(user_id, target_id, order_id, payment_id)
        except ClaimAlreadyUsed:
            verification_results_total.labels(service=self.service_name, outcome="replayed_claim").inc()
            logger.warning("confirmation replayed for another grant order_id=%s source=%s", order_id, source)
            return VerificationFailed(order_id=order_id, reason="Payment verification failed: Confirmation already used.")
        except EntitlementWriteError as exc:
            return self._critical(user_id, target_id, order_id, payment_id, exc, source)

        verification_results_total.labels(service=self.service_name, outcome="unlocked").inc()
        return Unlocked(order_id=order_id, already_granted=result == ALREADY_GRANTED)

    def _critical(
        self,
        user_id: str,
        target_id: str,
        order_id: str,
        payment_id: str,
        exc: EntitlementWriteError,
        source: str,
    ) -> GrantFailedCritical:
        """Paid but not granted: log durably and queue for manual support."""

        critical_reconciliation_total.labels(service=self.service_name).inc()
        verification_results_total.labels(service=self.service_name, outcome="grant_failed_critical").inc()
        logger.critical(
            "entitlement write failed after payment verification order_id=%s payment_id=%s "
            "user_id=%s target_id=%s source=%s error=%s",
            order_id,
            payment_id,
            user_id,
            target_id,
            source,
            exc.cause,
        )
        case_id = None
        try:
            case = self.reconciliation.open_case(order_id, payment_id, user_id, target_id, str(exc.cause))
            case_id = case.case_id
        except Exception:
            # The CRITICAL line above is the record of last resort.
            logger.exception("could not open reconciliation case order_id=%s payment_id=%s", order_id, payment_id)
        return GrantFailedCritical(order_id=order_id, payment_id=payment_id, case_id=case_id)


def _mapping(value) -> dict:
    """Webhook payload sections are untrusted JSON; anything but an object reads as empty."""

    return value if isinstance(value, dict) else {}
