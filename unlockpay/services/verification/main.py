"""HTTP surface for confirmation verification and gateway webhooks."""

import json

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse

from unlockpay.common.bootstrap import bootstrap_process, instrument_app
from unlockpay.common.config import settings
from unlockpay.common.db import SessionLocal
from unlockpay.common.errors import GatewayError
from unlockpay.common.logging import bind_request, logger
from unlockpay.common.metrics import metrics_response, webhook_events_total
from unlockpay.services.entitlements.service import EntitlementGrantManager, ReconciliationQueue
from unlockpay.services.verification.schemas import GrantFailedCritical, VerificationFailed, VerifyOutcome, VerifyRequest
from unlockpay.services.verification.service import VerificationService, WebhookRejected
from unlockpay.services.verification.verifier import ConfirmationVerifier, WebhookVerifier

CRITICAL_MESSAGE = "Could not update your account. Please contact support with your order ID."

bootstrap_process(
    settings.service_name,
    ["SERVICE_NAME", "POSTGRES_DSN", "GATEWAY_KEY_SECRET", "GATEWAY_WEBHOOK_SECRET"],
)
grants = EntitlementGrantManager(SessionLocal, service_name=settings.service_name)
service = VerificationService(
    ConfirmationVerifier(settings.gateway_key_secret) if settings.gateway_key_secret else None,
    grants,
    ReconciliationQueue(SessionLocal, grants),
    webhook_verifier=WebhookVerifier(settings.gateway_webhook_secret) if settings.gateway_webhook_secret else None,
    service_name=settings.service_name,
)

app = FastAPI(title="Unlock Verification Service")
instrument_app(app)


def outcome_response(outcome: VerifyOutcome) -> JSONResponse:
    """Map the tagged verification outcome onto the public wire contract."""

    if isinstance(outcome, VerificationFailed):
        return JSONResponse(status_code=400, content={"verified": False, "error": outcome.reason})
    if isinstance(outcome, GrantFailedCritical):
        return JSONResponse(
            status_code=200,
            content={"verified": True, "error": CRITICAL_MESSAGE, "orderId": outcome.order_id},
        )
    return JSONResponse(
        status_code=200,
        content={"verified": True, "message": "Payment verified and guide unlocked."},
    )


@app.post("/verify")
def verify_payment(req: VerifyRequest, x_correlation_id: str | None = Header(default=None)):
    """Authenticate a confirmation claim and unlock the target on success."""

    bind_request(x_correlation_id, order_id=req.order_id, user_id=req.user_id)
    try:
        outcome = service.verify(req)
    except GatewayError as exc:
        logger.error("verification rejected: %s", exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return outcome_response(outcome)


@app.post("/webhooks/gateway", include_in_schema=False)
async def gateway_webhook(request: Request, x_razorpay_signature: str | None = Header(default=None)):
    """Consume `payment.captured` / `order.paid` deliveries from the gateway."""

    bind_request(request.headers.get("x-razorpay-event-id"))
    raw_body = await request.body()
    try:
        event = json.loads(raw_body)
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Invalid webhook payload"})
    if not isinstance(event, dict):
        return JSONResponse(status_code=400, content={"error": "Invalid webhook payload"})

    event_type = str(event.get("event") or "unknown")
    try:
        result = service.handle_webhook(raw_body, x_razorpay_signature, event)
    except WebhookRejected as exc:
        webhook_events_total.labels(service=settings.service_name, event_type=event_type, status="rejected").inc()
        return JSONResponse(status_code=400, content={"error": str(exc)})

    if isinstance(result, GrantFailedCritical):
        webhook_events_total.labels(service=settings.service_name, event_type=event_type, status="critical").inc()
        # 5xx makes the gateway redeliver; the grant is idempotent.
        return JSONResponse(status_code=500, content={"error": CRITICAL_MESSAGE, "orderId": result.order_id})
    webhook_events_total.labels(service=settings.service_name, event_type=event_type, status=result).inc()
    logger.info("gateway webhook handled event=%s status=%s", event_type, result)
    return {"status": result}


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
