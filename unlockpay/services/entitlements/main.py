"""Entitlement service API.

Read side of the EntitlementSet plus ops endpoints for the manual
reconciliation queue of paid-but-ungranted unlocks.
"""

from fastapi import FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from unlockpay.common.bootstrap import bootstrap_process, instrument_app
from unlockpay.common.config import settings
from unlockpay.common.db import SessionLocal
from unlockpay.common.errors import ClaimAlreadyUsed, EntitlementWriteError, ReconciliationError
from unlockpay.common.metrics import metrics_response
from unlockpay.services.entitlements.service import EntitlementGrantManager, ReconciliationQueue

bootstrap_process(settings.service_name, ["SERVICE_NAME", "POSTGRES_DSN", "API_KEY"])
grants = EntitlementGrantManager(SessionLocal, service_name=settings.service_name)
reconciliation = ReconciliationQueue(SessionLocal, grants)

app = FastAPI(title="Unlock Entitlement Service")
instrument_app(app)


class OperatorActionRequest(BaseModel):
    """Body required for retry/resolve actions."""

    resolved_by: str = Field(min_length=1, alias="resolvedBy")


def enforce_api_key(x_api_key: str | None) -> None:
    """Simple API-key gate for ops endpoints."""

    if x_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="invalid API key")


def _case_error(exc: ReconciliationError) -> JSONResponse:
    """Map queue validation errors to HTTP status codes."""

    message = str(exc)
    if "not found" in message:
        return JSONResponse(status_code=404, content={"error": message})
    if "already finalized" in message:
        return JSONResponse(status_code=409, content={"error": message})
    return JSONResponse(status_code=400, content={"error": message})


def _case_view(case) -> dict:
    return {
        "caseId": case.case_id,
        "orderId": case.order_id,
        "paymentId": case.payment_id,
        "userId": case.user_id,
        "targetId": case.target_id,
        "error": case.error,
        "status": case.status,
        "attempts": case.attempts,
        "resolvedBy": case.resolved_by,
        "resolvedAt": case.resolved_at.isoformat() if case.resolved_at else None,
        "createdAt": case.created_at.isoformat() if case.created_at else None,
    }


@app.get("/users/{user_id}/entitlements")
def list_entitlements(user_id: str):
    """Return the user's unlocked target ids."""

    return {"userId": user_id, "targetIds": grants.entitlements_for(user_id)}


@app.get("/users/{user_id}/entitlements/{target_id}")
def get_entitlement(user_id: str, target_id: str):
    """Membership test used before revealing contact details."""

    return {"userId": user_id, "targetId": target_id, "unlocked": grants.has_entitlement(user_id, target_id)}


@app.get("/ops/reconciliations")
def list_reconciliations(
    status: str = "PENDING",
    limit: int = 100,
    x_api_key: str | None = Header(default=None),
):
    """List reconciliation queue rows (default: pending)."""

    enforce_api_key(x_api_key)
    return [_case_view(case) for case in reconciliation.list_cases(status=status.upper(), limit=limit)]


@app.post("/ops/reconciliations/{case_id}/retry")
def retry_reconciliation(
    case_id: str,
    req: OperatorActionRequest,
    x_api_key: str | None = Header(default=None),
):
    """Re-attempt the entitlement grant for a pending case."""

    enforce_api_key(x_api_key)
    try:
        case = reconciliation.retry(case_id, req.resolved_by)
    except ReconciliationError as exc:
        return _case_error(exc)
    except ClaimAlreadyUsed as exc:
        return JSONResponse(status_code=409, content={"error": str(exc)})
    except EntitlementWriteError as exc:
        return JSONResponse(status_code=503, content={"error": "entitlement store unavailable", "orderId": exc.order_id})
    return _case_view(case)


@app.post("/ops/reconciliations/{case_id}/resolve")
def resolve_reconciliation(
    case_id: str,
    req: OperatorActionRequest,
    x_api_key: str | None = Header(default=None),
):
    """Close a case that support handled out of band."""

    enforce_api_key(x_api_key)
    try:
        case = reconciliation.resolve(case_id, req.resolved_by)
    except ReconciliationError as exc:
        return _case_error(exc)
    return _case_view(case)


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
