"""Public entrypoint for gateway order creation.

Validates checkout parameters, throttles per client with a Redis token bucket
and forwards exactly one create-order call to the payment gateway.
"""

from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse

from unlockpay.common.bootstrap import bootstrap_process, instrument_app
from unlockpay.common.config import settings
from unlockpay.common.errors import GatewayError
from unlockpay.common.logging import bind_request, logger
from unlockpay.common.metrics import metrics_response
from unlockpay.common.notes import NOTE_USER_KEY
from unlockpay.common.ratelimit import TokenBucket
from unlockpay.services.orders.gateway import GatewayClient
from unlockpay.services.orders.schemas import OrderCreateRequest
from unlockpay.services.orders.service import OrderService

bootstrap_process(
    settings.service_name,
    [
        "SERVICE_NAME",
        "GATEWAY_BASE_URL",
        "GATEWAY_KEY_ID",
        "GATEWAY_KEY_SECRET",
        "REDIS_URL",
        "RATE_LIMIT_PER_MINUTE",
    ],
)
service = OrderService(
    GatewayClient(
        settings.gateway_base_url,
        settings.gateway_key_id,
        settings.gateway_key_secret,
        timeout=settings.gateway_timeout_seconds,
    ),
    service_name=settings.service_name,
)
limiter = TokenBucket(
    redis.Redis.from_url(settings.redis_url, decode_responses=True),
    settings.rate_limit_per_minute,
    prefix="tokenbucket:orders",
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Flag missing gateway credentials at startup."""

    if not service.gateway.configured:
        # Requests answer 500 "not configured" until credentials are set.
        logger.error("payment gateway key id/secret are not configured")
    yield


app = FastAPI(title="Unlock Order Service", lifespan=lifespan)
instrument_app(app)


def _client_key(req: OrderCreateRequest, request: Request) -> str:
    user_id = req.notes.get(NOTE_USER_KEY)
    if user_id:
        return f"user:{user_id}"
    return f"ip:{request.client.host if request.client else 'local'}"


@app.post("/orders")
async def create_order(
    req: OrderCreateRequest,
    request: Request,
    x_correlation_id: str | None = Header(default=None),
):
    """Create a gateway order and return the gateway's order object verbatim."""

    bind_request(x_correlation_id, user_id=req.notes.get(NOTE_USER_KEY, ""))
    if not limiter.allow(_client_key(req, request)):
        return JSONResponse(status_code=429, content={"error": "rate limit exceeded"})
    try:
        return await service.create_order(req)
    except GatewayError as exc:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True}
