"""Order initiation: validated parameters in, gateway order out."""

from pydantic import ValidationError

from unlockpay.common.errors import GatewayError
from unlockpay.common.logging import logger
from unlockpay.common.metrics import gateway_latency_seconds, order_failures_total, orders_created_total
from unlockpay.services.orders.gateway import GatewayClient
from unlockpay.services.orders.schemas import Order, OrderCreateRequest


class OrderService:
    """Creates one gateway order per checkout attempt."""

    def __init__(self, gateway: GatewayClient, service_name: str = "orders") -> None:
        self.gateway = gateway
        self.service_name = service_name

    async def create_order(self, req: OrderCreateRequest) -> dict:
        """Issue the create-order call with exactly the request fields.

        The gateway's body is returned as-is so the client shows the
        gateway-accurate total; it is only checked to carry an order id.
        """

        payload = req.model_dump()
        logger.info(
            "creating gateway order receipt=%s amount=%s currency=%s",
            req.receipt,
            req.amount,
            req.currency,
        )
        try:
            with gateway_latency_seconds.labels(service=self.service_name).time():
                body = await self.gateway.create_order(payload)
        except GatewayError as exc:
            order_failures_total.labels(service=self.service_name, status_code=str(exc.status_code)).inc()
            logger.error(
                "gateway order creation failed receipt=%s status=%s detail=%s",
                req.receipt,
                exc.status_code,
                exc.detail,
            )
            raise

        try:
            order = Order.model_validate(body)
        except ValidationError as exc:
            order_failures_total.labels(service=self.service_name, status_code="500").inc()
            logger.error("gateway returned malformed order receipt=%s", req.receipt)
            raise GatewayError(500, "Internal Server Error") from exc

        orders_created_total.labels(service=self.service_name).inc()
        logger.info("gateway order created order_id=%s receipt=%s", order.id, req.receipt)
        return body
