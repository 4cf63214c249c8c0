"""Domain error taxonomy shared by services and the checkout client."""


class GatewayError(Exception):
    """Order creation rejected by the gateway or the gateway was unreachable.

    `status_code` is the gateway's own HTTP status when it answered, otherwise
    500. `detail` is the gateway's structured error payload when present.
    """

    def __init__(self, status_code: int, detail) -> None:
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail


class GatewayNotConfigured(GatewayError):
    """Server-held gateway credentials are missing."""

    def __init__(self) -> None:
        super().__init__(500, "Payment service is not configured.")


class ClaimAlreadyUsed(Exception):
    """A verified (order_id, payment_id) pair was already recorded for another grant."""

    def __init__(self, order_id: str, payment_id: str) -> None:
        super().__init__(f"confirmation {order_id}/{payment_id} already used")
        self.order_id = order_id
        self.payment_id = payment_id


class EntitlementWriteError(Exception):
    """The entitlement store rejected a grant for an already verified payment."""

    def __init__(self, order_id: str, cause: Exception) -> None:
        super().__init__(f"entitlement write failed for order {order_id}: {cause}")
        self.order_id = order_id
        self.cause = cause


class ReconciliationError(ValueError):
    """Invalid operator action on a reconciliation case."""
