"""Checkout outcomes other than success.

`CheckoutCancelled` deliberately does not derive from `CheckoutError`: a
dismissed checkout is a normal outcome and must not be shown as a failure.
Every `CheckoutError` says whether paying again is safe.
"""


class CheckoutCancelled(Exception):
    """The user dismissed the hosted checkout before paying."""

    def __init__(self, order_id: str | None = None) -> None:
        super().__init__("Payment was cancelled.")
        self.order_id = order_id


class CheckoutInProgress(RuntimeError):
    """A checkout flow is already running on this orchestrator."""


class CheckoutError(Exception):
    """Base class for checkout failures."""

    retry_safe = True

    def __init__(self, message: str, order_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.order_id = order_id


class WidgetLoadFailed(CheckoutError):
    """The gateway checkout widget could not be loaded."""


class OrderCreationFailed(CheckoutError):
    """The order service rejected or could not create the order; nothing was charged."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PaymentNotVerified(CheckoutError):
    """The verifier rejected the confirmation; no entitlement was granted."""

    retry_safe = False


class VerificationCallFailed(CheckoutError):
    """Payment was made but the verification call itself failed."""

    retry_safe = False

    def __init__(self, order_id: str, cause: Exception | None = None) -> None:
        super().__init__(
            "Your payment was made but we could not confirm it. "
            f"Please keep your order ID ({order_id}) and contact support if the unlock does not appear.",
            order_id=order_id,
        )
        self.cause = cause


class UnlockPendingReconciliation(CheckoutError):
    """Payment verified but the unlock was not recorded; support will reconcile."""

    retry_safe = False

    def __init__(self, order_id: str, message: str | None = None) -> None:
        super().__init__(
            message or "Your payment succeeded but something went wrong. Contact support with this reference.",
            order_id=order_id,
        )
