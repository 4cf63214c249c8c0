"""HMAC-SHA256 authentication of gateway confirmations.

The gateway signs `order_id|payment_id` with the merchant key secret for
checkout confirmations, and the raw request body with the webhook secret for
webhook deliveries. Both checks use constant-time comparison.
"""

import hashlib
import hmac


class SignatureVerifier:
    """Holds one shared secret; never exposes it."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("signature secret must be non-empty")
        self._secret = secret.encode("utf-8")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(secret=<redacted>)"

    def sign(self, message: bytes) -> str:
        """Hex HMAC-SHA256 of `message`."""

        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def matches(self, message: bytes, signature: str) -> bool:
        """Constant-time check of `signature` against the expected digest."""

        if not signature:
            return False
        return hmac.compare_digest(self.sign(message).encode("ascii"), signature.encode("utf-8"))


class ConfirmationVerifier(SignatureVerifier):
    """Authenticates checkout confirmation claims `{order_id, payment_id, signature}`."""

    @staticmethod
    def message(order_id: str, payment_id: str) -> bytes:
        return f"{order_id}|{payment_id}".encode("utf-8")

    def expected_signature(self, order_id: str, payment_id: str) -> str:
        return self.sign(self.message(order_id, payment_id))

    def verify(self, order_id: str, payment_id: str, signature: str) -> bool:
        return self.matches(self.message(order_id, payment_id), signature)


class WebhookVerifier(SignatureVerifier):
    """Authenticates raw webhook bodies against `X-Razorpay-Signature`."""

    def verify(self, raw_body: bytes, signature: str | None) -> bool:
        return self.matches(raw_body, signature or "")
