"""HTTP client for the payment gateway's order API.

Authenticates with the server-held key id/secret (HTTP basic auth) and maps
gateway answers onto `GatewayError` so routes can pass the gateway's own
status through. Calls are never retried: a retried create-order can leave two
orders for one receipt.
"""

import httpx

from unlockpay.common.errors import GatewayError, GatewayNotConfigured
from unlockpay.common.logging import logger


class GatewayClient:
    """Thin async wrapper around `POST /v1/orders`."""

    def __init__(
        self,
        base_url: str,
        key_id: str,
        key_secret: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.key_id = key_id
        self._key_secret = key_secret
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self._key_secret)

    def __repr__(self) -> str:
        return f"GatewayClient(base_url={self.base_url!r}, key_id={self.key_id!r})"

    async def create_order(self, payload: dict) -> dict:
        """Create one order and return the gateway's JSON body verbatim."""

        if not self.configured:
            raise GatewayNotConfigured()
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                auth=(self.key_id, self._key_secret),
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                resp = await client.post("/v1/orders", json=payload)
        except httpx.HTTPError as exc:
            logger.error("gateway transport error receipt=%s error=%s", payload.get("receipt"), exc)
            raise GatewayError(500, "Internal Server Error") from exc

        if resp.status_code >= 400:
            raise GatewayError(resp.status_code, _error_detail(resp))
        try:
            return resp.json()
        except ValueError as exc:
            raise GatewayError(500, "Internal Server Error") from exc


def _error_detail(resp: httpx.Response):
    """Prefer the gateway's structured `error` object over raw text."""

    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"gateway returned {resp.status_code}"
    if isinstance(body, dict) and body.get("error") is not None:
        return body["error"]
    return body
