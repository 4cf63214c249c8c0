"""HTTP client the checkout orchestrator uses to reach the unlock services."""

from uuid import uuid4

import httpx


class UnlockApiClient:
    """Calls `POST /orders` and `POST /verify` on the unlock API.

    Transport errors are left to the caller: the orchestrator must tell an
    order failure (nothing paid) from a verify failure (already paid).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    async def create_order(self, amount: int, currency: str, receipt: str, notes: dict) -> httpx.Response:
        async with self._client() as client:
            return await client.post(
                "/orders",
                json={"amount": amount, "currency": currency, "receipt": receipt, "notes": notes},
                headers={"x-correlation-id": str(uuid4())},
            )

    async def verify(self, claim: dict, user_id: str, target_id: str) -> httpx.Response:
        async with self._client() as client:
            return await client.post(
                "/verify",
                json={
                    "orderId": claim["orderId"],
                    "paymentId": claim["paymentId"],
                    "signature": claim["signature"],
                    "userId": user_id,
                    "targetId": target_id,
                },
                headers={"x-correlation-id": str(uuid4())},
            )
