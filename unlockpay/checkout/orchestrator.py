"""Client-side checkout orchestration.

Drives one unlock purchase through the state machine in
`unlockpay.common.state_machine`: load the widget, create the order, open the
hosted checkout, then hand the confirmation claim to the verifier. The only
successful exit is a claim the server verified; every other exit is either
`CheckoutCancelled` or a `CheckoutError` subclass.
"""

import asyncio
from typing import Awaitable, Callable

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from unlockpay.checkout.client import UnlockApiClient
from unlockpay.checkout.errors import (
    CheckoutCancelled,
    CheckoutError,
    CheckoutInProgress,
    OrderCreationFailed,
    PaymentNotVerified,
    UnlockPendingReconciliation,
    VerificationCallFailed,
    WidgetLoadFailed,
)
from unlockpay.checkout.loader import CheckoutWidget, WidgetLoader
from unlockpay.common import state_machine as sm
from unlockpay.common.config import settings
from unlockpay.common.logging import logger
from unlockpay.common.notes import correlate

DEFAULT_DESCRIPTION = "Guide Contact Unlock"


class ConfirmationClaim(BaseModel):
    """Payment-identifying payload the widget returns on success. Untrusted."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    order_id: str = Field(alias="orderId", validation_alias=AliasChoices("orderId", "razorpay_order_id"))
    payment_id: str = Field(alias="paymentId", validation_alias=AliasChoices("paymentId", "razorpay_payment_id"))
    signature: str = Field(validation_alias=AliasChoices("signature", "razorpay_signature"))


class CheckoutOrchestrator:
    """Non-reentrant: one checkout flow at a time per instance."""

    def __init__(
        self,
        api: UnlockApiClient,
        loader: WidgetLoader,
        key_id: str,
        merchant_name: str = "MahaYatri",
        description: str = DEFAULT_DESCRIPTION,
        theme_color: str = "#FF642C",
    ) -> None:
        self.api = api
        self.loader = loader
        self.key_id = key_id
        self.merchant_name = merchant_name
        self.description = description
        self.theme_color = theme_color
        self.state = sm.IDLE
        self.history: list[str] = [sm.IDLE]

    @classmethod
    def from_settings(cls, load_widget: Callable[[str], Awaitable[CheckoutWidget]]) -> "CheckoutOrchestrator":
        """Build an orchestrator wired to the configured API and widget script."""

        return cls(
            UnlockApiClient(settings.unlock_api_url),
            WidgetLoader(settings.checkout_script_url, load_widget),
            key_id=settings.gateway_key_id,
            merchant_name=settings.merchant_name,
            theme_color=settings.checkout_theme_color,
        )

    def _move(self, new_state: str) -> None:
        sm.validate_transition(self.state, new_state)
        self.state = new_state
        self.history.append(new_state)

    def _fail(self, error: CheckoutError) -> CheckoutError:
        self._move(sm.ERROR)
        logger.warning("checkout failed state=ERROR order_id=%s error=%s", error.order_id, error.message)
        return error

    async def open_checkout(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: dict[str, str],
        prefill: dict[str, str] | None = None,
    ) -> ConfirmationClaim:
        """Run one purchase; returns the claim only after server verification."""

        if sm.is_busy(self.state):
            raise CheckoutInProgress(f"checkout already running (state={self.state})")
        user_id, target_id = correlate(notes)
        if not (user_id and target_id):
            raise ValueError("notes must carry the user id and target id being unlocked")
        if self.state != sm.IDLE:
            sm.validate_transition(self.state, sm.IDLE)
            self.state = sm.IDLE
            self.history = [sm.IDLE]

        self._move(sm.SCRIPT_LOADING)
        try:
            return await self._purchase(amount, currency, receipt, notes, prefill or {}, user_id, target_id)
        except BaseException:
            # Cancellation, timeouts and unexpected errors must not leave the flow busy.
            if sm.is_busy(self.state):
                logger.warning("checkout aborted state=%s", self.state)
                self._move(sm.ERROR)
            raise

    async def _purchase(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: dict,
        prefill: dict,
        user_id: str,
        target_id: str,
    ) -> ConfirmationClaim:
        try:
            widget = await self.loader.load()
        except Exception as exc:
            raise self._fail(WidgetLoadFailed(f"Could not load the payment widget: {exc}")) from exc

        self._move(sm.ORDER_PENDING)
        order = await self._create_order(amount, currency, receipt, notes)
        order_id = order["id"]

        self._move(sm.CHECKOUT_OPEN)
        response = await self._run_widget(widget, order, notes, prefill)
        if response is None:
            self._move(sm.DISMISSED)
            logger.info("checkout dismissed order_id=%s", order_id)
            raise CheckoutCancelled(order_id)

        try:
            claim = ConfirmationClaim.model_validate(response)
        except ValueError as exc:
            raise self._fail(VerificationCallFailed(order_id, exc)) from exc
        await self._verify(claim, user_id, target_id)
        self._move(sm.CONFIRMED)
        return claim

    async def _create_order(self, amount: int, currency: str, receipt: str, notes: dict) -> dict:
        try:
            resp = await self.api.create_order(amount, currency, receipt, notes)
        except httpx.HTTPError as exc:
            raise self._fail(OrderCreationFailed(f"Could not reach the order service: {exc}")) from exc
        body = _json_body(resp)
        if resp.status_code >= 400:
            message = body.get("error") if isinstance(body.get("error"), str) else f"Could not create order ({resp.status_code})"
            raise self._fail(OrderCreationFailed(message, status_code=resp.status_code))
        if not all(body.get(field) for field in ("id", "amount", "currency")):
            raise self._fail(OrderCreationFailed("Order service returned an incomplete order", status_code=resp.status_code))
        return body

    async def _run_widget(self, widget: CheckoutWidget, order: dict, notes: dict, prefill: dict) -> dict | None:
        """Bridge the widget's callbacks onto one awaitable outcome (None = dismissed)."""

        outcome: asyncio.Future = asyncio.get_running_loop().create_future()

        def on_success(response: dict) -> None:
            if not outcome.done():
                outcome.set_result(response)

        def on_dismiss() -> None:
            if not outcome.done():
                outcome.set_result(None)

        try:
            options = {
                "key": self.key_id,
                "amount": order["amount"],
                "currency": order["currency"],
                "name": self.merchant_name,
                "description": self.description,
                "order_id": order["id"],
                "prefill": prefill,
                "notes": notes,
                "theme": {"color": self.theme_color},
            }
            widget.open(options, on_success, on_dismiss)
        except Exception as exc:
            raise self._fail(CheckoutError(f"Could not open checkout: {exc}", order_id=order["id"])) from exc
        return await outcome

    async def _verify(self, claim: ConfirmationClaim, user_id: str, target_id: str) -> None:
        try:
            resp = await self.api.verify(claim.model_dump(by_alias=True), user_id, target_id)
        except httpx.HTTPError as exc:
            raise self._fail(VerificationCallFailed(claim.order_id, exc)) from exc

        body = _json_body(resp)
        verified = body.get("verified")
        if verified is True and not body.get("error") and resp.status_code < 400:
            return
        if verified is True:
            raise self._fail(UnlockPendingReconciliation(body.get("orderId") or claim.order_id, body.get("error")))
        if verified is False:
            raise self._fail(PaymentNotVerified(body.get("error") or "Payment verification failed.", claim.order_id))
        raise self._fail(VerificationCallFailed(claim.order_id))


def _json_body(resp: httpx.Response) -> dict:
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
