"""Client checkout orchestration against fake API and widget doubles."""

import asyncio

import httpx
import pytest

from conftest import sign_claim
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
from unlockpay.checkout.loader import WidgetLoader
from unlockpay.checkout.orchestrator import CheckoutOrchestrator
from unlockpay.common import state_machine as sm

NOTES = {"userId": "u1", "guideId": "g42"}
ORDER = {"id": "order_abc", "amount": 49900, "currency": "INR", "receipt": "unlock_g42", "status": "created"}


class FakeApi:
    def __init__(self, order=None, verify=None) -> None:
        self.order = order if order is not None else httpx.Response(200, json=ORDER)
        self.verify_reply = verify if verify is not None else httpx.Response(
            200, json={"verified": True, "message": "Payment verified and guide unlocked."}
        )
        self.order_calls = []
        self.verify_calls = []

    async def create_order(self, amount, currency, receipt, notes):
        self.order_calls.append((amount, currency, receipt, notes))
        if isinstance(self.order, Exception):
            raise self.order
        return self.order

    async def verify(self, claim, user_id, target_id):
        self.verify_calls.append((claim, user_id, target_id))
        if isinstance(self.verify_reply, Exception):
            raise self.verify_reply
        return self.verify_reply


class FakeWidget:
    """Answers each `open` according to `mode`: pay, dismiss or hold."""

    def __init__(self, mode="pay") -> None:
        self.mode = mode
        self.opened = []
        self.callbacks = None

    def open(self, options, on_success, on_dismiss):
        self.opened.append(options)
        self.callbacks = (on_success, on_dismiss)
        loop = asyncio.get_running_loop()
        if self.mode == "pay":
            response = {
                "razorpay_order_id": options["order_id"],
                "razorpay_payment_id": "pay_xyz",
                "razorpay_signature": sign_claim(options["order_id"], "pay_xyz"),
            }
            loop.call_soon(on_success, response)
        elif self.mode == "dismiss":
            loop.call_soon(on_dismiss)


def make_orchestrator(api, widget):
    async def load_widget(script_url):
        await asyncio.sleep(0)
        return widget

    return CheckoutOrchestrator(api, WidgetLoader("https://checkout.test/v1/checkout.js", load_widget), key_id="rzp_test_key")


def checkout(orchestrator, notes=NOTES):
    return orchestrator.open_checkout(49900, "INR", "unlock_g42", notes, prefill={"email": "u1@example.com"})


def test_paid_and_verified_checkout_returns_claim():
    api, widget = FakeApi(), FakeWidget()
    orchestrator = make_orchestrator(api, widget)

    claim = asyncio.run(checkout(orchestrator))

    assert (claim.order_id, claim.payment_id) == ("order_abc", "pay_xyz")
    assert orchestrator.state == sm.CONFIRMED
    assert orchestrator.history == [sm.IDLE, sm.SCRIPT_LOADING, sm.ORDER_PENDING, sm.CHECKOUT_OPEN, sm.CONFIRMED]
    [(sent_claim, user_id, target_id)] = api.verify_calls
    assert sent_claim == {"orderId": "order_abc", "paymentId": "pay_xyz", "signature": claim.signature}
    assert (user_id, target_id) == ("u1", "g42")


def test_widget_options_scoped_to_gateway_order():
    api = FakeApi(order=httpx.Response(200, json={**ORDER, "amount": 50000}))
    widget = FakeWidget()

    asyncio.run(checkout(make_orchestrator(api, widget)))

    [options] = widget.opened
    assert options["key"] == "rzp_test_key"
    assert options["order_id"] == "order_abc"
    # The gateway's echoed amount wins over the requested one.
    assert options["amount"] == 50000
    assert options["currency"] == "INR"
    assert options["name"] == "MahaYatri"
    assert options["description"] == "Guide Contact Unlock"
    assert options["prefill"] == {"email": "u1@example.com"}
    assert options["notes"] == NOTES
    assert options["theme"] == {"color": "#FF642C"}


def test_dismissed_checkout_never_verifies():
    api = FakeApi()
    orchestrator = make_orchestrator(api, FakeWidget("dismiss"))

    with pytest.raises(CheckoutCancelled) as excinfo:
        asyncio.run(checkout(orchestrator))

    assert not isinstance(excinfo.value, CheckoutError)
    assert excinfo.value.order_id == "order_abc"
    assert api.verify_calls == []
    assert orchestrator.state == sm.DISMISSED


def test_order_rejection_never_opens_checkout():
    api = FakeApi(order=httpx.Response(400, json={"error": "amount: Input should be greater than 0"}))
    widget = FakeWidget()
    orchestrator = make_orchestrator(api, widget)

    with pytest.raises(OrderCreationFailed) as excinfo:
        asyncio.run(checkout(orchestrator))

    assert excinfo.value.status_code == 400
    assert excinfo.value.message == "amount: Input should be greater than 0"
    assert excinfo.value.retry_safe
    assert widget.opened == []
    assert orchestrator.history[-2:] == [sm.ORDER_PENDING, sm.ERROR]


def test_order_service_unreachable():
    api = FakeApi(order=httpx.ConnectError("connection refused"))
    orchestrator = make_orchestrator(api, FakeWidget())

    with pytest.raises(OrderCreationFailed):
        asyncio.run(checkout(orchestrator))
    assert orchestrator.state == sm.ERROR


def test_rejected_confirmation():
    api = FakeApi(verify=httpx.Response(400, json={"verified": False, "error": "Payment verification failed: Invalid signature."}))
    orchestrator = make_orchestrator(api, FakeWidget())

    with pytest.raises(PaymentNotVerified) as excinfo:
        asyncio.run(checkout(orchestrator))

    assert not excinfo.value.retry_safe
    assert excinfo.value.order_id == "order_abc"
    assert orchestrator.state == sm.ERROR


def test_verify_network_failure_keeps_order_id():
    api = FakeApi(verify=httpx.ReadTimeout("timed out"))
    orchestrator = make_orchestrator(api, FakeWidget())

    with pytest.raises(VerificationCallFailed) as excinfo:
        asyncio.run(checkout(orchestrator))

    assert excinfo.value.order_id == "order_abc"
    assert "order_abc" in str(excinfo.value)
    assert not excinfo.value.retry_safe


def test_verified_but_not_granted_is_pending_reconciliation():
    api = FakeApi(
        verify=httpx.Response(
            200,
            json={"verified": True, "error": "Could not update your account.", "orderId": "order_abc"},
        )
    )
    orchestrator = make_orchestrator(api, FakeWidget())

    with pytest.raises(UnlockPendingReconciliation) as excinfo:
        asyncio.run(checkout(orchestrator))

    assert excinfo.value.order_id == "order_abc"
    assert not excinfo.value.retry_safe


def test_widget_load_failure_then_retry():
    attempts = []
    widget = FakeWidget()

    async def flaky_load(script_url):
        attempts.append(script_url)
        if len(attempts) == 1:
            raise OSError("script blocked")
        return widget

    orchestrator = CheckoutOrchestrator(FakeApi(), WidgetLoader("https://checkout.test/v1/checkout.js", flaky_load), key_id="k")

    async def scenario():
        with pytest.raises(WidgetLoadFailed):
            await checkout(orchestrator)
        return await checkout(orchestrator)

    claim = asyncio.run(scenario())

    assert claim.order_id == "order_abc"
    assert orchestrator.loader.load_count == 2


def test_concurrent_loads_share_one_attach():
    loads = []
    release = None

    async def slow_load(script_url):
        loads.append(script_url)
        await release.wait()
        return FakeWidget()

    async def scenario():
        nonlocal release
        release = asyncio.Event()
        loader = WidgetLoader("https://checkout.test/v1/checkout.js", slow_load)
        first = asyncio.ensure_future(loader.load())
        second = asyncio.ensure_future(loader.load())
        await asyncio.sleep(0)
        release.set()
        widgets = await asyncio.gather(first, second)
        third = await loader.load()
        return loader, widgets, third

    loader, (first, second), third = asyncio.run(scenario())

    assert first is second is third
    assert loads == ["https://checkout.test/v1/checkout.js"]
    assert loader.load_count == 1
    assert loader.loaded


def test_reentry_while_open_is_rejected():
    api = FakeApi()
    widget = FakeWidget("hold")
    orchestrator = make_orchestrator(api, widget)

    async def scenario():
        running = asyncio.ensure_future(checkout(orchestrator))
        while orchestrator.state != sm.CHECKOUT_OPEN:
            await asyncio.sleep(0)
        with pytest.raises(CheckoutInProgress):
            await checkout(orchestrator)
        assert orchestrator.state == sm.CHECKOUT_OPEN
        _, on_dismiss = widget.callbacks
        on_dismiss()
        with pytest.raises(CheckoutCancelled):
            await running

    asyncio.run(scenario())

    assert len(api.order_calls) == 1
    assert api.verify_calls == []


def test_next_invocation_starts_from_idle():
    api = FakeApi()
    widget = FakeWidget("dismiss")
    orchestrator = make_orchestrator(api, widget)

    async def scenario():
        with pytest.raises(CheckoutCancelled):
            await checkout(orchestrator)
        widget.mode = "pay"
        return await checkout(orchestrator)

    claim = asyncio.run(scenario())

    assert claim.payment_id == "pay_xyz"
    # Each invocation keeps only its own path.
    assert orchestrator.history == [sm.IDLE, sm.SCRIPT_LOADING, sm.ORDER_PENDING, sm.CHECKOUT_OPEN, sm.CONFIRMED]
    assert orchestrator.loader.load_count == 1


def test_notes_must_identify_user_and_target():
    api = FakeApi()
    orchestrator = make_orchestrator(api, FakeWidget())

    with pytest.raises(ValueError):
        asyncio.run(checkout(orchestrator, notes={"guideId": "g42"}))

    assert api.order_calls == []
    assert orchestrator.state == sm.IDLE


def test_from_settings_uses_configured_checkout():
    async def load_widget(script_url):
        return FakeWidget()

    orchestrator = CheckoutOrchestrator.from_settings(load_widget)

    assert orchestrator.key_id == "rzp_test_key"
    assert orchestrator.loader.script_url == "https://checkout.razorpay.com/v1/checkout.js"
    assert orchestrator.api.base_url == "http://unlock-api:8000"
    assert orchestrator.theme_color == "#FF642C"


def test_timed_out_checkout_releases_the_flow():
    api = FakeApi()
    widget = FakeWidget("hold")
    orchestrator = make_orchestrator(api, widget)

    async def scenario():
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(checkout(orchestrator), 0.05)
        assert orchestrator.state == sm.ERROR
        widget.mode = "pay"
        return await checkout(orchestrator)

    claim = asyncio.run(scenario())

    assert claim.order_id == "order_abc"
    assert orchestrator.state == sm.CONFIRMED
    assert len(api.order_calls) == 2


def test_cancelled_checkout_is_not_left_busy():
    orchestrator = make_orchestrator(FakeApi(), FakeWidget("hold"))

    async def scenario():
        running = asyncio.ensure_future(checkout(orchestrator))
        while orchestrator.state != sm.CHECKOUT_OPEN:
            await asyncio.sleep(0)
        running.cancel()
        with pytest.raises(asyncio.CancelledError):
            await running

    asyncio.run(scenario())

    assert orchestrator.state == sm.ERROR
    assert not sm.is_busy(orchestrator.state)


def test_unexpected_verify_failure_moves_to_error():
    api = FakeApi(verify=RuntimeError("client bug"))
    orchestrator = make_orchestrator(api, FakeWidget())

    with pytest.raises(RuntimeError):
        asyncio.run(checkout(orchestrator))

    assert orchestrator.history[-2:] == [sm.CHECKOUT_OPEN, sm.ERROR]


@pytest.mark.parametrize("missing", ["amount", "currency"])
def test_incomplete_order_never_opens_checkout(missing):
    order = {key: value for key, value in ORDER.items() if key != missing}
    widget = FakeWidget()
    orchestrator = make_orchestrator(FakeApi(order=httpx.Response(200, json=order)), widget)

    with pytest.raises(OrderCreationFailed):
        asyncio.run(checkout(orchestrator))

    assert widget.opened == []
    assert orchestrator.state == sm.ERROR
