"""Single-flight loader for the gateway's checkout widget.

The embedding surface supplies `load_widget(script_url)`, which attaches the
gateway script and returns a `CheckoutWidget`. The loader guarantees that at
most one attach is ever in flight: concurrent callers await the same task.
"""

import asyncio
from typing import Awaitable, Callable, Protocol

from unlockpay.common.logging import logger


class CheckoutWidget(Protocol):
    """Handle on the gateway's hosted checkout UI."""

    def open(
        self,
        options: dict,
        on_success: Callable[[dict], None],
        on_dismiss: Callable[[], None],
    ) -> None:
        """Show the checkout; exactly one of the callbacks fires later."""


class WidgetLoader:
    """Loads the widget once; failed loads are cleared so a later call can retry."""

    def __init__(self, script_url: str, load_widget: Callable[[str], Awaitable[CheckoutWidget]]) -> None:
        self.script_url = script_url
        self._load_widget = load_widget
        self._widget: CheckoutWidget | None = None
        self._inflight: asyncio.Task | None = None
        self.load_count = 0

    @property
    def loaded(self) -> bool:
        return self._widget is not None

    async def load(self) -> CheckoutWidget:
        if self._widget is not None:
            return self._widget
        # Check-then-attach: the task is registered before the first await.
        if self._inflight is None:
            self.load_count += 1
            self._inflight = asyncio.ensure_future(self._load_widget(self.script_url))
        task = self._inflight
        try:
            widget = await asyncio.shield(task)
        except Exception:
            if self._inflight is task:
                self._inflight = None
            logger.warning("checkout widget load failed script=%s", self.script_url)
            raise
        self._widget = widget
        self._inflight = None
        return widget
