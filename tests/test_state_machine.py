"""Unit tests for checkout state-machine guardrails."""

import pytest

from unlockpay.common import state_machine as sm
from unlockpay.common.state_machine import validate_transition


def test_valid_transition():
    """Sanity check: the happy path is legal end to end."""

    path = [sm.IDLE, sm.SCRIPT_LOADING, sm.ORDER_PENDING, sm.CHECKOUT_OPEN, sm.CONFIRMED, sm.IDLE]
    for current, new in zip(path, path[1:]):
        validate_transition(current, new)


def test_invalid_transition():
    """Checkout cannot open before an order exists."""

    with pytest.raises(ValueError):
        validate_transition(sm.IDLE, sm.CHECKOUT_OPEN)


@pytest.mark.parametrize("terminal", [sm.CONFIRMED, sm.DISMISSED, sm.ERROR])
def test_terminal_states_only_return_to_idle(terminal):
    validate_transition(terminal, sm.IDLE)
    with pytest.raises(ValueError):
        validate_transition(terminal, sm.SCRIPT_LOADING)


def test_dismiss_only_from_open_checkout():
    with pytest.raises(ValueError):
        validate_transition(sm.ORDER_PENDING, sm.DISMISSED)


def test_busy_states():
    assert not sm.is_busy(sm.IDLE)
    assert not sm.is_busy(sm.ERROR)
    assert sm.is_busy(sm.SCRIPT_LOADING)
    assert sm.is_busy(sm.CHECKOUT_OPEN)
