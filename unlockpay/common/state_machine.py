"""Checkout state machine transitions enforced by the orchestrator."""

IDLE = "IDLE"
SCRIPT_LOADING = "SCRIPT_LOADING"
ORDER_PENDING = "ORDER_PENDING"
CHECKOUT_OPEN = "CHECKOUT_OPEN"
CONFIRMED = "CONFIRMED"
DISMISSED = "DISMISSED"
ERROR = "ERROR"

TERMINAL_STATES = frozenset({CONFIRMED, DISMISSED, ERROR})

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    IDLE: {SCRIPT_LOADING},
    SCRIPT_LOADING: {ORDER_PENDING, ERROR},
    ORDER_PENDING: {CHECKOUT_OPEN, ERROR},
    CHECKOUT_OPEN: {CONFIRMED, DISMISSED, ERROR},
    # Terminal outcomes settle back to IDLE so the next invocation can start.
    CONFIRMED: {IDLE},
    DISMISSED: {IDLE},
    ERROR: {IDLE},
}


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid transition: {current} -> {new}")


def is_busy(state: str) -> bool:
    """True while a checkout flow owns the orchestrator."""

    return state != IDLE and state not in TERMINAL_STATES
