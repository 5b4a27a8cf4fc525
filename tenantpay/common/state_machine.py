"""Confirmation state transitions enforced by every tracker session."""

WAITING = "WAITING"
PROCESSING = "PROCESSING"
CONFIRMED = "CONFIRMED"
PARTIAL = "PARTIAL"
CLOSED = "CLOSED"

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    WAITING: {PROCESSING, CONFIRMED, PARTIAL, CLOSED},
    PROCESSING: {CONFIRMED, PARTIAL, CLOSED},
    CONFIRMED: set(),
    PARTIAL: set(),
    CLOSED: set(),
}

TERMINAL_STATES = frozenset({CONFIRMED, PARTIAL, CLOSED})
CANCELLABLE_STATES = frozenset({WAITING, PROCESSING})

# WAITING < PROCESSING < {CONFIRMED, PARTIAL}
STATE_RANK: dict[str, int] = {
    WAITING: 0,
    PROCESSING: 1,
    CONFIRMED: 2,
    PARTIAL: 2,
    CLOSED: 2,
}


class InvalidTransition(ValueError):
    pass


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransition(f"Invalid transition: {current} -> {new}")
