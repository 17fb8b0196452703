"""Single enforcement point for the order transition table."""

from __future__ import annotations

from modules.orders.constants import TERMINAL_STATES, VALID_TRANSITIONS
from modules.orders.exceptions import IllegalTransition


def can_transition(current: str, target: str) -> bool:
    return target in VALID_TRANSITIONS.get(current, set())


def ensure_transition(current: str, target: str) -> None:
    """Raise ``IllegalTransition`` unless ``current -> target`` is a table edge."""
    if not can_transition(current, target):
        raise IllegalTransition(current, target)


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATES
