"""Order domain exceptions.

Raised by the service layer; views translate them into HTTP responses.
"""

from __future__ import annotations

from typing import Any, Dict, List


class OrderNotFound(Exception):
    """The requested order does not exist or has been soft-deleted."""


class OrderValidationError(Exception):
    """Delivery info or order lines are malformed.

    ``errors`` holds one ``{"field", "message"}`` dict per problem.  Raised
    before anything is persisted.
    """

    def __init__(self, errors: List[Dict[str, Any]]) -> None:
        self.errors = errors
        summary = "; ".join(f"{e['field']}: {e['message']}" for e in errors)
        super().__init__(f"Invalid order data: {summary}")


class InsufficientStock(Exception):
    """One or more lines ask for more units than are on hand.

    ``shortages`` lists every short line as
    ``{"product_id", "requested", "available"}``.
    """

    def __init__(self, shortages: List[Dict[str, Any]]) -> None:
        self.shortages = shortages
        detail = ", ".join(
            f"{s['product_id']} (requested {s['requested']}, available {s['available']})"
            for s in shortages
        )
        super().__init__(f"Insufficient stock: {detail}")


class RushOrderNotEligible(Exception):
    """Rush delivery was requested for an address or items that do not qualify."""


class IllegalTransition(Exception):
    """A status change outside the order transition table was attempted."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition from {current} to {target}.")


class OrderStatusConflict(Exception):
    """Compare-and-swap status update lost: the stored status changed."""

    def __init__(self, order_id: Any, expected: str, actual: str | None) -> None:
        self.order_id = order_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Order {order_id} is {actual}, expected {expected}; update rejected."
        )


class PaymentInProgress(Exception):
    """The order has a payment transaction that has not resolved yet."""
