"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Raised when an order is placed."""

    order_number: str = ""
    total_amount: str = ""


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised on every accepted status transition."""

    old_status: str = ""
    new_status: str = ""


@dataclass(frozen=True)
class OrderPaid(DomainEvent):
    """Raised when a charge succeeded and stock was committed."""

    transaction_id: str = ""
    amount: str = ""


@dataclass(frozen=True)
class StockCommitFailed(DomainEvent):
    """Raised when a paid order could not take its stock."""

    shortages: tuple = ()
