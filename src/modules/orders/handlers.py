"""Event handlers for Orders domain events."""

from __future__ import annotations

import structlog

from modules.orders.events import (
    OrderCreated,
    OrderPaid,
    OrderStatusChanged,
    StockCommitFailed,
)
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class OrderCreatedHandler(IEventHandler[OrderCreated]):
    def handle(self, event: OrderCreated) -> None:
        logger.info(
            "order.event.created",
            order_id=str(event.aggregate_id),
            order_number=event.order_number,
            total_amount=event.total_amount,
        )


class OrderStatusChangedHandler(IEventHandler[OrderStatusChanged]):
    def handle(self, event: OrderStatusChanged) -> None:
        logger.info(
            "order.event.status_changed",
            order_id=str(event.aggregate_id),
            old_status=event.old_status,
            new_status=event.new_status,
        )


class OrderPaidHandler(IEventHandler[OrderPaid]):
    def handle(self, event: OrderPaid) -> None:
        logger.info(
            "order.event.paid",
            order_id=str(event.aggregate_id),
            transaction_id=event.transaction_id,
            amount=event.amount,
        )


class StockCommitFailedHandler(IEventHandler[StockCommitFailed]):
    def handle(self, event: StockCommitFailed) -> None:
        # Needs an operator: payment captured but inventory could not follow
        logger.error(
            "order.event.stock_commit_failed",
            order_id=str(event.aggregate_id),
            shortages=list(event.shortages),
        )


order_created_handler = OrderCreatedHandler()
order_status_changed_handler = OrderStatusChangedHandler()
order_paid_handler = OrderPaidHandler()
stock_commit_failed_handler = StockCommitFailedHandler()
