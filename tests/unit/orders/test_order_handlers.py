"""Unit tests for order event handlers and the outbox publisher."""

from __future__ import annotations

from uuid import uuid4

import pytest
from structlog.testing import capture_logs

from modules.core.models import EventStatus, OutboxEvent
from modules.core.tasks import publish_outbox_events
from modules.orders.events import OrderPaid, OrderStatusChanged, StockCommitFailed
from modules.orders.handlers import (
    order_paid_handler,
    order_status_changed_handler,
    stock_commit_failed_handler,
)

pytestmark = pytest.mark.unit


class TestHandlers:
    def test_status_changed_logged(self):
        event = OrderStatusChanged(
            aggregate_id=uuid4(), old_status="APPROVED", new_status="SHIPPING"
        )
        with capture_logs() as logs:
            order_status_changed_handler.handle(event)

        assert logs[0]["event"] == "order.event.status_changed"
        assert logs[0]["new_status"] == "SHIPPING"

    def test_paid_logged(self):
        with capture_logs() as logs:
            order_paid_handler.handle(
                OrderPaid(aggregate_id=uuid4(), transaction_id="t-1", amount="10.00")
            )
        assert logs[0]["event"] == "order.event.paid"

    def test_stock_commit_failure_logged_as_error(self):
        shortage = {"product_id": "p", "requested": 2, "available": 0}
        with capture_logs() as logs:
            stock_commit_failed_handler.handle(
                StockCommitFailed(aggregate_id=uuid4(), shortages=(shortage,))
            )
        assert logs[0]["log_level"] == "error"
        assert logs[0]["shortages"] == [shortage]


class TestPublishOutboxEvents:
    def test_pending_rows_published(self, engine, place_dto, product):
        engine.place_order(place_dto((product, 1)))
        assert OutboxEvent.objects.filter(status=EventStatus.PENDING).count() == 2

        with capture_logs() as logs:
            result = publish_outbox_events()

        assert result == {"published": 2, "failed": 0}
        assert not OutboxEvent.objects.filter(status=EventStatus.PENDING).exists()
        names = [entry["event"] for entry in logs]
        assert "order.event.created" in names
        assert names.count("order.event.status_changed") == 1

    def test_unknown_event_type_marked_failed(self):
        row = OutboxEvent.objects.create(
            event_type="LegacyEvent",
            payload={},
            aggregate_id=str(uuid4()),
            topic="orders",
        )

        result = publish_outbox_events()

        row.refresh_from_db()
        assert result == {"published": 0, "failed": 1}
        assert row.status == EventStatus.FAILED
        assert row.retry_count == 1
        assert "LegacyEvent" in row.error_message

    def test_malformed_payload_marked_failed(self):
        row = OutboxEvent.objects.create(
            event_type="OrderPaid",
            payload={"amount": "1.00"},
            aggregate_id=str(uuid4()),
            topic="orders",
        )

        result = publish_outbox_events()

        row.refresh_from_db()
        assert result["failed"] == 1
        assert row.status == EventStatus.FAILED

    def test_batch_size_respected(self):
        for _ in range(3):
            OutboxEvent.objects.create(
                event_type="OrderPaid",
                payload={"aggregate_id": str(uuid4()), "amount": "1.00"},
                aggregate_id="x",
                topic="orders",
            )
        assert publish_outbox_events(batch_size=2) == {"published": 2, "failed": 0}
        assert OutboxEvent.objects.filter(status=EventStatus.PENDING).count() == 1
