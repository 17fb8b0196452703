"""Asynchronous tasks for the core module."""

from __future__ import annotations

import structlog
from celery import shared_task
from django.db import transaction

from modules.core.models import EventStatus, OutboxEvent
from shared.domain.events import DomainEvent
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)

OUTBOX_BATCH_SIZE = 100


@shared_task(name="core.publish_outbox_events")
def publish_outbox_events(batch_size: int = OUTBOX_BATCH_SIZE) -> dict:
    """Replay pending outbox rows onto the in-process event bus.

    Rows whose event type is no longer registered, or whose handler raises,
    are marked FAILED with the error so an operator can inspect them.
    """
    published = failed = 0
    with transaction.atomic():
        pending = list(
            OutboxEvent.objects.select_for_update(skip_locked=True)
            .filter(status=EventStatus.PENDING)
            .order_by("created_at")[:batch_size]
        )
        for row in pending:
            event_cls = DomainEvent.registry.get(row.event_type)
            if event_cls is None:
                row.mark_as_failed(f"Unknown event type {row.event_type}")
                failed += 1
                continue
            try:
                event_bus.publish(event_cls.from_payload(row.payload))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(
                    "outbox.publish_failed",
                    outbox_id=str(row.id),
                    event_type=row.event_type,
                    error=str(exc),
                )
                row.mark_as_failed(str(exc))
                failed += 1
                continue
            row.mark_as_published()
            published += 1

    logger.info("outbox.drained", published=published, failed=failed)
    return {"published": published, "failed": failed}
