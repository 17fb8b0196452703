"""Periodic payment housekeeping."""

from __future__ import annotations

from datetime import timedelta

import structlog
from celery import shared_task

from modules.orders.factories import build_lifecycle_engine

logger = structlog.get_logger(__name__)


@shared_task(name="payments.expire_stale_payments")
def expire_stale_payments(older_than_minutes: int | None = None) -> dict:
    """Resolve or expire charges still waiting on the gateway."""
    older_than = None
    if older_than_minutes is not None:
        older_than = timedelta(minutes=older_than_minutes)
    summary = build_lifecycle_engine().expire_stale_payments(older_than=older_than)
    logger.info("payment.expiry_task_finished", **summary)
    return summary
