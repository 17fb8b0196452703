"""Notification service backed by a Celery task.

The task is queued on commit, so a rolled-back transition never emails
the customer.
"""

from __future__ import annotations

from uuid import UUID

import structlog
from django.db import transaction

from modules.notifications.interfaces import INotificationService
from modules.notifications.tasks import send_order_notification

logger = structlog.get_logger(__name__)


class CeleryNotificationService(INotificationService):
    def notify(self, order_id: UUID, event: str) -> None:
        logger.info("notification.queued", order_id=str(order_id), notification=event)
        transaction.on_commit(
            lambda: send_order_notification.delay(str(order_id), str(event))
        )
