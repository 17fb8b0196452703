"""Asynchronous delivery of order emails."""

from __future__ import annotations

import smtplib

import structlog
from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

from modules.notifications.constants import SUBJECTS, NotificationEvent
from modules.orders.models import Order

logger = structlog.get_logger(__name__)


@shared_task(
    name="notifications.send_order_notification",
    autoretry_for=(smtplib.SMTPException, ConnectionError),
    retry_backoff=True,
    max_retries=3,
)
def send_order_notification(order_id: str, event: str) -> bool:
    """Email the order's recipient.  Returns ``False`` when there is no one to tell."""
    order = Order.objects.select_related("delivery_info").filter(id=order_id).first()
    if order is None or not hasattr(order, "delivery_info"):
        logger.warning("notification.skipped", order_id=order_id, notification=event)
        return False

    event = NotificationEvent(event)
    subject = SUBJECTS[event].format(order_number=order.order_number)
    body = (
        f"Hello {order.delivery_info.recipient_name},\n\n"
        f"{subject}.\n"
        f"Status: {order.get_status_display()}\n"
        f"Total: {order.total_amount} VND\n"
    )
    send_mail(
        subject,
        body,
        settings.DEFAULT_FROM_EMAIL,
        [order.delivery_info.email],
    )
    logger.info(
        "notification.sent",
        order_id=order_id,
        notification=event.value,
        recipient=order.delivery_info.email,
    )
    return True
