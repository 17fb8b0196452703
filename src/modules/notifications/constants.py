"""Customer-facing order notifications."""

from django.db import models


class NotificationEvent(models.TextChoices):
    CONFIRMED = "confirmed", "Payment confirmed"
    FAILED = "failed", "Payment failed"
    APPROVED = "approved", "Order approved"
    REJECTED = "rejected", "Order rejected"
    SHIPPED = "shipped", "Order shipped"
    DELIVERED = "delivered", "Order delivered"
    CANCELLED = "cancelled", "Order cancelled"
    REFUNDED = "refunded", "Order refunded"
    STOCK_ERROR = "stock_error", "Stock could not be committed"


SUBJECTS = {
    NotificationEvent.CONFIRMED: "Order {order_number}: payment received",
    NotificationEvent.FAILED: "Order {order_number}: payment failed",
    NotificationEvent.APPROVED: "Order {order_number} has been approved",
    NotificationEvent.REJECTED: "Order {order_number} has been rejected",
    NotificationEvent.SHIPPED: "Order {order_number} is on its way",
    NotificationEvent.DELIVERED: "Order {order_number} has been delivered",
    NotificationEvent.CANCELLED: "Order {order_number} has been cancelled",
    NotificationEvent.REFUNDED: "Order {order_number} has been refunded",
    NotificationEvent.STOCK_ERROR: "Order {order_number}: we are checking your items",
}
