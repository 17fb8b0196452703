"""Order, OrderItem, DeliveryInfo and OrderStatusHistory models.

- ``Order.status`` is written only through
  ``OrderDjangoRepository.update_status`` (compare-and-swap); the model
  never assigns it outside creation.
- ``OrderItem`` snapshots price, weight and rush eligibility at placement
  so later catalog edits do not rewrite order history.
- ``total_paid`` stays ``NULL`` until a charge transaction succeeds.
- Order number is a human-readable ``ORD-YYYYMMDD-XXXXXX``.
"""

from __future__ import annotations

import secrets
from decimal import Decimal
from typing import Any

import structlog
from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel, SoftDeleteModel
from modules.orders.constants import ORDER_NUMBER_MAX_RETRIES, OrderStatus
from modules.orders.state_machine import can_transition, is_terminal
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)

MONEY = {"max_digits": 14, "decimal_places": 2}


class Order(DomainEventMixin, SoftDeleteModel):
    """Order aggregate root.

    ``idempotency_key`` is nullable; only API-placed orders carry one.  It is
    unique per user, so two customers may pick the same key.
    """

    order_number: models.CharField = models.CharField(
        max_length=20, unique=True, editable=False
    )
    user: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )
    status: models.CharField = models.CharField(
        max_length=32,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING_DELIVERY_INFO,
    )
    is_rush_order: models.BooleanField = models.BooleanField(default=False)
    subtotal: models.DecimalField = models.DecimalField(
        **MONEY, default=Decimal("0.00")
    )
    vat_amount: models.DecimalField = models.DecimalField(
        **MONEY, default=Decimal("0.00")
    )
    shipping_fee: models.DecimalField = models.DecimalField(
        **MONEY, default=Decimal("0.00")
    )
    rush_fee: models.DecimalField = models.DecimalField(
        **MONEY, default=Decimal("0.00")
    )
    total_amount: models.DecimalField = models.DecimalField(
        **MONEY, default=Decimal("0.00")
    )
    total_paid: models.DecimalField = models.DecimalField(
        **MONEY, null=True, blank=True, default=None
    )
    notes: models.TextField = models.TextField(blank=True, default="")
    idempotency_key: models.CharField = models.CharField(
        max_length=255,
        null=True,
        blank=True,
    )

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["user", "idempotency_key"],
                name="orders_user_idempotency_key_uniq",
            ),
        ]

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    def can_transition_to(self, new_status: str) -> bool:
        return can_transition(self.status, new_status)

    @staticmethod
    def generate_order_number() -> str:
        now = timezone.now()
        suffix = secrets.token_hex(3).upper()
        return f"ORD-{now:%Y%m%d}-{suffix}"

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.order_number:
            for _ in range(ORDER_NUMBER_MAX_RETRIES):
                candidate = self.generate_order_number()
                if not Order.objects.filter(order_number=candidate).exists():
                    self.order_number = candidate
                    break
            else:
                raise RuntimeError(
                    f"Failed to generate unique order_number after "
                    f"{ORDER_NUMBER_MAX_RETRIES} attempts"
                )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class OrderItem(BaseModel):
    """Order line; created with the order and never mutated afterwards."""

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    product: models.ForeignKey = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
    )
    unit_price: models.DecimalField = models.DecimalField(**MONEY)
    weight_kg: models.DecimalField = models.DecimalField(
        max_digits=8, decimal_places=3, default=Decimal("0.000")
    )
    rush_eligible: models.BooleanField = models.BooleanField(default=False)
    subtotal: models.DecimalField = models.DecimalField(**MONEY, editable=False)

    class Meta:
        db_table = "order_items"
        ordering = ["created_at", "id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
            models.UniqueConstraint(
                fields=["order", "product"],
                name="order_items_unique_product",
            ),
        ]

    def save(self, *args: Any, **kwargs: Any) -> None:
        self.subtotal = self.quantity * self.unit_price
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.product_id} x{self.quantity} ({self.subtotal})"


class DeliveryInfo(BaseModel):
    """Validated delivery details plus the fee computed for them."""

    order: models.OneToOneField = models.OneToOneField(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="delivery_info",
    )
    recipient_name: models.CharField = models.CharField(max_length=255)
    phone: models.CharField = models.CharField(max_length=15)
    email: models.EmailField = models.EmailField()
    address: models.CharField = models.CharField(max_length=500)
    province_city: models.CharField = models.CharField(max_length=100)
    delivery_message: models.TextField = models.TextField(blank=True, default="")
    delivery_fee: models.DecimalField = models.DecimalField(
        **MONEY, default=Decimal("0.00")
    )

    class Meta:
        db_table = "order_delivery_info"

    def __str__(self) -> str:
        return f"{self.recipient_name}, {self.province_city}"


class OrderStatusHistory(BaseModel):
    """Append-only audit row for one status transition.

    ``user`` is ``None`` when the system (gateway callback, sweeper task)
    made the change.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=32,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status: models.CharField = models.CharField(
        max_length=32,
        choices=OrderStatus.choices,
    )
    user: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["order", "created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order_id} : {self.old_status} -> {self.new_status}"
