"""Physical media catalog entries.

Only the attributes the order pipeline reads live here: price, shipping
weight, rush-delivery eligibility and the on-hand quantity that stock
validation and payment-time stock commit operate on.
"""

from __future__ import annotations

from decimal import Decimal

import structlog

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import SoftDeleteModel

logger = structlog.get_logger(__name__)


class ProductStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"


class MediaType(models.TextChoices):
    BOOK = "BOOK", "Book"
    CD = "CD", "CD"
    DVD = "DVD", "DVD"
    LP = "LP", "LP record"


class Product(SoftDeleteModel):
    """Catalog product.

    ``sku`` is upper-cased on save.  ``stock_quantity`` is only ever changed
    under a row lock by the order lifecycle engine.
    """

    sku = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    media_type = models.CharField(
        max_length=10,
        choices=MediaType.choices,
        default=MediaType.BOOK,
    )
    description = models.TextField(blank=True, default="")
    price = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    weight_kg = models.DecimalField(
        max_digits=8,
        decimal_places=3,
        default=Decimal("0.500"),
        validators=[MinValueValidator(Decimal("0"))],
    )
    rush_eligible = models.BooleanField(default=True)
    stock_quantity = models.PositiveIntegerField(default=0)
    status = models.CharField(
        max_length=20,
        choices=ProductStatus.choices,
        default=ProductStatus.ACTIVE,
    )

    class Meta:
        db_table = "products"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["status"], name="products_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price__gt=0),
                name="products_price_positive",
            ),
        ]

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE and not self.is_deleted

    def clean(self) -> None:
        super().clean()
        if self.sku:
            self.sku = self.sku.strip().upper()
        if self.price is not None and self.price <= 0:
            raise ValidationError({"price": "Price must be greater than zero."})

    def save(self, *args, **kwargs) -> None:
        is_new = self._state.adding
        if self.sku:
            self.sku = self.sku.strip().upper()
        super().save(*args, **kwargs)
        if is_new:
            logger.info(
                "product.created",
                product_id=str(self.id),
                sku=self.sku,
                media_type=self.media_type,
            )

    def __str__(self) -> str:
        return f"{self.sku} - {self.name}"
