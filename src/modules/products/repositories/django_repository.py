"""Django ORM implementation of the Product repository.

Missing entities are reported as ``None`` or omitted keys; the service
layer decides which domain exception that becomes.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

import structlog

from django.core.exceptions import ValidationError
from django.db import transaction

from modules.products.models import Product
from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class ProductDjangoRepository(IProductRepository):
    """Concrete Product repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Product]:
        try:
            return Product.objects.alive().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Product]:
        queryset = Product.objects.alive()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    @transaction.atomic
    def save(self, entity: Product) -> Product:
        entity.save()
        logger.info("product.saved", product_id=str(entity.id), sku=entity.sku)
        return entity

    def get_many(self, ids: Iterable[UUID]) -> Dict[UUID, Product]:
        return {p.id: p for p in Product.objects.alive().filter(id__in=list(ids))}

    def lock_many(self, ids: Iterable[UUID]) -> Dict[UUID, Product]:
        # Fixed lock order keeps two orders sharing products from deadlocking
        ordered = list(set(ids))
        locked = (
            Product.objects.select_for_update()
            .filter(id__in=ordered, deleted_at__isnull=True)
            .order_by("id")
        )
        return {product.id: product for product in locked}

    def adjust_stock(self, product: Product, delta: int) -> Product:
        new_quantity = product.stock_quantity + delta
        if new_quantity < 0:
            raise ValueError(
                f"Stock for {product.sku} would become negative ({new_quantity})."
            )
        product.stock_quantity = new_quantity
        product.save(update_fields=["stock_quantity"])
        logger.info(
            "product.stock_adjusted",
            product_id=str(product.id),
            delta=delta,
            stock_quantity=new_quantity,
        )
        return product
