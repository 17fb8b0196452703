"""Stock validation gate for order placement and payment-time commit."""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Sequence
from uuid import UUID

import structlog

from modules.orders.exceptions import InsufficientStock
from modules.products.exceptions import InactiveProduct, ProductNotFound

if TYPE_CHECKING:
    from modules.orders.dtos import OrderLineDTO
    from modules.products.models import Product
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class StockValidator:
    """All-or-nothing availability check over a set of order lines.

    The validator never changes stock.  ``validate_locked`` is the variant
    used right before a decrement: it takes the product row locks and
    returns the locked products so the caller can decrement under them.
    """

    def __init__(self, product_repository: IProductRepository) -> None:
        self._product_repo = product_repository

    def validate(self, lines: Sequence[OrderLineDTO]) -> Dict[UUID, Product]:
        products = self._product_repo.get_many(line.product_id for line in lines)
        self._check(lines, products)
        return products

    def validate_locked(self, lines: Sequence[OrderLineDTO]) -> Dict[UUID, Product]:
        """Lock product rows, then check them.  Requires an open transaction."""
        products = self._product_repo.lock_many(line.product_id for line in lines)
        self._check(lines, products)
        return products

    @staticmethod
    def _check(lines: Sequence[OrderLineDTO], products: Dict[UUID, Product]) -> None:
        shortages = []
        for line in lines:
            product = products.get(line.product_id)
            if product is None:
                raise ProductNotFound(f"Product {line.product_id} not found.")
            if not product.is_active:
                raise InactiveProduct(f"Product {product.sku} is not on sale.")
            if product.stock_quantity < line.quantity:
                shortages.append(
                    {
                        "product_id": str(line.product_id),
                        "requested": line.quantity,
                        "available": product.stock_quantity,
                    }
                )
        if shortages:
            logger.info("stock.insufficient", shortages=shortages)
            raise InsufficientStock(shortages)
