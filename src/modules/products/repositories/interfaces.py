"""Product repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Dict, Iterable
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.products.models import Product


class IProductRepository(IRepository["Product"]):
    """Repository contract for catalog products."""

    @abstractmethod
    def get_many(self, ids: Iterable[UUID]) -> Dict[UUID, Product]:
        """Unlocked read of several products, keyed by id."""

    @abstractmethod
    def lock_many(self, ids: Iterable[UUID]) -> Dict[UUID, Product]:
        """Lock product rows (SELECT FOR UPDATE) in ascending id order.

        Must be called inside an open transaction.  Missing ids are simply
        absent from the result.
        """

    @abstractmethod
    def adjust_stock(self, product: Product, delta: int) -> Product:
        """Apply ``delta`` to a locked product's on-hand quantity."""
