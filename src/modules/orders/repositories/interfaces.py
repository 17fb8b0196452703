"""Order repository interface.

The order store owns every write to an order: creation of the aggregate
(order, lines, delivery info), compare-and-swap status updates, and the
audit trail.  ``OrderLifecycleEngine`` depends on this contract only.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create order, lines and delivery info in ``PENDING_DELIVERY_INFO``.

        ``data`` keys: ``items`` (dicts with ``product_id``, ``quantity``,
        ``unit_price``, ``weight_kg``, ``rush_eligible``), ``delivery``
        (dict), fee fields, and optionally ``user_id``, ``is_rush_order``,
        ``notes``, ``idempotency_key``.
        """

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order with a row-level lock (SELECT FOR UPDATE)."""

    @abstractmethod
    def update_status(
        self,
        id: UUID,
        expected: str,
        new_status: str,
        notes: str = "",
        user_id: Optional[int] = None,
        fields: Optional[Dict[str, Any]] = None,
    ) -> Order:
        """Move ``id`` from ``expected`` to ``new_status`` or fail.

        Raises ``IllegalTransition`` for edges outside the table and
        ``OrderStatusConflict`` when the stored status is not ``expected``.
        ``fields`` are written in the same conditional UPDATE.
        """

    @abstractmethod
    def add_history(
        self,
        order_id: UUID,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""

    @abstractmethod
    def get_by_idempotency_key(
        self, key: str, user_id: Optional[int]
    ) -> Optional[Order]:
        """Retrieve the order ``user_id`` placed under ``key``."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        """List orders with optional filters."""
