"""Payment repository interfaces.

The transaction ledger is append-only from the engine's point of view:
rows are added with ``append`` and settled exactly once with
``mark_terminal``.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.payments.models import Invoice, PaymentMethod, PaymentTransaction


class IPaymentMethodRepository(IRepository["PaymentMethod"]):
    @abstractmethod
    def get_default_for_owner(self, owner_id: Optional[int]) -> Optional[PaymentMethod]:
        """The owner's default method, if one is flagged."""

    @abstractmethod
    def clear_default(self, owner_id: Optional[int]) -> int:
        """Unflag every default method of ``owner_id``; returns rows touched."""


class ITransactionLedger(IRepository["PaymentTransaction"]):
    @abstractmethod
    def append(
        self,
        order: Order,
        amount: Decimal,
        gateway: str,
        payment_method: Optional[PaymentMethod] = None,
        transaction_type: str = "CHARGE",
        status: str = "PENDING_USER_ACTION",
        **fields: Any,
    ) -> PaymentTransaction:
        """Add a row with a fresh ``txn_ref``.

        Raises ``PaymentAlreadyInProgress`` when the order already holds a
        pending charge.
        """

    @abstractmethod
    def has_pending(self, order_id: UUID) -> bool:
        """True if any charge of the order waits on the gateway."""

    @abstractmethod
    def get_pending_for_order(self, order_id: UUID) -> Optional[PaymentTransaction]:
        """The order's pending charge, if any."""

    @abstractmethod
    def get_by_txn_ref_for_update(self, txn_ref: str) -> Optional[PaymentTransaction]:
        """Row-locked look-up by gateway reference."""

    @abstractmethod
    def record_redirect(
        self, transaction: PaymentTransaction, redirect_url: str, metadata: Dict[str, Any]
    ) -> PaymentTransaction:
        """Store the redirect URL and gateway metadata on a pending row."""

    @abstractmethod
    def mark_terminal(
        self,
        transaction: PaymentTransaction,
        status: str,
        external_transaction_id: str = "",
        response_code: str = "",
        raw: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Settle a pending row.  ``False`` when it was already settled."""

    @abstractmethod
    def list_stale(self, created_before: datetime) -> List[PaymentTransaction]:
        """Pending charges created before ``created_before``."""

    @abstractmethod
    def get_successful_charge(self, order_id: UUID) -> Optional[PaymentTransaction]:
        """The charge that paid the order."""


class IInvoiceRepository(IRepository["Invoice"]):
    @abstractmethod
    def create_for_transaction(self, transaction: PaymentTransaction) -> Tuple[Invoice, bool]:
        """Invoice for a successful charge; ``(invoice, created)``."""
