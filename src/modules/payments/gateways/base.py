"""Capability interface implemented once per payment gateway."""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Mapping, Optional

from modules.payments.constants import TransactionStatus

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.payments.dtos import GatewayRedirect, RefundResult, VerifiedCallback
    from modules.payments.models import PaymentMethod, PaymentTransaction


def to_minor_units(amount: Decimal) -> int:
    """VND amount as the integer the gateways expect (amount x 100)."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(value: str | int) -> Decimal:
    return (Decimal(int(value)) / 100).quantize(Decimal("0.01"))


class IPaymentGatewayAdapter(ABC):
    """One redirect-style gateway.

    ``initiate`` only builds the signed redirect; the ledger row is created
    by the engine.  ``verify_callback`` is the trust boundary and must run
    before any state is touched.
    """

    name: str

    @abstractmethod
    def ensure_configured(self) -> None:
        """Raise ``GatewayConfigurationError`` if credentials or URLs are missing."""

    @abstractmethod
    def initiate(
        self,
        order: Order,
        transaction: PaymentTransaction,
        payment_method: PaymentMethod,
        client_ip: str,
    ) -> GatewayRedirect:
        """Build the signed redirect for ``transaction``."""

    @abstractmethod
    def verify_callback(self, params: Mapping[str, str]) -> VerifiedCallback:
        """Check the signature and decode the outcome.

        Raises ``InvalidSignature`` when the hash is missing or wrong.
        """

    @abstractmethod
    def map_status(self, response_code: str) -> TransactionStatus:
        """Translate a gateway result code into a ledger status."""

    @abstractmethod
    def query_transaction(
        self, transaction: PaymentTransaction, client_ip: str
    ) -> Optional[VerifiedCallback]:
        """Ask the gateway for the outcome; ``None`` while it is still open."""

    @abstractmethod
    def refund(
        self,
        transaction: PaymentTransaction,
        amount: Decimal,
        reason: str,
        client_ip: str,
    ) -> RefundResult:
        """Refund (part of) a successful charge."""
