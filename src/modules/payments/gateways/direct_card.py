"""Direct card-capture gateway.

Hosted capture page for payment methods not routed through VNPay.  Uses
the same signing contract (canonical query + HMAC-SHA512) with the
signature in ``signature``.  Callback fields: ``merchant_id``,
``order_ref``, ``amount`` (minor units), ``txn_id``, ``result``
(``APPROVED`` / ``DECLINED`` / ``CANCELLED``).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional

import structlog
from django.utils import timezone

from modules.payments.constants import GatewayName, TransactionStatus
from modules.payments.dtos import GatewayRedirect, RefundResult, VerifiedCallback
from modules.payments.exceptions import (
    AmountMismatch,
    GatewayConfigurationError,
    InvalidSignature,
)
from modules.payments.gateways import signing
from modules.payments.gateways.base import (
    IPaymentGatewayAdapter,
    from_minor_units,
    to_minor_units,
)

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.payments.gateways.http import GatewayHttpClient
    from modules.payments.models import PaymentMethod, PaymentTransaction

logger = structlog.get_logger(__name__)

SIGNATURE_FIELD = "signature"

RESULT_APPROVED = "APPROVED"
RESULT_CANCELLED = "CANCELLED"
RESULT_PENDING = "PENDING"
REFUND_ACCEPTED = "ACCEPTED"


@dataclass(frozen=True)
class DirectCardConfig:
    capture_url: str
    merchant_id: str
    hash_secret: str
    return_url: str
    expire_minutes: int = 15


class DirectCardGatewayAdapter(IPaymentGatewayAdapter):
    name = GatewayName.DIRECT_CARD

    def __init__(
        self,
        config: DirectCardConfig,
        http_client: GatewayHttpClient,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._config = config
        self._http = http_client
        self._clock = clock

    def ensure_configured(self) -> None:
        missing = [
            name
            for name in ("capture_url", "merchant_id", "hash_secret", "return_url")
            if not getattr(self._config, name)
        ]
        if missing:
            logger.error("direct_card.misconfigured", missing=missing)
            raise GatewayConfigurationError(
                f"Card capture settings missing: {', '.join(missing)}."
            )

    def initiate(
        self,
        order: Order,
        transaction: PaymentTransaction,
        payment_method: PaymentMethod,
        client_ip: str,
    ) -> GatewayRedirect:
        self.ensure_configured()
        created = self._clock()
        expires = created + timedelta(minutes=self._config.expire_minutes)
        params = {
            "merchant_id": self._config.merchant_id,
            "order_ref": transaction.txn_ref,
            "amount": str(to_minor_units(transaction.amount)),
            "description": f"Order {order.order_number}",
            "return_url": self._config.return_url,
            "client_ip": client_ip or "127.0.0.1",
            "created_at": created.isoformat(),
            "expires_at": expires.isoformat(),
        }
        query = signing.signed_query(params, self._config.hash_secret, SIGNATURE_FIELD)
        logger.info("direct_card.redirect_built", txn_ref=transaction.txn_ref)
        return GatewayRedirect(
            redirect_url=f"{self._config.capture_url}?{query}",
            params=params,
            metadata={"created_at": params["created_at"], "expires_at": params["expires_at"]},
        )

    def verify_callback(self, params: Mapping[str, str]) -> VerifiedCallback:
        data = {key: str(value) for key, value in params.items()}
        received = data.pop(SIGNATURE_FIELD, "")
        if not signing.verify(data, received, self._config.hash_secret):
            raise InvalidSignature(
                f"Card capture signature mismatch for order_ref={data.get('order_ref', '')}."
            )
        if data.get("merchant_id") != self._config.merchant_id:
            raise InvalidSignature("Callback is addressed to another merchant.")
        try:
            amount = from_minor_units(data["amount"])
        except (KeyError, ValueError, InvalidOperation) as exc:
            raise AmountMismatch("Callback carries no usable amount.") from exc

        result = data.get("result", "")
        return VerifiedCallback(
            txn_ref=data.get("order_ref", ""),
            external_transaction_id=data.get("txn_id", ""),
            amount=amount,
            status=self.map_status(result),
            response_code=result,
            raw=data,
        )

    def map_status(self, response_code: str) -> TransactionStatus:
        if response_code == RESULT_APPROVED:
            return TransactionStatus.SUCCESS
        if response_code == RESULT_CANCELLED:
            return TransactionStatus.CANCELLED
        return TransactionStatus.FAILED

    def query_transaction(
        self, transaction: PaymentTransaction, client_ip: str
    ) -> Optional[VerifiedCallback]:
        self.ensure_configured()
        params = {"merchant_id": self._config.merchant_id}
        params[SIGNATURE_FIELD] = signing.sign(params, self._config.hash_secret)
        data = self._http.get_json(
            f"{self._config.capture_url}/transactions/{transaction.txn_ref}", params
        )
        if data.get("result") == RESULT_PENDING:
            return None
        # Same shape as a browser callback, so it goes through the same check
        return self.verify_callback(data)

    def refund(
        self,
        transaction: PaymentTransaction,
        amount: Decimal,
        reason: str,
        client_ip: str,
    ) -> RefundResult:
        self.ensure_configured()
        payload: Dict[str, Any] = {
            "merchant_id": self._config.merchant_id,
            "txn_id": transaction.external_transaction_id,
            "order_ref": transaction.txn_ref,
            "amount": str(to_minor_units(amount)),
            "reason": reason,
        }
        payload[SIGNATURE_FIELD] = signing.sign(payload, self._config.hash_secret)
        data = self._http.post_json(f"{self._config.capture_url}/refunds", payload)
        status = str(data.get("status", ""))
        return RefundResult(
            accepted=status == REFUND_ACCEPTED,
            external_transaction_id=str(data.get("refund_id", "")),
            response_code=status,
            raw=data,
        )
