"""VNPay redirect gateway (payment URL, return/IPN callback, merchant API).

Protocol notes:

- ``vnp_Amount`` is the VND amount times 100.
- Dates are ``YYYYMMDDHHMMSS`` in Asia/Ho_Chi_Minh; the payment link
  expires ``expire_minutes`` after ``vnp_CreateDate``.
- ``vnp_SecureHash`` is HMAC-SHA512 over the canonical query (see
  ``signing``); ``vnp_SecureHash`` and ``vnp_SecureHashType`` are excluded
  when verifying.
- ``querydr`` and ``refund`` are POSTed as JSON to the merchant API, signed
  the same way.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Callable, Dict, Mapping, Optional
from zoneinfo import ZoneInfo

import structlog
from django.utils import timezone

from modules.payments.constants import (
    VNPAY_CUSTOMER_CANCELLED,
    VNPAY_QUERY_PENDING,
    VNPAY_SUCCESS,
    VNPAY_SUSPICIOUS,
    GatewayName,
    PaymentMethodType,
    TransactionStatus,
)
from modules.payments.dtos import GatewayRedirect, RefundResult, VerifiedCallback
from modules.payments.exceptions import (
    AmountMismatch,
    GatewayConfigurationError,
    GatewayRejected,
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

VN_TZ = ZoneInfo("Asia/Ho_Chi_Minh")
DATE_FORMAT = "%Y%m%d%H%M%S"
HASH_FIELD = "vnp_SecureHash"
HASH_TYPE_FIELD = "vnp_SecureHashType"

BANK_CODES = {
    PaymentMethodType.CREDIT_CARD: "INTCARD",
}

REFUND_FULL = "02"
REFUND_PARTIAL = "03"


@dataclass(frozen=True)
class VNPayConfig:
    tmn_code: str
    hash_secret: str
    pay_url: str
    api_url: str
    return_url: str
    version: str = "2.1.0"
    locale: str = "vn"
    expire_minutes: int = 15


class VNPayGatewayAdapter(IPaymentGatewayAdapter):
    name = GatewayName.VNPAY

    def __init__(
        self,
        config: VNPayConfig,
        http_client: GatewayHttpClient,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._config = config
        self._http = http_client
        self._clock = clock

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def ensure_configured(self) -> None:
        missing = [
            name
            for name in ("tmn_code", "hash_secret", "pay_url", "return_url")
            if not getattr(self._config, name)
        ]
        if missing:
            logger.error("vnpay.misconfigured", missing=missing)
            raise GatewayConfigurationError(
                f"VNPay settings missing: {', '.join(missing)}."
            )

    def _now(self) -> datetime:
        return self._clock().astimezone(VN_TZ)

    # ------------------------------------------------------------------
    # Payment redirect
    # ------------------------------------------------------------------

    def initiate(
        self,
        order: Order,
        transaction: PaymentTransaction,
        payment_method: PaymentMethod,
        client_ip: str,
    ) -> GatewayRedirect:
        self.ensure_configured()
        created = self._now()
        create_date = created.strftime(DATE_FORMAT)
        expire_date = (created + timedelta(minutes=self._config.expire_minutes)).strftime(
            DATE_FORMAT
        )

        params: Dict[str, str] = {
            "vnp_Version": self._config.version,
            "vnp_Command": "pay",
            "vnp_TmnCode": self._config.tmn_code,
            "vnp_Amount": str(to_minor_units(transaction.amount)),
            "vnp_CurrCode": "VND",
            "vnp_TxnRef": transaction.txn_ref,
            "vnp_OrderInfo": f"Thanh toan don hang {order.order_number}",
            "vnp_OrderType": "other",
            "vnp_Locale": self._config.locale,
            "vnp_ReturnUrl": self._config.return_url,
            "vnp_IpAddr": client_ip or "127.0.0.1",
            "vnp_CreateDate": create_date,
            "vnp_ExpireDate": expire_date,
        }
        bank_code = BANK_CODES.get(payment_method.method_type)
        if bank_code:
            params["vnp_BankCode"] = bank_code

        query = signing.signed_query(params, self._config.hash_secret, HASH_FIELD)
        logger.info(
            "vnpay.redirect_built",
            txn_ref=transaction.txn_ref,
            amount=params["vnp_Amount"],
        )
        return GatewayRedirect(
            redirect_url=f"{self._config.pay_url}?{query}",
            params=params,
            metadata={"create_date": create_date, "expire_date": expire_date},
        )

    # ------------------------------------------------------------------
    # Callback (return URL and IPN share the same format)
    # ------------------------------------------------------------------

    def verify_callback(self, params: Mapping[str, str]) -> VerifiedCallback:
        data = {key: str(value) for key, value in params.items()}
        received = data.pop(HASH_FIELD, "")
        data.pop(HASH_TYPE_FIELD, None)

        if not signing.verify(data, received, self._config.hash_secret):
            raise InvalidSignature(
                f"VNPay signature mismatch for txn_ref={data.get('vnp_TxnRef', '')}."
            )
        if data.get("vnp_TmnCode") != self._config.tmn_code:
            raise InvalidSignature("Callback is addressed to another merchant.")

        try:
            amount = from_minor_units(data["vnp_Amount"])
        except (KeyError, ValueError, InvalidOperation) as exc:
            raise AmountMismatch("Callback carries no usable vnp_Amount.") from exc

        response_code = data.get("vnp_ResponseCode", "")
        status = self.map_status(response_code)
        transaction_status = data.get("vnp_TransactionStatus")
        if status == TransactionStatus.SUCCESS and transaction_status not in (
            None,
            VNPAY_SUCCESS,
            VNPAY_SUSPICIOUS,
        ):
            status = TransactionStatus.FAILED

        return VerifiedCallback(
            txn_ref=data.get("vnp_TxnRef", ""),
            external_transaction_id=data.get("vnp_TransactionNo", ""),
            amount=amount,
            status=status,
            response_code=response_code,
            suspicious=response_code == VNPAY_SUSPICIOUS,
            raw=data,
        )

    def map_status(self, response_code: str) -> TransactionStatus:
        if response_code == VNPAY_SUCCESS:
            return TransactionStatus.SUCCESS
        if response_code == VNPAY_SUSPICIOUS:
            logger.warning("vnpay.suspicious_transaction", response_code=response_code)
            return TransactionStatus.SUCCESS
        if response_code == VNPAY_CUSTOMER_CANCELLED:
            return TransactionStatus.CANCELLED
        return TransactionStatus.FAILED

    # ------------------------------------------------------------------
    # Merchant API
    # ------------------------------------------------------------------

    def query_transaction(
        self, transaction: PaymentTransaction, client_ip: str
    ) -> Optional[VerifiedCallback]:
        self.ensure_configured()
        params = self._api_params("querydr", transaction, client_ip)
        params["vnp_OrderInfo"] = f"Truy van giao dich {transaction.txn_ref}"
        data = self._call_api(params)

        if data.get("vnp_ResponseCode") != VNPAY_SUCCESS:
            raise GatewayRejected(
                f"querydr for {transaction.txn_ref} answered "
                f"{data.get('vnp_ResponseCode')}: {data.get('vnp_Message', '')}"
            )

        transaction_status = str(data.get("vnp_TransactionStatus", ""))
        if transaction_status == VNPAY_QUERY_PENDING:
            return None

        status = (
            TransactionStatus.SUCCESS
            if transaction_status == VNPAY_SUCCESS
            else self.map_status(transaction_status)
        )
        return VerifiedCallback(
            txn_ref=str(data.get("vnp_TxnRef", transaction.txn_ref)),
            external_transaction_id=str(data.get("vnp_TransactionNo", "")),
            amount=from_minor_units(data.get("vnp_Amount", to_minor_units(transaction.amount))),
            status=status,
            response_code=transaction_status,
            raw={key: str(value) for key, value in data.items()},
        )

    def refund(
        self,
        transaction: PaymentTransaction,
        amount: Decimal,
        reason: str,
        client_ip: str,
    ) -> RefundResult:
        self.ensure_configured()
        params = self._api_params("refund", transaction, client_ip)
        params.update(
            {
                "vnp_TransactionType": (
                    REFUND_FULL if amount == transaction.amount else REFUND_PARTIAL
                ),
                "vnp_Amount": str(to_minor_units(amount)),
                "vnp_OrderInfo": reason or f"Hoan tien {transaction.txn_ref}",
                "vnp_TransactionNo": transaction.external_transaction_id,
                "vnp_CreateBy": "system",
            }
        )
        data = self._call_api(params)
        code = str(data.get("vnp_ResponseCode", ""))
        return RefundResult(
            accepted=code == VNPAY_SUCCESS,
            external_transaction_id=str(data.get("vnp_TransactionNo", "")),
            response_code=code,
            raw=data,
        )

    def _api_params(
        self, command: str, transaction: PaymentTransaction, client_ip: str
    ) -> Dict[str, str]:
        return {
            "vnp_RequestId": uuid.uuid4().hex,
            "vnp_Version": self._config.version,
            "vnp_Command": command,
            "vnp_TmnCode": self._config.tmn_code,
            "vnp_TxnRef": transaction.txn_ref,
            "vnp_TransactionDate": transaction.gateway_response.get("create_date", ""),
            "vnp_CreateDate": self._now().strftime(DATE_FORMAT),
            "vnp_IpAddr": client_ip or "127.0.0.1",
        }

    def _call_api(self, params: Dict[str, str]) -> Dict[str, object]:
        if not self._config.api_url:
            raise GatewayConfigurationError("VNPAY_API_URL is not set.")
        payload = dict(params)
        payload[HASH_FIELD] = signing.sign(params, self._config.hash_secret)
        data = self._http.post_json(self._config.api_url, payload)

        received = str(data.get(HASH_FIELD, ""))
        if received:
            unsigned = {k: v for k, v in data.items() if k != HASH_FIELD}
            if not signing.verify(unsigned, received, self._config.hash_secret):
                raise InvalidSignature(
                    f"{params['vnp_Command']} response signature mismatch."
                )
        return data
