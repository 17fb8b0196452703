"""Payment DTOs exchanged between the engine, the ledger and the gateways."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from modules.payments.constants import PaymentMethodType, TransactionStatus


class GatewayRedirect(BaseModel):
    """Signed URL the customer is sent to, plus what the ledger should keep."""

    model_config = ConfigDict(frozen=True)

    redirect_url: str
    params: Dict[str, str]
    metadata: Dict[str, Any] = {}


class VerifiedCallback(BaseModel):
    """Gateway outcome whose signature has already been checked."""

    model_config = ConfigDict(frozen=True)

    txn_ref: str
    external_transaction_id: str = ""
    amount: Decimal
    status: TransactionStatus
    response_code: str = ""
    suspicious: bool = False
    raw: Dict[str, str] = {}

    @property
    def success(self) -> bool:
        return self.status == TransactionStatus.SUCCESS


class RefundResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    accepted: bool
    external_transaction_id: str = ""
    response_code: str = ""
    raw: Dict[str, Any] = {}


class PaymentInitiation(BaseModel):
    """Result of ``OrderLifecycleEngine.initiate_payment``."""

    model_config = ConfigDict(frozen=True)

    order_id: UUID
    transaction_id: UUID
    txn_ref: str
    redirect_url: str


class CreatePaymentMethodDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    method_type: PaymentMethodType
    owner_id: Optional[int] = None
    label: str = ""
    is_default: bool = False
