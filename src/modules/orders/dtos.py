"""Order DTOs for the service layer.

Pydantic v2 models, immutable (``frozen=True``).  They are the contract
between the API layer (DRF serializers) and ``OrderLifecycleEngine``, and
between the engine and the pure ``FeeCalculator``.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    ValidationError,
    field_validator,
    model_validator,
)

from modules.orders.exceptions import OrderValidationError

PHONE_STRIP = re.compile(r"[\s\-().]")
PHONE_PATTERN = re.compile(r"^(\+84|0)[0-9]{9,10}$")
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class OrderLineDTO(BaseModel):
    """One cart line: which product and how many units."""

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v


class DeliveryInfoDTO(BaseModel):
    """Delivery details as typed by the customer.

    ``phone`` is normalised by dropping spaces, dashes, dots and
    parentheses; what remains must be ``+84`` or ``0`` followed by 9-10
    digits.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    recipient_name: str
    phone: str
    email: str
    address: str
    province_city: str
    delivery_message: str = ""

    @field_validator("recipient_name", "address", "province_city")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        if not v:
            raise ValueError("This field is required.")
        return v

    @field_validator("phone")
    @classmethod
    def phone_must_be_valid(cls, v: str) -> str:
        digits = PHONE_STRIP.sub("", v)
        if not PHONE_PATTERN.match(digits):
            raise ValueError("Phone must be +84 or 0 followed by 9-10 digits.")
        return digits

    @field_validator("email")
    @classmethod
    def email_must_be_valid(cls, v: str) -> str:
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Email must contain '@' and a domain with a dot.")
        return v.lower()


class PlaceOrderDTO(BaseModel):
    """Immutable input for ``OrderLifecycleEngine.place_order``."""

    model_config = ConfigDict(frozen=True)

    lines: List[OrderLineDTO]
    delivery: DeliveryInfoDTO
    rush_order: bool = False
    user_id: Optional[int] = None
    notes: str = ""
    idempotency_key: Optional[str] = None

    @field_validator("lines")
    @classmethod
    def lines_must_not_be_empty(cls, v: List[OrderLineDTO]) -> List[OrderLineDTO]:
        if not v:
            raise ValueError("Order must have at least one line.")
        return v

    @model_validator(mode="after")
    def no_duplicate_products(self):
        product_ids = [line.product_id for line in self.lines]
        if len(product_ids) != len(set(product_ids)):
            raise ValueError("Duplicate products are not allowed in the same order.")
        return self

    @classmethod
    def parse(cls, data: Dict[str, Any]) -> PlaceOrderDTO:
        """Build the DTO, reporting every problem as ``OrderValidationError``."""
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise OrderValidationError(
                [
                    {
                        "field": ".".join(str(p) for p in err["loc"]) or "__all__",
                        "message": err["msg"],
                    }
                    for err in exc.errors()
                ]
            ) from exc


# ---------------------------------------------------------------------------
# Fee calculation
# ---------------------------------------------------------------------------


class FeeLine(BaseModel):
    """Priced line as seen by ``FeeCalculator``."""

    model_config = ConfigDict(frozen=True)

    unit_price: Decimal
    quantity: int
    weight_kg: Decimal = Decimal("0")
    rush_eligible: bool = False

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def total_weight_kg(self) -> Decimal:
        return self.weight_kg * self.quantity


class FeeBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    subtotal: Decimal
    vat: Decimal
    shipping_fee: Decimal
    rush_fee: Decimal
    total: Decimal
