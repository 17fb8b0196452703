"""Order pricing: VAT, weight-based shipping and rush surcharge.

``FeeCalculator`` is a pure function of its inputs and touches neither the
database nor settings; the VAT rate is handed in at construction.

Tariff (VND):

- Hanoi / Ho Chi Minh City: 22,000 for the first 3 kg.
- Elsewhere: 30,000 for the first 0.5 kg.
- Both: +2,500 per started 0.5 kg above the base weight.
- Standard delivery with a subtotal above 100,000 gets up to 25,000 off
  the shipping fee.
- Rush delivery (inner-city Hanoi only, every line rush-eligible) adds
  10,000 per line and gets no free-shipping discount.
"""

from __future__ import annotations

import unicodedata
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Sequence

from modules.orders.constants import (
    ADDITIONAL_FEE_PER_STEP,
    ADDITIONAL_WEIGHT_STEP_KG,
    DEFAULT_VAT_RATE,
    FREE_SHIPPING_THRESHOLD,
    HANOI_ALIASES,
    HANOI_INNER_DISTRICTS,
    HCM_ALIASES,
    MAJOR_CITY_BASE_FEE,
    MAJOR_CITY_BASE_WEIGHT_KG,
    MAX_FREE_SHIPPING_DISCOUNT,
    OTHER_PROVINCE_BASE_FEE,
    OTHER_PROVINCE_BASE_WEIGHT_KG,
    RUSH_SURCHARGE_PER_LINE,
)
from modules.orders.dtos import DeliveryInfoDTO, FeeBreakdown, FeeLine
from modules.orders.exceptions import RushOrderNotEligible

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def fold(text: str) -> str:
    """Lower-case and strip Vietnamese diacritics ("Hà Nội" -> "ha noi")."""
    text = text.replace("Đ", "D").replace("đ", "d")
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.lower().split())


def is_hanoi(province: str) -> bool:
    folded = fold(province)
    return any(alias in folded for alias in HANOI_ALIASES)


def is_major_city(province: str) -> bool:
    folded = fold(province)
    return is_hanoi(province) or any(alias in folded for alias in HCM_ALIASES)


def is_rush_address(delivery: DeliveryInfoDTO) -> bool:
    if not is_hanoi(delivery.province_city):
        return False
    address = fold(delivery.address)
    return any(district in address for district in HANOI_INNER_DISTRICTS)


class FeeCalculator:
    def __init__(self, vat_rate: Decimal = DEFAULT_VAT_RATE) -> None:
        self._vat_rate = Decimal(vat_rate)

    def compute(
        self,
        lines: Sequence[FeeLine],
        delivery: DeliveryInfoDTO,
        rush_order: bool = False,
    ) -> FeeBreakdown:
        """Price an order.

        Raises:
            RushOrderNotEligible: rush requested but the address is outside
                inner-city Hanoi or a line is not rush-eligible.
        """
        if rush_order:
            self.ensure_rush_eligible(lines, delivery)

        subtotal = sum((line.subtotal for line in lines), ZERO).quantize(CENTS)
        vat = self.vat(subtotal)
        base_fee = self.base_shipping_fee(
            sum((line.total_weight_kg for line in lines), Decimal("0")),
            delivery.province_city,
        )

        if rush_order:
            rush_fee = (RUSH_SURCHARGE_PER_LINE * len(lines)).quantize(CENTS)
            shipping_fee = base_fee + rush_fee
        else:
            rush_fee = ZERO
            shipping_fee = base_fee - self.free_shipping_discount(subtotal, base_fee)

        return FeeBreakdown(
            subtotal=subtotal,
            vat=vat,
            shipping_fee=shipping_fee,
            rush_fee=rush_fee,
            total=subtotal + vat + shipping_fee,
        )

    def vat(self, subtotal: Decimal) -> Decimal:
        # VND has no minor unit in practice
        return (subtotal * self._vat_rate).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        ).quantize(CENTS)

    @staticmethod
    def base_shipping_fee(total_weight_kg: Decimal, province: str) -> Decimal:
        if total_weight_kg <= 0:
            return ZERO
        if is_major_city(province):
            fee, included = MAJOR_CITY_BASE_FEE, MAJOR_CITY_BASE_WEIGHT_KG
        else:
            fee, included = OTHER_PROVINCE_BASE_FEE, OTHER_PROVINCE_BASE_WEIGHT_KG
        extra = total_weight_kg - included
        if extra > 0:
            steps = (extra / ADDITIONAL_WEIGHT_STEP_KG).to_integral_value(
                rounding=ROUND_CEILING
            )
            fee += steps * ADDITIONAL_FEE_PER_STEP
        return fee.quantize(CENTS)

    @staticmethod
    def free_shipping_discount(subtotal: Decimal, base_fee: Decimal) -> Decimal:
        if subtotal > FREE_SHIPPING_THRESHOLD:
            return min(MAX_FREE_SHIPPING_DISCOUNT, base_fee).quantize(CENTS)
        return ZERO

    @staticmethod
    def ensure_rush_eligible(
        lines: Sequence[FeeLine], delivery: DeliveryInfoDTO
    ) -> None:
        if not is_rush_address(delivery):
            raise RushOrderNotEligible(
                "Rush delivery is only available to inner-city Hanoi districts."
            )
        ineligible = [index for index, line in enumerate(lines) if not line.rush_eligible]
        if ineligible:
            raise RushOrderNotEligible(
                f"Lines {ineligible} are not eligible for rush delivery."
            )
