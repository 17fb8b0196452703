"""Order domain constants.

Status choices, the transition table of the order state machine, and the
tariff used by ``FeeCalculator``.  Amounts are in VND.
"""

from decimal import Decimal

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING_DELIVERY_INFO = "PENDING_DELIVERY_INFO", "Pending delivery info"
    PENDING_PAYMENT = "PENDING_PAYMENT", "Pending payment"
    PAYMENT_FAILED = "PAYMENT_FAILED", "Payment failed"
    PENDING_PROCESSING = "PENDING_PROCESSING", "Pending processing"
    APPROVED = "APPROVED", "Approved"
    REJECTED = "REJECTED", "Rejected"
    SHIPPING = "SHIPPING", "Shipping"
    DELIVERED = "DELIVERED", "Delivered"
    CANCELLED = "CANCELLED", "Cancelled"
    REFUNDED = "REFUNDED", "Refunded"
    ERROR_STOCK_UPDATE_FAILED = "ERROR_STOCK_UPDATE_FAILED", "Stock update failed"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING_DELIVERY_INFO: {OrderStatus.PENDING_PAYMENT},
    OrderStatus.PENDING_PAYMENT: {
        OrderStatus.PAYMENT_FAILED,
        OrderStatus.PENDING_PROCESSING,
    },
    OrderStatus.PAYMENT_FAILED: {OrderStatus.PENDING_PAYMENT},
    OrderStatus.PENDING_PROCESSING: {
        OrderStatus.APPROVED,
        OrderStatus.REJECTED,
        OrderStatus.ERROR_STOCK_UPDATE_FAILED,
    },
    OrderStatus.APPROVED: {OrderStatus.SHIPPING, OrderStatus.CANCELLED},
    OrderStatus.REJECTED: {OrderStatus.REFUNDED},
    OrderStatus.SHIPPING: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: {OrderStatus.REFUNDED},
    OrderStatus.REFUNDED: set(),
    OrderStatus.ERROR_STOCK_UPDATE_FAILED: set(),
}

TERMINAL_STATES: set[str] = {
    OrderStatus.REFUNDED,
    OrderStatus.ERROR_STOCK_UPDATE_FAILED,
}

# States in which the order holds committed stock
STOCK_COMMITTED_STATES: set[str] = {
    OrderStatus.PENDING_PROCESSING,
    OrderStatus.APPROVED,
    OrderStatus.SHIPPING,
}

ORDER_NUMBER_MAX_RETRIES = 5

# ---------------------------------------------------------------------------
# Fees
# ---------------------------------------------------------------------------

DEFAULT_VAT_RATE = Decimal("0.10")

MAJOR_CITY_BASE_FEE = Decimal("22000")
MAJOR_CITY_BASE_WEIGHT_KG = Decimal("3")
OTHER_PROVINCE_BASE_FEE = Decimal("30000")
OTHER_PROVINCE_BASE_WEIGHT_KG = Decimal("0.5")
ADDITIONAL_FEE_PER_STEP = Decimal("2500")
ADDITIONAL_WEIGHT_STEP_KG = Decimal("0.5")

FREE_SHIPPING_THRESHOLD = Decimal("100000")
MAX_FREE_SHIPPING_DISCOUNT = Decimal("25000")

RUSH_SURCHARGE_PER_LINE = Decimal("10000")

HANOI_ALIASES = ("hanoi", "ha noi")
HCM_ALIASES = ("ho chi minh", "hcm", "saigon", "sai gon")

HANOI_INNER_DISTRICTS = (
    "hoan kiem",
    "ba dinh",
    "dong da",
    "hai ba trung",
    "cau giay",
    "thanh xuan",
    "tay ho",
    "hoang mai",
    "long bien",
    "nam tu liem",
    "bac tu liem",
    "ha dong",
)
