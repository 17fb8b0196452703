"""Payment domain constants."""

from django.db import models


class PaymentMethodType(models.TextChoices):
    CREDIT_CARD = "CREDIT_CARD", "Credit card"
    DOMESTIC_DEBIT_CARD = "DOMESTIC_DEBIT_CARD", "Domestic debit card"
    OTHER = "OTHER", "Other"


class TransactionType(models.TextChoices):
    CHARGE = "CHARGE", "Charge"
    REFUND = "REFUND", "Refund"


class TransactionStatus(models.TextChoices):
    PENDING_USER_ACTION = "PENDING_USER_ACTION", "Pending user action"
    SUCCESS = "SUCCESS", "Success"
    FAILED = "FAILED", "Failed"
    CANCELLED = "CANCELLED", "Cancelled"
    EXPIRED = "EXPIRED", "Expired"


TERMINAL_TRANSACTION_STATUSES: set[str] = {
    TransactionStatus.SUCCESS,
    TransactionStatus.FAILED,
    TransactionStatus.CANCELLED,
    TransactionStatus.EXPIRED,
}


class GatewayName(models.TextChoices):
    VNPAY = "vnpay", "VNPay"
    DIRECT_CARD = "direct_card", "Direct card capture"


# VNPay vnp_ResponseCode values with a meaning beyond plain failure
VNPAY_SUCCESS = "00"
VNPAY_SUSPICIOUS = "07"
VNPAY_CUSTOMER_CANCELLED = "24"
VNPAY_QUERY_PENDING = "01"

# IPN acknowledgement codes (RspCode) expected by VNPay
IPN_CONFIRMED = "00"
IPN_ORDER_NOT_FOUND = "01"
IPN_ALREADY_CONFIRMED = "02"
IPN_INVALID_AMOUNT = "04"
IPN_INVALID_SIGNATURE = "97"
IPN_UNKNOWN_ERROR = "99"
