"""PaymentMethod, PaymentTransaction (the ledger) and Invoice models.

- A ``PaymentTransaction`` is one attempt against the gateway.  Failed
  attempts stay as audit rows; retries append new rows.
- At most one charge per order may sit in ``PENDING_USER_ACTION``; the
  partial unique constraint backs up the order-row lock taken by the
  engine.
- ``Invoice`` is one-to-one with the successful transaction, so a replayed
  callback cannot produce a second invoice.
"""

from __future__ import annotations

import secrets
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel
from modules.payments.constants import (
    TERMINAL_TRANSACTION_STATUSES,
    PaymentMethodType,
    TransactionStatus,
    TransactionType,
)

MONEY = {"max_digits": 14, "decimal_places": 2}


class PaymentMethod(BaseModel):
    """Stored way of paying.  Only ``is_default`` changes after creation."""

    method_type = models.CharField(max_length=32, choices=PaymentMethodType.choices)
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="payment_methods",
    )
    label = models.CharField(max_length=100, blank=True, default="")
    is_default = models.BooleanField(default=False)

    class Meta:
        db_table = "payment_methods"
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["owner"],
                condition=models.Q(is_default=True),
                name="payment_methods_one_default_per_owner",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.method_type} ({self.label or self.id})"


class PaymentTransaction(BaseModel):
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="payment_transactions",
    )
    payment_method = models.ForeignKey(
        "payments.PaymentMethod",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )
    transaction_type = models.CharField(
        max_length=10,
        choices=TransactionType.choices,
        default=TransactionType.CHARGE,
    )
    gateway = models.CharField(max_length=32)
    amount = models.DecimalField(**MONEY)
    status = models.CharField(
        max_length=32,
        choices=TransactionStatus.choices,
        default=TransactionStatus.PENDING_USER_ACTION,
    )
    txn_ref = models.CharField(max_length=100, unique=True)
    external_transaction_id = models.CharField(max_length=100, blank=True, default="")
    response_code = models.CharField(max_length=10, blank=True, default="")
    gateway_response = models.JSONField(default=dict, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True, default=None)

    class Meta:
        db_table = "payment_transactions"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["status", "created_at"],
                name="ptx_status_created_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=models.Q(status="PENDING_USER_ACTION"),
                name="ptx_one_pending_per_order",
            ),
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="ptx_amount_positive",
            ),
        ]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TRANSACTION_STATUSES

    @property
    def redirect_url(self) -> str:
        return self.gateway_response.get("redirect_url", "")

    def __str__(self) -> str:
        return f"{self.transaction_type} {self.txn_ref} [{self.status}]"


class Invoice(BaseModel):
    invoice_number = models.CharField(max_length=32, unique=True, editable=False)
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="invoices",
    )
    transaction = models.OneToOneField(
        "payments.PaymentTransaction",
        on_delete=models.PROTECT,
        related_name="invoice",
    )
    amount = models.DecimalField(**MONEY, default=Decimal("0.00"))
    description = models.TextField(blank=True, default="")

    class Meta:
        db_table = "invoices"
        ordering = ["-created_at"]

    @staticmethod
    def generate_invoice_number() -> str:
        return f"INV-{timezone.now():%Y%m%d}-{secrets.token_hex(4).upper()}"

    def save(self, *args, **kwargs) -> None:
        if not self.invoice_number:
            self.invoice_number = self.generate_invoice_number()
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.invoice_number} ({self.amount})"
