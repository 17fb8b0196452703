"""Django ORM implementations of the payment repositories."""

from __future__ import annotations

import time
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from modules.payments.constants import TransactionStatus, TransactionType
from modules.payments.exceptions import PaymentAlreadyInProgress
from modules.payments.models import Invoice, PaymentMethod, PaymentTransaction
from modules.payments.repositories.interfaces import (
    IInvoiceRepository,
    IPaymentMethodRepository,
    ITransactionLedger,
)

if TYPE_CHECKING:
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)


class PaymentMethodDjangoRepository(IPaymentMethodRepository):
    def get_by_id(self, id: str) -> Optional[PaymentMethod]:
        try:
            return PaymentMethod.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[PaymentMethod]:
        queryset = PaymentMethod.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    @transaction.atomic
    def save(self, entity: PaymentMethod) -> PaymentMethod:
        entity.save()
        logger.info(
            "payment_method.saved",
            payment_method_id=str(entity.id),
            method_type=entity.method_type,
        )
        return entity

    def get_default_for_owner(self, owner_id: Optional[int]) -> Optional[PaymentMethod]:
        return PaymentMethod.objects.filter(owner_id=owner_id, is_default=True).first()

    def clear_default(self, owner_id: Optional[int]) -> int:
        return PaymentMethod.objects.filter(owner_id=owner_id, is_default=True).update(
            is_default=False, updated_at=timezone.now()
        )


class PaymentTransactionDjangoLedger(ITransactionLedger):
    """Ledger of gateway attempts.

    ``mark_terminal`` is a compare-and-swap on ``PENDING_USER_ACTION``, so a
    transaction settles once even when the return URL and the IPN race.
    """

    def get_by_id(self, id: str) -> Optional[PaymentTransaction]:
        try:
            return PaymentTransaction.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[PaymentTransaction]:
        queryset = PaymentTransaction.objects.select_related("order", "payment_method")
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    @transaction.atomic
    def save(self, entity: PaymentTransaction) -> PaymentTransaction:
        entity.save()
        return entity

    @staticmethod
    def generate_txn_ref(order_number: str, suffix: str = "") -> str:
        """``{order_number}_{epoch millis}{suffix}``, bumped until unused."""
        millis = int(time.time() * 1000)
        while PaymentTransaction.objects.filter(
            txn_ref=f"{order_number}_{millis}{suffix}"
        ).exists():
            millis += 1
        return f"{order_number}_{millis}{suffix}"

    def append(
        self,
        order: Order,
        amount: Decimal,
        gateway: str,
        payment_method: Optional[PaymentMethod] = None,
        transaction_type: str = TransactionType.CHARGE,
        status: str = TransactionStatus.PENDING_USER_ACTION,
        **fields: Any,
    ) -> PaymentTransaction:
        suffix = "_R" if transaction_type == TransactionType.REFUND else ""
        txn_ref = self.generate_txn_ref(order.order_number, suffix)
        try:
            # Savepoint so the caller's transaction survives the violation
            with transaction.atomic():
                entry = PaymentTransaction.objects.create(
                    order=order,
                    payment_method=payment_method,
                    transaction_type=transaction_type,
                    gateway=gateway,
                    amount=amount,
                    status=status,
                    txn_ref=txn_ref,
                    **fields,
                )
        except IntegrityError as exc:
            logger.warning("payment.pending_conflict", order_id=str(order.id))
            raise PaymentAlreadyInProgress(
                f"Order {order.order_number} already has a payment in progress."
            ) from exc

        logger.info(
            "payment.transaction_appended",
            order_id=str(order.id),
            transaction_id=str(entry.id),
            txn_ref=txn_ref,
            transaction_type=transaction_type,
            amount=str(amount),
        )
        return entry

    def has_pending(self, order_id: UUID) -> bool:
        return PaymentTransaction.objects.filter(
            order_id=order_id,
            status=TransactionStatus.PENDING_USER_ACTION,
        ).exists()

    def get_pending_for_order(self, order_id: UUID) -> Optional[PaymentTransaction]:
        return PaymentTransaction.objects.filter(
            order_id=order_id,
            status=TransactionStatus.PENDING_USER_ACTION,
        ).first()

    def get_by_txn_ref_for_update(self, txn_ref: str) -> Optional[PaymentTransaction]:
        return (
            PaymentTransaction.objects.select_for_update()
            .filter(txn_ref=txn_ref)
            .first()
        )

    def record_redirect(
        self, transaction: PaymentTransaction, redirect_url: str, metadata: Dict[str, Any]
    ) -> PaymentTransaction:
        transaction.gateway_response = {**metadata, "redirect_url": redirect_url}
        transaction.save(update_fields=["gateway_response", "updated_at"])
        return transaction

    def mark_terminal(
        self,
        transaction: PaymentTransaction,
        status: str,
        external_transaction_id: str = "",
        response_code: str = "",
        raw: Optional[Dict[str, Any]] = None,
    ) -> bool:
        now = timezone.now()
        gateway_response = {**transaction.gateway_response, "callback": raw or {}}
        updated = PaymentTransaction.objects.filter(
            id=transaction.id,
            status=TransactionStatus.PENDING_USER_ACTION,
        ).update(
            status=status,
            external_transaction_id=external_transaction_id,
            response_code=response_code,
            gateway_response=gateway_response,
            completed_at=now,
            updated_at=now,
        )
        if updated == 0:
            logger.info(
                "payment.already_settled",
                transaction_id=str(transaction.id),
                txn_ref=transaction.txn_ref,
            )
            return False

        transaction.status = status
        transaction.external_transaction_id = external_transaction_id
        transaction.response_code = response_code
        transaction.gateway_response = gateway_response
        transaction.completed_at = now
        logger.info(
            "payment.transaction_settled",
            transaction_id=str(transaction.id),
            txn_ref=transaction.txn_ref,
            status=status,
            response_code=response_code,
        )
        return True

    def list_stale(self, created_before: datetime) -> List[PaymentTransaction]:
        return list(
            PaymentTransaction.objects.select_related("order")
            .filter(
                status=TransactionStatus.PENDING_USER_ACTION,
                transaction_type=TransactionType.CHARGE,
                created_at__lt=created_before,
            )
            .order_by("created_at")
        )

    def get_successful_charge(self, order_id: UUID) -> Optional[PaymentTransaction]:
        return (
            PaymentTransaction.objects.filter(
                order_id=order_id,
                transaction_type=TransactionType.CHARGE,
                status=TransactionStatus.SUCCESS,
            )
            .order_by("-completed_at")
            .first()
        )


class InvoiceDjangoRepository(IInvoiceRepository):
    def get_by_id(self, id: str) -> Optional[Invoice]:
        try:
            return Invoice.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Invoice]:
        queryset = Invoice.objects.select_related("order", "transaction")
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    @transaction.atomic
    def save(self, entity: Invoice) -> Invoice:
        entity.save()
        return entity

    def create_for_transaction(self, transaction: PaymentTransaction) -> Tuple[Invoice, bool]:
        invoice, created = Invoice.objects.get_or_create(
            transaction=transaction,
            defaults={
                "order_id": transaction.order_id,
                "amount": transaction.amount,
                "description": f"Payment {transaction.txn_ref}",
            },
        )
        if created:
            logger.info(
                "invoice.created",
                invoice_number=invoice.invoice_number,
                order_id=str(transaction.order_id),
                amount=str(invoice.amount),
            )
        return invoice, created
