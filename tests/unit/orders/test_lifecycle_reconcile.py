"""Unit tests for callback reconciliation.

Covers:
- Success: ledger SUCCESS, order PENDING_PROCESSING, total_paid, one
  invoice, stock committed, customer notified.
- Failure and cancellation: order PAYMENT_FAILED, stock untouched.
- Rejections (signature, amount, unknown reference) never mutate state.
- Replays are idempotent; conflicting replays are stale.
- Stock that vanished between placement and payment parks the order.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from modules.core.models import OutboxEvent
from modules.notifications.constants import NotificationEvent
from modules.orders.constants import OrderStatus
from modules.payments.constants import GatewayName, TransactionStatus
from modules.payments.exceptions import (
    AmountMismatch,
    InvalidSignature,
    UnknownOrStaleTransaction,
)
from modules.payments.models import Invoice, PaymentTransaction
from modules.products.models import Product

pytestmark = pytest.mark.unit


def _status(entry: PaymentTransaction) -> str:
    return PaymentTransaction.objects.values_list("status", flat=True).get(id=entry.id)


class TestSuccessfulPayment:
    def test_order_moves_to_pending_processing(self, engine, initiated, vnpay_callback):
        order, entry = initiated
        paid = engine.reconcile(vnpay_callback(entry))

        assert paid.status == OrderStatus.PENDING_PROCESSING
        assert paid.total_paid == entry.amount

    def test_ledger_row_settled(self, engine, initiated, vnpay_callback):
        order, entry = initiated
        engine.reconcile(vnpay_callback(entry))

        entry.refresh_from_db()
        assert entry.status == TransactionStatus.SUCCESS
        assert entry.external_transaction_id == "14012345"
        assert entry.response_code == "00"
        assert entry.completed_at is not None
        assert entry.gateway_response["callback"]["vnp_TxnRef"] == entry.txn_ref
        assert "redirect_url" in entry.gateway_response

    def test_invoice_created(self, engine, initiated, vnpay_callback):
        order, entry = initiated
        engine.reconcile(vnpay_callback(entry))

        invoice = Invoice.objects.get(transaction=entry)
        assert invoice.order_id == order.id
        assert invoice.amount == entry.amount
        assert invoice.invoice_number.startswith("INV-")

    def test_stock_committed(self, engine, initiated, vnpay_callback, product):
        order, entry = initiated
        engine.reconcile(vnpay_callback(entry))

        product.refresh_from_db()
        assert product.stock_quantity == 3

    def test_customer_notified(self, engine, initiated, vnpay_callback, notifier):
        order, entry = initiated
        engine.reconcile(vnpay_callback(entry))
        notifier.notify.assert_called_once_with(order.id, NotificationEvent.CONFIRMED)

    def test_order_paid_event_in_outbox(self, engine, initiated, vnpay_callback):
        order, entry = initiated
        engine.reconcile(vnpay_callback(entry))

        row = OutboxEvent.objects.get(event_type="OrderPaid")
        assert row.payload["transaction_id"] == str(entry.id)

    def test_suspicious_success_is_accepted(self, engine, initiated, vnpay_callback):
        order, entry = initiated
        paid = engine.reconcile(vnpay_callback(entry, response_code="07"))
        assert paid.status == OrderStatus.PENDING_PROCESSING

    def test_auto_approve(self, engine, initiated, vnpay_callback, notifier):
        order, entry = initiated
        engine._auto_approve_paid = True

        paid = engine.reconcile(vnpay_callback(entry))

        assert paid.status == OrderStatus.APPROVED
        assert [c.args[1] for c in notifier.notify.call_args_list] == [
            NotificationEvent.CONFIRMED,
            NotificationEvent.APPROVED,
        ]

    def test_card_gateway_callback(
        self, engine, pending_order, other_method, card_callback
    ):
        initiation = engine.initiate_payment(pending_order.id, other_method.id)
        entry = PaymentTransaction.objects.get(id=initiation.transaction_id)

        paid = engine.reconcile(card_callback(entry), gateway=GatewayName.DIRECT_CARD)

        assert paid.status == OrderStatus.PENDING_PROCESSING
        assert _status(entry) == TransactionStatus.SUCCESS


class TestUnsuccessfulPayment:
    def test_declined_payment(self, engine, initiated, vnpay_callback, product, notifier):
        order, entry = initiated
        failed = engine.reconcile(vnpay_callback(entry, response_code="51"))

        assert failed.status == OrderStatus.PAYMENT_FAILED
        assert failed.total_paid is None
        assert _status(entry) == TransactionStatus.FAILED
        product.refresh_from_db()
        assert product.stock_quantity == 5
        assert not Invoice.objects.exists()
        notifier.notify.assert_called_once_with(order.id, NotificationEvent.FAILED)

    def test_customer_cancelled_on_gateway(self, engine, initiated, vnpay_callback):
        order, entry = initiated
        failed = engine.reconcile(vnpay_callback(entry, response_code="24"))

        assert failed.status == OrderStatus.PAYMENT_FAILED
        assert _status(entry) == TransactionStatus.CANCELLED

    def test_success_code_with_failed_transaction_status(
        self, engine, initiated, vnpay_callback
    ):
        order, entry = initiated
        failed = engine.reconcile(
            vnpay_callback(entry, response_code="00", vnp_TransactionStatus="02")
        )
        assert failed.status == OrderStatus.PAYMENT_FAILED


class TestRejectedCallbacks:
    def test_tampered_amount_rejected(self, engine, initiated, vnpay_callback):
        order, entry = initiated
        params = vnpay_callback(entry)
        params["vnp_Amount"] = str(int(params["vnp_Amount"]) - 100)

        with pytest.raises(InvalidSignature):
            engine.reconcile(params)

        order.refresh_from_db()
        assert order.status == OrderStatus.PENDING_PAYMENT
        assert _status(entry) == TransactionStatus.PENDING_USER_ACTION
        assert not Invoice.objects.exists()

    def test_signed_wrong_amount_rejected(self, engine, initiated, vnpay_callback):
        order, entry = initiated
        with pytest.raises(AmountMismatch):
            engine.reconcile(vnpay_callback(entry, amount=Decimal("1000.00")))

        order.refresh_from_db()
        assert order.status == OrderStatus.PENDING_PAYMENT
        assert _status(entry) == TransactionStatus.PENDING_USER_ACTION
        assert not Invoice.objects.exists()

    def test_missing_hash(self, engine, initiated, vnpay_callback):
        order, entry = initiated
        params = vnpay_callback(entry)
        del params["vnp_SecureHash"]
        with pytest.raises(InvalidSignature):
            engine.reconcile(params)

    def test_unknown_reference(self, engine, initiated, vnpay_callback):
        order, entry = initiated
        params = vnpay_callback(entry, vnp_TxnRef="ORD-00000000-000000_1")

        with pytest.raises(UnknownOrStaleTransaction) as exc_info:
            engine.reconcile(params)
        assert exc_info.value.known is False


class TestReplays:
    def test_same_outcome_twice_is_idempotent(
        self, engine, initiated, vnpay_callback, product, notifier
    ):
        order, entry = initiated
        params = vnpay_callback(entry)

        first = engine.reconcile(params)
        result = engine.reconcile_detailed(params)

        assert result.replayed is True
        assert result.order.status == first.status == OrderStatus.PENDING_PROCESSING
        assert Invoice.objects.filter(order=order).count() == 1
        product.refresh_from_db()
        assert product.stock_quantity == 3
        assert notifier.notify.call_count == 1

    def test_different_outcome_after_settlement_is_stale(
        self, engine, initiated, vnpay_callback
    ):
        order, entry = initiated
        engine.reconcile(vnpay_callback(entry))

        with pytest.raises(UnknownOrStaleTransaction) as exc_info:
            engine.reconcile(vnpay_callback(entry, response_code="24"))

        assert exc_info.value.known is True
        order.refresh_from_db()
        assert order.status == OrderStatus.PENDING_PROCESSING
        assert _status(entry) == TransactionStatus.SUCCESS


class TestStockCommitFailure:
    def test_order_parked_when_stock_gone(
        self, engine, initiated, vnpay_callback, product, notifier
    ):
        order, entry = initiated
        Product.objects.filter(id=product.id).update(stock_quantity=1)

        parked = engine.reconcile(vnpay_callback(entry))

        assert parked.status == OrderStatus.ERROR_STOCK_UPDATE_FAILED
        assert parked.total_paid == entry.amount
        assert _status(entry) == TransactionStatus.SUCCESS
        assert Invoice.objects.filter(transaction=entry).count() == 1
        product.refresh_from_db()
        assert product.stock_quantity == 1
        notifier.notify.assert_called_once_with(order.id, NotificationEvent.STOCK_ERROR)

    def test_partial_decrements_rolled_back(
        self, engine, place_dto, make_product, card_method, vnpay_callback
    ):
        p1 = make_product(stock_quantity=4)
        p2 = make_product(stock_quantity=4)
        order = engine.place_order(place_dto((p1, 2), (p2, 2)))
        initiation = engine.initiate_payment(order.id, card_method.id)
        entry = PaymentTransaction.objects.select_related("order").get(
            id=initiation.transaction_id
        )
        Product.objects.filter(id=p2.id).update(stock_quantity=0)

        parked = engine.reconcile(vnpay_callback(entry))

        assert parked.status == OrderStatus.ERROR_STOCK_UPDATE_FAILED
        p1.refresh_from_db()
        assert p1.stock_quantity == 4
        assert OutboxEvent.objects.filter(event_type="StockCommitFailed").count() == 1
