"""Order lifecycle engine (use cases).

Orchestrates placement, payment, callback reconciliation and the
fulfilment transitions of an order.  Every command is one database
transaction; commands on the same order serialise on the order row lock.

Business rules enforced:
- Stock is checked (under product row locks) at placement but only
  decremented when a charge succeeds.  A paid order whose stock can no
  longer be committed is parked in ``ERROR_STOCK_UPDATE_FAILED``.
- At most one charge per order waits on the gateway.
- Gateway callbacks are verified before anything is read for update.
  Replays of the same outcome are no-ops; a different outcome for a
  settled transaction is rejected as stale.
- Orders cannot be cancelled while a payment is in flight.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional
from uuid import UUID

import structlog
from django.db import transaction
from django.utils import timezone

from modules.notifications.constants import NotificationEvent
from modules.orders.constants import STOCK_COMMITTED_STATES, OrderStatus
from modules.orders.dtos import FeeLine, OrderLineDTO
from modules.orders.events import OrderCreated, OrderPaid, StockCommitFailed
from modules.orders.exceptions import (
    IllegalTransition,
    InsufficientStock,
    OrderNotFound,
    OrderStatusConflict,
    PaymentInProgress,
)
from modules.orders.state_machine import ensure_transition
from modules.payments.constants import GatewayName, TransactionStatus, TransactionType
from modules.payments.dtos import PaymentInitiation, VerifiedCallback
from modules.payments.exceptions import (
    AmountMismatch,
    CallbackRejected,
    GatewayError,
    GatewayRejected,
    PaymentAlreadyInProgress,
    PaymentMethodNotFound,
    RefundNotAllowed,
    UnknownOrStaleTransaction,
)
from modules.products.exceptions import InactiveProduct, ProductNotFound

if TYPE_CHECKING:
    from modules.notifications.interfaces import INotificationService
    from modules.orders.dtos import PlaceOrderDTO
    from modules.orders.fees import FeeCalculator
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.orders.stock import StockValidator
    from modules.payments.gateways.registry import GatewayRegistry
    from modules.payments.models import PaymentTransaction
    from modules.payments.repositories.interfaces import (
        IInvoiceRepository,
        IPaymentMethodRepository,
        ITransactionLedger,
    )
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)

DEFAULT_PAYMENT_EXPIRY = timedelta(minutes=15)


@dataclass(frozen=True)
class ReconcileResult:
    order: Order
    replayed: bool = False


class OrderLifecycleEngine:
    """Application service for the order lifecycle.

    Receives every collaborator via its constructor.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        product_repository: IProductRepository,
        stock_validator: StockValidator,
        fee_calculator: FeeCalculator,
        gateway_registry: GatewayRegistry,
        ledger: ITransactionLedger,
        payment_method_repository: IPaymentMethodRepository,
        invoice_repository: IInvoiceRepository,
        notifier: INotificationService,
        auto_approve_paid: bool = False,
        payment_expiry: timedelta = DEFAULT_PAYMENT_EXPIRY,
    ) -> None:
        self._order_repo = order_repository
        self._product_repo = product_repository
        self._stock = stock_validator
        self._fees = fee_calculator
        self._gateways = gateway_registry
        self._ledger = ledger
        self._methods = payment_method_repository
        self._invoices = invoice_repository
        self._notifier = notifier
        self._auto_approve_paid = auto_approve_paid
        self._payment_expiry = payment_expiry

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    @transaction.atomic
    def place_order(self, dto: PlaceOrderDTO) -> Order:
        """Validate, price and persist an order, leaving it in PENDING_PAYMENT.

        Raises:
            ProductNotFound / InactiveProduct: a line names an unknown or
                withdrawn product.
            InsufficientStock: at least one line is short; nothing is saved.
            RushOrderNotEligible: rush requested for an ineligible order.
        """
        log = logger.bind(user_id=dto.user_id, line_count=len(dto.lines))
        log.info("order.placement_started")

        if dto.idempotency_key:
            existing = self._order_repo.get_by_idempotency_key(
                dto.idempotency_key, dto.user_id
            )
            if existing:
                log.info(
                    "order.idempotency_hit",
                    order_id=str(existing.id),
                    key=dto.idempotency_key,
                )
                return existing

        products = self._stock.validate_locked(dto.lines)

        fee_lines = []
        items = []
        for line in dto.lines:
            product = products[line.product_id]
            fee_lines.append(
                FeeLine(
                    unit_price=product.price,
                    quantity=line.quantity,
                    weight_kg=product.weight_kg,
                    rush_eligible=product.rush_eligible,
                )
            )
            items.append(
                {
                    "product_id": product.id,
                    "quantity": line.quantity,
                    "unit_price": product.price,
                    "weight_kg": product.weight_kg,
                    "rush_eligible": product.rush_eligible,
                }
            )
        fees = self._fees.compute(fee_lines, dto.delivery, rush_order=dto.rush_order)

        order = self._order_repo.create(
            {
                "user_id": dto.user_id,
                "items": items,
                "delivery": {
                    **dto.delivery.model_dump(),
                    "delivery_fee": fees.shipping_fee,
                },
                "is_rush_order": dto.rush_order,
                "subtotal": fees.subtotal,
                "vat_amount": fees.vat,
                "shipping_fee": fees.shipping_fee,
                "rush_fee": fees.rush_fee,
                "total_amount": fees.total,
                "notes": dto.notes,
                "idempotency_key": dto.idempotency_key,
            }
        )
        order.add_domain_event(
            OrderCreated(
                aggregate_id=order.id,
                order_number=order.order_number,
                total_amount=str(fees.total),
            )
        )
        self._order_repo.save(order)

        order = self._order_repo.update_status(
            order.id,
            OrderStatus.PENDING_DELIVERY_INFO,
            OrderStatus.PENDING_PAYMENT,
            notes="Delivery info confirmed",
            user_id=dto.user_id,
        )
        log.info(
            "order.placed",
            order_id=str(order.id),
            order_number=order.order_number,
            total_amount=str(order.total_amount),
        )
        return order

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    @transaction.atomic
    def initiate_payment(
        self,
        order_id: UUID,
        payment_method_id: UUID,
        client_ip: str = "",
        user_id: Optional[int] = None,
    ) -> PaymentInitiation:
        """Open a charge with the gateway chosen by the payment method type.

        A PAYMENT_FAILED order is moved back to PENDING_PAYMENT first.
        Gateway or configuration errors roll the whole call back.

        Raises:
            OrderNotFound, PaymentMethodNotFound
            IllegalTransition: the order is not awaiting payment.
            PaymentAlreadyInProgress: a charge already waits on the gateway.
            GatewayConfigurationError: checked before any row is written.
        """
        order = self._get_locked(order_id)
        method = self._methods.get_by_id(str(payment_method_id))
        foreign = (
            method is not None
            and method.owner_id is not None
            and user_id is not None
            and method.owner_id != user_id
        )
        if method is None or foreign:
            raise PaymentMethodNotFound(
                f"Payment method {payment_method_id} not found."
            )

        log = logger.bind(order_id=str(order.id), method_type=method.method_type)

        if self._ledger.has_pending(order.id):
            log.warning("payment.already_in_progress")
            raise PaymentAlreadyInProgress(
                f"Order {order.order_number} already has a payment in progress."
            )

        if order.status == OrderStatus.PAYMENT_FAILED:
            order = self._order_repo.update_status(
                order.id,
                OrderStatus.PAYMENT_FAILED,
                OrderStatus.PENDING_PAYMENT,
                notes="Payment retried",
                user_id=user_id,
            )
        elif order.status != OrderStatus.PENDING_PAYMENT:
            log.warning("payment.order_not_payable", status=order.status)
            raise IllegalTransition(order.status, OrderStatus.PENDING_PROCESSING)

        adapter = self._gateways.for_method_type(method.method_type)
        adapter.ensure_configured()

        entry = self._ledger.append(
            order, order.total_amount, adapter.name, payment_method=method
        )
        redirect = adapter.initiate(order, entry, method, client_ip)
        self._ledger.record_redirect(entry, redirect.redirect_url, redirect.metadata)

        log.info(
            "payment.initiated",
            transaction_id=str(entry.id),
            txn_ref=entry.txn_ref,
            gateway=adapter.name,
            amount=str(entry.amount),
        )
        return PaymentInitiation(
            order_id=order.id,
            transaction_id=entry.id,
            txn_ref=entry.txn_ref,
            redirect_url=redirect.redirect_url,
        )

    def reconcile(
        self, params: Mapping[str, str], gateway: str = GatewayName.VNPAY
    ) -> Order:
        """Apply a gateway callback (return URL or IPN).

        The signature is checked before the ledger is touched.

        Raises:
            InvalidSignature: hash missing or wrong.
            UnknownOrStaleTransaction: unknown reference, or the transaction
                already settled with another outcome.
            AmountMismatch: callback amount differs from the charge.
        """
        return self.reconcile_detailed(params, gateway).order

    def reconcile_detailed(
        self, params: Mapping[str, str], gateway: str = GatewayName.VNPAY
    ) -> ReconcileResult:
        """``reconcile`` that also reports whether the callback was a replay."""
        adapter = self._gateways.get(gateway)
        try:
            callback = adapter.verify_callback(params)
        except CallbackRejected as exc:
            logger.warning(
                "payment.callback_rejected",
                gateway=gateway,
                reason=type(exc).__name__,
                detail=str(exc),
            )
            raise

        with transaction.atomic():
            return self._apply_outcome(callback)

    def _apply_outcome(self, callback: VerifiedCallback) -> ReconcileResult:
        log = logger.bind(txn_ref=callback.txn_ref, outcome=callback.status)

        entry = self._ledger.get_by_txn_ref_for_update(callback.txn_ref)
        if entry is None:
            log.warning("payment.callback_rejected", reason="UnknownOrStaleTransaction")
            raise UnknownOrStaleTransaction(f"Unknown transaction {callback.txn_ref}.")

        if callback.amount != entry.amount:
            log.warning(
                "payment.callback_rejected",
                reason="AmountMismatch",
                expected=str(entry.amount),
                received=str(callback.amount),
            )
            raise AmountMismatch(
                f"Transaction {entry.txn_ref} is for {entry.amount}, "
                f"callback says {callback.amount}."
            )

        if entry.is_terminal:
            if entry.status == callback.status:
                log.info("payment.callback_replayed", transaction_id=str(entry.id))
                return ReconcileResult(self.get_order(str(entry.order_id)), replayed=True)
            log.warning(
                "payment.callback_rejected",
                reason="UnknownOrStaleTransaction",
                settled_as=entry.status,
            )
            raise UnknownOrStaleTransaction(
                f"Transaction {entry.txn_ref} already settled as {entry.status}.",
                known=True,
            )

        order = self._get_locked(entry.order_id)
        if callback.suspicious:
            log.warning("payment.suspicious", order_id=str(order.id))

        if callback.success:
            return ReconcileResult(self._settle_success(order, entry, callback))
        return ReconcileResult(self._settle_failure(order, entry, callback))

    def _settle_success(
        self, order: Order, entry: PaymentTransaction, callback: VerifiedCallback
    ) -> Order:
        self._ledger.mark_terminal(
            entry,
            TransactionStatus.SUCCESS,
            external_transaction_id=callback.external_transaction_id,
            response_code=callback.response_code,
            raw=callback.raw,
        )
        order = self._order_repo.update_status(
            order.id,
            OrderStatus.PENDING_PAYMENT,
            OrderStatus.PENDING_PROCESSING,
            notes=f"Paid via {entry.gateway} ({entry.txn_ref})",
            fields={"total_paid": entry.amount},
        )
        self._invoices.create_for_transaction(entry)
        order.add_domain_event(
            OrderPaid(
                aggregate_id=order.id,
                transaction_id=str(entry.id),
                amount=str(entry.amount),
            )
        )
        self._order_repo.save(order)

        lines = [
            OrderLineDTO(product_id=item.product_id, quantity=item.quantity)
            for item in order.items.all()
        ]
        try:
            # Savepoint: a failed re-check must not leave partial decrements
            with transaction.atomic():
                products = self._stock.validate_locked(lines)
                for line in lines:
                    self._product_repo.adjust_stock(
                        products[line.product_id], -line.quantity
                    )
        except (InsufficientStock, ProductNotFound, InactiveProduct) as exc:
            return self._park_stock_failure(order, exc)

        logger.info(
            "payment.settled",
            order_id=str(order.id),
            transaction_id=str(entry.id),
            amount=str(entry.amount),
        )
        self._notifier.notify(order.id, NotificationEvent.CONFIRMED)

        if self._auto_approve_paid:
            order = self._order_repo.update_status(
                order.id,
                OrderStatus.PENDING_PROCESSING,
                OrderStatus.APPROVED,
                notes="Approved automatically after payment",
            )
            self._notifier.notify(order.id, NotificationEvent.APPROVED)
        return order

    def _park_stock_failure(self, order: Order, exc: Exception) -> Order:
        shortages = getattr(exc, "shortages", [{"detail": str(exc)}])
        logger.error(
            "order.stock_commit_failed",
            order_id=str(order.id),
            order_number=order.order_number,
            shortages=shortages,
        )
        order = self._order_repo.update_status(
            order.id,
            OrderStatus.PENDING_PROCESSING,
            OrderStatus.ERROR_STOCK_UPDATE_FAILED,
            notes=f"Stock commit failed: {exc}",
        )
        order.add_domain_event(
            StockCommitFailed(aggregate_id=order.id, shortages=tuple(shortages))
        )
        self._order_repo.save(order)
        self._notifier.notify(order.id, NotificationEvent.STOCK_ERROR)
        return order

    def _settle_failure(
        self, order: Order, entry: PaymentTransaction, callback: VerifiedCallback
    ) -> Order:
        self._ledger.mark_terminal(
            entry,
            callback.status,
            external_transaction_id=callback.external_transaction_id,
            response_code=callback.response_code,
            raw=callback.raw,
        )
        code = callback.response_code or "no code"
        order = self._order_repo.update_status(
            order.id,
            OrderStatus.PENDING_PAYMENT,
            OrderStatus.PAYMENT_FAILED,
            notes=f"Payment {callback.status.lower()} ({code})",
        )
        logger.info(
            "payment.not_completed",
            order_id=str(order.id),
            transaction_id=str(entry.id),
            status=callback.status,
            response_code=callback.response_code,
        )
        self._notifier.notify(order.id, NotificationEvent.FAILED)
        return order

    def expire_stale_payments(
        self, older_than: Optional[timedelta] = None, client_ip: str = ""
    ) -> Dict[str, int]:
        """Settle charges the customer abandoned on the gateway page.

        The gateway is asked for the outcome first; a charge it still
        reports as open (past the link expiry) is marked EXPIRED.  Gateway
        errors leave the charge pending for the next run.
        """
        cutoff = timezone.now() - (older_than or self._payment_expiry)
        summary = {"settled": 0, "expired": 0, "skipped": 0}

        for entry in self._ledger.list_stale(cutoff):
            log = logger.bind(txn_ref=entry.txn_ref, order_id=str(entry.order_id))
            try:
                outcome = self._gateways.get(entry.gateway).query_transaction(
                    entry, client_ip
                )
            except (GatewayError, CallbackRejected) as exc:
                log.warning("payment.expiry_query_failed", error=str(exc))
                summary["skipped"] += 1
                continue

            if outcome is None:
                outcome = VerifiedCallback(
                    txn_ref=entry.txn_ref,
                    amount=entry.amount,
                    status=TransactionStatus.EXPIRED,
                )
            try:
                with transaction.atomic():
                    self._apply_outcome(outcome)
            except (CallbackRejected, OrderStatusConflict, IllegalTransition) as exc:
                log.warning("payment.expiry_not_applied", error=str(exc))
                summary["skipped"] += 1
                continue

            expired = outcome.status == TransactionStatus.EXPIRED
            summary["expired" if expired else "settled"] += 1

        logger.info(
            "payment.expiry_sweep_finished", cutoff=cutoff.isoformat(), **summary
        )
        return summary

    # ------------------------------------------------------------------
    # Fulfilment
    # ------------------------------------------------------------------

    def approve_order(
        self, order_id: UUID, notes: str = "", user_id: Optional[int] = None
    ) -> Order:
        return self._transition(
            order_id,
            OrderStatus.APPROVED,
            notes or "Order approved",
            user_id,
            NotificationEvent.APPROVED,
        )

    @transaction.atomic
    def reject_order(
        self, order_id: UUID, notes: str = "", user_id: Optional[int] = None
    ) -> Order:
        """Reject a paid order and put its stock back.  Refund is a separate step."""
        order = self._get_locked(order_id)
        ensure_transition(order.status, OrderStatus.REJECTED)
        self._release_stock(order)
        order = self._order_repo.update_status(
            order.id,
            order.status,
            OrderStatus.REJECTED,
            notes=notes or "Order rejected",
            user_id=user_id,
        )
        self._notifier.notify(order.id, NotificationEvent.REJECTED)
        return order

    def mark_shipping(
        self, order_id: UUID, notes: str = "", user_id: Optional[int] = None
    ) -> Order:
        return self._transition(
            order_id,
            OrderStatus.SHIPPING,
            notes or "Handed to carrier",
            user_id,
            NotificationEvent.SHIPPED,
        )

    def mark_delivered(
        self, order_id: UUID, notes: str = "", user_id: Optional[int] = None
    ) -> Order:
        return self._transition(
            order_id,
            OrderStatus.DELIVERED,
            notes or "Delivered",
            user_id,
            NotificationEvent.DELIVERED,
        )

    @transaction.atomic
    def cancel_order(
        self, order_id: UUID, notes: str = "", user_id: Optional[int] = None
    ) -> Order:
        """Cancel an order and release committed stock.

        Raises:
            OrderNotFound
            PaymentInProgress: a charge still waits on the gateway.
            IllegalTransition: the current status cannot be cancelled.
        """
        order = self._get_locked(order_id)
        log = logger.bind(order_id=str(order.id), current_status=order.status)

        if self._ledger.has_pending(order.id):
            log.warning("order.cancel_blocked_by_payment")
            raise PaymentInProgress(
                f"Order {order.order_number} has a payment in progress."
            )
        ensure_transition(order.status, OrderStatus.CANCELLED)

        if order.status in STOCK_COMMITTED_STATES:
            self._release_stock(order)

        order = self._order_repo.update_status(
            order.id,
            order.status,
            OrderStatus.CANCELLED,
            notes=notes or "Order cancelled",
            user_id=user_id,
        )
        log.info("order.cancelled")
        self._notifier.notify(order.id, NotificationEvent.CANCELLED)
        return order

    @transaction.atomic
    def refund_order(
        self,
        order_id: UUID,
        reason: str = "",
        user_id: Optional[int] = None,
        client_ip: str = "",
    ) -> Order:
        """Refund the successful charge in full and close the order.

        Raises:
            IllegalTransition: the order cannot move to REFUNDED.
            RefundNotAllowed: no successful charge exists.
            GatewayRejected: the gateway declined the refund.
        """
        order = self._get_locked(order_id)
        ensure_transition(order.status, OrderStatus.REFUNDED)

        charge = self._ledger.get_successful_charge(order.id)
        if charge is None:
            raise RefundNotAllowed(
                f"Order {order.order_number} has no successful charge."
            )

        result = self._gateways.get(charge.gateway).refund(
            charge, charge.amount, reason or f"Refund {order.order_number}", client_ip
        )
        if not result.accepted:
            logger.warning(
                "payment.refund_declined",
                order_id=str(order.id),
                response_code=result.response_code,
            )
            raise GatewayRejected(
                f"Refund for {order.order_number} declined ({result.response_code})."
            )

        self._ledger.append(
            order,
            charge.amount,
            charge.gateway,
            payment_method=charge.payment_method,
            transaction_type=TransactionType.REFUND,
            status=TransactionStatus.SUCCESS,
            external_transaction_id=result.external_transaction_id,
            response_code=result.response_code,
            gateway_response=result.raw,
            completed_at=timezone.now(),
        )
        order = self._order_repo.update_status(
            order.id,
            order.status,
            OrderStatus.REFUNDED,
            notes=reason or "Refunded",
            user_id=user_id,
        )
        logger.info("order.refunded", order_id=str(order.id), amount=str(charge.amount))
        self._notifier.notify(order.id, NotificationEvent.REFUNDED)
        return order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order:
        """Retrieve a single order by ID.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._order_repo.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def list_orders(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        return self._order_repo.list(filters)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_locked(self, order_id: Any) -> Order:
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    @transaction.atomic
    def _transition(
        self,
        order_id: UUID,
        target: str,
        notes: str,
        user_id: Optional[int],
        notification: str,
    ) -> Order:
        order = self._get_locked(order_id)
        order = self._order_repo.update_status(
            order.id, order.status, target, notes=notes, user_id=user_id
        )
        self._notifier.notify(order.id, notification)
        return order

    def _release_stock(self, order: Order) -> None:
        items = list(order.items.all())
        products = self._product_repo.lock_many(item.product_id for item in items)
        for item in items:
            product = products.get(item.product_id)
            if product is None:
                # Withdrawn from the catalog; nothing to put back
                logger.warning(
                    "order.stock_release_skipped",
                    order_id=str(order.id),
                    product_id=str(item.product_id),
                )
                continue
            self._product_repo.adjust_stock(product, item.quantity)
        logger.info(
            "order.stock_released", order_id=str(order.id), line_count=len(items)
        )
