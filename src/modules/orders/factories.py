"""Wiring of ``OrderLifecycleEngine`` with its Django-backed collaborators."""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

from django.conf import settings

from modules.notifications.interfaces import INotificationService
from modules.notifications.services import CeleryNotificationService
from modules.orders.fees import FeeCalculator
from modules.orders.repositories import OrderDjangoRepository
from modules.orders.services import OrderLifecycleEngine
from modules.orders.stock import StockValidator
from modules.payments.gateways.registry import GatewayRegistry, build_gateway_registry
from modules.payments.repositories import (
    InvoiceDjangoRepository,
    PaymentMethodDjangoRepository,
    PaymentTransactionDjangoLedger,
)
from modules.products.repositories.django_repository import ProductDjangoRepository


def build_lifecycle_engine(
    gateway_registry: Optional[GatewayRegistry] = None,
    notifier: Optional[INotificationService] = None,
) -> OrderLifecycleEngine:
    product_repository = ProductDjangoRepository()
    return OrderLifecycleEngine(
        order_repository=OrderDjangoRepository(),
        product_repository=product_repository,
        stock_validator=StockValidator(product_repository),
        fee_calculator=FeeCalculator(settings.ORDER_VAT_RATE),
        gateway_registry=gateway_registry or build_gateway_registry(),
        ledger=PaymentTransactionDjangoLedger(),
        payment_method_repository=PaymentMethodDjangoRepository(),
        invoice_repository=InvoiceDjangoRepository(),
        notifier=notifier or CeleryNotificationService(),
        auto_approve_paid=settings.ORDER_AUTO_APPROVE_PAID,
        payment_expiry=timedelta(minutes=settings.VNPAY_EXPIRE_MINUTES),
    )
