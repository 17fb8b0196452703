"""Payment URL configuration."""

from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter

from modules.payments.views import (
    CardReturnView,
    PaymentMethodViewSet,
    VNPayIPNView,
    VNPayReturnView,
)

router = DefaultRouter(trailing_slash=True)
router.register("payment-methods", PaymentMethodViewSet, basename="payment-method")

urlpatterns = [
    path("payments/vnpay/return/", VNPayReturnView.as_view(), name="vnpay-return"),
    path("payments/vnpay/ipn/", VNPayIPNView.as_view(), name="vnpay-ipn"),
    path("payments/card/return/", CardReturnView.as_view(), name="card-return"),
    *router.urls,
]
