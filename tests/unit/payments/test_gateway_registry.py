"""Unit tests for gateway routing."""

from __future__ import annotations

import pytest
from django.test import override_settings

from modules.orders.factories import build_lifecycle_engine
from modules.payments.constants import GatewayName, PaymentMethodType
from modules.payments.exceptions import GatewayConfigurationError
from modules.payments.gateways.direct_card import DirectCardGatewayAdapter
from modules.payments.gateways.registry import (
    GatewayRegistry,
    build_gateway_registry,
    shared_http_client,
)
from modules.payments.gateways.vnpay import VNPayGatewayAdapter

pytestmark = pytest.mark.unit


class TestGatewayRegistry:
    def test_default_routes(self, http_client):
        registry = build_gateway_registry(http_client)

        assert isinstance(
            registry.for_method_type(PaymentMethodType.CREDIT_CARD), VNPayGatewayAdapter
        )
        assert isinstance(
            registry.for_method_type(PaymentMethodType.DOMESTIC_DEBIT_CARD),
            VNPayGatewayAdapter,
        )
        assert isinstance(
            registry.for_method_type(PaymentMethodType.OTHER), DirectCardGatewayAdapter
        )

    def test_unrouted_type_uses_default(self, http_client):
        registry = build_gateway_registry(http_client)
        assert registry.for_method_type("CRYPTO").name == GatewayName.VNPAY

    @override_settings(
        PAYMENT_GATEWAY_ROUTES={PaymentMethodType.CREDIT_CARD: GatewayName.DIRECT_CARD}
    )
    def test_routes_from_settings(self, http_client):
        registry = build_gateway_registry(http_client)
        assert registry.for_method_type(PaymentMethodType.CREDIT_CARD).name == (
            GatewayName.DIRECT_CARD
        )

    def test_lookup_by_name(self, http_client):
        registry = build_gateway_registry(http_client)
        assert registry.get(GatewayName.DIRECT_CARD).name == GatewayName.DIRECT_CARD

    def test_unknown_gateway(self):
        registry = GatewayRegistry([], routes={})
        with pytest.raises(GatewayConfigurationError, match="vnpay"):
            registry.for_method_type(PaymentMethodType.CREDIT_CARD)


class TestSharedHttpClient:
    def test_one_client_per_process(self):
        assert shared_http_client() is shared_http_client()

    def test_default_registries_reuse_the_pool(self):
        first = build_gateway_registry()
        second = build_lifecycle_engine()._gateways

        for name in (GatewayName.VNPAY, GatewayName.DIRECT_CARD):
            assert first.get(name)._http is shared_http_client()
            assert second.get(name)._http is shared_http_client()

    def test_explicit_client_wins(self, http_client):
        registry = build_gateway_registry(http_client)
        assert registry.get(GatewayName.VNPAY)._http is http_client
