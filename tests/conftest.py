from __future__ import annotations

from decimal import Decimal
from typing import Callable, Dict
from unittest.mock import Mock

import httpx
import pytest
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APIClient

from modules.notifications.interfaces import INotificationService
from modules.orders.dtos import PlaceOrderDTO
from modules.orders.factories import build_lifecycle_engine
from modules.payments.constants import PaymentMethodType
from modules.payments.gateways import signing
from modules.payments.gateways.base import to_minor_units
from modules.payments.gateways.http import GatewayHttpClient, RetryPolicy
from modules.payments.gateways.registry import build_gateway_registry
from modules.payments.models import PaymentMethod, PaymentTransaction
from modules.products.models import MediaType, Product, ProductStatus

User = get_user_model()


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _clear_throttle_cache():
    cache.clear()


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@pytest.fixture()
def user():
    return User.objects.create_user(username="customer", password="testpass123")


@pytest.fixture()
def other_user():
    return User.objects.create_user(username="stranger", password="testpass123")


@pytest.fixture()
def staff_user():
    return User.objects.create_user(
        username="manager", password="testpass123", is_staff=True
    )


@pytest.fixture()
def auth_client(user) -> APIClient:
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture()
def staff_client(staff_user) -> APIClient:
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_product() -> Callable[..., Product]:
    counter = {"n": 0}

    def _make(**overrides) -> Product:
        counter["n"] += 1
        data = {
            "sku": f"TEST-{counter['n']:04d}",
            "name": f"Test Album {counter['n']}",
            "media_type": MediaType.CD,
            "price": Decimal("100000"),
            "weight_kg": Decimal("0.500"),
            "rush_eligible": True,
            "stock_quantity": 5,
            "status": ProductStatus.ACTIVE,
        }
        data.update(overrides)
        return Product.objects.create(**data)

    return _make


@pytest.fixture()
def product(make_product) -> Product:
    return make_product(sku="P1", name="Kind of Blue")


@pytest.fixture()
def delivery_data() -> Dict[str, str]:
    return {
        "recipient_name": "Nguyen Van A",
        "phone": "0912 345 678",
        "email": "buyer@example.com",
        "address": "12 Hang Bac, Hoan Kiem",
        "province_city": "Hà Nội",
    }


@pytest.fixture()
def place_dto(user, delivery_data) -> Callable[..., PlaceOrderDTO]:
    def _dto(*lines, **overrides) -> PlaceOrderDTO:
        data = {
            "lines": [
                {"product_id": str(product.id), "quantity": quantity}
                for product, quantity in lines
            ],
            "delivery": delivery_data,
            "user_id": user.id,
        }
        data.update(overrides)
        return PlaceOrderDTO.parse(data)

    return _dto


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


@pytest.fixture()
def card_method(user) -> PaymentMethod:
    return PaymentMethod.objects.create(
        method_type=PaymentMethodType.CREDIT_CARD,
        owner=user,
        label="Visa",
        is_default=True,
    )


@pytest.fixture()
def other_method(user) -> PaymentMethod:
    return PaymentMethod.objects.create(
        method_type=PaymentMethodType.OTHER,
        owner=user,
        label="Hosted card page",
    )


class GatewayStub:
    """Programmable ``httpx.MockTransport`` handler recording every request."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: list[httpx.Response] = []

    def queue(self, status_code: int = 200, json: dict | None = None) -> None:
        self.responses.append(httpx.Response(status_code, json=json or {}))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise httpx.ConnectError("no response queued", request=request)
        return self.responses.pop(0)


@pytest.fixture()
def gateway_stub() -> GatewayStub:
    return GatewayStub()


@pytest.fixture()
def http_client(gateway_stub) -> GatewayHttpClient:
    return GatewayHttpClient(
        timeout=1.0,
        retry_policy=RetryPolicy(max_attempts=1, backoff_seconds=0.0),
        transport=httpx.MockTransport(gateway_stub),
    )


@pytest.fixture()
def notifier() -> Mock:
    return Mock(spec=INotificationService)


@pytest.fixture()
def engine(http_client, notifier):
    return build_lifecycle_engine(
        gateway_registry=build_gateway_registry(http_client), notifier=notifier
    )


@pytest.fixture()
def vnpay_callback() -> Callable[..., Dict[str, str]]:
    """Signed VNPay return/IPN parameters for a ledger row."""

    def _callback(
        entry: PaymentTransaction,
        response_code: str = "00",
        amount: Decimal | None = None,
        **extra: str,
    ) -> Dict[str, str]:
        params = {
            "vnp_TmnCode": settings.VNPAY_TMN_CODE,
            "vnp_Amount": str(to_minor_units(amount or entry.amount)),
            "vnp_BankCode": "NCB",
            "vnp_OrderInfo": f"Thanh toan don hang {entry.order.order_number}",
            "vnp_PayDate": "20261018103000",
            "vnp_ResponseCode": response_code,
            "vnp_TransactionNo": "14012345",
            "vnp_TransactionStatus": response_code,
            "vnp_TxnRef": entry.txn_ref,
        }
        params.update(extra)
        params["vnp_SecureHashType"] = "HmacSHA512"
        params["vnp_SecureHash"] = signing.sign(
            {k: v for k, v in params.items() if k != "vnp_SecureHashType"},
            settings.VNPAY_HASH_SECRET,
        )
        return params

    return _callback


@pytest.fixture()
def card_callback() -> Callable[..., Dict[str, str]]:
    def _callback(
        entry: PaymentTransaction, result: str = "APPROVED", **extra: str
    ) -> Dict[str, str]:
        params = {
            "merchant_id": settings.CARD_MERCHANT_ID,
            "order_ref": entry.txn_ref,
            "amount": str(to_minor_units(entry.amount)),
            "txn_id": "CARD-998877",
            "result": result,
        }
        params.update(extra)
        params["signature"] = signing.sign(params, settings.CARD_HASH_SECRET)
        return params

    return _callback


@pytest.fixture()
def pending_order(engine, place_dto, product):
    """Order for 2 x P1 @ 100,000 waiting for payment."""
    return engine.place_order(place_dto((product, 2)))


@pytest.fixture()
def initiated(engine, pending_order, card_method, user):
    """``(order, transaction)`` after a VNPay charge was opened."""
    initiation = engine.initiate_payment(
        pending_order.id, card_method.id, client_ip="10.0.0.1", user_id=user.id
    )
    entry = PaymentTransaction.objects.select_related("order").get(
        id=initiation.transaction_id
    )
    return pending_order, entry


@pytest.fixture()
def paid_order(engine, initiated, vnpay_callback):
    order, entry = initiated
    return engine.reconcile(vnpay_callback(entry))
