"""Integration tests for the VNPay return and IPN endpoints."""

from __future__ import annotations

from decimal import Decimal

import pytest

from modules.orders.constants import OrderStatus
from modules.orders.models import Order
from modules.payments.constants import TransactionStatus
from modules.payments.models import PaymentTransaction

pytestmark = pytest.mark.integration

RETURN_URL = "/api/v1/payments/vnpay/return/"
IPN_URL = "/api/v1/payments/vnpay/ipn/"


class TestVNPayReturn:
    def test_success_shows_paid_order(self, api_client, initiated, vnpay_callback):
        order, entry = initiated

        response = api_client.get(RETURN_URL, vnpay_callback(entry))

        assert response.status_code == 200
        body = response.json()
        assert body["order_id"] == str(order.id)
        assert body["order_number"] == order.order_number
        assert body["status"] == OrderStatus.PENDING_PROCESSING
        assert Decimal(body["total_paid"]) == Decimal(body["total_amount"])

    def test_declined_card(self, api_client, initiated, vnpay_callback):
        _, entry = initiated

        response = api_client.get(RETURN_URL, vnpay_callback(entry, "51"))

        assert response.status_code == 200
        assert response.json()["status"] == OrderStatus.PAYMENT_FAILED
        assert response.json()["total_paid"] is None

    def test_tampered_query_rejected(self, api_client, initiated, vnpay_callback):
        _, entry = initiated
        params = vnpay_callback(entry)
        params["vnp_Amount"] = "100"

        response = api_client.get(RETURN_URL, params)

        assert response.status_code == 400
        assert response.json()["code"] == "InvalidSignature"
        entry.refresh_from_db()
        assert entry.status == TransactionStatus.PENDING_USER_ACTION

    def test_wrong_amount_rejected(self, api_client, initiated, vnpay_callback):
        _, entry = initiated

        response = api_client.get(
            RETURN_URL, vnpay_callback(entry, amount=Decimal("1000"))
        )

        assert response.status_code == 400
        assert response.json()["code"] == "AmountMismatch"

    def test_reload_after_success_is_harmless(
        self, api_client, initiated, vnpay_callback
    ):
        _, entry = initiated
        params = vnpay_callback(entry)
        api_client.get(RETURN_URL, params)

        response = api_client.get(RETURN_URL, params)

        assert response.status_code == 200
        assert response.json()["status"] == OrderStatus.PENDING_PROCESSING

    def test_no_authentication_needed(self, api_client, initiated, vnpay_callback):
        _, entry = initiated
        api_client.credentials(HTTP_AUTHORIZATION="Bearer not-a-token")

        assert api_client.get(RETURN_URL, vnpay_callback(entry)).status_code == 200


class TestVNPayIPN:
    def _ipn(self, client, params):
        response = client.get(IPN_URL, params)
        assert response.status_code == 200
        return response.json()

    def test_confirm_success(self, api_client, initiated, vnpay_callback):
        order, entry = initiated

        body = self._ipn(api_client, vnpay_callback(entry))

        assert body == {"RspCode": "00", "Message": "Confirm Success"}
        assert Order.objects.get(id=order.id).status == OrderStatus.PENDING_PROCESSING

    def test_retry_answers_already_confirmed(
        self, api_client, initiated, vnpay_callback
    ):
        _, entry = initiated
        params = vnpay_callback(entry)
        self._ipn(api_client, params)

        assert self._ipn(api_client, params)["RspCode"] == "02"
        assert PaymentTransaction.objects.filter(
            status=TransactionStatus.SUCCESS
        ).count() == 1

    def test_stale_outcome_answers_already_confirmed(
        self, api_client, initiated, vnpay_callback
    ):
        _, entry = initiated
        self._ipn(api_client, vnpay_callback(entry))

        body = self._ipn(api_client, vnpay_callback(entry, "24"))

        assert body["RspCode"] == "02"
        entry.refresh_from_db()
        assert entry.status == TransactionStatus.SUCCESS

    def test_bad_checksum(self, api_client, initiated, vnpay_callback):
        _, entry = initiated
        params = vnpay_callback(entry)
        params["vnp_SecureHash"] = "0" * 128

        assert self._ipn(api_client, params) == {
            "RspCode": "97",
            "Message": "Invalid Checksum",
        }

    def test_invalid_amount(self, api_client, initiated, vnpay_callback):
        _, entry = initiated

        body = self._ipn(api_client, vnpay_callback(entry, amount=Decimal("5")))

        assert body["RspCode"] == "04"
        entry.refresh_from_db()
        assert entry.status == TransactionStatus.PENDING_USER_ACTION

    def test_unknown_reference(self, api_client, initiated, vnpay_callback):
        _, entry = initiated

        body = self._ipn(api_client, vnpay_callback(entry, vnp_TxnRef="ORD-NOPE_1"))

        assert body == {"RspCode": "01", "Message": "Order not found"}

    def test_failed_payment_is_still_confirmed(
        self, api_client, initiated, vnpay_callback
    ):
        order, entry = initiated

        body = self._ipn(api_client, vnpay_callback(entry, "51"))

        assert body["RspCode"] == "00"
        assert Order.objects.get(id=order.id).status == OrderStatus.PAYMENT_FAILED
