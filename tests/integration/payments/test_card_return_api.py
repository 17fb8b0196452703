"""Integration tests for the direct card-capture return endpoint."""

from __future__ import annotations

import pytest

from modules.orders.constants import OrderStatus
from modules.payments.constants import GatewayName, TransactionStatus
from modules.payments.models import PaymentTransaction

pytestmark = pytest.mark.integration

RETURN_URL = "/api/v1/payments/card/return/"


@pytest.fixture()
def card_charge(engine, pending_order, other_method, user):
    initiation = engine.initiate_payment(
        pending_order.id, other_method.id, client_ip="10.0.0.2", user_id=user.id
    )
    return PaymentTransaction.objects.select_related("order").get(
        id=initiation.transaction_id
    )


class TestCardReturn:
    def test_approved(self, api_client, card_charge, card_callback):
        response = api_client.get(RETURN_URL, card_callback(card_charge))

        assert response.status_code == 200
        assert response.json()["status"] == OrderStatus.PENDING_PROCESSING
        card_charge.refresh_from_db()
        assert card_charge.gateway == GatewayName.DIRECT_CARD
        assert card_charge.status == TransactionStatus.SUCCESS
        assert card_charge.external_transaction_id == "CARD-998877"

    def test_cancelled_on_capture_page(self, api_client, card_charge, card_callback):
        response = api_client.get(
            RETURN_URL, card_callback(card_charge, result="CANCELLED")
        )

        assert response.status_code == 200
        assert response.json()["status"] == OrderStatus.PAYMENT_FAILED
        card_charge.refresh_from_db()
        assert card_charge.status == TransactionStatus.CANCELLED

    def test_declined(self, api_client, card_charge, card_callback):
        response = api_client.get(
            RETURN_URL, card_callback(card_charge, result="DECLINED")
        )
        assert response.json()["status"] == OrderStatus.PAYMENT_FAILED

    def test_foreign_merchant_rejected(self, api_client, card_charge, card_callback):
        response = api_client.get(
            RETURN_URL, card_callback(card_charge, merchant_id="SOMEONE-ELSE")
        )

        assert response.status_code == 400
        assert response.json()["code"] == "InvalidSignature"

    def test_vnpay_parameters_not_accepted(
        self, api_client, initiated, vnpay_callback
    ):
        _, entry = initiated
        response = api_client.get(RETURN_URL, vnpay_callback(entry))
        assert response.status_code == 400
