"""Integration tests for the customer-facing order API."""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest

from modules.orders.constants import OrderStatus
from modules.orders.models import Order
from modules.payments.models import PaymentTransaction

pytestmark = pytest.mark.integration

ORDERS_URL = "/api/v1/orders/"


@pytest.fixture()
def order_payload(product, delivery_data):
    return {
        "items": [{"product_id": str(product.id), "quantity": 2}],
        "delivery": delivery_data,
    }


def _place(client, payload, **headers):
    return client.post(ORDERS_URL, payload, format="json", **headers)


class TestCreateOrder:
    def test_created(self, auth_client, order_payload, user):
        response = _place(auth_client, order_payload)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == OrderStatus.PENDING_PAYMENT
        assert body["user_id"] == user.id
        assert Decimal(body["subtotal"]) == Decimal("200000")
        assert Decimal(body["vat_amount"]) == Decimal("20000")
        assert body["total_paid"] is None
        assert body["items"][0]["product_sku"] == "P1"
        assert body["delivery_info"]["phone"] == "0912345678"
        assert [h["new_status"] for h in body["status_history"]] == [
            OrderStatus.PENDING_DELIVERY_INFO,
            OrderStatus.PENDING_PAYMENT,
        ]
        assert body["payment_transactions"] == []

    def test_idempotency_key_header(self, auth_client, order_payload):
        first = _place(auth_client, order_payload, HTTP_IDEMPOTENCY_KEY="abc-123")
        second = _place(auth_client, order_payload, HTTP_IDEMPOTENCY_KEY="abc-123")

        assert first.json()["id"] == second.json()["id"]
        assert Order.objects.count() == 1

    def test_idempotency_key_scoped_to_user(
        self, auth_client, api_client, other_user, order_payload
    ):
        mine = _place(auth_client, order_payload, HTTP_IDEMPOTENCY_KEY="k-1")
        api_client.force_authenticate(user=other_user)
        other_payload = {
            **order_payload,
            "delivery": {**order_payload["delivery"], "email": "other@example.com"},
        }

        theirs = _place(api_client, other_payload, HTTP_IDEMPOTENCY_KEY="k-1")

        assert theirs.status_code == 201
        assert theirs.json()["id"] != mine.json()["id"]
        assert theirs.json()["user_id"] == other_user.id
        assert theirs.json()["delivery_info"]["email"] == "other@example.com"
        assert Order.objects.filter(idempotency_key="k-1").count() == 2

    def test_field_errors_reported_together(self, auth_client, order_payload):
        order_payload["delivery"] = {
            **order_payload["delivery"],
            "phone": "12",
            "email": "nope",
        }

        response = _place(auth_client, order_payload)

        assert response.status_code == 400
        fields = {error["field"] for error in response.json()["errors"]}
        assert fields == {"delivery.phone", "delivery.email"}
        assert Order.objects.count() == 0

    def test_malformed_body(self, auth_client):
        response = _place(auth_client, {"items": "x"})
        assert response.status_code == 400
        assert "delivery" in response.json()

    def test_shortage_lists_every_line(self, auth_client, order_payload, product):
        order_payload["items"][0]["quantity"] = 6

        response = _place(auth_client, order_payload)

        assert response.status_code == 409
        assert response.json()["shortages"] == [
            {"product_id": str(product.id), "requested": 6, "available": 5}
        ]
        assert Order.objects.count() == 0

    def test_unknown_product(self, auth_client, order_payload):
        order_payload["items"][0]["product_id"] = str(uuid4())
        assert _place(auth_client, order_payload).status_code == 404

    def test_rush_outside_hanoi(self, auth_client, order_payload):
        order_payload["rush_order"] = True
        order_payload["delivery"]["province_city"] = "Cần Thơ"
        assert _place(auth_client, order_payload).status_code == 400

    def test_requires_authentication(self, api_client, order_payload):
        assert _place(api_client, order_payload).status_code == 401


class TestReadOrders:
    def test_list_own_orders_only(self, auth_client, engine, place_dto, product, other_user):
        mine = engine.place_order(place_dto((product, 1)))
        engine.place_order(place_dto((product, 1), user_id=other_user.id))

        response = auth_client.get(ORDERS_URL)

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 1
        assert body["results"][0]["id"] == str(mine.id)
        assert "items" not in body["results"][0]

    def test_staff_sees_every_order(self, staff_client, engine, place_dto, product, other_user):
        engine.place_order(place_dto((product, 1)))
        engine.place_order(place_dto((product, 1), user_id=other_user.id))

        assert staff_client.get(ORDERS_URL).json()["count"] == 2

    def test_retrieve(self, auth_client, pending_order):
        response = auth_client.get(f"{ORDERS_URL}{pending_order.id}/")
        assert response.status_code == 200
        assert response.json()["order_number"] == pending_order.order_number

    def test_foreign_order_hidden(self, api_client, other_user, pending_order):
        api_client.force_authenticate(user=other_user)
        response = api_client.get(f"{ORDERS_URL}{pending_order.id}/")
        assert response.status_code == 404

    def test_unknown_order(self, auth_client):
        assert auth_client.get(f"{ORDERS_URL}{uuid4()}/").status_code == 404


class TestPayOrder:
    def test_returns_signed_redirect(self, auth_client, pending_order, card_method):
        response = auth_client.post(
            f"{ORDERS_URL}{pending_order.id}/pay/",
            {"payment_method_id": str(card_method.id)},
            format="json",
            HTTP_X_FORWARDED_FOR="203.0.113.5, 10.0.0.1",
        )

        assert response.status_code == 201
        body = response.json()
        assert body["order_id"] == str(pending_order.id)
        assert "vnp_IpAddr=203.0.113.5" in body["redirect_url"]
        entry = PaymentTransaction.objects.get(id=body["transaction_id"])
        assert entry.txn_ref == body["txn_ref"]

    def test_second_payment_conflicts(self, auth_client, pending_order, card_method):
        url = f"{ORDERS_URL}{pending_order.id}/pay/"
        payload = {"payment_method_id": str(card_method.id)}
        auth_client.post(url, payload, format="json")

        response = auth_client.post(url, payload, format="json")

        assert response.status_code == 409
        assert "in progress" in response.json()["detail"]

    def test_unknown_method(self, auth_client, pending_order):
        response = auth_client.post(
            f"{ORDERS_URL}{pending_order.id}/pay/",
            {"payment_method_id": str(uuid4())},
            format="json",
        )
        assert response.status_code == 404

    def test_foreign_order(self, api_client, other_user, pending_order, card_method):
        api_client.force_authenticate(user=other_user)
        response = api_client.post(
            f"{ORDERS_URL}{pending_order.id}/pay/",
            {"payment_method_id": str(card_method.id)},
            format="json",
        )
        assert response.status_code == 404
        assert not PaymentTransaction.objects.exists()


class TestCancelOrder:
    def test_blocked_while_paying(self, auth_client, initiated):
        order, _ = initiated
        response = auth_client.post(f"{ORDERS_URL}{order.id}/cancel/")
        assert response.status_code == 409

    def test_unpaid_order_not_cancellable(self, auth_client, pending_order):
        response = auth_client.post(f"{ORDERS_URL}{pending_order.id}/cancel/")
        assert response.status_code == 409
        assert "Cannot transition" in response.json()["detail"]

    def test_cancel_approved(self, auth_client, engine, paid_order):
        engine.approve_order(paid_order.id)

        response = auth_client.post(
            f"{ORDERS_URL}{paid_order.id}/cancel/", {"notes": "Ordered twice"}, format="json"
        )

        assert response.status_code == 200
        assert response.json()["status"] == OrderStatus.CANCELLED
        assert response.json()["status_history"][-1]["notes"] == "Ordered twice"
