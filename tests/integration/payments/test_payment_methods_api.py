"""Integration tests for the stored payment method endpoints."""

from __future__ import annotations

import pytest

from modules.payments.constants import PaymentMethodType
from modules.payments.models import PaymentMethod

pytestmark = pytest.mark.integration

METHODS_URL = "/api/v1/payment-methods/"


class TestPaymentMethodsAPI:
    def test_list_own_methods(self, auth_client, card_method, other_user):
        PaymentMethod.objects.create(
            method_type=PaymentMethodType.OTHER, owner=other_user, label="Theirs"
        )

        response = auth_client.get(METHODS_URL)

        assert response.status_code == 200
        assert [m["id"] for m in response.json()] == [str(card_method.id)]

    def test_first_method_becomes_default(self, auth_client, user):
        response = auth_client.post(
            METHODS_URL,
            {"method_type": PaymentMethodType.DOMESTIC_DEBIT_CARD, "label": "ATM"},
            format="json",
        )

        assert response.status_code == 201
        assert response.json()["is_default"] is True
        assert PaymentMethod.objects.get(owner=user).label == "ATM"

    def test_second_method_keeps_existing_default(self, auth_client, card_method):
        response = auth_client.post(
            METHODS_URL, {"method_type": PaymentMethodType.OTHER}, format="json"
        )

        assert response.json()["is_default"] is False
        card_method.refresh_from_db()
        assert card_method.is_default

    def test_unknown_type_rejected(self, auth_client):
        response = auth_client.post(
            METHODS_URL, {"method_type": "BITCOIN"}, format="json"
        )
        assert response.status_code == 400
        assert "method_type" in response.json()

    def test_set_default(self, auth_client, card_method, other_method):
        response = auth_client.post(f"{METHODS_URL}{other_method.id}/set-default/")

        assert response.status_code == 200
        assert response.json()["is_default"] is True
        card_method.refresh_from_db()
        assert not card_method.is_default

    def test_set_default_foreign_method(self, api_client, other_user, card_method):
        api_client.force_authenticate(user=other_user)

        response = api_client.post(f"{METHODS_URL}{card_method.id}/set-default/")

        assert response.status_code == 404
        card_method.refresh_from_db()
        assert card_method.is_default

    def test_requires_authentication(self, api_client):
        assert api_client.get(METHODS_URL).status_code == 401
