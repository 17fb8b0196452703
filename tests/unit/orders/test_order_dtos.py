"""Unit tests for the order placement DTOs."""

from __future__ import annotations

from uuid import uuid4

import pytest
from pydantic import ValidationError

from modules.orders.dtos import DeliveryInfoDTO, OrderLineDTO, PlaceOrderDTO
from modules.orders.exceptions import OrderValidationError

pytestmark = pytest.mark.unit


def _delivery(**overrides):
    data = {
        "recipient_name": "Le Van C",
        "phone": "0912345678",
        "email": "c@example.com",
        "address": "45 Kim Ma, Ba Dinh",
        "province_city": "Ha Noi",
    }
    data.update(overrides)
    return data


class TestDeliveryInfoDTO:
    @pytest.mark.parametrize(
        "raw,normalised",
        [
            ("0912 345 678", "0912345678"),
            ("(091) 234-5678", "0912345678"),
            ("+84 912.345.678", "+84912345678"),
            ("02838123456", "02838123456"),
        ],
    )
    def test_phone_normalised(self, raw, normalised):
        assert DeliveryInfoDTO(**_delivery(phone=raw)).phone == normalised

    @pytest.mark.parametrize("phone", ["12345", "0912abc678", "84912345678", ""])
    def test_invalid_phone_rejected(self, phone):
        with pytest.raises(ValidationError, match="Phone must be"):
            DeliveryInfoDTO(**_delivery(phone=phone))

    @pytest.mark.parametrize("email", ["no-at-sign.com", "a@nodot", "@example.com"])
    def test_invalid_email_rejected(self, email):
        with pytest.raises(ValidationError, match="Email must contain"):
            DeliveryInfoDTO(**_delivery(email=email))

    def test_email_lowercased(self):
        assert DeliveryInfoDTO(**_delivery(email="Buyer@Example.COM")).email == (
            "buyer@example.com"
        )

    @pytest.mark.parametrize("field", ["recipient_name", "address", "province_city"])
    def test_blank_required_field_rejected(self, field):
        with pytest.raises(ValidationError, match="This field is required"):
            DeliveryInfoDTO(**_delivery(**{field: "   "}))

    def test_dto_is_frozen(self):
        dto = DeliveryInfoDTO(**_delivery())
        with pytest.raises(ValidationError):
            dto.phone = "0999999999"


class TestOrderLineDTO:
    def test_zero_quantity_rejected(self):
        with pytest.raises(ValidationError, match="at least 1"):
            OrderLineDTO(product_id=uuid4(), quantity=0)


class TestPlaceOrderDTO:
    def test_parse_valid_payload(self):
        product_id = uuid4()
        dto = PlaceOrderDTO.parse(
            {
                "lines": [{"product_id": str(product_id), "quantity": 2}],
                "delivery": _delivery(),
                "idempotency_key": "abc",
            }
        )
        assert dto.lines[0].product_id == product_id
        assert dto.rush_order is False
        assert dto.idempotency_key == "abc"

    def test_empty_lines_rejected(self):
        with pytest.raises(OrderValidationError) as exc_info:
            PlaceOrderDTO.parse({"lines": [], "delivery": _delivery()})
        assert exc_info.value.errors[0]["field"] == "lines"

    def test_duplicate_products_rejected(self):
        product_id = str(uuid4())
        with pytest.raises(OrderValidationError, match="Duplicate products"):
            PlaceOrderDTO.parse(
                {
                    "lines": [
                        {"product_id": product_id, "quantity": 1},
                        {"product_id": product_id, "quantity": 2},
                    ],
                    "delivery": _delivery(),
                }
            )

    def test_every_problem_is_reported(self):
        with pytest.raises(OrderValidationError) as exc_info:
            PlaceOrderDTO.parse(
                {
                    "lines": [{"product_id": str(uuid4()), "quantity": 0}],
                    "delivery": _delivery(phone="123", email="bad"),
                }
            )
        fields = {error["field"] for error in exc_info.value.errors}
        assert fields == {"lines.0.quantity", "delivery.phone", "delivery.email"}
