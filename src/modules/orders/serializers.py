"""Order DRF serializers for API input/output.

Input serializers only check the request shape; delivery and line rules
live in the pydantic DTOs the engine receives.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.models import DeliveryInfo, Order, OrderItem, OrderStatusHistory
from modules.payments.models import PaymentTransaction

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class OrderLineSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField()


class DeliveryInfoInputSerializer(serializers.Serializer):
    recipient_name = serializers.CharField(allow_blank=True)
    phone = serializers.CharField(allow_blank=True)
    email = serializers.CharField(allow_blank=True)
    address = serializers.CharField(allow_blank=True)
    province_city = serializers.CharField(allow_blank=True)
    delivery_message = serializers.CharField(
        required=False, default="", allow_blank=True
    )


class PlaceOrderSerializer(serializers.Serializer):
    """Validates the order placement request payload."""

    items = OrderLineSerializer(many=True)
    delivery = DeliveryInfoInputSerializer()
    rush_order = serializers.BooleanField(required=False, default=False)
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class InitiatePaymentSerializer(serializers.Serializer):
    payment_method_id = serializers.UUIDField()


class StatusNoteSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, default="", allow_blank=True)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    """Order line with the price and weight captured at placement."""

    product_name = serializers.CharField(source="product.name", read_only=True)
    product_sku = serializers.CharField(source="product.sku", read_only=True)
    media_type = serializers.CharField(source="product.media_type", read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_id",
            "product_name",
            "product_sku",
            "media_type",
            "quantity",
            "unit_price",
            "weight_kg",
            "rush_eligible",
            "subtotal",
        ]
        read_only_fields = fields


class DeliveryInfoSerializer(serializers.ModelSerializer):
    class Meta:
        model = DeliveryInfo
        fields = [
            "recipient_name",
            "phone",
            "email",
            "address",
            "province_city",
            "delivery_message",
            "delivery_fee",
        ]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderStatusHistory
        fields = [
            "id",
            "old_status",
            "new_status",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class OrderTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = PaymentTransaction
        fields = [
            "id",
            "transaction_type",
            "gateway",
            "amount",
            "status",
            "txn_ref",
            "response_code",
            "created_at",
            "completed_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Full order: lines, delivery, fees, history and payment attempts."""

    items = OrderItemSerializer(many=True, read_only=True)
    delivery_info = DeliveryInfoSerializer(read_only=True)
    status_history = StatusHistorySerializer(many=True, read_only=True)
    payment_transactions = OrderTransactionSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "user_id",
            "status",
            "is_rush_order",
            "subtotal",
            "vat_amount",
            "shipping_fee",
            "rush_fee",
            "total_amount",
            "total_paid",
            "notes",
            "created_at",
            "updated_at",
            "items",
            "delivery_info",
            "status_history",
            "payment_transactions",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order list (no nested relations)."""

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "status",
            "is_rush_order",
            "total_amount",
            "total_paid",
            "created_at",
        ]
        read_only_fields = fields


class PaymentInitiationSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    transaction_id = serializers.UUIDField()
    txn_ref = serializers.CharField()
    redirect_url = serializers.CharField()
