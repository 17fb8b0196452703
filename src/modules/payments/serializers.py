"""Payment DRF serializers."""

from __future__ import annotations

from rest_framework import serializers

from modules.payments.constants import PaymentMethodType
from modules.payments.models import PaymentMethod


class CreatePaymentMethodSerializer(serializers.Serializer):
    method_type = serializers.ChoiceField(choices=PaymentMethodType.choices)
    label = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=100
    )
    is_default = serializers.BooleanField(required=False, default=False)


class PaymentMethodSerializer(serializers.ModelSerializer):
    class Meta:
        model = PaymentMethod
        fields = [
            "id",
            "method_type",
            "label",
            "is_default",
            "created_at",
        ]
        read_only_fields = fields


class CallbackResultSerializer(serializers.Serializer):
    """What the browser sees after coming back from the gateway."""

    order_id = serializers.UUIDField(source="id")
    order_number = serializers.CharField()
    status = serializers.CharField()
    total_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_paid = serializers.DecimalField(
        max_digits=14, decimal_places=2, allow_null=True
    )
