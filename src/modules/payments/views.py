"""Payment API views: stored methods and gateway callbacks.

The callback endpoints are public (the gateway and the returning browser
carry no JWT); trust comes from the secure hash, checked by the engine
before any state is read for update.
"""

from __future__ import annotations

from typing import Dict

import structlog
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView
from rest_framework.viewsets import GenericViewSet

from modules.orders.exceptions import IllegalTransition, OrderStatusConflict
from modules.orders.factories import build_lifecycle_engine
from modules.payments.constants import (
    IPN_ALREADY_CONFIRMED,
    IPN_CONFIRMED,
    IPN_INVALID_AMOUNT,
    IPN_INVALID_SIGNATURE,
    IPN_ORDER_NOT_FOUND,
    IPN_UNKNOWN_ERROR,
    GatewayName,
)
from modules.payments.dtos import CreatePaymentMethodDTO
from modules.payments.exceptions import (
    AmountMismatch,
    CallbackRejected,
    InvalidSignature,
    PaymentMethodNotFound,
    UnknownOrStaleTransaction,
)
from modules.payments.models import PaymentMethod
from modules.payments.repositories import PaymentMethodDjangoRepository
from modules.payments.serializers import (
    CallbackResultSerializer,
    CreatePaymentMethodSerializer,
    PaymentMethodSerializer,
)
from modules.payments.services import PaymentMethodService

logger = structlog.get_logger(__name__)


def ipn_answer(code: str, message: str) -> Response:
    return Response({"RspCode": code, "Message": message}, status=status.HTTP_200_OK)


class PaymentMethodViewSet(GenericViewSet):
    """Stored payment methods of the authenticated user."""

    queryset = PaymentMethod.objects.none()
    serializer_class = PaymentMethodSerializer

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = PaymentMethodService(PaymentMethodDjangoRepository())

    def list(self, request: Request) -> Response:
        methods = self._service.list_for_owner(request.user.id)
        return Response(PaymentMethodSerializer(methods, many=True).data)

    def create(self, request: Request) -> Response:
        serializer = CreatePaymentMethodSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        method = self._service.create(
            CreatePaymentMethodDTO(owner_id=request.user.id, **serializer.validated_data)
        )
        return Response(
            PaymentMethodSerializer(method).data, status=status.HTTP_201_CREATED
        )

    @action(detail=True, methods=["post"], url_path="set-default")
    def set_default(self, request: Request, pk: str | None = None) -> Response:
        try:
            method = self._service.set_default(pk, request.user.id)
        except PaymentMethodNotFound as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
        return Response(PaymentMethodSerializer(method).data)


class GatewayReturnView(APIView):
    """Browser return URL: applies the outcome and shows the order state."""

    authentication_classes: list = []
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "payment_callback"
    gateway = GatewayName.VNPAY

    def get(self, request: Request) -> Response:
        params: Dict[str, str] = request.query_params.dict()
        try:
            order = build_lifecycle_engine().reconcile(params, gateway=self.gateway)
        except CallbackRejected as exc:
            return Response(
                {"detail": str(exc), "code": type(exc).__name__},
                status=status.HTTP_400_BAD_REQUEST,
            )
        except (OrderStatusConflict, IllegalTransition) as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        return Response(CallbackResultSerializer(order).data)


class VNPayReturnView(GatewayReturnView):
    gateway = GatewayName.VNPAY


class CardReturnView(GatewayReturnView):
    gateway = GatewayName.DIRECT_CARD


class VNPayIPNView(APIView):
    """Server-to-server notification from VNPay.

    Always answers HTTP 200 with VNPay's ``{"RspCode", "Message"}`` body.
    """

    authentication_classes: list = []
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "payment_callback"

    def get(self, request: Request) -> Response:
        params: Dict[str, str] = request.query_params.dict()
        log = logger.bind(txn_ref=params.get("vnp_TxnRef", ""))
        try:
            result = build_lifecycle_engine().reconcile_detailed(
                params, gateway=GatewayName.VNPAY
            )
        except InvalidSignature:
            return ipn_answer(IPN_INVALID_SIGNATURE, "Invalid Checksum")
        except AmountMismatch:
            return ipn_answer(IPN_INVALID_AMOUNT, "Invalid amount")
        except UnknownOrStaleTransaction as exc:
            if exc.known:
                return ipn_answer(IPN_ALREADY_CONFIRMED, "Order already confirmed")
            return ipn_answer(IPN_ORDER_NOT_FOUND, "Order not found")
        except (OrderStatusConflict, IllegalTransition) as exc:
            log.error("payment.ipn_failed", error=str(exc))
            return ipn_answer(IPN_UNKNOWN_ERROR, "Unknown error")

        if result.replayed:
            return ipn_answer(IPN_ALREADY_CONFIRMED, "Order already confirmed")
        log.info("payment.ipn_confirmed", order_id=str(result.order.id))
        return ipn_answer(IPN_CONFIRMED, "Confirm Success")
