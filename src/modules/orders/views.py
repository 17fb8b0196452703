"""Order API views.

Exposes ``OrderLifecycleEngine`` via HTTP using a DRF ViewSet.
Domain exceptions are translated into HTTP status codes through
``ERROR_STATUS``; the views never catch generic exceptions.
"""

from __future__ import annotations

from typing import Any, Dict, List, Type

import structlog
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import BasePermission, IsAdminUser, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.pagination import StandardResultsSetPagination
from modules.orders.dtos import PlaceOrderDTO
from modules.orders.exceptions import (
    IllegalTransition,
    InsufficientStock,
    OrderNotFound,
    OrderStatusConflict,
    OrderValidationError,
    PaymentInProgress,
    RushOrderNotEligible,
)
from modules.orders.factories import build_lifecycle_engine
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.repositories import OrderDjangoRepository
from modules.orders.serializers import (
    InitiatePaymentSerializer,
    OrderListSerializer,
    OrderSerializer,
    PaymentInitiationSerializer,
    PlaceOrderSerializer,
    StatusNoteSerializer,
)
from modules.payments.exceptions import (
    GatewayConfigurationError,
    GatewayRejected,
    GatewayTimeout,
    GatewayUnavailable,
    PaymentAlreadyInProgress,
    PaymentMethodNotFound,
    RefundNotAllowed,
)
from modules.products.exceptions import InactiveProduct, ProductNotFound

logger = structlog.get_logger(__name__)

ERROR_STATUS: Dict[Type[Exception], int] = {
    OrderValidationError: status.HTTP_400_BAD_REQUEST,
    RushOrderNotEligible: status.HTTP_400_BAD_REQUEST,
    InactiveProduct: status.HTTP_400_BAD_REQUEST,
    OrderNotFound: status.HTTP_404_NOT_FOUND,
    ProductNotFound: status.HTTP_404_NOT_FOUND,
    PaymentMethodNotFound: status.HTTP_404_NOT_FOUND,
    InsufficientStock: status.HTTP_409_CONFLICT,
    IllegalTransition: status.HTTP_409_CONFLICT,
    OrderStatusConflict: status.HTTP_409_CONFLICT,
    PaymentInProgress: status.HTTP_409_CONFLICT,
    PaymentAlreadyInProgress: status.HTTP_409_CONFLICT,
    RefundNotAllowed: status.HTTP_409_CONFLICT,
    GatewayRejected: status.HTTP_502_BAD_GATEWAY,
    GatewayUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    GatewayTimeout: status.HTTP_503_SERVICE_UNAVAILABLE,
    GatewayConfigurationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}
DOMAIN_ERRORS = tuple(ERROR_STATUS)

STAFF_ACTIONS = {"approve", "reject", "ship", "deliver", "refund"}


def error_response(exc: Exception) -> Response:
    code = next(ERROR_STATUS[cls] for cls in type(exc).__mro__ if cls in ERROR_STATUS)
    body: Dict[str, Any] = {"detail": str(exc)}
    if isinstance(exc, OrderValidationError):
        body["errors"] = exc.errors
    elif isinstance(exc, InsufficientStock):
        body["shortages"] = exc.shortages
    if code >= 500:
        logger.error("order.api_error", error=type(exc).__name__, detail=str(exc))
    return Response(body, status=code)


def client_ip(request: Request) -> str:
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR", "")


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Customers see and act on their own orders; the review and fulfilment
    actions are staff-only.  Does **not** extend ``ModelViewSet``: every
    write goes through the engine.
    """

    queryset = Order.objects.none()
    filterset_class = OrderFilter
    search_fields = ["order_number", "delivery_info__recipient_name"]
    ordering_fields = ["created_at", "total_amount", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._engine = build_lifecycle_engine()
        self._repository = OrderDjangoRepository()

    def get_permissions(self) -> List[BasePermission]:
        if self.action in STAFF_ACTIONS:
            return [IsAdminUser()]
        return [IsAuthenticated()]

    def get_throttles(self) -> list[BaseThrottle]:
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_creation"
        elif self.action in {"list", "retrieve"}:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    def get_queryset(self):
        user = self.request.user
        if user.is_staff:
            return self._repository.queryset()
        return self._repository.queryset({"user_id": user.id})

    def _owned_order(self, request: Request, pk: str) -> Order:
        order = self._engine.get_order(pk)
        if not request.user.is_staff and order.user_id != request.user.id:
            raise OrderNotFound(f"Order {pk} not found.")
        return order

    # ------------------------------------------------------------------
    # Place
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Supports idempotency via the ``Idempotency-Key`` header.
        """
        serializer = PlaceOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            dto = PlaceOrderDTO.parse(
                {
                    "lines": data["items"],
                    "delivery": data["delivery"],
                    "rush_order": data["rush_order"],
                    "notes": data["notes"],
                    "user_id": request.user.id,
                    "idempotency_key": request.headers.get("Idempotency-Key"),
                }
            )
            order = self._engine.place_order(dto)
        except DOMAIN_ERRORS as exc:
            return error_response(exc)

        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/"""
        queryset = self.filter_queryset(self.get_queryset())

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request)
        serializer = OrderListSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = self._owned_order(request, pk)
        except OrderNotFound as exc:
            return error_response(exc)
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Customer actions
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def pay(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/pay/

        Opens a charge and returns the gateway URL to redirect the
        customer to.
        """
        serializer = InitiatePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = self._owned_order(request, pk)
            initiation = self._engine.initiate_payment(
                order.id,
                serializer.validated_data["payment_method_id"],
                client_ip=client_ip(request),
                user_id=request.user.id,
            )
        except DOMAIN_ERRORS as exc:
            return error_response(exc)

        return Response(
            PaymentInitiationSerializer(initiation).data,
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/"""
        return self._run(request, pk, self._engine.cancel_order)

    # ------------------------------------------------------------------
    # Staff actions
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def approve(self, request: Request, pk: str | None = None) -> Response:
        return self._run(request, pk, self._engine.approve_order)

    @action(detail=True, methods=["post"])
    def reject(self, request: Request, pk: str | None = None) -> Response:
        return self._run(request, pk, self._engine.reject_order)

    @action(detail=True, methods=["post"])
    def ship(self, request: Request, pk: str | None = None) -> Response:
        return self._run(request, pk, self._engine.mark_shipping)

    @action(detail=True, methods=["post"])
    def deliver(self, request: Request, pk: str | None = None) -> Response:
        return self._run(request, pk, self._engine.mark_delivered)

    @action(detail=True, methods=["post"])
    def refund(self, request: Request, pk: str | None = None) -> Response:
        serializer = StatusNoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = self._owned_order(request, pk)
            order = self._engine.refund_order(
                order.id,
                reason=serializer.validated_data["notes"],
                user_id=request.user.id,
                client_ip=client_ip(request),
            )
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        return Response(OrderSerializer(order).data)

    def _run(self, request: Request, pk: str | None, command) -> Response:
        serializer = StatusNoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = self._owned_order(request, pk)
            order = command(
                order.id,
                notes=serializer.validated_data["notes"],
                user_id=request.user.id,
            )
        except DOMAIN_ERRORS as exc:
            return error_response(exc)
        return Response(OrderSerializer(order).data)
