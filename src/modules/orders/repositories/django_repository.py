"""Django ORM implementation of the Order repository.

Status changes never go through ``Order.save``: ``update_status`` issues
``UPDATE ... WHERE id = %s AND status = <expected>`` and treats a zero row
count as a lost race.  Domain events collected on the aggregate are written
to the outbox inside the caller's transaction.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from modules.core.models import OutboxEvent
from modules.orders.events import OrderStatusChanged
from modules.orders.exceptions import OrderNotFound, OrderStatusConflict
from modules.orders.models import DeliveryInfo, Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository
from modules.orders.state_machine import ensure_transition

logger = structlog.get_logger(__name__)

RELATIONS = ("items__product", "status_history", "payment_transactions")
# Columns ``save`` may write on an existing order; status is CAS-only
MUTABLE_FIELDS = ["notes", "deleted_at"]


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        order = Order(
            user_id=data.get("user_id"),
            is_rush_order=data.get("is_rush_order", False),
            subtotal=data["subtotal"],
            vat_amount=data["vat_amount"],
            shipping_fee=data["shipping_fee"],
            rush_fee=data.get("rush_fee", 0),
            total_amount=data["total_amount"],
            notes=data.get("notes", ""),
            idempotency_key=data.get("idempotency_key"),
        )
        order.save()

        for item_data in data["items"]:
            OrderItem(
                order=order,
                product_id=item_data["product_id"],
                quantity=item_data["quantity"],
                unit_price=item_data["unit_price"],
                weight_kg=item_data.get("weight_kg", 0),
                rush_eligible=item_data.get("rush_eligible", False),
            ).save()

        DeliveryInfo.objects.create(order=order, **data["delivery"])
        self.add_history(order.id, order.status, notes="Order created", old_status=None)

        logger.info(
            "order.persisted",
            order_id=str(order.id),
            item_count=len(data["items"]),
        )
        return order

    # ------------------------------------------------------------------
    # Compare-and-swap status update
    # ------------------------------------------------------------------

    @transaction.atomic
    def update_status(
        self,
        id: UUID,
        expected: str,
        new_status: str,
        notes: str = "",
        user_id: Optional[int] = None,
        fields: Optional[Dict[str, Any]] = None,
    ) -> Order:
        ensure_transition(expected, new_status)

        updated = Order.objects.filter(id=id, status=expected).update(
            status=new_status,
            updated_at=timezone.now(),
            **(fields or {}),
        )
        if updated == 0:
            actual = Order.objects.filter(id=id).values_list("status", flat=True).first()
            if actual is None:
                raise OrderNotFound(f"Order {id} not found.")
            logger.warning(
                "order.status_conflict",
                order_id=str(id),
                expected=expected,
                actual=actual,
                new_status=new_status,
            )
            raise OrderStatusConflict(id, expected, actual)

        self.add_history(id, new_status, notes=notes, old_status=expected, user_id=user_id)
        OutboxEvent.objects.create(
            event_type=OrderStatusChanged.__name__,
            aggregate_id=str(id),
            payload=OrderStatusChanged(
                aggregate_id=id, old_status=expected, new_status=new_status
            ).to_payload(),
            topic="orders",
        )
        logger.info(
            "order.status_updated",
            order_id=str(id),
            old_status=expected,
            new_status=new_status,
        )
        return self.get_by_id(str(id))

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Order with lines, delivery info, history and payments preloaded.

        Returns ``None`` for non-existent or malformed IDs.
        """
        try:
            return (
                Order.objects.alive()
                .select_related("delivery_info")
                .prefetch_related(*RELATIONS)
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: str) -> Optional[Order]:
        try:
            return (
                Order.objects.select_for_update(of=("self",))
                .select_related("delivery_info")
                .prefetch_related("items__product")
                .filter(id=id, deleted_at__isnull=True)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def queryset(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet[Order]:
        """Lazy variant of ``list`` for DRF filter and pagination backends."""
        queryset = (
            Order.objects.alive()
            .select_related("delivery_info")
            .prefetch_related("items__product")
        )
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        return list(self.queryset(filters))

    def get_by_idempotency_key(
        self, key: str, user_id: Optional[int]
    ) -> Optional[Order]:
        return (
            Order.objects.select_related("delivery_info")
            .prefetch_related(*RELATIONS)
            .filter(idempotency_key=key, user_id=user_id)
            .first()
        )

    # ------------------------------------------------------------------
    # Save (IRepository contract) + outbox
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist non-status fields and flush pending domain events."""
        if entity._state.adding:
            entity.save()
        else:
            entity.save(update_fields=MUTABLE_FIELDS)

        events = entity.domain_events
        for event in events:
            OutboxEvent.objects.create(
                event_type=event.event_name,
                aggregate_id=str(event.aggregate_id),
                payload=event.to_payload(),
                topic="orders",
            )
        entity.clear_domain_events()

        logger.info("order.saved", order_id=str(entity.id), event_count=len(events))
        return entity

    @transaction.atomic
    def add_history(
        self,
        order_id: UUID,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> OrderStatusHistory:
        return OrderStatusHistory.objects.create(
            order_id=order_id,
            old_status=old_status,
            new_status=status,
            notes=notes,
            user_id=user_id,
        )
