"""Payment method use cases."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional
from uuid import UUID

import structlog
from django.db import transaction

from modules.payments.exceptions import PaymentMethodNotFound
from modules.payments.models import PaymentMethod

if TYPE_CHECKING:
    from modules.payments.dtos import CreatePaymentMethodDTO
    from modules.payments.repositories.interfaces import IPaymentMethodRepository

logger = structlog.get_logger(__name__)


class PaymentMethodService:
    """Stored payment methods.  Each owner has at most one default."""

    def __init__(self, repository: IPaymentMethodRepository) -> None:
        self._repo = repository

    @transaction.atomic
    def create(self, dto: CreatePaymentMethodDTO) -> PaymentMethod:
        """Create a method; the owner's first method becomes the default."""
        is_default = dto.is_default
        if is_default:
            self._repo.clear_default(dto.owner_id)
        elif self._repo.get_default_for_owner(dto.owner_id) is None:
            is_default = True

        method = self._repo.save(
            PaymentMethod(
                method_type=dto.method_type,
                owner_id=dto.owner_id,
                label=dto.label,
                is_default=is_default,
            )
        )
        logger.info(
            "payment_method.created",
            payment_method_id=str(method.id),
            owner_id=dto.owner_id,
            is_default=is_default,
        )
        return method

    @transaction.atomic
    def set_default(self, method_id: UUID, owner_id: Optional[int]) -> PaymentMethod:
        method = self.get_for_owner(method_id, owner_id)
        if not method.is_default:
            self._repo.clear_default(owner_id)
            method.is_default = True
            self._repo.save(method)
        return method

    def get_for_owner(self, method_id: UUID, owner_id: Optional[int]) -> PaymentMethod:
        method = self._repo.get_by_id(str(method_id))
        if method is None or method.owner_id != owner_id:
            raise PaymentMethodNotFound(f"Payment method {method_id} not found.")
        return method

    def list_for_owner(self, owner_id: Optional[int]) -> List[PaymentMethod]:
        return self._repo.list({"owner_id": owner_id})
