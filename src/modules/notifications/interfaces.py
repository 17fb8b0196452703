"""Notification collaborator used by the order lifecycle engine."""

from __future__ import annotations

from abc import ABC, abstractmethod
from uuid import UUID


class INotificationService(ABC):
    @abstractmethod
    def notify(self, order_id: UUID, event: str) -> None:
        """Tell the customer about ``event``.  Must not raise on delivery failure."""
