"""Domain events raised by the InventoryItem aggregate.

Events are immutable facts. Each carries its own ``event_id`` which
becomes the deduplication key once the event travels through the outbox.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone


def _new_event_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DomainEvent(ABC):
    """Base class; subclasses add the business fields."""

    event_id: str = field(default_factory=_new_event_id, kw_only=True)
    occurred_at: datetime = field(default_factory=_utcnow, kw_only=True)

    @property
    def event_type(self) -> str:
        return type(self).__name__

    @property
    @abstractmethod
    def aggregate_id(self) -> str:
        """Id of the aggregate that raised the event."""

    def to_payload(self) -> dict:
        """JSON-safe representation of the business fields."""
        raw = asdict(self)
        raw.pop("event_id", None)
        raw.pop("occurred_at", None)
        return raw


@dataclass(frozen=True)
class StockReserved(DomainEvent):

    item_id: str
    reservation_id: str
    quantity: int
    new_reserved_quantity: int
    total_quantity: int
    version: int

    @property
    def aggregate_id(self) -> str:
        return self.item_id


@dataclass(frozen=True)
class StockReleased(DomainEvent):

    item_id: str
    reservation_id: str
    quantity: int
    new_reserved_quantity: int
    total_quantity: int
    version: int

    @property
    def aggregate_id(self) -> str:
        return self.item_id
