"""Abstract repository for outbox messages."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime

from ims.domain.model.events import DomainEvent
from ims.domain.model.outbox import OutboxMessage, OutboxStatus


class OutboxRepository(ABC):

    @abstractmethod
    def append(
        self, aggregate_id: str, events: Sequence[DomainEvent], now: datetime
    ) -> list[OutboxMessage]:
        """Store *events* as PENDING messages with the next sequences for
        *aggregate_id*. Must run in the same unit of work as the aggregate
        write that produced the events."""

    @abstractmethod
    def get(self, aggregate_id: str, sequence: int) -> OutboxMessage | None:
        """Return one message, or None."""

    @abstractmethod
    def list_pending(
        self, limit: int, after: tuple[str, int] | None = None
    ) -> list[OutboxMessage]:
        """Return up to *limit* PENDING messages ordered by
        ``(aggregate_id, sequence)``, starting strictly after the *after*
        key when given."""

    @abstractmethod
    def list_by_status(
        self, status: OutboxStatus | None, limit: int
    ) -> list[OutboxMessage]:
        """Return messages with *status* (all when None), ordered by
        ``(aggregate_id, sequence)``."""

    @abstractmethod
    def blocked_aggregates(self) -> set[str]:
        """Aggregate ids that hold at least one FAILED message."""

    @abstractmethod
    def update(self, message: OutboxMessage) -> None:
        """Persist relay bookkeeping (status, attempts, timestamps)."""

    @abstractmethod
    def count_by_status(self) -> dict[OutboxStatus, int]:
        """Number of messages per status."""

    @abstractmethod
    def acquire_lease(
        self, aggregate_id: str, owner: str, now: datetime, expires_at: datetime
    ) -> bool:
        """Take or renew the publish lease on *aggregate_id* for *owner*.

        Succeeds when nobody holds the lease, *owner* already holds it, or
        the current holder's lease ended at or before *now*. The caller
        commits the unit of work only when this returns True.
        """

    @abstractmethod
    def release_lease(self, aggregate_id: str, owner: str) -> None:
        """Drop the lease if *owner* still holds it."""
