"""OutboxMessage — a domain event waiting to leave the service.

Rows are written in the same unit of work as the aggregate change that
produced them. Only the relay moves a row out of PENDING; it never touches
the aggregate itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from ims.domain.exceptions import ValidationError
from ims.domain.model.events import DomainEvent


class OutboxStatus(Enum):
    PENDING = "PENDING"
    PUBLISHED = "PUBLISHED"
    FAILED = "FAILED"


@dataclass
class OutboxMessage:
    """Publication bookkeeping for one event.

    ``(aggregate_id, sequence)`` is the ordering key: sequences start at 1
    and grow by one per event within an aggregate.
    """

    aggregate_id: str
    sequence: int
    event_id: str
    event_type: str
    payload: dict
    occurred_at: datetime
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status: OutboxStatus = OutboxStatus.PENDING
    attempt_count: int = 0
    published_at: datetime | None = None
    next_attempt_at: datetime | None = None
    last_error: str | None = None

    @classmethod
    def from_event(
        cls, event: DomainEvent, sequence: int, now: datetime | None = None
    ) -> OutboxMessage:
        return cls(
            aggregate_id=event.aggregate_id,
            sequence=sequence,
            event_id=event.event_id,
            event_type=event.event_type,
            payload=event.to_payload(),
            occurred_at=event.occurred_at,
            created_at=now or datetime.now(timezone.utc),
        )

    @property
    def dedup_key(self) -> str:
        return f"{self.aggregate_id}:{self.event_id}"

    @property
    def is_pending(self) -> bool:
        return self.status is OutboxStatus.PENDING

    def is_due(self, now: datetime) -> bool:
        return self.next_attempt_at is None or self.next_attempt_at <= now

    def envelope(self) -> dict:
        """The message as it crosses the broker boundary."""
        return {
            "event_type": self.event_type,
            "aggregate_id": self.aggregate_id,
            "event_id": self.event_id,
            "sequence": self.sequence,
            "occurred_at": self.occurred_at.isoformat(),
            "dedup_key": self.dedup_key,
            "payload": self.payload,
        }

    # --- Relay transitions ----------------------------------------------------

    def mark_published(self, now: datetime) -> None:
        if self.status is OutboxStatus.FAILED:
            raise ValidationError(
                f"Outbox message {self.aggregate_id}#{self.sequence} is quarantined"
            )
        self.status = OutboxStatus.PUBLISHED
        self.published_at = now
        self.next_attempt_at = None

    def record_failure(self, error: str, next_attempt_at: datetime) -> None:
        """Count a failed publish; the message stays PENDING."""
        self.attempt_count += 1
        self.last_error = error
        self.next_attempt_at = next_attempt_at

    def quarantine(self) -> None:
        """Park the message for operator attention. It is never deleted."""
        self.status = OutboxStatus.FAILED
        self.next_attempt_at = None

    def requeue(self) -> None:
        """Operator replay: put a FAILED message back in the queue."""
        if self.status is not OutboxStatus.FAILED:
            raise ValidationError(
                f"Only FAILED messages can be replayed, "
                f"{self.aggregate_id}#{self.sequence} is {self.status.value}"
            )
        self.status = OutboxStatus.PENDING
        self.attempt_count = 0
        self.next_attempt_at = None
