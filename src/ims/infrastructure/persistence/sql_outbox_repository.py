"""SQL-backed implementation of OutboxRepository."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import and_, delete, func, insert, or_, select, update
from sqlalchemy.engine import Connection, Row
from sqlalchemy.exc import IntegrityError

from ims.domain.model.events import DomainEvent
from ims.domain.model.outbox import OutboxMessage, OutboxStatus
from ims.domain.repository.outbox_repository import OutboxRepository
from ims.infrastructure.persistence.schema import outbox_leases, outbox_messages

_ORDER = (outbox_messages.c.aggregate_id, outbox_messages.c.sequence)


class SqlOutboxRepository(OutboxRepository):

    def __init__(self, connection: Connection) -> None:
        self._conn = connection

    # --- OutboxRepository interface -------------------------------------------

    def append(
        self, aggregate_id: str, events: Sequence[DomainEvent], now: datetime
    ) -> list[OutboxMessage]:
        last = self._conn.execute(
            select(func.max(outbox_messages.c.sequence)).where(
                outbox_messages.c.aggregate_id == aggregate_id
            )
        ).scalar()
        next_sequence = (last or 0) + 1

        messages = []
        for offset, event in enumerate(events):
            message = OutboxMessage.from_event(event, next_sequence + offset, now)
            self._conn.execute(insert(outbox_messages).values(**self._to_raw(message)))
            messages.append(message)
        return messages

    def get(self, aggregate_id: str, sequence: int) -> OutboxMessage | None:
        row = self._conn.execute(
            select(outbox_messages).where(
                and_(
                    outbox_messages.c.aggregate_id == aggregate_id,
                    outbox_messages.c.sequence == sequence,
                )
            )
        ).first()
        return self._to_domain(row) if row is not None else None

    def list_pending(
        self, limit: int, after: tuple[str, int] | None = None
    ) -> list[OutboxMessage]:
        query = select(outbox_messages).where(
            outbox_messages.c.status == OutboxStatus.PENDING.value
        )
        if after is not None:
            aggregate_id, sequence = after
            query = query.where(
                or_(
                    outbox_messages.c.aggregate_id > aggregate_id,
                    and_(
                        outbox_messages.c.aggregate_id == aggregate_id,
                        outbox_messages.c.sequence > sequence,
                    ),
                )
            )
        rows = self._conn.execute(query.order_by(*_ORDER).limit(limit)).all()
        return [self._to_domain(row) for row in rows]

    def list_by_status(
        self, status: OutboxStatus | None, limit: int
    ) -> list[OutboxMessage]:
        query = select(outbox_messages)
        if status is not None:
            query = query.where(outbox_messages.c.status == status.value)
        rows = self._conn.execute(query.order_by(*_ORDER).limit(limit)).all()
        return [self._to_domain(row) for row in rows]

    def blocked_aggregates(self) -> set[str]:
        rows = self._conn.execute(
            select(outbox_messages.c.aggregate_id)
            .where(outbox_messages.c.status == OutboxStatus.FAILED.value)
            .distinct()
        )
        return {row.aggregate_id for row in rows}

    def update(self, message: OutboxMessage) -> None:
        self._conn.execute(
            update(outbox_messages)
            .where(
                and_(
                    outbox_messages.c.aggregate_id == message.aggregate_id,
                    outbox_messages.c.sequence == message.sequence,
                )
            )
            .values(
                status=message.status.value,
                attempt_count=message.attempt_count,
                published_at=message.published_at,
                next_attempt_at=message.next_attempt_at,
                last_error=message.last_error,
            )
        )

    def count_by_status(self) -> dict[OutboxStatus, int]:
        counts = {status: 0 for status in OutboxStatus}
        rows = self._conn.execute(
            select(outbox_messages.c.status, func.count()).group_by(
                outbox_messages.c.status
            )
        )
        for status, count in rows:
            counts[OutboxStatus(status)] = count
        return counts

    def acquire_lease(
        self, aggregate_id: str, owner: str, now: datetime, expires_at: datetime
    ) -> bool:
        taken = self._conn.execute(
            update(outbox_leases)
            .where(
                and_(
                    outbox_leases.c.aggregate_id == aggregate_id,
                    or_(
                        outbox_leases.c.owner == owner,
                        outbox_leases.c.expires_at <= now,
                    ),
                )
            )
            .values(owner=owner, expires_at=expires_at)
        )
        if taken.rowcount == 1:
            return True
        try:
            self._conn.execute(
                insert(outbox_leases).values(
                    aggregate_id=aggregate_id, owner=owner, expires_at=expires_at
                )
            )
        except IntegrityError:
            # held by someone else; the unit of work must not be committed
            return False
        return True

    def release_lease(self, aggregate_id: str, owner: str) -> None:
        self._conn.execute(
            delete(outbox_leases).where(
                and_(
                    outbox_leases.c.aggregate_id == aggregate_id,
                    outbox_leases.c.owner == owner,
                )
            )
        )

    # --- Serialization --------------------------------------------------------

    @staticmethod
    def _to_raw(message: OutboxMessage) -> dict:
        return {
            "aggregate_id": message.aggregate_id,
            "sequence": message.sequence,
            "event_id": message.event_id,
            "event_type": message.event_type,
            "payload": message.payload,
            "occurred_at": message.occurred_at,
            "created_at": message.created_at,
            "status": message.status.value,
            "attempt_count": message.attempt_count,
            "published_at": message.published_at,
            "next_attempt_at": message.next_attempt_at,
            "last_error": message.last_error,
        }

    @staticmethod
    def _to_domain(row: Row) -> OutboxMessage:
        return OutboxMessage(
            aggregate_id=row.aggregate_id,
            sequence=row.sequence,
            event_id=row.event_id,
            event_type=row.event_type,
            payload=row.payload,
            occurred_at=row.occurred_at,
            created_at=row.created_at,
            status=OutboxStatus(row.status),
            attempt_count=row.attempt_count,
            published_at=row.published_at,
            next_attempt_at=row.next_attempt_at,
            last_error=row.last_error,
        )
