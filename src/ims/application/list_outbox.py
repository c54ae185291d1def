"""Application service: List Outbox use case (operator query)."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from ims.application.dto import OutboxMessageDTO
from ims.domain.exceptions import ValidationError
from ims.domain.model.outbox import OutboxStatus
from ims.domain.repository.unit_of_work import UnitOfWork


@dataclass(frozen=True)
class ListOutboxQuery:

    status: str | None = None
    limit: int = 100


class ListOutboxHandler:

    def __init__(self, uow_factory: Callable[[], UnitOfWork]) -> None:
        self._uow_factory = uow_factory

    def handle(self, query: ListOutboxQuery) -> list[OutboxMessageDTO]:
        status = None
        if query.status is not None:
            try:
                status = OutboxStatus(query.status.upper())
            except ValueError:
                valid = ", ".join(s.value for s in OutboxStatus)
                raise ValidationError(
                    f"Unknown outbox status '{query.status}' (expected one of {valid})"
                ) from None
        if query.limit <= 0:
            raise ValidationError("Limit must be positive")

        with self._uow_factory() as uow:
            messages = uow.outbox.list_by_status(status, query.limit)
        return [OutboxMessageDTO.from_message(m) for m in messages]


@dataclass(frozen=True)
class OutboxStatsQuery:
    """Counts per status, for dashboards and alerting."""


class OutboxStatsHandler:

    def __init__(self, uow_factory: Callable[[], UnitOfWork]) -> None:
        self._uow_factory = uow_factory

    def handle(self, query: OutboxStatsQuery) -> dict[str, int]:
        with self._uow_factory() as uow:
            counts = uow.outbox.count_by_status()
        return {status.value: counts.get(status, 0) for status in OutboxStatus}
