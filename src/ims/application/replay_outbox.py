"""Application service: Replay Outbox use case.

Operators use this to put a quarantined (FAILED) message back in the queue
once the cause has been dealt with. The relay then resumes the aggregate's
stream from that message.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from ims.application.dto import OutboxMessageDTO
from ims.domain.exceptions import EntityNotFoundError
from ims.domain.repository.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReplayOutboxCommand:

    aggregate_id: str
    sequence: int


class ReplayOutboxHandler:

    def __init__(self, uow_factory: Callable[[], UnitOfWork]) -> None:
        self._uow_factory = uow_factory

    def handle(self, command: ReplayOutboxCommand) -> OutboxMessageDTO:
        with self._uow_factory() as uow:
            message = uow.outbox.get(command.aggregate_id, command.sequence)
            if message is None:
                raise EntityNotFoundError(
                    f"Outbox message {command.aggregate_id}#{command.sequence} not found"
                )
            message.requeue()
            uow.outbox.update(message)
            uow.commit()

        logger.info(
            "Requeued outbox message %s#%d for publication",
            message.aggregate_id, message.sequence,
        )
        return OutboxMessageDTO.from_message(message)
