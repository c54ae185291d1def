"""Application service: Reserve Stock use case.

One attempt is one unit of work: load the item, apply the reservation,
and write the new item state together with its outbox row. A lost version
race re-runs the whole attempt against freshly loaded state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from ims.application.backoff import ConflictRetry
from ims.application.dto import InventorySnapshotDTO, ReservationResultDTO
from ims.domain.exceptions import EntityNotFoundError
from ims.domain.model.value_objects import Identifier, Quantity
from ims.domain.repository.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReserveStockCommand:

    item_id: str
    quantity: int
    reservation_id: str


class ReserveStockHandler:

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        retry: ConflictRetry | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._retry = retry or ConflictRetry()

    def handle(self, command: ReserveStockCommand) -> ReservationResultDTO:
        Identifier(command.item_id, "Item id")
        Identifier(command.reservation_id, "Reservation id")
        Quantity(command.quantity)

        return self._retry.run(
            lambda: self._attempt(command),
            description=f"reserve {command.reservation_id} on {command.item_id}",
        )

    def _attempt(self, command: ReserveStockCommand) -> ReservationResultDTO:
        with self._uow_factory() as uow:
            item = uow.inventory.get(command.item_id)
            if item is None:
                raise EntityNotFoundError(f"Inventory item '{command.item_id}' not found")

            expected_version = item.version
            record = item.reserve(command.quantity, command.reservation_id)
            events = item.pull_events()

            if events:
                uow.inventory.save(item, expected_version=expected_version)
                uow.outbox.append(item.id, events, now=datetime.now(timezone.utc))
                uow.commit()
                logger.info(
                    "Reserved %d of %s under %s (version %d)",
                    record.quantity, item.id, record.reservation_id, item.version,
                )
            else:
                logger.info(
                    "Reservation %s on %s already recorded; nothing to do",
                    record.reservation_id, item.id,
                )

            return ReservationResultDTO(
                reservation_id=record.reservation_id,
                quantity=record.quantity,
                status=record.status.value,
                no_op=not events,
                item=InventorySnapshotDTO.from_item(item),
            )
