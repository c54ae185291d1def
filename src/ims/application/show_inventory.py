"""Application service: Show Inventory use case (query)."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from ims.application.dto import InventorySnapshotDTO
from ims.domain.exceptions import EntityNotFoundError
from ims.domain.repository.unit_of_work import UnitOfWork


@dataclass(frozen=True)
class ShowInventoryQuery:
    """Show one item when ``item_id`` is given, otherwise all of them."""

    item_id: str | None = None


class ShowInventoryHandler:

    def __init__(self, uow_factory: Callable[[], UnitOfWork]) -> None:
        self._uow_factory = uow_factory

    def handle(self, query: ShowInventoryQuery) -> list[InventorySnapshotDTO]:
        with self._uow_factory() as uow:
            if query.item_id is None:
                items = uow.inventory.list_all()
            else:
                item = uow.inventory.get(query.item_id)
                if item is None:
                    raise EntityNotFoundError(
                        f"Inventory item '{query.item_id}' not found"
                    )
                items = [item]
        return [InventorySnapshotDTO.from_item(item) for item in items]
