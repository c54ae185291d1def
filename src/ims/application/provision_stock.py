"""Application service: Provision Stock use case (admin action)."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from ims.application.dto import InventorySnapshotDTO
from ims.domain.model.inventory import InventoryItem
from ims.domain.repository.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProvisionStockCommand:

    item_id: str
    sku: str
    total_quantity: int


class ProvisionStockHandler:

    def __init__(self, uow_factory: Callable[[], UnitOfWork]) -> None:
        self._uow_factory = uow_factory

    def handle(self, command: ProvisionStockCommand) -> InventorySnapshotDTO:
        """Create a new item. Raises ValidationError if the id is taken."""
        item = InventoryItem.provision(
            item_id=command.item_id,
            sku=command.sku,
            total_quantity=command.total_quantity,
        )
        with self._uow_factory() as uow:
            uow.inventory.add(item)
            uow.commit()

        logger.info(
            "Provisioned %s (%s) with %d units", item.id, item.sku, item.total_quantity
        )
        return InventorySnapshotDTO.from_item(item)
