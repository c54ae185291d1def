"""Abstract repository for the InventoryItem aggregate."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ims.domain.model.inventory import InventoryItem


class InventoryRepository(ABC):

    @abstractmethod
    def get(self, item_id: str) -> InventoryItem | None:
        """Return the item with its reservations and current version, or None."""

    @abstractmethod
    def list_all(self) -> list[InventoryItem]:
        """Return every inventory item."""

    @abstractmethod
    def add(self, item: InventoryItem) -> None:
        """Insert a newly provisioned item.

        Raises ValidationError if an item with the same id exists.
        """

    @abstractmethod
    def save(self, item: InventoryItem, expected_version: int) -> None:
        """Persist an updated item if the stored version still equals
        *expected_version*.

        Raises ConcurrencyConflictError otherwise.
        """
