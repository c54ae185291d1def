"""Unit of Work — the atomic multi-write boundary.

Everything written through ``inventory`` and ``outbox`` inside one
``with`` block becomes visible together on ``commit()`` or not at all.
Leaving the block without committing rolls back.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ims.domain.repository.inventory_repository import InventoryRepository
from ims.domain.repository.outbox_repository import OutboxRepository


class UnitOfWork(ABC):

    inventory: InventoryRepository
    outbox: OutboxRepository

    def __enter__(self) -> UnitOfWork:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.rollback()

    @abstractmethod
    def commit(self) -> None:
        """Make all staged writes durable atomically."""

    @abstractmethod
    def rollback(self) -> None:
        """Discard staged writes. Safe to call after commit."""
