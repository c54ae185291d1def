"""Data Transfer Objects — plain containers that cross layer boundaries.

DTOs carry data between the CLI and application layers without
exposing domain internals to the outside world.
"""

from __future__ import annotations

from dataclasses import dataclass

from ims.domain.model.inventory import InventoryItem
from ims.domain.model.outbox import OutboxMessage


@dataclass(frozen=True)
class InventorySnapshotDTO:
    """Output: an item as it stands after a command."""

    item_id: str
    sku: str
    total: int
    reserved: int
    available: int
    version: int

    @staticmethod
    def from_item(item: InventoryItem) -> InventorySnapshotDTO:
        return InventorySnapshotDTO(
            item_id=item.id,
            sku=item.sku,
            total=item.total_quantity,
            reserved=item.reserved_quantity,
            available=item.available_quantity,
            version=item.version,
        )


@dataclass(frozen=True)
class ReservationResultDTO:
    """Output: the outcome of a reserve or release command.

    ``no_op`` is True when the command was an idempotent replay and nothing
    was written.
    """

    reservation_id: str
    quantity: int
    status: str
    no_op: bool
    item: InventorySnapshotDTO


@dataclass(frozen=True)
class OutboxMessageDTO:
    aggregate_id: str
    sequence: int
    event_type: str
    status: str
    attempt_count: int
    created_at: str
    published_at: str | None
    last_error: str | None

    @staticmethod
    def from_message(message: OutboxMessage) -> OutboxMessageDTO:
        return OutboxMessageDTO(
            aggregate_id=message.aggregate_id,
            sequence=message.sequence,
            event_type=message.event_type,
            status=message.status.value,
            attempt_count=message.attempt_count,
            created_at=message.created_at.strftime("%Y-%m-%d %H:%M:%S UTC"),
            published_at=(
                message.published_at.strftime("%Y-%m-%d %H:%M:%S UTC")
                if message.published_at
                else None
            ),
            last_error=message.last_error,
        )
