"""ReservationRecord — one reservation held against an InventoryItem.

The reservation id doubles as the idempotency key of the command that
created it, so retried commands resolve to the same record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class ReservationStatus(Enum):
    ACTIVE = "ACTIVE"
    RELEASED = "RELEASED"


@dataclass
class ReservationRecord:

    reservation_id: str
    item_id: str
    quantity: int
    status: ReservationStatus = ReservationStatus.ACTIVE
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    released_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status is ReservationStatus.ACTIVE

    def mark_released(self, now: datetime | None = None) -> None:
        self.status = ReservationStatus.RELEASED
        self.released_at = now or datetime.now(timezone.utc)
