"""InventoryItem aggregate — tracks stock and reservations per product.

Each product line has one InventoryItem that knows the total quantity in
stock, how much of it is held by active reservations, and the version it was
loaded at. Every successful transition bumps the version and records exactly
one domain event; idempotent replays record nothing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from ims.domain.exceptions import (
    DuplicateReservationError,
    InsufficientStockError,
    InvariantViolationError,
    ReservationNotFoundError,
    ValidationError,
)
from ims.domain.model.events import DomainEvent, StockReleased, StockReserved
from ims.domain.model.reservation import ReservationRecord, ReservationStatus
from ims.domain.model.value_objects import Identifier, Quantity


@dataclass
class InventoryItem:
    """Aggregate root for inventory tracking.

    Invariants:
    - ``0 <= reserved_quantity <= total_quantity``
    - ``reserved_quantity`` equals the sum of ACTIVE reservation quantities
    - ``version`` only ever grows, by one per state change
    """

    id: str
    sku: str
    total_quantity: int
    reserved_quantity: int = 0
    version: int = 0
    reservations: dict[str, ReservationRecord] = field(default_factory=dict)
    _events: list[DomainEvent] = field(
        default_factory=list, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        self._check_invariants()

    @classmethod
    def provision(cls, item_id: str, sku: str, total_quantity: int) -> InventoryItem:
        """Create a fresh item with no reservations (admin action)."""
        Identifier(item_id, "Item id")
        Identifier(sku, "SKU")
        if isinstance(total_quantity, bool) or not isinstance(total_quantity, int):
            raise ValidationError("Total quantity must be an integer")
        if total_quantity < 0:
            raise ValidationError("Total quantity cannot be negative")
        return cls(id=item_id, sku=sku, total_quantity=total_quantity)

    @property
    def available_quantity(self) -> int:
        return self.total_quantity - self.reserved_quantity

    # --- Transitions ----------------------------------------------------------

    def reserve(self, quantity: int, reservation_id: str) -> ReservationRecord:
        """Hold *quantity* units under *reservation_id*.

        Replaying the same reservation id with the same quantity returns the
        existing record and changes nothing.

        Raises InsufficientStockError if not enough stock is available and
        DuplicateReservationError if the id was used for another quantity.
        """
        qty = Quantity(quantity).value
        Identifier(reservation_id, "Reservation id")

        existing = self.reservations.get(reservation_id)
        if existing is not None:
            if existing.quantity != qty:
                raise DuplicateReservationError(
                    f"Reservation '{reservation_id}' already exists on item "
                    f"{self.id} for {existing.quantity} units, not {qty}"
                )
            return existing

        if qty > self.available_quantity:
            raise InsufficientStockError(
                f"Insufficient stock for {self.sku} "
                f"(need {qty}, have {self.available_quantity} available)"
            )

        record = ReservationRecord(
            reservation_id=reservation_id, item_id=self.id, quantity=qty
        )
        self.reservations[reservation_id] = record
        self.reserved_quantity += qty
        self.version += 1
        self._check_invariants()

        self._events.append(
            StockReserved(
                item_id=self.id,
                reservation_id=reservation_id,
                quantity=qty,
                new_reserved_quantity=self.reserved_quantity,
                total_quantity=self.total_quantity,
                version=self.version,
            )
        )
        return record

    def release(self, reservation_id: str) -> ReservationRecord:
        """Return the units held by *reservation_id* to available stock.

        Releasing an already released reservation is a no-op.
        """
        Identifier(reservation_id, "Reservation id")

        record = self.reservations.get(reservation_id)
        if record is None:
            raise ReservationNotFoundError(
                f"No reservation '{reservation_id}' on item {self.id}"
            )
        if not record.is_active:
            return record

        now = datetime.now(timezone.utc)
        record.mark_released(now)
        self.reserved_quantity -= record.quantity
        self.version += 1
        self._check_invariants()

        self._events.append(
            StockReleased(
                item_id=self.id,
                reservation_id=reservation_id,
                quantity=record.quantity,
                new_reserved_quantity=self.reserved_quantity,
                total_quantity=self.total_quantity,
                version=self.version,
                occurred_at=now,
            )
        )
        return record

    # --- Events ---------------------------------------------------------------

    @property
    def pending_events(self) -> tuple[DomainEvent, ...]:
        return tuple(self._events)

    def pull_events(self) -> list[DomainEvent]:
        """Hand over recorded events and forget them."""
        events, self._events = self._events, []
        return events

    # --- Internal helpers -----------------------------------------------------

    def _check_invariants(self) -> None:
        if self.total_quantity < 0 or self.reserved_quantity < 0:
            raise InvariantViolationError(
                f"Item {self.id} has negative quantities "
                f"(total={self.total_quantity}, reserved={self.reserved_quantity})"
            )
        if self.reserved_quantity > self.total_quantity:
            raise InvariantViolationError(
                f"Item {self.id} reserves {self.reserved_quantity} "
                f"of only {self.total_quantity} units"
            )
        active = sum(
            r.quantity
            for r in self.reservations.values()
            if r.status is ReservationStatus.ACTIVE
        )
        if active != self.reserved_quantity:
            raise InvariantViolationError(
                f"Item {self.id} reserved_quantity={self.reserved_quantity} "
                f"does not match active reservations ({active})"
            )
