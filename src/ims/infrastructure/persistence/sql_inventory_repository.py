"""SQL-backed implementation of InventoryRepository.

``save`` is a compare-and-swap on the ``version`` column: the UPDATE only
matches when the stored version is still the one the item was loaded at.
"""

from __future__ import annotations

from sqlalchemy import and_, insert, select, update
from sqlalchemy.engine import Connection, Row
from sqlalchemy.exc import IntegrityError

from ims.domain.exceptions import ConcurrencyConflictError, ValidationError
from ims.domain.model.inventory import InventoryItem
from ims.domain.model.reservation import ReservationRecord, ReservationStatus
from ims.domain.repository.inventory_repository import InventoryRepository
from ims.infrastructure.persistence.schema import inventory_items, reservations


class SqlInventoryRepository(InventoryRepository):

    def __init__(self, connection: Connection) -> None:
        self._conn = connection

    # --- InventoryRepository interface ----------------------------------------

    def get(self, item_id: str) -> InventoryItem | None:
        row = self._conn.execute(
            select(inventory_items).where(inventory_items.c.id == item_id)
        ).first()
        if row is None:
            return None
        records = self._conn.execute(
            select(reservations).where(reservations.c.item_id == item_id)
        ).all()
        return self._to_domain(row, records)

    def list_all(self) -> list[InventoryItem]:
        rows = self._conn.execute(
            select(inventory_items).order_by(inventory_items.c.id)
        ).all()
        by_item: dict[str, list[Row]] = {}
        for record in self._conn.execute(select(reservations)).all():
            by_item.setdefault(record.item_id, []).append(record)
        return [self._to_domain(row, by_item.get(row.id, [])) for row in rows]

    def add(self, item: InventoryItem) -> None:
        if self._exists(item.id):
            raise ValidationError(f"Inventory item '{item.id}' already exists")
        try:
            self._conn.execute(insert(inventory_items).values(**self._to_raw(item)))
        except IntegrityError as exc:
            raise ValidationError(f"Inventory item '{item.id}' already exists") from exc
        for record in item.reservations.values():
            self._conn.execute(insert(reservations).values(**self._record_to_raw(record)))

    def save(self, item: InventoryItem, expected_version: int) -> None:
        result = self._conn.execute(
            update(inventory_items)
            .where(
                and_(
                    inventory_items.c.id == item.id,
                    inventory_items.c.version == expected_version,
                )
            )
            .values(
                total_quantity=item.total_quantity,
                reserved_quantity=item.reserved_quantity,
                version=item.version,
            )
        )
        if result.rowcount != 1:
            raise ConcurrencyConflictError(
                f"Inventory item '{item.id}' changed since version {expected_version}"
            )
        self._save_reservations(item)

    # --- Serialization --------------------------------------------------------

    @staticmethod
    def _to_raw(item: InventoryItem) -> dict:
        return {
            "id": item.id,
            "sku": item.sku,
            "total_quantity": item.total_quantity,
            "reserved_quantity": item.reserved_quantity,
            "version": item.version,
        }

    @staticmethod
    def _record_to_raw(record: ReservationRecord) -> dict:
        return {
            "item_id": record.item_id,
            "reservation_id": record.reservation_id,
            "quantity": record.quantity,
            "status": record.status.value,
            "created_at": record.created_at,
            "released_at": record.released_at,
        }

    @staticmethod
    def _to_domain(row: Row, records: list[Row]) -> InventoryItem:
        return InventoryItem(
            id=row.id,
            sku=row.sku,
            total_quantity=row.total_quantity,
            reserved_quantity=row.reserved_quantity,
            version=row.version,
            reservations={
                r.reservation_id: ReservationRecord(
                    reservation_id=r.reservation_id,
                    item_id=r.item_id,
                    quantity=r.quantity,
                    status=ReservationStatus(r.status),
                    created_at=r.created_at,
                    released_at=r.released_at,
                )
                for r in records
            },
        )

    # --- Helpers --------------------------------------------------------------

    def _exists(self, item_id: str) -> bool:
        return (
            self._conn.execute(
                select(inventory_items.c.id).where(inventory_items.c.id == item_id)
            ).first()
            is not None
        )

    def _save_reservations(self, item: InventoryItem) -> None:
        stored = {
            r.reservation_id: r.status
            for r in self._conn.execute(
                select(reservations.c.reservation_id, reservations.c.status).where(
                    reservations.c.item_id == item.id
                )
            )
        }
        for record in item.reservations.values():
            if record.reservation_id not in stored:
                self._conn.execute(
                    insert(reservations).values(**self._record_to_raw(record))
                )
            elif stored[record.reservation_id] != record.status.value:
                self._conn.execute(
                    update(reservations)
                    .where(
                        and_(
                            reservations.c.item_id == item.id,
                            reservations.c.reservation_id == record.reservation_id,
                        )
                    )
                    .values(status=record.status.value, released_at=record.released_at)
                )
