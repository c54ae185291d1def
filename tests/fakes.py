"""In-memory fakes for testing.

These implement the same abstract interfaces as the SQL adapters but keep
everything in dicts guarded by one lock. A unit of work stages its writes
and applies them all at commit, re-checking every version it saved against,
so the fakes honour the same atomicity and compare-and-swap contract.
Publish leases live in the store and change immediately.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone

from ims.application.broker import MessageBroker
from ims.domain.exceptions import (
    BrokerPublishError,
    ConcurrencyConflictError,
    PersistenceError,
    ValidationError,
)
from ims.domain.model.events import DomainEvent
from ims.domain.model.inventory import InventoryItem
from ims.domain.model.outbox import OutboxMessage, OutboxStatus
from ims.domain.repository.inventory_repository import InventoryRepository
from ims.domain.repository.outbox_repository import OutboxRepository
from ims.domain.repository.unit_of_work import UnitOfWork


class InMemoryStore:
    """Committed state shared by every FakeUnitOfWork built on it."""

    def __init__(self, items: list[InventoryItem] | None = None) -> None:
        self.lock = threading.RLock()
        self.items: dict[str, InventoryItem] = {}
        self.outbox: dict[tuple[str, int], OutboxMessage] = {}
        self.leases: dict[str, tuple[str, datetime]] = {}
        self.commit_count = 0
        self.fail_commits = 0
        for item in items or []:
            self.items[item.id] = copy.deepcopy(item)

    def item(self, item_id: str) -> InventoryItem:
        with self.lock:
            return copy.deepcopy(self.items[item_id])

    def messages(self, aggregate_id: str | None = None) -> list[OutboxMessage]:
        with self.lock:
            found = [
                copy.deepcopy(m)
                for key, m in sorted(self.outbox.items())
                if aggregate_id is None or key[0] == aggregate_id
            ]
        return found

    def uow_factory(
        self, after_load: Callable[[str], None] | None = None
    ) -> Callable[[], FakeUnitOfWork]:
        return lambda: FakeUnitOfWork(self, after_load=after_load)


class FakeInventoryRepository(InventoryRepository):

    def __init__(self, uow: FakeUnitOfWork) -> None:
        self._uow = uow
        self._store = uow.store

    def get(self, item_id: str) -> InventoryItem | None:
        with self._store.lock:
            item = self._store.items.get(item_id)
            found = copy.deepcopy(item) if item is not None else None
        if found is not None and self._uow.after_load is not None:
            self._uow.after_load(item_id)
        return found

    def list_all(self) -> list[InventoryItem]:
        with self._store.lock:
            return [copy.deepcopy(i) for _, i in sorted(self._store.items.items())]

    def add(self, item: InventoryItem) -> None:
        with self._store.lock:
            if item.id in self._store.items or item.id in self._uow.new_items:
                raise ValidationError(f"Inventory item '{item.id}' already exists")
        self._uow.new_items[item.id] = copy.deepcopy(item)

    def save(self, item: InventoryItem, expected_version: int) -> None:
        with self._store.lock:
            current = self._store.items.get(item.id)
            if current is None or current.version != expected_version:
                raise ConcurrencyConflictError(
                    f"Inventory item '{item.id}' changed since version {expected_version}"
                )
        self._uow.saved_items[item.id] = (copy.deepcopy(item), expected_version)


class FakeOutboxRepository(OutboxRepository):

    def __init__(self, uow: FakeUnitOfWork) -> None:
        self._uow = uow
        self._store = uow.store

    def append(
        self, aggregate_id: str, events: Sequence[DomainEvent], now: datetime
    ) -> list[OutboxMessage]:
        with self._store.lock:
            known = [s for (a, s) in self._store.outbox if a == aggregate_id]
        known += [s for (a, s) in self._uow.outbox_writes if a == aggregate_id]
        next_sequence = max(known, default=0) + 1
        messages = []
        for offset, event in enumerate(events):
            message = OutboxMessage.from_event(event, next_sequence + offset, now)
            self._uow.outbox_writes[(aggregate_id, message.sequence)] = message
            messages.append(copy.deepcopy(message))
        return messages

    def get(self, aggregate_id: str, sequence: int) -> OutboxMessage | None:
        with self._store.lock:
            message = self._store.outbox.get((aggregate_id, sequence))
            return copy.deepcopy(message) if message is not None else None

    def list_pending(
        self, limit: int, after: tuple[str, int] | None = None
    ) -> list[OutboxMessage]:
        with self._store.lock:
            keys = sorted(
                key
                for key, m in self._store.outbox.items()
                if m.status is OutboxStatus.PENDING and (after is None or key > after)
            )
            return [copy.deepcopy(self._store.outbox[k]) for k in keys[:limit]]

    def list_by_status(
        self, status: OutboxStatus | None, limit: int
    ) -> list[OutboxMessage]:
        with self._store.lock:
            keys = sorted(
                key
                for key, m in self._store.outbox.items()
                if status is None or m.status is status
            )
            return [copy.deepcopy(self._store.outbox[k]) for k in keys[:limit]]

    def blocked_aggregates(self) -> set[str]:
        with self._store.lock:
            return {
                m.aggregate_id
                for m in self._store.outbox.values()
                if m.status is OutboxStatus.FAILED
            }

    def update(self, message: OutboxMessage) -> None:
        self._uow.outbox_writes[(message.aggregate_id, message.sequence)] = (
            copy.deepcopy(message)
        )

    def count_by_status(self) -> dict[OutboxStatus, int]:
        counts = {status: 0 for status in OutboxStatus}
        with self._store.lock:
            for m in self._store.outbox.values():
                counts[m.status] += 1
        return counts

    # leases apply immediately, outside the staged writes

    def acquire_lease(
        self, aggregate_id: str, owner: str, now: datetime, expires_at: datetime
    ) -> bool:
        with self._store.lock:
            holder = self._store.leases.get(aggregate_id)
            if holder is not None and holder[0] != owner and holder[1] > now:
                return False
            self._store.leases[aggregate_id] = (owner, expires_at)
        return True

    def release_lease(self, aggregate_id: str, owner: str) -> None:
        with self._store.lock:
            holder = self._store.leases.get(aggregate_id)
            if holder is not None and holder[0] == owner:
                del self._store.leases[aggregate_id]


class FakeUnitOfWork(UnitOfWork):

    def __init__(
        self,
        store: InMemoryStore,
        after_load: Callable[[str], None] | None = None,
    ) -> None:
        self.store = store
        self.after_load = after_load
        self.new_items: dict[str, InventoryItem] = {}
        self.saved_items: dict[str, tuple[InventoryItem, int]] = {}
        self.outbox_writes: dict[tuple[str, int], OutboxMessage] = {}
        self.committed = False
        self.inventory = FakeInventoryRepository(self)
        self.outbox = FakeOutboxRepository(self)

    def commit(self) -> None:
        with self.store.lock:
            if self.store.fail_commits > 0 and self._has_writes():
                self.store.fail_commits -= 1
                raise PersistenceError("simulated crash during commit")
            for item_id, (item, expected) in self.saved_items.items():
                current = self.store.items.get(item_id)
                if current is None or current.version != expected:
                    raise ConcurrencyConflictError(
                        f"Inventory item '{item_id}' changed since version {expected}"
                    )
            for item_id in self.new_items:
                if item_id in self.store.items:
                    raise ValidationError(f"Inventory item '{item_id}' already exists")

            self.store.items.update(self.new_items)
            self.store.items.update(
                {item_id: item for item_id, (item, _) in self.saved_items.items()}
            )
            self.store.outbox.update(self.outbox_writes)
            self.store.commit_count += 1
        self.committed = True
        self._clear()

    def rollback(self) -> None:
        self._clear()

    def _has_writes(self) -> bool:
        return bool(self.new_items or self.saved_items or self.outbox_writes)

    def _clear(self) -> None:
        self.new_items = {}
        self.saved_items = {}
        self.outbox_writes = {}


class FakeMessageBroker(MessageBroker):
    """Records envelopes; can be told to fail for specific aggregates."""

    def __init__(self) -> None:
        self.published: list[dict] = []
        self.calls = 0
        self.failing_aggregates: set[str] = set()
        self.fail_next = 0
        self._lock = threading.Lock()

    def publish(self, envelope: dict) -> None:
        with self._lock:
            self.calls += 1
            if self.fail_next > 0:
                self.fail_next -= 1
                raise BrokerPublishError("broker timed out")
            if envelope["aggregate_id"] in self.failing_aggregates:
                raise BrokerPublishError(f"nack for {envelope['aggregate_id']}")
            self.published.append(envelope)

    def sequences_for(self, aggregate_id: str) -> list[int]:
        return [e["sequence"] for e in self.published if e["aggregate_id"] == aggregate_id]


class FixedClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def make_item(
    item_id: str = "item-1",
    sku: str = "SKU-1",
    total: int = 10,
    reserved: dict[str, int] | None = None,
) -> InventoryItem:
    """Build an item, optionally with active reservations {id: qty}."""
    item = InventoryItem.provision(item_id, sku, total)
    for reservation_id, qty in (reserved or {}).items():
        item.reserve(qty, reservation_id)
    item.pull_events()
    return item
