"""Tests for provisioning, inventory queries and operator outbox commands."""

import pytest

from ims.application.backoff import BackoffPolicy, ConflictRetry
from ims.application.list_outbox import (
    ListOutboxHandler,
    ListOutboxQuery,
    OutboxStatsHandler,
    OutboxStatsQuery,
)
from ims.application.outbox_relay import OutboxRelay, RelayConfig
from ims.application.provision_stock import ProvisionStockCommand, ProvisionStockHandler
from ims.application.replay_outbox import ReplayOutboxCommand, ReplayOutboxHandler
from ims.application.reserve_stock import ReserveStockCommand, ReserveStockHandler
from ims.application.show_inventory import ShowInventoryHandler, ShowInventoryQuery
from ims.domain.exceptions import EntityNotFoundError, ValidationError
from ims.domain.model.outbox import OutboxStatus
from tests.fakes import FakeMessageBroker, FixedClock, InMemoryStore


class TestProvisionAndShow:

    def test_provision_then_show(self):
        store = InMemoryStore()
        ProvisionStockHandler(store.uow_factory()).handle(
            ProvisionStockCommand("item-1", "SKU-1", 10)
        )

        [line] = ShowInventoryHandler(store.uow_factory()).handle(ShowInventoryQuery())

        assert (line.item_id, line.sku, line.total, line.reserved, line.version) == (
            "item-1", "SKU-1", 10, 0, 0,
        )
        assert store.messages() == []

    def test_provision_existing_item_rejected(self):
        store = InMemoryStore()
        handler = ProvisionStockHandler(store.uow_factory())
        handler.handle(ProvisionStockCommand("item-1", "SKU-1", 10))

        with pytest.raises(ValidationError, match="already exists"):
            handler.handle(ProvisionStockCommand("item-1", "SKU-1", 5))

    def test_show_unknown_item_rejected(self):
        handler = ShowInventoryHandler(InMemoryStore().uow_factory())
        with pytest.raises(EntityNotFoundError):
            handler.handle(ShowInventoryQuery(item_id="ghost"))


def _quarantined_store():
    store = InMemoryStore()
    ProvisionStockHandler(store.uow_factory()).handle(
        ProvisionStockCommand("item-1", "SKU-1", 10)
    )
    reserve = ReserveStockHandler(store.uow_factory(), retry=ConflictRetry(sleep=lambda _: None))
    reserve.handle(ReserveStockCommand("item-1", 2, "r1"))
    reserve.handle(ReserveStockCommand("item-1", 3, "r2"))

    broker = FakeMessageBroker()
    broker.failing_aggregates.add("item-1")
    relay = OutboxRelay(
        store.uow_factory(),
        broker,
        config=RelayConfig(max_attempts=1, backoff=BackoffPolicy(jitter=False)),
        clock=FixedClock(),
    )
    relay.drain_once()
    return store, broker, relay


class TestListOutbox:

    def test_list_by_status(self):
        store, _, _ = _quarantined_store()
        handler = ListOutboxHandler(store.uow_factory())

        failed = handler.handle(ListOutboxQuery(status="failed"))
        pending = handler.handle(ListOutboxQuery(status="PENDING"))
        everything = handler.handle(ListOutboxQuery())

        assert [(m.sequence, m.status) for m in failed] == [(1, "FAILED")]
        assert failed[0].last_error == "nack for item-1"
        assert [m.sequence for m in pending] == [2]
        assert len(everything) == 2

    def test_unknown_status_rejected(self):
        handler = ListOutboxHandler(InMemoryStore().uow_factory())
        with pytest.raises(ValidationError, match="Unknown outbox status"):
            handler.handle(ListOutboxQuery(status="lost"))


class TestReplayOutbox:

    def test_replay_requeues_and_relay_resumes_in_order(self):
        store, broker, relay = _quarantined_store()
        broker.failing_aggregates.clear()

        dto = ReplayOutboxHandler(store.uow_factory()).handle(
            ReplayOutboxCommand("item-1", 1)
        )
        assert dto.status == "PENDING"
        assert dto.attempt_count == 0

        relay.drain_once()

        assert broker.sequences_for("item-1") == [1, 2]
        assert all(m.status is OutboxStatus.PUBLISHED for m in store.messages("item-1"))

    def test_replay_pending_message_rejected(self):
        store, _, _ = _quarantined_store()
        with pytest.raises(ValidationError, match="Only FAILED"):
            ReplayOutboxHandler(store.uow_factory()).handle(ReplayOutboxCommand("item-1", 2))

    def test_replay_unknown_message_rejected(self):
        store, _, _ = _quarantined_store()
        with pytest.raises(EntityNotFoundError):
            ReplayOutboxHandler(store.uow_factory()).handle(ReplayOutboxCommand("item-1", 9))


class TestOutboxStats:

    def test_counts_per_status(self):
        store, _, _ = _quarantined_store()
        counts = OutboxStatsHandler(store.uow_factory()).handle(OutboxStatsQuery())
        assert counts == {"PENDING": 1, "PUBLISHED": 0, "FAILED": 1}
