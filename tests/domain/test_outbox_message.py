"""Unit tests for OutboxMessage bookkeeping."""

from datetime import datetime, timedelta, timezone

import pytest

from ims.domain.exceptions import ValidationError
from ims.domain.model.events import DomainEvent, StockReserved
from ims.domain.model.outbox import OutboxMessage, OutboxStatus

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _message(sequence: int = 1) -> OutboxMessage:
    event = StockReserved(
        item_id="item-1",
        reservation_id="r1",
        quantity=7,
        new_reserved_quantity=7,
        total_quantity=10,
        version=1,
    )
    return OutboxMessage.from_event(event, sequence, NOW)


class TestFromEvent:

    def test_message_starts_pending(self):
        msg = _message()
        assert msg.status is OutboxStatus.PENDING
        assert msg.attempt_count == 0
        assert msg.published_at is None
        assert msg.created_at == NOW

    def test_payload_carries_business_fields_only(self):
        msg = _message()
        assert msg.event_type == "StockReserved"
        assert msg.aggregate_id == "item-1"
        assert msg.payload == {
            "item_id": "item-1",
            "reservation_id": "r1",
            "quantity": 7,
            "new_reserved_quantity": 7,
            "total_quantity": 10,
            "version": 1,
        }


class TestEnvelope:

    def test_envelope_shape(self):
        msg = _message(sequence=3)
        env = msg.envelope()
        assert env["event_type"] == "StockReserved"
        assert env["aggregate_id"] == "item-1"
        assert env["event_id"] == msg.event_id
        assert env["sequence"] == 3
        assert env["dedup_key"] == f"item-1:{msg.event_id}"
        assert env["payload"]["quantity"] == 7
        datetime.fromisoformat(env["occurred_at"])


class TestRelayTransitions:

    def test_mark_published(self):
        msg = _message()
        msg.mark_published(NOW)
        assert msg.status is OutboxStatus.PUBLISHED
        assert msg.published_at == NOW

    def test_record_failure_keeps_pending(self):
        msg = _message()
        retry_at = NOW + timedelta(seconds=2)
        msg.record_failure("timeout", retry_at)

        assert msg.status is OutboxStatus.PENDING
        assert msg.attempt_count == 1
        assert msg.last_error == "timeout"
        assert not msg.is_due(NOW)
        assert msg.is_due(retry_at)

    def test_quarantine_then_requeue(self):
        msg = _message()
        msg.record_failure("nack", NOW)
        msg.quarantine()
        assert msg.status is OutboxStatus.FAILED

        msg.requeue()
        assert msg.status is OutboxStatus.PENDING
        assert msg.attempt_count == 0
        assert msg.is_due(NOW)

    def test_requeue_pending_rejected(self):
        with pytest.raises(ValidationError, match="Only FAILED"):
            _message().requeue()

    def test_mark_quarantined_published_rejected(self):
        msg = _message()
        msg.quarantine()
        with pytest.raises(ValidationError, match="quarantined"):
            msg.mark_published(NOW)


class TestDomainEvent:

    def test_base_event_cannot_be_instantiated(self):
        with pytest.raises(TypeError):
            DomainEvent()

    def test_identity_fields_are_keyword_only_and_carried_over(self):
        event = StockReserved(
            "item-1", "r1", 7, 7, 10, 1, event_id="e-1", occurred_at=NOW
        )

        msg = OutboxMessage.from_event(event, 1, NOW)

        assert msg.event_id == "e-1"
        assert msg.occurred_at == NOW
        assert msg.aggregate_id == "item-1"
