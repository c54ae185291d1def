"""Relational schema for inventory items, reservations and the outbox.

Plain SQLAlchemy Core tables: the repositories map rows to domain objects
themselves, so the domain model stays free of persistence concerns.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """Stores UTC and always hands back timezone-aware datetimes.

    SQLite drops tzinfo on the way in, so naive values read back are
    re-labelled as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime passed to a UTC column")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


metadata = MetaData()

inventory_items = Table(
    "inventory_items",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("sku", String(64), nullable=False),
    Column("total_quantity", Integer, nullable=False),
    Column("reserved_quantity", Integer, nullable=False, default=0),
    Column("version", Integer, nullable=False, default=0),
    CheckConstraint(
        "reserved_quantity >= 0 AND reserved_quantity <= total_quantity",
        name="ck_inventory_items_quantities",
    ),
)

reservations = Table(
    "reservations",
    metadata,
    Column("item_id", String(64), ForeignKey("inventory_items.id"), primary_key=True),
    Column("reservation_id", String(128), primary_key=True),
    Column("quantity", Integer, nullable=False),
    Column("status", String(16), nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("released_at", UTCDateTime(), nullable=True),
    CheckConstraint("quantity > 0", name="ck_reservations_quantity"),
)

outbox_messages = Table(
    "outbox_messages",
    metadata,
    Column("aggregate_id", String(64), primary_key=True),
    Column("sequence", Integer, primary_key=True),
    Column("event_id", String(36), nullable=False, unique=True),
    Column("event_type", String(64), nullable=False),
    Column("payload", JSON, nullable=False),
    Column("occurred_at", UTCDateTime(), nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("status", String(16), nullable=False),
    Column("attempt_count", Integer, nullable=False, default=0),
    Column("published_at", UTCDateTime(), nullable=True),
    Column("next_attempt_at", UTCDateTime(), nullable=True),
    Column("last_error", Text, nullable=True),
    Index("ix_outbox_messages_status_order", "status", "aggregate_id", "sequence"),
)

# one row per aggregate currently being published by some relay
outbox_leases = Table(
    "outbox_leases",
    metadata,
    Column("aggregate_id", String(64), primary_key=True),
    Column("owner", String(128), nullable=False),
    Column("expires_at", UTCDateTime(), nullable=False),
)


def create_schema(engine: Engine) -> None:
    metadata.create_all(engine)
