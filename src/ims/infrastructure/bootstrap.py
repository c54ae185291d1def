"""Composition root — wires concrete implementations to domain interfaces.

This is the only place in the codebase that knows about *all* layers.
Every other module depends only on abstractions.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import lru_cache
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from ims.application.broker import MessageBroker
from ims.application.idempotency import IdempotencyGuard, NullGuard
from ims.application.outbox_relay import OutboxRelay, RelayPool
from ims.domain.repository.unit_of_work import UnitOfWork
from ims.infrastructure.messaging.memory_key_store import InMemoryKeyStore
from ims.infrastructure.messaging.redis_key_store import RedisKeyStore
from ims.infrastructure.messaging.redis_stream_broker import RedisStreamBroker
from ims.infrastructure.persistence.schema import create_schema
from ims.infrastructure.persistence.sql_unit_of_work import SqlUnitOfWork
from ims.infrastructure.settings import Settings, get_settings

# Resolve data directory relative to the project root.
# When installed in editable mode the project root is the repo root.
_DATA_DIR = Path(__file__).resolve().parents[3] / "data"


def database_url(settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    if settings.database_url:
        return settings.database_url
    _DATA_DIR.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{_DATA_DIR / 'ims.db'}"


@lru_cache
def _engine_for(url: str) -> Engine:
    connect_args = {"timeout": 30} if url.startswith("sqlite") else {}
    return create_engine(url, future=True, connect_args=connect_args)


def engine(settings: Settings | None = None) -> Engine:
    return _engine_for(database_url(settings))


def init_database(settings: Settings | None = None) -> None:
    create_schema(engine(settings))


def unit_of_work_factory(settings: Settings | None = None) -> Callable[[], UnitOfWork]:
    bound = engine(settings)
    return lambda: SqlUnitOfWork(bound)


def message_broker(settings: Settings | None = None) -> MessageBroker:
    settings = settings or get_settings()
    return RedisStreamBroker.from_url(
        settings.redis_url,
        stream=settings.broker_stream,
        timeout=settings.publish_timeout,
        maxlen=settings.broker_stream_maxlen,
    )


def idempotency_guard(settings: Settings | None = None) -> IdempotencyGuard:
    settings = settings or get_settings()
    backend = settings.idempotency_backend.lower()
    if backend == "redis":
        return IdempotencyGuard(
            RedisKeyStore.from_url(settings.redis_url), settings.idempotency_ttl
        )
    if backend == "memory":
        return IdempotencyGuard(InMemoryKeyStore(), settings.idempotency_ttl)
    if backend == "none":
        return NullGuard()
    raise ValueError(f"Unknown idempotency backend '{settings.idempotency_backend}'")


def relay_pool(
    settings: Settings | None = None, workers: int | None = None
) -> RelayPool:
    settings = settings or get_settings()
    uow_factory = unit_of_work_factory(settings)
    broker = message_broker(settings)
    guard = idempotency_guard(settings)
    config = settings.relay_config()

    def build(index: int, count: int) -> OutboxRelay:
        return OutboxRelay(
            uow_factory,
            broker,
            guard=guard,
            config=config,
            worker_index=index,
            worker_count=count,
        )

    return RelayPool(build, workers or settings.relay_workers)
