"""Idempotency guard for the outbox relay.

After the broker acknowledges a message the relay remembers its dedup key
in a store that is independent from the outbox table. If the process then
dies before the row is marked PUBLISHED, the next pass finds the key and
skips the broker call. This narrows duplicate publishes; consumers still
dedupe on the ``dedup_key`` carried in every envelope.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from ims.domain.exceptions import InfrastructureError
from ims.domain.model.outbox import OutboxMessage

logger = logging.getLogger(__name__)


class KeyStore(ABC):

    @abstractmethod
    def add_if_absent(self, key: str, ttl_seconds: int) -> bool:
        """Store *key* for *ttl_seconds*. Return False if it was already there."""

    @abstractmethod
    def contains(self, key: str) -> bool:
        """Return True if *key* is stored and not expired."""


class IdempotencyGuard:

    def __init__(self, store: KeyStore, ttl_seconds: int = 7 * 24 * 3600) -> None:
        self._store = store
        self._ttl = ttl_seconds

    def already_published(self, message: OutboxMessage) -> bool:
        """Best effort: a store failure counts as "not seen"."""
        try:
            return self._store.contains(self._key(message))
        except InfrastructureError:
            logger.warning(
                "Idempotency store unavailable while checking %s; publishing anyway",
                message.dedup_key,
                exc_info=True,
            )
            return False

    def remember(self, message: OutboxMessage) -> None:
        try:
            self._store.add_if_absent(self._key(message), self._ttl)
        except InfrastructureError:
            logger.warning(
                "Idempotency store unavailable while recording %s",
                message.dedup_key,
                exc_info=True,
            )

    @staticmethod
    def _key(message: OutboxMessage) -> str:
        return f"ims:published:{message.dedup_key}"


class NullGuard(IdempotencyGuard):
    """Guard that never remembers anything; consumer-side dedup only."""

    def __init__(self) -> None:
        pass

    def already_published(self, message: OutboxMessage) -> bool:
        return False

    def remember(self, message: OutboxMessage) -> None:
        return None
