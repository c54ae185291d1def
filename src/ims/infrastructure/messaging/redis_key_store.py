"""Redis implementation of the idempotency KeyStore."""

from __future__ import annotations

import redis

from ims.application.idempotency import KeyStore
from ims.domain.exceptions import PersistenceError


class RedisKeyStore(KeyStore):

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, timeout: float = 2.0) -> RedisKeyStore:
        return cls(
            redis.Redis.from_url(
                url,
                decode_responses=True,
                socket_timeout=timeout,
                socket_connect_timeout=timeout,
            )
        )

    def add_if_absent(self, key: str, ttl_seconds: int) -> bool:
        try:
            return bool(self._client.set(key, "1", nx=True, ex=ttl_seconds))
        except redis.RedisError as exc:
            raise PersistenceError(f"SET {key} failed: {exc}") from exc

    def contains(self, key: str) -> bool:
        try:
            return bool(self._client.exists(key))
        except redis.RedisError as exc:
            raise PersistenceError(f"EXISTS {key} failed: {exc}") from exc
