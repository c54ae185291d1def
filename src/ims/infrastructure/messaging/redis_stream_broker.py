"""Redis Streams implementation of MessageBroker.

Each envelope is appended to one stream with XADD. The command returns
only once Redis has accepted the entry, which is the acknowledgement the
relay waits for. Unlike Pub/Sub, entries survive while subscribers are down.
"""

from __future__ import annotations

import json
import logging

import redis

from ims.application.broker import MessageBroker
from ims.domain.exceptions import BrokerPublishError

logger = logging.getLogger(__name__)


class RedisStreamBroker(MessageBroker):

    def __init__(
        self,
        client: redis.Redis,
        stream: str = "inventory_events",
        maxlen: int | None = None,
    ) -> None:
        self._client = client
        self._stream = stream
        self._maxlen = maxlen

    @classmethod
    def from_url(
        cls,
        url: str,
        stream: str = "inventory_events",
        timeout: float = 5.0,
        maxlen: int | None = None,
    ) -> RedisStreamBroker:
        """Build a broker whose socket timeout bounds every publish."""
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        return cls(client, stream=stream, maxlen=maxlen)

    @property
    def stream(self) -> str:
        return self._stream

    def publish(self, envelope: dict) -> None:
        fields = {
            "event_type": envelope["event_type"],
            "aggregate_id": envelope["aggregate_id"],
            "dedup_key": envelope["dedup_key"],
            "envelope": json.dumps(envelope, default=str),
        }
        try:
            entry_id = self._client.xadd(
                self._stream,
                fields,
                maxlen=self._maxlen,
                approximate=self._maxlen is not None,
            )
        except redis.RedisError as exc:
            raise BrokerPublishError(
                f"XADD to {self._stream} failed: {exc.__class__.__name__}: {exc}"
            ) from exc
        logger.debug("Appended %s to %s as %s", envelope["dedup_key"], self._stream, entry_id)

    def close(self) -> None:
        self._client.close()
