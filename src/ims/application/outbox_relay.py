"""Outbox relay — drains PENDING outbox messages to the broker.

Per aggregate, messages go out strictly in sequence order and a stream never
advances past a message that has not been acknowledged. Aggregates are
independent: a message in backoff or quarantine only holds back its own
aggregate.

Delivery is publish-then-mark. A crash between the two leaves the row
PENDING and it is published again on the next pass (at-least-once).

Several relays can run side by side. Inside one pool each owns the
aggregates whose ``crc32(aggregate_id) % worker_count`` equals its
``worker_index``. Across pools and processes a relay only publishes for an
aggregate while it holds that aggregate's lease in the outbox store, so two
relays never publish for the same aggregate at once.
"""

from __future__ import annotations

import logging
import sys
import threading
import uuid
import zlib
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from itertools import groupby, takewhile

from ims.application.backoff import BackoffPolicy
from ims.application.broker import MessageBroker
from ims.application.idempotency import IdempotencyGuard, NullGuard
from ims.domain.exceptions import (
    BrokerPublishError,
    InfrastructureError,
    PersistenceError,
)
from ims.domain.model.outbox import OutboxMessage
from ims.domain.repository.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RelayConfig:

    batch_size: int = 100
    poll_interval: float = 1.0
    max_attempts: int = 10
    # renewed at half-life while a stream is being drained
    lease_seconds: float = 30.0
    backoff: BackoffPolicy = BackoffPolicy()


@dataclass
class RelayReport:
    """What one pass did."""

    published: int = 0
    skipped_duplicates: int = 0
    failed_attempts: int = 0
    quarantined: int = 0
    deferred_aggregates: int = 0
    unmarked: int = 0
    published_keys: list[str] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return self.published + self.skipped_duplicates + self.failed_attempts

    def merge(self, other: RelayReport) -> None:
        self.published += other.published
        self.skipped_duplicates += other.skipped_duplicates
        self.failed_attempts += other.failed_attempts
        self.quarantined += other.quarantined
        self.deferred_aggregates += other.deferred_aggregates
        self.unmarked += other.unmarked
        self.published_keys.extend(other.published_keys)


def partition_of(aggregate_id: str, worker_count: int) -> int:
    """Stable partition for an aggregate, identical across processes."""
    return zlib.crc32(aggregate_id.encode("utf-8")) % worker_count


class OutboxRelay:

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        broker: MessageBroker,
        guard: IdempotencyGuard | None = None,
        config: RelayConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
        worker_index: int = 0,
        worker_count: int = 1,
        owner: str | None = None,
    ) -> None:
        if worker_count < 1 or not 0 <= worker_index < worker_count:
            raise ValueError(
                f"worker_index must be in [0, {worker_count}), got {worker_index}"
            )
        self._uow_factory = uow_factory
        self._broker = broker
        self._guard = guard or NullGuard()
        self._config = config or RelayConfig()
        self._clock = clock
        self._worker_index = worker_index
        self._worker_count = worker_count
        self._owner = owner or f"relay-{worker_index}-{uuid.uuid4().hex}"

    @property
    def worker_index(self) -> int:
        return self._worker_index

    @property
    def owner(self) -> str:
        return self._owner

    def owns(self, aggregate_id: str) -> bool:
        return partition_of(aggregate_id, self._worker_count) == self._worker_index

    # --- Passes ---------------------------------------------------------------

    def drain_once(self) -> RelayReport:
        """Run one pass over the PENDING messages this worker owns.

        Stops after roughly ``batch_size`` delivery attempts. A message that
        was published but could not be marked stays PENDING and only halts
        its own aggregate. Failures to read the outbox propagate.
        """
        report = RelayReport()
        batch_size = self._config.batch_size
        halted: set[str] = set()
        cursor: tuple[str, int] | None = None

        while report.attempted < batch_size:
            with self._uow_factory() as uow:
                page = uow.outbox.list_pending(batch_size, after=cursor)
                blocked = uow.outbox.blocked_aggregates()
            if not page:
                break

            for aggregate_id, _ in groupby(page, key=lambda m: m.aggregate_id):
                if aggregate_id in halted or not self.owns(aggregate_id):
                    continue
                if aggregate_id in blocked:
                    halted.add(aggregate_id)
                    report.deferred_aggregates += 1
                    logger.debug("Aggregate %s has a quarantined message; skipping", aggregate_id)
                    continue
                if not self._drain_leased(aggregate_id, report):
                    halted.add(aggregate_id)

            if len(page) < batch_size:
                break
            last = page[-1]
            # skip the remainder of a halted aggregate instead of paging through it
            cursor = (
                (last.aggregate_id, sys.maxsize)
                if last.aggregate_id in halted
                else (last.aggregate_id, last.sequence)
            )

        if report.attempted:
            logger.info(
                "Relay worker %d: published=%d duplicates=%d failed=%d quarantined=%d",
                self._worker_index, report.published, report.skipped_duplicates,
                report.failed_attempts, report.quarantined,
            )
        return report

    def run_forever(self, stop_event: threading.Event) -> None:
        """Poll until *stop_event* is set. Idle passes sleep ``poll_interval``."""
        logger.info(
            "Outbox relay worker %d/%d started", self._worker_index, self._worker_count
        )
        while not stop_event.is_set():
            try:
                report = self.drain_once()
            except InfrastructureError:
                logger.exception("Relay worker %d pass failed", self._worker_index)
                stop_event.wait(self._config.poll_interval)
                continue
            if report.attempted == 0:
                stop_event.wait(self._config.poll_interval)
        logger.info("Outbox relay worker %d stopped", self._worker_index)

    # --- Leases ---------------------------------------------------------------

    def _take_lease(self, aggregate_id: str) -> datetime | None:
        """Take or renew the lease; returns when it should next be renewed."""
        now = self._clock()
        lease = timedelta(seconds=self._config.lease_seconds)
        with self._uow_factory() as uow:
            if not uow.outbox.acquire_lease(aggregate_id, self._owner, now, now + lease):
                return None
            uow.commit()
        return now + lease / 2

    def _drop_lease(self, aggregate_id: str) -> None:
        try:
            with self._uow_factory() as uow:
                uow.outbox.release_lease(aggregate_id, self._owner)
                uow.commit()
        except InfrastructureError:
            logger.warning(
                "Could not release lease on %s; it lapses after %.0fs",
                aggregate_id, self._config.lease_seconds, exc_info=True,
            )

    # --- Delivery -------------------------------------------------------------

    def _drain_leased(self, aggregate_id: str, report: RelayReport) -> bool:
        """Drain one aggregate while holding its lease.

        The stream is re-read after the lease is taken, so rows another
        relay published in the meantime are not sent again.
        """
        renew_at = self._take_lease(aggregate_id)
        if renew_at is None:
            report.deferred_aggregates += 1
            logger.debug("Aggregate %s is leased by another relay; skipping", aggregate_id)
            return False
        try:
            with self._uow_factory() as uow:
                head = uow.outbox.list_pending(
                    self._config.batch_size, after=(aggregate_id, 0)
                )
            stream = list(takewhile(lambda m: m.aggregate_id == aggregate_id, head))
            return self._drain_stream(aggregate_id, stream, renew_at, report)
        finally:
            self._drop_lease(aggregate_id)

    def _drain_stream(
        self,
        aggregate_id: str,
        messages: list[OutboxMessage],
        renew_at: datetime,
        report: RelayReport,
    ) -> bool:
        """Deliver one aggregate's messages in order.

        Returns False as soon as the stream cannot advance.
        """
        for message in messages:
            now = self._clock()
            if now >= renew_at:
                renew_at = self._take_lease(aggregate_id)
                if renew_at is None:
                    logger.warning("Lost the lease on %s mid-stream; stopping", aggregate_id)
                    return False
            if not message.is_due(now):
                report.deferred_aggregates += 1
                return False
            if not self._deliver(message, report):
                return False
        return True

    def _deliver(self, message: OutboxMessage, report: RelayReport) -> bool:
        if self._guard.already_published(message):
            logger.info(
                "Outbox message %s#%d already published; marking only",
                message.aggregate_id, message.sequence,
            )
            report.skipped_duplicates += 1
        else:
            try:
                self._broker.publish(message.envelope())
            except BrokerPublishError as exc:
                self._record_failure(message, exc, report)
                return False
            self._guard.remember(message)
            report.published += 1
            report.published_keys.append(message.dedup_key)
            logger.debug(
                "Published %s %s#%d",
                message.event_type, message.aggregate_id, message.sequence,
            )

        try:
            with self._uow_factory() as uow:
                message.mark_published(self._clock())
                uow.outbox.update(message)
                uow.commit()
        except PersistenceError as exc:
            report.unmarked += 1
            logger.error(
                "Outbox message %s#%d was published but not marked; "
                "it stays PENDING and will be published again: %s",
                message.aggregate_id, message.sequence, exc,
            )
            return False
        return True

    def _record_failure(
        self, message: OutboxMessage, exc: BrokerPublishError, report: RelayReport
    ) -> None:
        now = self._clock()
        delay = self._config.backoff.delay(message.attempt_count + 1)
        message.record_failure(str(exc), next_attempt_at=now + timedelta(seconds=delay))
        report.failed_attempts += 1

        if message.attempt_count >= self._config.max_attempts:
            message.quarantine()
            report.quarantined += 1
            logger.error(
                "Outbox message %s#%d quarantined after %d attempts: %s",
                message.aggregate_id, message.sequence, message.attempt_count, exc,
                extra={
                    "extra_fields": {
                        "aggregate_id": message.aggregate_id,
                        "sequence": message.sequence,
                        "event_id": message.event_id,
                        "attempt_count": message.attempt_count,
                    }
                },
            )
        else:
            logger.warning(
                "Publishing %s#%d failed (attempt %d/%d), retry in %.2fs: %s",
                message.aggregate_id, message.sequence, message.attempt_count,
                self._config.max_attempts, delay, exc,
            )

        with self._uow_factory() as uow:
            uow.outbox.update(message)
            uow.commit()


class RelayPool:
    """Runs one relay per partition on a thread pool."""

    def __init__(
        self,
        relay_factory: Callable[[int, int], OutboxRelay],
        worker_count: int,
    ) -> None:
        if worker_count < 1:
            raise ValueError("worker_count must be at least 1")
        self._relays = [relay_factory(i, worker_count) for i in range(worker_count)]

    @property
    def relays(self) -> list[OutboxRelay]:
        return list(self._relays)

    def drain_once(self) -> RelayReport:
        """One pass on every partition concurrently; returns the merged report."""
        total = RelayReport()
        with ThreadPoolExecutor(max_workers=len(self._relays)) as pool:
            for report in pool.map(lambda relay: relay.drain_once(), self._relays):
                total.merge(report)
        return total

    def run_forever(self, stop_event: threading.Event) -> None:
        """Run every relay until *stop_event* is set.

        A worker that dies on an unexpected error stops the whole pool and
        the error is re-raised once the other workers have exited.
        """
        with ThreadPoolExecutor(
            max_workers=len(self._relays), thread_name_prefix="outbox-relay"
        ) as pool:
            futures = [
                pool.submit(self._run_worker, relay, stop_event) for relay in self._relays
            ]
        for future in futures:
            future.result()

    @staticmethod
    def _run_worker(relay: OutboxRelay, stop_event: threading.Event) -> None:
        try:
            relay.run_forever(stop_event)
        except Exception:
            logger.exception(
                "Relay worker %d crashed; stopping the pool", relay.worker_index
            )
            stop_event.set()
            raise
