"""Retry timing shared by the command handlers and the outbox relay."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from ims.domain.exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff with full jitter.

    ``delay(n)`` for the n-th failed attempt (1-based) is drawn from
    ``[0, min(max_delay, base * factor ** (n - 1))]`` when jitter is on, or
    is exactly that cap when it is off.
    """

    base: float = 0.5
    factor: float = 2.0
    max_delay: float = 60.0
    jitter: bool = True

    def delay(self, attempt: int, rng: random.Random | None = None) -> float:
        if attempt < 1:
            return 0.0
        cap = min(self.max_delay, self.base * self.factor ** (attempt - 1))
        if not self.jitter:
            return cap
        return (rng or random).uniform(0, cap)


@dataclass(frozen=True)
class ConflictRetry:
    """How many times a command re-runs after losing a version race."""

    attempts: int = 3
    backoff: BackoffPolicy = BackoffPolicy(base=0.01, max_delay=0.2)
    sleep: Callable[[float], None] = time.sleep

    def run(self, attempt: Callable[[], T], description: str = "command") -> T:
        """Call *attempt* until it does not raise ConcurrencyConflictError.

        The last conflict propagates once the budget is spent.
        """
        for n in range(1, self.attempts + 1):
            try:
                return attempt()
            except ConcurrencyConflictError:
                if n >= self.attempts:
                    logger.warning(
                        "%s gave up after %d version conflicts", description, n
                    )
                    raise
                pause = self.backoff.delay(n)
                logger.info(
                    "%s hit a version conflict (attempt %d/%d), retrying in %.3fs",
                    description, n, self.attempts, pause,
                )
                self.sleep(pause)
        raise ValueError("ConflictRetry.attempts must be at least 1")
