"""Unit tests for BackoffPolicy and ConflictRetry."""

import random

import pytest

from ims.application.backoff import BackoffPolicy, ConflictRetry
from ims.domain.exceptions import ConcurrencyConflictError, InsufficientStockError


class TestBackoffPolicy:

    def test_exponential_without_jitter(self):
        policy = BackoffPolicy(base=0.5, factor=2.0, max_delay=10.0, jitter=False)
        assert [policy.delay(n) for n in range(1, 7)] == [0.5, 1.0, 2.0, 4.0, 8.0, 10.0]

    def test_jitter_stays_within_cap(self):
        policy = BackoffPolicy(base=1.0, factor=2.0, max_delay=5.0)
        rng = random.Random(3)
        for attempt in range(1, 10):
            cap = min(5.0, 2.0 ** (attempt - 1))
            assert 0.0 <= policy.delay(attempt, rng) <= cap

    def test_attempt_zero_has_no_delay(self):
        assert BackoffPolicy().delay(0) == 0.0


class TestConflictRetry:

    def test_returns_first_success(self):
        sleeps = []
        retry = ConflictRetry(attempts=3, sleep=sleeps.append)
        assert retry.run(lambda: "ok") == "ok"
        assert sleeps == []

    def test_retries_conflicts_then_succeeds(self):
        sleeps = []
        outcomes = iter([ConcurrencyConflictError("v1"), ConcurrencyConflictError("v2"), "ok"])

        def attempt():
            outcome = next(outcomes)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        retry = ConflictRetry(attempts=3, sleep=sleeps.append)
        assert retry.run(attempt) == "ok"
        assert len(sleeps) == 2

    def test_gives_up_after_budget(self):
        calls = []

        def attempt():
            calls.append(1)
            raise ConcurrencyConflictError("still racing")

        retry = ConflictRetry(attempts=3, sleep=lambda _: None)
        with pytest.raises(ConcurrencyConflictError, match="still racing"):
            retry.run(attempt)
        assert len(calls) == 3

    def test_business_errors_are_not_retried(self):
        calls = []

        def attempt():
            calls.append(1)
            raise InsufficientStockError("no stock")

        with pytest.raises(InsufficientStockError):
            ConflictRetry(sleep=lambda _: None).run(attempt)
        assert len(calls) == 1
