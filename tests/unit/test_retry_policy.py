"""Tests de RetryPolicy y retry_async con scheduler falso."""

import random

import pytest

from app.application.services.retry_policy import RetryPolicy, retry_async
from app.domain.errors import SupplierRejectedError, SupplierTransientError


class TestRetryPolicy:
    def test_backoff_schedule(self):
        policy = RetryPolicy(max_attempts=4, interval_seconds=1.0, backoff_multiplier=2.0)

        assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]
        assert policy.max_total_delay == 7.0

    def test_jitter_is_subtracted(self):
        policy = RetryPolicy(max_attempts=10, interval_seconds=2.0, jitter_seconds=0.5)
        rng = random.Random(7)

        delays = [policy.delay_for(n, rng) for n in range(1, 10)]

        assert all(1.5 <= d <= 2.0 for d in delays)
        assert sum(delays) <= policy.max_total_delay

    def test_delay_never_negative(self):
        policy = RetryPolicy(interval_seconds=0.1, jitter_seconds=5.0)

        assert policy.delay_for(1) >= 0.0

    def test_invalid_policy(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError):
            RetryPolicy(interval_seconds=-1)


class TestRetryAsync:
    @pytest.mark.asyncio
    async def test_retries_until_success(self, scheduler):
        calls = 0

        async def flaky():
            nonlocal calls
            calls += 1
            if calls < 3:
                raise SupplierTransientError("prebook", "timeout")
            return "locked"

        result = await retry_async(
            flaky,
            RetryPolicy(max_attempts=3, interval_seconds=1.0),
            scheduler,
            retry_on=(SupplierTransientError,),
        )

        assert result == "locked"
        assert calls == 3
        assert scheduler.sleeps == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_reraises_last_error_when_exhausted(self, scheduler):
        async def always_down():
            raise SupplierTransientError("prebook", "http_503")

        with pytest.raises(SupplierTransientError) as exc:
            await retry_async(
                always_down,
                RetryPolicy(max_attempts=2, interval_seconds=1.0),
                scheduler,
                retry_on=(SupplierTransientError,),
            )

        assert exc.value.supplier_error_code == "http_503"
        assert scheduler.sleeps == [1.0]

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates_immediately(self, scheduler):
        calls = 0

        async def rejected():
            nonlocal calls
            calls += 1
            raise SupplierRejectedError("prebook", "rate_not_found")

        with pytest.raises(SupplierRejectedError):
            await retry_async(
                rejected,
                RetryPolicy(max_attempts=5),
                scheduler,
                retry_on=(SupplierTransientError,),
            )

        assert calls == 1
        assert scheduler.sleeps == []

    @pytest.mark.asyncio
    async def test_fake_scheduler_advances_clock(self, scheduler):
        start = scheduler.clock.now()

        async def always_down():
            raise SupplierTransientError("status", "timeout")

        with pytest.raises(SupplierTransientError):
            await retry_async(
                always_down,
                RetryPolicy(max_attempts=3, interval_seconds=2.0, backoff_multiplier=2.0),
                scheduler,
                retry_on=(SupplierTransientError,),
            )

        assert (scheduler.clock.now() - start).total_seconds() == 6.0
