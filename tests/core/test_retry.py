"""Tests for retry policies and retry_async."""

import pytest

from sleepsync.core.retry import SETTLE_POLICY, STORAGE_POLICY, RetryPolicy, retry_async


@pytest.mark.smoke
class TestRetryPolicy:
    def test_settle_schedule_doubles_and_caps(self):
        assert SETTLE_POLICY.schedule() == pytest.approx([0.1, 0.2, 0.4, 0.8, 1.0, 1.0, 1.0, 1.0, 1.0])

    def test_storage_schedule_is_linear(self):
        assert STORAGE_POLICY.schedule() == pytest.approx([0.2, 0.4])

    def test_needs_an_attempt(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestRetryAsync:
    @pytest.mark.asyncio
    async def test_first_try(self, clock):
        async def op():
            return "ok"

        outcome = await retry_async(op, STORAGE_POLICY, clock)
        assert outcome.succeeded and outcome.value == "ok" and outcome.attempts == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_retries_errors_then_succeeds(self, clock):
        calls = []

        async def op():
            calls.append(1)
            if len(calls) < 3:
                raise OSError("busy")
            return len(calls)

        outcome = await retry_async(op, STORAGE_POLICY, clock, retry_on=(OSError,))
        assert outcome.succeeded
        assert outcome.value == 3
        assert clock.sleeps == pytest.approx([0.2, 0.4])

    @pytest.mark.asyncio
    async def test_exhausted_keeps_last_error(self, clock):
        async def op():
            raise OSError("still busy")

        outcome = await retry_async(op, STORAGE_POLICY, clock, retry_on=(OSError,))
        assert outcome.exhausted
        assert outcome.attempts == 3
        assert str(outcome.last_error) == "still busy"

    @pytest.mark.asyncio
    async def test_accept_predicate(self, clock):
        values = iter(["{{date}}", "{{date}}", "March 15"])

        async def op():
            return next(values)

        outcome = await retry_async(op, SETTLE_POLICY, clock, accept=lambda text: "{{" not in text)
        assert outcome.value == "March 15"
        assert outcome.attempts == 3
        assert clock.sleeps == pytest.approx([0.1, 0.2])

    @pytest.mark.asyncio
    async def test_unlisted_errors_propagate(self, clock):
        async def op():
            raise KeyError("nope")

        with pytest.raises(KeyError):
            await retry_async(op, STORAGE_POLICY, clock, retry_on=(OSError,))
