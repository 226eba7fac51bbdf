"""Tests for SingleFlight and KeyedLock."""

import asyncio

import pytest

from sleepsync.core.utils.single_flight import KeyedLock, SingleFlight


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_job(self):
        flight = SingleFlight("test")
        started = []
        gate = asyncio.Event()

        async def job():
            started.append(1)
            await gate.wait()
            return "created"

        tasks = [asyncio.create_task(flight.run("a.md", job)) for _ in range(5)]
        await asyncio.sleep(0)
        assert "a.md" in flight
        gate.set()
        assert await asyncio.gather(*tasks) == ["created"] * 5
        assert started == [1]
        assert len(flight) == 0

    @pytest.mark.asyncio
    async def test_different_keys_run_independently(self):
        flight = SingleFlight("test")
        calls = []

        async def job(key):
            calls.append(key)
            return key

        results = await asyncio.gather(flight.run("a", lambda: job("a")), flight.run("b", lambda: job("b")))
        assert results == ["a", "b"]
        assert sorted(calls) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_failure_reaches_every_caller_and_clears_key(self):
        flight = SingleFlight("test")
        gate = asyncio.Event()

        async def job():
            await gate.wait()
            raise OSError("disk full")

        tasks = [asyncio.create_task(flight.run("a", job)) for _ in range(3)]
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        assert all(isinstance(r, OSError) for r in results)
        assert "a" not in flight

    @pytest.mark.asyncio
    async def test_key_reusable_after_completion(self):
        flight = SingleFlight("test")
        counter = []

        async def job():
            counter.append(1)
            return len(counter)

        assert await flight.run("a", job) == 1
        assert await flight.run("a", job) == 2

    @pytest.mark.asyncio
    async def test_cancelled_caller_leaves_job_running(self):
        flight = SingleFlight("test")
        gate = asyncio.Event()

        async def job():
            await gate.wait()
            return "done"

        first = asyncio.create_task(flight.run("a", job))
        second = asyncio.create_task(flight.run("a", job))
        await asyncio.sleep(0)
        first.cancel()
        await asyncio.sleep(0)
        gate.set()
        assert await second == "done"
        with pytest.raises(asyncio.CancelledError):
            await first


class TestKeyedLock:
    @pytest.mark.asyncio
    async def test_same_key_same_lock(self):
        locks = KeyedLock()
        lock = locks.for_key("a")
        assert locks.for_key("a") is lock
        assert locks.for_key("b") is not lock

    @pytest.mark.asyncio
    async def test_locked(self):
        locks = KeyedLock()
        lock = locks.for_key("a")
        assert not locks.locked("a")
        async with lock:
            assert locks.locked("a")
        assert not locks.locked("missing")

    @pytest.mark.asyncio
    async def test_serializes_in_call_order(self):
        locks = KeyedLock()
        order = []

        async def worker(n):
            async with locks.for_key("doc"):
                order.append(("start", n))
                await asyncio.sleep(0)
                order.append(("end", n))

        await asyncio.gather(*(worker(n) for n in range(3)))
        assert order == [("start", 0), ("end", 0), ("start", 1), ("end", 1), ("start", 2), ("end", 2)]
