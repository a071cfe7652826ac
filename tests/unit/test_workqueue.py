"""Unit tests for the work queue and its dispatcher."""

import asyncio
import pytest
from unittest.mock import Mock
from aerospike_operator.controller.workqueue import (
    BucketRateLimiter,
    Dispatcher,
    ItemExponentialFailureRateLimiter,
    MaxOfRateLimiter,
    ShutDown,
    WorkQueue,
)


class TestRateLimiters:
    def test_exponential_backoff(self):
        limiter = ItemExponentialFailureRateLimiter(base_delay=1, max_delay=10)
        assert [limiter.when("a") for _ in range(5)] == [1, 2, 4, 8, 10]
        assert limiter.num_requeues("a") == 5
        assert limiter.when("b") == 1

    def test_forget_resets_backoff(self):
        limiter = ItemExponentialFailureRateLimiter(base_delay=1, max_delay=10)
        limiter.when("a")
        limiter.when("a")
        limiter.forget("a")
        assert limiter.num_requeues("a") == 0
        assert limiter.when("a") == 1

    def test_backoff_does_not_overflow(self):
        limiter = ItemExponentialFailureRateLimiter(base_delay=1, max_delay=1000)
        for _ in range(100):
            delay = limiter.when("a")
        assert delay == 1000

    def test_bucket(self):
        limiter = BucketRateLimiter(qps=1, burst=2, clock=lambda: 0.0)
        assert limiter.when("a") == 0
        assert limiter.when("b") == 0
        assert limiter.when("c") == pytest.approx(1.0)

    def test_max_of(self):
        limiter = MaxOfRateLimiter(
            ItemExponentialFailureRateLimiter(base_delay=4, max_delay=10),
            BucketRateLimiter(qps=1, burst=10, clock=lambda: 0.0),
        )
        assert limiter.when("a") == 4
        assert limiter.num_requeues("a") == 1


class TestWorkQueue:
    def test_add_deduplicates_pending_keys(self):
        async def run():
            queue = WorkQueue()
            queue.add("ns/a")
            queue.add("ns/a")
            queue.add("ns/b")
            assert len(queue) == 2
            assert await queue.get() == "ns/a"
            assert await queue.get() == "ns/b"

        asyncio.run(run())

    def test_key_is_never_handed_out_twice(self):
        async def run():
            queue = WorkQueue()
            queue.add("ns/a")
            key = await queue.get()
            assert queue.is_processing(key)
            # re-added while processing: held back until done
            queue.add("ns/a")
            assert len(queue) == 0
            assert queue.is_pending("ns/a")
            queue.done(key)
            assert len(queue) == 1
            assert await queue.get() == "ns/a"

        asyncio.run(run())

    def test_done_without_readd(self):
        async def run():
            queue = WorkQueue()
            queue.add("ns/a")
            key = await queue.get()
            queue.done(key)
            assert len(queue) == 0
            assert not queue.is_processing(key)

        asyncio.run(run())

    def test_rate_limited_requeue(self):
        async def run():
            queue = WorkQueue(
                rate_limiter=ItemExponentialFailureRateLimiter(base_delay=0.01, max_delay=1)
            )
            queue.add_rate_limited("ns/a")
            assert len(queue) == 0
            assert await asyncio.wait_for(queue.get(), 1) == "ns/a"
            assert queue.num_requeues("ns/a") == 1
            queue.forget("ns/a")
            assert queue.num_requeues("ns/a") == 0

        asyncio.run(run())

    def test_shutdown(self):
        async def run():
            queue = WorkQueue()
            queue.shutdown()
            queue.add("ns/a")
            assert len(queue) == 1  # the wake-up sentinel only
            with pytest.raises(ShutDown):
                await queue.get()

        asyncio.run(run())

    def test_sensor_hooks(self):
        async def run():
            sensor = Mock()
            queue = WorkQueue(sensor=sensor)
            queue.add("ns/a")
            await queue.get()
            sensor.on_reconcile_queued.assert_called_once_with("ns/a", 1)
            assert sensor.on_reconcile_dequeued.call_args.args[0] == "ns/a"

        asyncio.run(run())


class TestDispatcher:
    def test_handler_success_forgets_key(self):
        async def run():
            queue = WorkQueue()
            handled = []

            async def handler(key):
                handled.append(key)

            dispatcher = Dispatcher(queue, handler, workers=2)
            dispatcher.start()
            queue.add("ns/a")
            queue.add("ns/b")
            await asyncio.sleep(0.05)
            await dispatcher.stop(timeout=1)
            return handled

        assert sorted(asyncio.run(run())) == ["ns/a", "ns/b"]

    def test_handler_failure_is_retried(self):
        async def run():
            queue = WorkQueue(
                rate_limiter=ItemExponentialFailureRateLimiter(base_delay=0.001, max_delay=0.01)
            )
            attempts = []

            async def handler(key):
                attempts.append(key)
                if len(attempts) < 3:
                    raise RuntimeError("transient")

            dispatcher = Dispatcher(queue, handler, workers=1)
            dispatcher.start()
            queue.add("ns/a")
            for _ in range(100):
                if len(attempts) >= 3:
                    break
                await asyncio.sleep(0.01)
            await asyncio.sleep(0.01)
            await dispatcher.stop(timeout=1)
            return attempts, queue.num_requeues("ns/a")

        attempts, requeues = asyncio.run(run())
        assert attempts == ["ns/a", "ns/a", "ns/a"]
        assert requeues == 0

    def test_same_key_is_processed_exclusively(self):
        async def run():
            queue = WorkQueue()
            running = set()
            overlaps = []

            async def handler(key):
                if key in running:
                    overlaps.append(key)
                running.add(key)
                await asyncio.sleep(0.02)
                running.discard(key)

            dispatcher = Dispatcher(queue, handler, workers=4)
            dispatcher.start()
            for _ in range(5):
                queue.add("ns/a")
                await asyncio.sleep(0.005)
            await asyncio.sleep(0.1)
            await dispatcher.stop(timeout=1)
            return overlaps

        assert asyncio.run(run()) == []

    def test_stop_waits_for_in_flight_handler(self):
        async def run():
            queue = WorkQueue()
            finished = []

            async def handler(key):
                await asyncio.sleep(0.05)
                finished.append(key)

            dispatcher = Dispatcher(queue, handler, workers=1)
            dispatcher.start()
            queue.add("ns/a")
            await asyncio.sleep(0.01)
            await dispatcher.stop(timeout=1)
            assert not dispatcher.running
            return finished

        assert asyncio.run(run()) == ["ns/a"]
