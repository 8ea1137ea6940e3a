import asyncio
import gc
import time

import pytest

from ytaudio.services.request_queue import RequestQueue
from ytaudio.utils.exceptions import QueueFullError


def test_tasks_run_fifo_spaced_and_never_overlap():
    delay = 0.05
    events = []
    active = {"count": 0, "max": 0}

    def make_task(n):
        async def task():
            active["count"] += 1
            active["max"] = max(active["max"], active["count"])
            events.append(("start", n, time.monotonic()))
            await asyncio.sleep(0.01)
            events.append(("end", n, time.monotonic()))
            active["count"] -= 1
            return n

        return task

    async def scenario():
        queue = RequestQueue(delay_seconds=delay, max_depth=10)
        futures = [queue.enqueue(make_task(n), label=str(n)) for n in range(4)]
        results = await asyncio.gather(*futures)
        await queue.stop()
        return results

    results = asyncio.run(scenario())

    assert results == [0, 1, 2, 3]
    assert active["max"] == 1
    starts = [e for e in events if e[0] == "start"]
    ends = [e for e in events if e[0] == "end"]
    assert [e[1] for e in starts] == [0, 1, 2, 3]
    for previous_end, next_start in zip(ends, starts[1:]):
        # Allow for timer granularity on the event loop
        assert next_start[2] - previous_end[2] >= delay * 0.9


def test_failed_task_rejects_its_future_and_queue_continues():
    async def boom():
        raise ValueError("bad")

    async def fine():
        return "ok"

    async def scenario():
        queue = RequestQueue(delay_seconds=0, max_depth=10)
        failing = queue.enqueue(boom)
        succeeding = queue.enqueue(fine)
        with pytest.raises(ValueError):
            await failing
        result = await succeeding
        stats = queue.get_stats()
        await queue.stop()
        return result, stats

    result, stats = asyncio.run(scenario())

    assert result == "ok"
    assert stats["failed"] == 1
    assert stats["processed"] == 1


def test_full_queue_rejects_new_tasks():
    async def scenario():
        queue = RequestQueue(delay_seconds=0, max_depth=2)
        gate = asyncio.Event()

        async def blocked():
            await gate.wait()

        queue.enqueue(blocked)
        await asyncio.sleep(0)  # worker picks up the first task
        queue.enqueue(blocked)
        queue.enqueue(blocked)
        with pytest.raises(QueueFullError):
            queue.enqueue(blocked)
        size = queue.size
        rejected = queue.get_stats()["rejected"]
        await queue.stop()
        return size, rejected

    size, rejected = asyncio.run(scenario())

    assert size == 3
    assert rejected == 1


def test_submit_returns_task_result():
    async def scenario():
        queue = RequestQueue(delay_seconds=0, max_depth=5)

        async def task():
            return 42

        result = await queue.submit(task, label="x")
        await queue.stop()
        return result

    assert asyncio.run(scenario()) == 42


def test_stop_cancels_pending_tasks():
    async def scenario():
        queue = RequestQueue(delay_seconds=0, max_depth=5)
        gate = asyncio.Event()

        async def blocked():
            await gate.wait()

        queue.enqueue(blocked)
        await asyncio.sleep(0)
        pending = queue.enqueue(blocked)
        await queue.stop()
        return pending.cancelled(), queue.running

    cancelled, running = asyncio.run(scenario())

    assert cancelled is True
    assert running is False


def test_abandoned_submit_does_not_leak_unretrieved_exception():
    async def scenario():
        loop = asyncio.get_running_loop()
        reported = []
        loop.set_exception_handler(lambda _loop, context: reported.append(context))
        queue = RequestQueue(delay_seconds=0, max_depth=5)

        async def boom():
            await asyncio.sleep(0.01)
            raise ValueError("upstream failed after the caller left")

        caller = asyncio.ensure_future(queue.submit(boom, label="gone"))
        await asyncio.sleep(0)
        caller.cancel()
        await asyncio.sleep(0.05)
        await queue.stop()
        gc.collect()
        await asyncio.sleep(0)
        return caller.cancelled(), queue.get_stats()["failed"], reported

    cancelled, failed, reported = asyncio.run(scenario())

    assert cancelled is True
    assert failed == 1
    assert reported == []
