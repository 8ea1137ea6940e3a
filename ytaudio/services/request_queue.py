"""Serial request queue that spaces out calls to YouTube.

One worker drains a bounded FIFO: it runs a task to completion, settles the
task's future, sleeps for the configured delay, then takes the next task.
So at most one extraction is in flight and consecutive extractions are at
least `delay_seconds` apart. A full queue rejects new work with
QueueFullError instead of growing without bound.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from ytaudio.services import logger
from ytaudio.utils.exceptions import QueueFullError


def _retrieve_outcome(future: asyncio.Future) -> None:
    # A caller that stopped waiting leaves nobody else to read the exception
    if not future.cancelled():
        future.exception()


@dataclass
class QueueItem:
    """A deferred task and the future its caller is waiting on."""
    task: Callable[[], Awaitable[Any]]
    future: asyncio.Future
    label: str = ""
    enqueued_at: float = field(default_factory=time.monotonic)


class RequestQueue:
    """
    Bounded single-consumer FIFO with a fixed inter-task delay.

    Usage:
        queue = RequestQueue(delay_seconds=1.0, max_depth=100)
        queue.start()
        info = await queue.submit(lambda: extract(video_id), label=video_id)
        await queue.stop()
    """

    def __init__(self, delay_seconds: float = 1.0, max_depth: int = 100):
        self.delay_seconds = delay_seconds
        self.max_depth = max_depth
        self._items: asyncio.Queue = asyncio.Queue(maxsize=max_depth)
        self._worker: Optional[asyncio.Task] = None
        self._in_flight: Optional[QueueItem] = None
        self._stats = {
            "processed": 0,
            "failed": 0,
            "rejected": 0,
        }

    @property
    def waiting(self) -> int:
        """Tasks queued but not started."""
        return self._items.qsize()

    @property
    def size(self) -> int:
        """Tasks queued plus the one in flight."""
        return self.waiting + (1 if self._in_flight is not None else 0)

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        """Start the drain loop on the running event loop."""
        if not self.running:
            self._worker = asyncio.get_running_loop().create_task(self._drain())
            logger.info(
                f"Request queue started (delay={self.delay_seconds}s, max_depth={self.max_depth})",
                "queue",
            )

    async def stop(self) -> None:
        """Stop the drain loop and cancel anything still waiting."""
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        cancelled = 0
        while not self._items.empty():
            item = self._items.get_nowait()
            if not item.future.done():
                item.future.cancel()
                cancelled += 1
        if cancelled:
            logger.warn(f"Request queue stopped with {cancelled} pending tasks", "queue")

    def enqueue(self, task: Callable[[], Awaitable[Any]], label: str = "") -> asyncio.Future:
        """
        Queue a task and return the future that settles with its outcome.

        Raises:
            QueueFullError: If max_depth tasks are already waiting
        """
        self.start()
        future = asyncio.get_running_loop().create_future()
        future.add_done_callback(_retrieve_outcome)
        try:
            self._items.put_nowait(QueueItem(task=task, future=future, label=label))
        except asyncio.QueueFull:
            self._stats["rejected"] += 1
            logger.warn(
                f"Request queue full, rejecting {label or 'task'}",
                "queue",
                {"video_id": label, "depth": self.waiting, "max_depth": self.max_depth},
            )
            raise QueueFullError(f"Request queue is full ({self.max_depth} waiting)")
        return future

    async def submit(self, task: Callable[[], Awaitable[Any]], label: str = "") -> Any:
        """Queue a task and wait for its result.

        A cancelled caller stops waiting, but the queued task still runs.
        """
        return await asyncio.shield(self.enqueue(task, label))

    async def _drain(self) -> None:
        while True:
            item = await self._items.get()
            self._in_flight = item
            wait_time = time.monotonic() - item.enqueued_at
            try:
                result = await item.task()
            except asyncio.CancelledError:
                item.future.cancel()
                raise
            except Exception as e:
                self._stats["failed"] += 1
                if not item.future.done():
                    item.future.set_exception(e)
            else:
                self._stats["processed"] += 1
                if not item.future.done():
                    item.future.set_result(result)
            finally:
                self._in_flight = None
                self._items.task_done()

            logger.debug(
                f"Queue task done: {item.label or 'task'}",
                "queue",
                {"video_id": item.label, "waited_seconds": round(wait_time, 3), "remaining": self.waiting},
            )
            await asyncio.sleep(self.delay_seconds)

    def get_stats(self) -> dict:
        return {
            "size": self.size,
            "waiting": self.waiting,
            "max_depth": self.max_depth,
            "delay_seconds": self.delay_seconds,
            "running": self.running,
            **self._stats,
        }
