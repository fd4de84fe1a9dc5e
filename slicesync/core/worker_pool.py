"""Bounded-concurrency worker pool for per-file tasks.

Tasks are only enqueued by ``submit``; nothing is dispatched until
``run`` is iterated, so the total task count is fixed before the first
task starts and progress denominators never grow. Download and verify
runs each use their own pool.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Coroutine
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog

from slicesync.core.errors import OperationCancelled

logger = structlog.get_logger()

T = TypeVar("T")

ProgressCallback = Callable[[int, int], None]


@dataclass
class PoolResult(Generic[T]):
    """Outcome of one pool task.

    Attributes:
        key: Identifier the task was submitted under
        value: Return value of the task, None on failure
        error: Recoverable exception raised by the task, if any
    """

    key: str
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class _QueueItem(Generic[T]):
    key: str
    coro_factory: Callable[[], Coroutine[Any, Any, T]]


@dataclass
class _Fatal:
    error: BaseException


class WorkerPool(Generic[T]):
    """Runs submitted coroutines with at most ``max_concurrency`` in flight.

    Exceptions that are instances of ``recoverable`` are captured in the
    task's ``PoolResult``; any other exception stops the run, cancels the
    remaining workers and propagates out of ``run``.

    Args:
        max_concurrency: Maximum tasks running at once
        recoverable: Exception types confined to a single task
        cancel_event: Optional event that aborts the run when set
    """

    def __init__(
        self,
        max_concurrency: int = 8,
        recoverable: tuple[type[BaseException], ...] = (),
        cancel_event: asyncio.Event | None = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.max_concurrency = max_concurrency
        self.recoverable = recoverable
        self.cancel_event = cancel_event

        self._queue: asyncio.Queue[_QueueItem[T]] = asyncio.Queue()
        self._progress_callback: ProgressCallback | None = None
        self._completed = 0
        self._total = 0
        self._running = False

    @property
    def progress_callback(self) -> ProgressCallback | None:
        """Get progress callback."""
        return self._progress_callback

    @progress_callback.setter
    def progress_callback(self, callback: ProgressCallback | None) -> None:
        """Set progress callback: (completed, total)."""
        self._progress_callback = callback

    @property
    def pending(self) -> int:
        """Tasks submitted but not yet started."""
        return self._queue.qsize()

    @property
    def total(self) -> int:
        return self._total

    def submit(self, key: str, coro_factory: Callable[[], Coroutine[Any, Any, T]]) -> None:
        """Enqueue a task without starting it.

        Args:
            key: Identifier reported back in the task's result
            coro_factory: Callable that creates the task coroutine
        """
        if self._running:
            raise RuntimeError("Cannot submit to a running pool")
        self._queue.put_nowait(_QueueItem(key=key, coro_factory=coro_factory))

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    async def run(self) -> AsyncIterator[PoolResult[T]]:
        """Process every submitted task, yielding results as they complete.

        Yields:
            PoolResult for each finished task

        Raises:
            OperationCancelled: If the cancel event was set
        """
        self._total = self._queue.qsize()
        self._completed = 0
        if self._total == 0:
            return

        self._running = True
        result_queue: asyncio.Queue[PoolResult[T] | _Fatal | None] = asyncio.Queue()
        num_workers = min(self.max_concurrency, self._total)

        async def worker() -> None:
            try:
                while not self._cancelled():
                    try:
                        item = self._queue.get_nowait()
                    except asyncio.QueueEmpty:
                        break

                    try:
                        value = await item.coro_factory()
                        result: PoolResult[T] = PoolResult(key=item.key, value=value)
                    except Exception as e:
                        if not isinstance(e, self.recoverable):
                            result_queue.put_nowait(_Fatal(e))
                            return
                        logger.debug("pool_task_failed", key=item.key, error=str(e))
                        result = PoolResult(key=item.key, error=e)

                    self._completed += 1
                    if self._progress_callback:
                        self._progress_callback(self._completed, self._total)
                    result_queue.put_nowait(result)
            finally:
                result_queue.put_nowait(None)  # Signal worker done

        workers = [asyncio.create_task(worker()) for _ in range(num_workers)]
        watcher: asyncio.Task[None] | None = None
        if self.cancel_event is not None:
            watcher = asyncio.create_task(self._watch_cancel(workers))

        try:
            workers_done = 0
            while workers_done < num_workers:
                item = await result_queue.get()
                if item is None:
                    workers_done += 1
                    continue
                if isinstance(item, _Fatal):
                    raise item.error
                yield item

            if self._cancelled():
                raise OperationCancelled(
                    f"Cancelled after {self._completed} of {self._total} tasks"
                )
        finally:
            self._running = False
            for task in workers:
                task.cancel()
            if watcher is not None:
                watcher.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            if watcher is not None:
                await asyncio.gather(watcher, return_exceptions=True)

    async def _watch_cancel(self, workers: list[asyncio.Task[None]]) -> None:
        assert self.cancel_event is not None
        await self.cancel_event.wait()
        logger.info("pool_cancelled", completed=self._completed, total=self._total)
        for task in workers:
            task.cancel()
