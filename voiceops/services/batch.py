"""
BatchProcessor - Smooths request bursts into rate-limit friendly groups.

Submitted requests wait in a FIFO queue. A single drain task removes up to
``batch_size`` entries at a time, dispatches them concurrently, settles each
entry's future from its own outcome and pauses ``batch_delay`` seconds before
the next group. The drain task exits when the queue is empty and is restarted
by the next submit.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, TypeVar

from loguru import logger

from voiceops.services.errors import BatchDispatchError, ProcessorClosedError
from voiceops.services.request import RequestDescriptor

T = TypeVar("T")

DispatchFn = Callable[[RequestDescriptor], Awaitable[T]]


@dataclass
class QueueEntry(Generic[T]):
    """A queued request and the future its caller is waiting on."""

    descriptor: RequestDescriptor
    future: "asyncio.Future[T]"
    enqueued_at: float = field(default_factory=time.monotonic)


class BatchProcessor(Generic[T]):
    """
    Queue that drains requests in fixed-size, spaced-out batches.

    Usage:
        processor = BatchProcessor(client.request, batch_size=5, batch_delay=0.1)

        future = processor.submit(RequestDescriptor("GET", "/call/abc"))
        result = await future
    """

    def __init__(
        self,
        dispatch: DispatchFn[T],
        batch_size: int = 5,
        batch_delay: float = 0.1,
        name: str = "vapi",
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if batch_delay < 0:
            raise ValueError("batch_delay must not be negative")

        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.name = name

        self._dispatch = dispatch
        self._queue: deque[QueueEntry[T]] = deque()
        self._in_flight: list[QueueEntry[T]] = []
        self._processing = False
        self._drain_task: asyncio.Task[None] | None = None
        self._closed = False
        self._stats = BatchStats()

    @property
    def pending(self) -> int:
        """Number of entries waiting in the queue."""
        return len(self._queue)

    @property
    def is_processing(self) -> bool:
        return self._processing

    def submit(self, descriptor: RequestDescriptor) -> "asyncio.Future[T]":
        """
        Queue a request without waiting for it.

        Must be called from a running event loop.

        Returns:
            Future resolved with the dispatch result or rejected with its error
        """
        if self._closed:
            raise ProcessorClosedError(
                f"Batch processor '{self.name}' is closed", service_id=self.name
            )

        loop = asyncio.get_running_loop()
        entry: QueueEntry[T] = QueueEntry(descriptor, loop.create_future())
        self._queue.append(entry)
        self._stats.submitted += 1

        if not self._processing:
            self._processing = True
            self._drain_task = loop.create_task(self._drain())
        return entry.future

    async def _drain(self) -> None:
        """Drain the queue batch by batch until it is empty."""
        try:
            while self._queue:
                batch = self._take_batch()
                self._in_flight = batch
                self._stats.record_round(len(batch))
                logger.debug(
                    f"[{self.name}] Dispatching batch of {len(batch)} "
                    f"({len(self._queue)} still queued)"
                )

                try:
                    await self._dispatch_batch(batch)
                except Exception as e:
                    logger.error(f"[{self.name}] Batch dispatch failed: {e}")
                    error = BatchDispatchError(
                        f"Batch dispatch failed: {e}", service_id=self.name
                    )
                    error.__cause__ = e
                    for entry in batch:
                        self._reject(entry, error)
                self._in_flight = []

                # Delay between batches to avoid rate limiting
                if self._queue:
                    await asyncio.sleep(self.batch_delay)
        finally:
            self._processing = False
            self._drain_task = None

    def _take_batch(self) -> list[QueueEntry[T]]:
        """Remove the next batch from the queue. Must not await."""
        count = min(self.batch_size, len(self._queue))
        return [self._queue.popleft() for _ in range(count)]

    async def _dispatch_batch(self, batch: list[QueueEntry[T]]) -> None:
        """Start every request of the batch, then settle each one on its own."""
        calls: list[Awaitable[T]] = []
        try:
            for entry in batch:
                calls.append(self._dispatch(entry.descriptor))
        except Exception:
            for call in calls:
                if asyncio.iscoroutine(call):
                    call.close()
            raise

        await asyncio.gather(
            *(self._settle(entry, call) for entry, call in zip(batch, calls))
        )

    async def _settle(self, entry: QueueEntry[T], call: Awaitable[T]) -> None:
        try:
            result = await call
        except Exception as e:
            self._reject(entry, e)
        else:
            self._resolve(entry, result)

    def _resolve(self, entry: QueueEntry[T], result: T) -> None:
        if entry.future.done():
            return
        entry.future.set_result(result)
        self._stats.resolved += 1

    def _reject(self, entry: QueueEntry[T], error: BaseException) -> None:
        if entry.future.done():
            return
        entry.future.set_exception(error)
        self._stats.rejected += 1

    async def join(self) -> None:
        """Wait until the queue has been fully drained."""
        while self._drain_task is not None:
            task = self._drain_task
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                # Drain task cancelled by close(); a closed processor is idle
                if self._closed and task.cancelled():
                    return
                raise

    async def close(self) -> None:
        """Stop draining and reject everything that has not settled yet."""
        self._closed = True
        task = self._drain_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        leftovers = self._in_flight + list(self._queue)
        self._in_flight = []
        self._queue.clear()
        for entry in leftovers:
            self._reject(
                entry,
                ProcessorClosedError(
                    f"Batch processor '{self.name}' closed before request completed",
                    service_id=self.name,
                ),
            )
        if leftovers:
            logger.warning(f"[{self.name}] Closed with {len(leftovers)} unsettled requests")

    def get_stats(self) -> "BatchStats":
        """Get batch processing statistics."""
        self._stats.pending = len(self._queue)
        return self._stats


class BatchStats:
    """Statistics for batch processing."""

    def __init__(self, history: int = 50):
        self.submitted: int = 0
        self.resolved: int = 0
        self.rejected: int = 0
        self.rounds: int = 0
        self.pending: int = 0
        self.recent_batches: deque[int] = deque(maxlen=history)

    def record_round(self, size: int) -> None:
        self.rounds += 1
        self.recent_batches.append(size)

    @property
    def settled(self) -> int:
        return self.resolved + self.rejected

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "submitted": self.submitted,
            "resolved": self.resolved,
            "rejected": self.rejected,
            "pending": self.pending,
            "rounds": self.rounds,
            "recent_batches": list(self.recent_batches),
        }
