"""Bounded, priority-ordered request queue with paced execution.

Entries are dispatched to a fixed-size worker pool in priority order
(lower value first, ties by arrival). After each task a worker pauses for
the entry's cooldown before taking the next one, pacing bursts towards the
upstream. Enqueueing beyond capacity fails immediately instead of waiting.
"""

import asyncio
import heapq
import itertools
import logging
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable, List, Optional, Set

from callguard.domain.models.calls import QueueStats
from callguard.domain.models.errors import QueueFullError, QueueTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100 # Maximum live entries before rejecting new requests
DEFAULT_CONCURRENCY = 1 # Process one request at a time by default
DEFAULT_COOLDOWN_SECONDS = 0.2 # Pause between requests

TaskFactory = Callable[[], Awaitable[Any]]


class EntryState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    FINISHED = "finished"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class QueueEntry:
    """A queued task together with its continuation and scheduling data."""

    def __init__(
        self,
        task_id: str,
        task: TaskFactory,
        priority: int,
        sequence: int,
        cooldown: float,
        future: asyncio.Future,
    ):
        self.task_id = task_id
        self.task = task
        self.priority = priority
        self.sequence = sequence
        self.cooldown = cooldown
        self.future = future
        self.state = EntryState.QUEUED
        self.timeout_handle: Optional[asyncio.TimerHandle] = None

    def __lt__(self, other: "QueueEntry") -> bool:
        return (self.priority, self.sequence) < (other.priority, other.sequence)

    def cancel_timeout(self) -> None:
        if self.timeout_handle is not None:
            self.timeout_handle.cancel()
            self.timeout_handle = None


class RequestQueue:
    """Priority queue feeding a fixed-size worker pool, one instance per upstream."""

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        concurrency: int = DEFAULT_CONCURRENCY,
        default_cooldown: float = DEFAULT_COOLDOWN_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        name: str = "upstream",
    ):
        """Initializes the queue.

        Args:
            capacity: Maximum number of live (queued or running) entries.
            concurrency: Number of workers dispatching entries.
            default_cooldown: Seconds a worker pauses after each task.
            sleep: Coroutine used for the cooldown pause.
            name: Upstream name used in log messages and errors.
        """
        if capacity <= 0 or concurrency <= 0:
            raise ValueError("Queue capacity and concurrency must be positive.")
        if default_cooldown < 0:
            raise ValueError("Queue cooldown cannot be negative.")

        self.capacity = capacity
        self.concurrency = concurrency
        self.default_cooldown = default_cooldown
        self.name = name
        self._sleep = sleep
        self._heap: List[QueueEntry] = []
        self._sequence = itertools.count()
        self._queued = 0
        self._running = 0
        self._workers = 0
        self._worker_tasks: Set[asyncio.Task] = set()
        self._paused = False
        self._processed = 0
        logger.info(
            f"RequestQueue initialized for '{name}': capacity={capacity}, "
            f"concurrency={concurrency}, cooldown={default_cooldown}s"
        )

    def __len__(self) -> int:
        return self._queued

    @property
    def live_entries(self) -> int:
        return self._queued + self._running

    def submit(
        self,
        task: TaskFactory,
        priority: int = 0,
        cooldown: Optional[float] = None,
        timeout: Optional[float] = None,
        task_id: Optional[str] = None,
    ) -> asyncio.Future:
        """Adds a task to the queue and returns the future of its result.

        Must be called from a running event loop.

        Args:
            task: Zero-argument coroutine function performing the work.
            priority: Lower values are dispatched first.
            cooldown: Pause after this task completes (default_cooldown if None).
            timeout: Seconds the entry may wait for dispatch before failing.
            task_id: Identifier used in logs.

        Raises:
            QueueFullError: Immediately, if the queue is at capacity.
        """
        if self.live_entries >= self.capacity:
            logger.warning(f"Request queue for '{self.name}' is full ({self.capacity}), rejecting request")
            raise QueueFullError("Request queue is full. Please try again later.", upstream=self.name)

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        entry = QueueEntry(
            task_id=task_id or f"task-{id(future):x}",
            task=task,
            priority=priority,
            sequence=next(self._sequence),
            cooldown=self.default_cooldown if cooldown is None else cooldown,
            future=future,
        )
        if timeout is not None and timeout > 0:
            entry.timeout_handle = loop.call_later(timeout, self._expire, entry, timeout)
        future.add_done_callback(partial(self._on_future_done, entry))

        heapq.heappush(self._heap, entry)
        self._queued += 1
        logger.info(
            f"Request added to queue: task={entry.task_id}, priority={priority}, "
            f"queue_length={self._queued}, running={self._running}"
        )
        self._spawn_workers(loop)
        return future

    async def enqueue(
        self,
        task: TaskFactory,
        priority: int = 0,
        cooldown: Optional[float] = None,
        timeout: Optional[float] = None,
        task_id: Optional[str] = None,
    ) -> Any:
        """Queues a task and waits for its outcome.

        Raises:
            QueueFullError: If the queue is at capacity (no waiting happens).
            QueueTimeoutError: If the entry was not dispatched within timeout.
            Exception: Whatever the task itself raised.
        """
        future = self.submit(task, priority=priority, cooldown=cooldown, timeout=timeout, task_id=task_id)
        return await future

    def pause(self) -> None:
        """Finishes the current task but dispatches nothing new."""
        self._paused = True
        logger.info(f"Queue '{self.name}' paused")

    def resume(self) -> None:
        self._paused = False
        logger.info(f"Queue '{self.name}' resumed")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Workers start with the next submit
            return
        self._spawn_workers(loop)

    @property
    def paused(self) -> bool:
        return self._paused

    def stats(self) -> QueueStats:
        return QueueStats(
            length=self._queued,
            running=self._running,
            concurrency=self.concurrency,
            capacity=self.capacity,
            paused=self._paused,
            processed=self._processed,
        )

    # --- Internals ---

    def _spawn_workers(self, loop: asyncio.AbstractEventLoop) -> None:
        while not self._paused and self._queued > 0 and self._workers < self.concurrency:
            self._workers += 1
            worker = loop.create_task(self._worker())
            self._worker_tasks.add(worker)
            worker.add_done_callback(self._worker_tasks.discard)

    def _pop_next(self) -> Optional[QueueEntry]:
        while self._heap:
            entry = heapq.heappop(self._heap)
            if entry.state is EntryState.QUEUED:
                return entry
        return None

    async def _worker(self) -> None:
        try:
            while not self._paused:
                entry = self._pop_next()
                if entry is None:
                    break
                await self._run(entry)
                if entry.cooldown > 0:
                    await self._sleep(entry.cooldown)
        finally:
            self._workers -= 1

    async def _run(self, entry: QueueEntry) -> None:
        entry.cancel_timeout()
        entry.state = EntryState.RUNNING
        self._queued -= 1
        self._running += 1
        logger.info(
            f"Processing queued request: task={entry.task_id}, "
            f"queue_length={self._queued}, running={self._running}"
        )
        try:
            result = await entry.task()
        except Exception as e:
            logger.error(f"Error processing queued request {entry.task_id}: {e}")
            if not entry.future.done():
                entry.future.set_exception(e)
        else:
            if not entry.future.done():
                entry.future.set_result(result)
        finally:
            entry.state = EntryState.FINISHED
            self._running -= 1
            self._processed += 1
            if not entry.future.done():
                entry.future.cancel()
            if self._queued == 0 and self._running == 0:
                logger.info(f"All requests for '{self.name}' have been processed")

    def _expire(self, entry: QueueEntry, timeout: float) -> None:
        if entry.state is not EntryState.QUEUED:
            return
        entry.state = EntryState.EXPIRED
        entry.timeout_handle = None
        self._queued -= 1
        self._prune()
        logger.warning(f"Queued request {entry.task_id} timed out after {timeout:g}s")
        if not entry.future.done():
            entry.future.set_exception(
                QueueTimeoutError(f"Request timed out after {timeout:g}s in queue", upstream=self.name)
            )

    def _on_future_done(self, entry: QueueEntry, future: asyncio.Future) -> None:
        if future.cancelled() and entry.state is EntryState.QUEUED:
            entry.state = EntryState.CANCELLED
            entry.cancel_timeout()
            self._queued -= 1
            self._prune()
            logger.debug(f"Queued request {entry.task_id} cancelled before dispatch")

    def _prune(self) -> None:
        # Dead entries are skipped on pop; rebuild once they pile up
        if len(self._heap) > 2 * self.capacity:
            self._heap = [entry for entry in self._heap if entry.state is EntryState.QUEUED]
            heapq.heapify(self._heap)
