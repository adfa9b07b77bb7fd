"""
Processing Queue Manager
========================

Bounded-concurrency task queue with exponential-backoff retry, rolling
latency statistics and graceful drain.

The pending list, the active set, the delayed-retry map and the counters are
guarded together by a single lock; every mutation goes through it.
"""

import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Set

from docwatch.utils.logging_config import get_logger, new_correlation_id, set_correlation_id

logger = get_logger(__name__)

# Maximum number of latency samples kept for the rolling average
MAX_LATENCY_SAMPLES = 100

TimerFactory = Callable[..., threading.Timer]


@dataclass
class QueueTask:
    """A unit of work owned by the queue.

    Attributes:
        id: Unique identifier (the file path).
        work: Zero-argument callable performing the work.
        attempt: Number of failed attempts so far (managed by the queue).
    """

    id: str
    work: Callable[[], Any]
    attempt: int = 0

    def next_attempt(self) -> "QueueTask":
        """Copy of this task for the following retry."""
        return QueueTask(id=self.id, work=self.work, attempt=self.attempt + 1)


@dataclass
class QueueStats:
    """Snapshot of queue statistics."""

    pending: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    total_processed: int = 0
    average_latency_ms: int = 0

    def to_dict(self) -> Dict[str, int]:
        """Convert stats to the wire dictionary."""
        return {
            "pending": self.pending,
            "active": self.active,
            "completed": self.completed,
            "failed": self.failed,
            "totalProcessed": self.total_processed,
            "averageLatencyMs": self.average_latency_ms,
        }


class TaskQueue:
    """Runs tasks with bounded concurrency, retries and drain support.

    Features:
    - FIFO dispatch up to the concurrency ceiling
    - Exponential backoff retry (``retry_delay * 2 ** attempt``)
    - Permanent failure hook once retries are exhausted
    - Pause/resume and drain for graceful shutdown
    """

    def __init__(
        self,
        concurrency: int = 2,
        retry_attempts: int = 3,
        retry_delay: float = 5.0,
        on_permanent_failure: Optional[Callable[[QueueTask, BaseException], None]] = None,
        on_stats: Optional[Callable[[QueueStats], None]] = None,
        timer_factory: TimerFactory = threading.Timer,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the queue.

        Args:
            concurrency: Maximum number of tasks running at once.
            retry_attempts: Retries allowed after the first failure.
            retry_delay: Base retry delay in seconds.
            on_permanent_failure: Called with the task and its last error
                                  when it will not be retried again.
            on_stats: Receives a fresh stats snapshot after every attempt.
            timer_factory: Factory with the ``threading.Timer`` signature,
                           used for retry delays.
            clock: Monotonic clock used for latency measurement.
        """
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")

        self.concurrency = concurrency
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.on_permanent_failure = on_permanent_failure
        self.on_stats = on_stats
        self._timer_factory = timer_factory
        self._clock = clock

        self._executor = ThreadPoolExecutor(
            max_workers=concurrency, thread_name_prefix="TaskQueue"
        )
        self._lock = threading.Lock()
        self._pending: Deque[QueueTask] = deque()
        self._active: Set[str] = set()
        self._delayed: Dict[str, threading.Timer] = {}
        self._latencies: Deque[float] = deque(maxlen=MAX_LATENCY_SAMPLES)
        self._completed = 0
        self._failed = 0
        self._paused = False
        self._drain_waiters: List[Future] = []

    def enqueue(self, task: QueueTask) -> bool:
        """Add a task to the queue without blocking.

        Args:
            task: The task to run.

        Returns:
            False if a task with the same id is already pending, waiting for
            a retry, or running.
        """
        with self._lock:
            if self._is_live(task.id):
                logger.debug(f"Task already queued, ignoring: {task.id}", extra={"task_id": task.id})
                return False
            self._pending.append(task)
            pending_count = len(self._pending)

        logger.debug(
            f"Task enqueued: {task.id} (pending={pending_count})",
            extra={"task_id": task.id, "attempt": task.attempt},
        )
        self._dispatch()
        return True

    def get_stats(self) -> QueueStats:
        """Get a snapshot of the queue statistics."""
        with self._lock:
            return self._stats_locked()

    def drain(self) -> Future:
        """Wait for all pending, delayed and active tasks to finish.

        Returns:
            A future resolved once the queue is empty; already resolved if it
            is empty now.
        """
        future: Future = Future()
        with self._lock:
            if self._is_empty():
                future.set_result(None)
            else:
                self._drain_waiters.append(future)
        return future

    def pause(self) -> None:
        """Stop dispatching new tasks; running tasks finish normally."""
        with self._lock:
            self._paused = True
            pending, active = len(self._pending), len(self._active)
        logger.info(f"Queue paused (pending={pending}, active={active})")

    def resume(self) -> None:
        """Resume dispatching after a pause."""
        with self._lock:
            self._paused = False
            pending = len(self._pending)
        logger.info(f"Queue resumed (pending={pending})")
        self._dispatch()

    def is_paused(self) -> bool:
        """Check whether dispatch is paused."""
        with self._lock:
            return self._paused

    def shutdown(self) -> None:
        """Release the worker threads once the queue is drained."""
        self._executor.shutdown(wait=True)

    def _dispatch(self) -> None:
        """Start pending tasks while capacity allows."""
        to_start: List[QueueTask] = []
        with self._lock:
            while (
                not self._paused
                and len(self._active) < self.concurrency
                and self._pending
            ):
                task = self._pending.popleft()
                self._active.add(task.id)
                to_start.append(task)

        for task in to_start:
            self._executor.submit(self._run_task, task)

    def _run_task(self, task: QueueTask) -> None:
        """Execute one task attempt and settle its outcome."""
        set_correlation_id(new_correlation_id())
        start = self._clock()
        logger.debug(
            f"Processing task: {task.id} (attempt {task.attempt + 1})",
            extra={"task_id": task.id, "attempt": task.attempt},
        )

        try:
            task.work()
        except Exception as e:
            self._handle_failure(task, e)
        else:
            self._handle_success(task, (self._clock() - start) * 1000)
        finally:
            self._publish_stats()
            self._dispatch()
            self._notify_drain()

    def _publish_stats(self) -> None:
        if self.on_stats is None:
            return
        try:
            self.on_stats(self.get_stats())
        except Exception as e:
            logger.error(f"Error in stats listener: {e}")

    def _handle_success(self, task: QueueTask, latency_ms: float) -> None:
        with self._lock:
            self._active.discard(task.id)
            self._latencies.append(latency_ms)
            self._completed += 1

        logger.info(
            f"Task completed: {task.id} ({latency_ms:.0f}ms)",
            extra={"task_id": task.id, "duration_ms": round(latency_ms, 2)},
        )

    def _handle_failure(self, task: QueueTask, error: BaseException) -> None:
        """Schedule a retry or record a permanent failure."""
        retryable = getattr(error, "retryable", True)

        if retryable and task.attempt < self.retry_attempts:
            delay = self.retry_delay * (2 ** task.attempt)
            retry = task.next_attempt()
            timer = self._timer_factory(delay, self._requeue, args=(retry,))
            timer.daemon = True
            with self._lock:
                self._active.discard(task.id)
                self._delayed[task.id] = timer
            logger.warning(
                f"Task failed, retry {retry.attempt}/{self.retry_attempts} "
                f"in {delay:.1f}s: {task.id} - {error}",
                extra={"task_id": task.id, "attempt": retry.attempt},
            )
            timer.start()
            return

        with self._lock:
            self._failed += 1

        logger.error(
            f"Task failed permanently after {task.attempt + 1} attempt(s): "
            f"{task.id} - {error}",
            extra={"task_id": task.id, "attempt": task.attempt},
        )

        # The task stays active until its failure has been handled
        try:
            if self.on_permanent_failure:
                self.on_permanent_failure(task, error)
        except Exception as hook_error:
            logger.error(f"Error in permanent failure handler for {task.id}: {hook_error}")
        finally:
            with self._lock:
                self._active.discard(task.id)

    def _requeue(self, task: QueueTask) -> None:
        """Move a delayed retry back into the pending list."""
        with self._lock:
            self._delayed.pop(task.id, None)
            self._pending.append(task)
        self._dispatch()

    def _notify_drain(self) -> None:
        with self._lock:
            if not self._is_empty() or not self._drain_waiters:
                return
            waiters, self._drain_waiters = self._drain_waiters, []

        for future in waiters:
            future.set_result(None)

    def _is_live(self, task_id: str) -> bool:
        return (
            task_id in self._active
            or task_id in self._delayed
            or any(t.id == task_id for t in self._pending)
        )

    def _is_empty(self) -> bool:
        return not self._pending and not self._active and not self._delayed

    def _stats_locked(self) -> QueueStats:
        average = sum(self._latencies) / len(self._latencies) if self._latencies else 0
        return QueueStats(
            pending=len(self._pending) + len(self._delayed),
            active=len(self._active),
            completed=self._completed,
            failed=self._failed,
            total_processed=self._completed + self._failed,
            average_latency_ms=round(average),
        )
