"""
Shutdown Coordination
=====================

Orderly shutdown of the watch process: stop accepting events, drop pending
debounce timers, let queued and in-flight work finish, then close the
health endpoint.
"""

from concurrent.futures import TimeoutError as FutureTimeoutError
from enum import Enum
from typing import Optional
import signal
import threading

from docwatch.monitoring.health import HealthMonitor
from docwatch.monitoring.queue_manager import QueueStats, TaskQueue
from docwatch.monitoring.watcher import Debouncer, FileWatcherService
from docwatch.utils.logging_config import get_logger

logger = get_logger(__name__)


class ShutdownState(Enum):
    """Lifecycle of the watch process."""
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


class ShutdownCoordinator:
    """Runs the shutdown sequence exactly once.

    Signal handlers only record the request; the main thread waits for it
    with ``wait_for_signal`` and then calls ``shutdown``. Concurrent or
    repeated ``shutdown`` calls block until the first one has finished.
    """

    def __init__(
        self,
        queue: TaskQueue,
        watcher: Optional[FileWatcherService] = None,
        debouncer: Optional[Debouncer] = None,
        health: Optional[HealthMonitor] = None,
        drain_timeout: Optional[float] = None,
    ):
        """Initialize the coordinator.

        Args:
            queue: Task queue to drain.
            watcher: Filesystem watcher to stop first.
            debouncer: Debouncer whose pending timers are cancelled.
            health: Health monitor to stop last.
            drain_timeout: Seconds to wait for the queue; None waits forever.
                           In-flight work is never cancelled.
        """
        self.queue = queue
        self.watcher = watcher
        self.debouncer = debouncer
        self.health = health
        self.drain_timeout = drain_timeout

        self._lock = threading.Lock()
        self._state = ShutdownState.RUNNING
        self._stopped = threading.Event()
        self._requested = threading.Event()
        self.received_signal: Optional[str] = None

    @property
    def state(self) -> ShutdownState:
        with self._lock:
            return self._state

    def install_signal_handlers(self) -> None:
        """Route SIGINT and SIGTERM to ``request_shutdown``.

        Must be called from the main thread.
        """
        signal.signal(signal.SIGINT, self._on_signal)
        signal.signal(signal.SIGTERM, self._on_signal)

    def _on_signal(self, signum, frame) -> None:
        self.received_signal = signal.Signals(signum).name
        self._requested.set()

    def request_shutdown(self) -> None:
        """Ask the main thread to shut down."""
        self._requested.set()

    def wait_for_signal(self, poll_interval: float = 0.5) -> Optional[str]:
        """Block until shutdown is requested.

        Returns:
            Name of the signal received, or None for a programmatic request.
        """
        while not self._requested.wait(poll_interval):
            pass
        if self.received_signal:
            logger.info(f"Received signal {self.received_signal}")
        return self.received_signal

    def shutdown(self) -> QueueStats:
        """Run the shutdown sequence once.

        Returns:
            Final queue statistics.
        """
        with self._lock:
            first = self._state is ShutdownState.RUNNING
            if first:
                self._state = ShutdownState.DRAINING

        if not first:
            self._stopped.wait()
            return self.queue.get_stats()

        try:
            self._run_sequence()
        finally:
            with self._lock:
                self._state = ShutdownState.STOPPED
            self._stopped.set()

        final = self.queue.get_stats()
        logger.info(
            f"Shutdown complete (completed={final.completed}, failed={final.failed}, "
            f"averageLatencyMs={final.average_latency_ms})"
        )
        return final

    def _run_sequence(self) -> None:
        logger.info("Shutting down gracefully...")

        if self.watcher is not None:
            try:
                self.watcher.stop()
            except Exception as e:
                logger.error(f"Error stopping file watcher: {e}")

        if self.debouncer is not None:
            cancelled = self.debouncer.cancel_all()
            if cancelled:
                logger.info(f"Discarded {cancelled} pending file event(s)")

        stats = self.queue.get_stats()
        drained = True
        if stats.active > 0 or stats.pending > 0:
            logger.info(f"Waiting for active tasks to complete (active={stats.active}, pending={stats.pending})")
            try:
                self.queue.drain().result(timeout=self.drain_timeout)
            except FutureTimeoutError:
                drained = False
                still = self.queue.get_stats()
                logger.warning(
                    f"Drain timed out after {self.drain_timeout}s "
                    f"(active={still.active}, pending={still.pending})"
                )

        if drained:
            self.queue.shutdown()

        if self.health is not None:
            self.health.update_stats(self.queue.get_stats())
            self.health.stop()
