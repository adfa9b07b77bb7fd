"""
Unit tests for the shutdown coordinator.
"""

import os
import signal
import threading

from docwatch.monitoring.queue_manager import QueueTask, TaskQueue
from docwatch.shutdown import ShutdownCoordinator, ShutdownState


class RecordingComponent:
    """Stands in for the watcher, debouncer and health monitor."""

    def __init__(self, log, name, cancelled=0):
        self.log = log
        self.name = name
        self.cancelled = cancelled
        self.stats = []

    def stop(self):
        self.log.append(f"{self.name}.stop")

    def cancel_all(self):
        self.log.append(f"{self.name}.cancel_all")
        return self.cancelled

    def update_stats(self, stats):
        self.stats.append(stats)


class TestShutdownCoordinator:
    """Tests for ShutdownCoordinator."""

    def test_sequence_order(self, timers):
        """Test watcher, debouncer, drain and health run in order."""
        log = []
        queue = TaskQueue(timer_factory=timers)
        health = RecordingComponent(log, "health")
        coordinator = ShutdownCoordinator(
            queue,
            watcher=RecordingComponent(log, "watcher"),
            debouncer=RecordingComponent(log, "debouncer", cancelled=3),
            health=health,
        )

        assert coordinator.state is ShutdownState.RUNNING
        stats = coordinator.shutdown()

        assert log == ["watcher.stop", "debouncer.cancel_all", "health.stop"]
        assert coordinator.state is ShutdownState.STOPPED
        assert stats.total_processed == 0
        assert len(health.stats) == 1

    def test_waits_for_in_flight_work(self, timers, waiter):
        """Test shutdown returns only after active tasks finish."""
        release = threading.Event()
        finished = []

        def work():
            release.wait(5)
            finished.append(True)

        queue = TaskQueue(timer_factory=timers)
        queue.enqueue(QueueTask(id="busy", work=work))
        waiter(lambda: queue.get_stats().active == 1)

        coordinator = ShutdownCoordinator(queue)
        done = threading.Event()
        result = {}

        def run():
            result["stats"] = coordinator.shutdown()
            done.set()

        thread = threading.Thread(target=run)
        thread.start()
        waiter(lambda: coordinator.state is ShutdownState.DRAINING)
        assert not done.wait(0.1)

        release.set()
        thread.join(timeout=5)
        assert finished == [True]
        assert result["stats"].completed == 1
        assert coordinator.state is ShutdownState.STOPPED

    def test_idempotent_and_concurrent(self, timers, waiter):
        """Test a second caller waits for the first and the sequence runs once."""
        log = []
        release = threading.Event()
        queue = TaskQueue(timer_factory=timers)
        queue.enqueue(QueueTask(id="busy", work=lambda: release.wait(5)))
        waiter(lambda: queue.get_stats().active == 1)

        coordinator = ShutdownCoordinator(queue, watcher=RecordingComponent(log, "watcher"))
        first = threading.Thread(target=coordinator.shutdown)
        second_done = threading.Event()
        second = threading.Thread(target=lambda: (coordinator.shutdown(), second_done.set()))

        first.start()
        waiter(lambda: coordinator.state is ShutdownState.DRAINING)
        second.start()
        assert not second_done.wait(0.1)

        release.set()
        first.join(timeout=5)
        second.join(timeout=5)
        assert second_done.is_set()
        assert log == ["watcher.stop"]

        coordinator.shutdown()
        assert log == ["watcher.stop"]

    def test_drain_timeout(self, timers, waiter):
        """Test a drain timeout stops waiting without cancelling work."""
        release = threading.Event()
        queue = TaskQueue(timer_factory=timers)
        queue.enqueue(QueueTask(id="stuck", work=lambda: release.wait(5)))
        waiter(lambda: queue.get_stats().active == 1)

        log = []
        coordinator = ShutdownCoordinator(queue, health=RecordingComponent(log, "health"),
                                          drain_timeout=0.05)
        try:
            coordinator.shutdown()
            assert coordinator.state is ShutdownState.STOPPED
            assert log == ["health.stop"]
            assert queue.get_stats().active == 1
        finally:
            release.set()
            queue.drain().result(timeout=5)
            queue.shutdown()

    def test_request_shutdown_unblocks_wait(self, timers):
        """Test a programmatic request ends wait_for_signal."""
        coordinator = ShutdownCoordinator(TaskQueue(timer_factory=timers))
        coordinator.request_shutdown()
        assert coordinator.wait_for_signal(poll_interval=0.01) is None

    def test_signal_handler(self, timers):
        """Test SIGTERM is recorded by the installed handler."""
        coordinator = ShutdownCoordinator(TaskQueue(timer_factory=timers))
        previous = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
        try:
            coordinator.install_signal_handlers()
            os.kill(os.getpid(), signal.SIGTERM)
            assert coordinator.wait_for_signal(poll_interval=0.01) == "SIGTERM"
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
