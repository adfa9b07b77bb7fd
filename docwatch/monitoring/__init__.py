"""Monitoring module: filesystem events, task queue and health."""

from .watcher import (
    FileWatcherService,
    DebouncedEventHandler,
    Debouncer,
    FileSettlingChecker,
    matches_patterns,
)
from .queue_manager import (
    TaskQueue,
    QueueTask,
    QueueStats,
)
from .health import (
    HealthMonitor,
    HealthStatus,
    HealthState,
    classify_health,
)

__all__ = [
    "FileWatcherService",
    "DebouncedEventHandler",
    "Debouncer",
    "FileSettlingChecker",
    "matches_patterns",
    "TaskQueue",
    "QueueTask",
    "QueueStats",
    "HealthMonitor",
    "HealthStatus",
    "HealthState",
    "classify_health",
]
