"""
Health Monitor
==============

Pull-only status endpoint on a Unix domain socket. Every connection receives
one JSON document and is closed; nothing is read from the client.

Query with: ``nc -U /tmp/docwatch-health.sock``
"""

import json
import os
import socketserver
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from docwatch.monitoring.queue_manager import QueueStats
from docwatch.utils.exceptions import HealthServerError
from docwatch.utils.logging_config import get_logger

logger = get_logger(__name__)

# Failure rate above which the service reports degraded (10%)
DEGRADED_FAILURE_RATE = 0.1

# Pending count above which the service reports degraded
DEGRADED_PENDING_THRESHOLD = 100


class HealthState(Enum):
    """Overall health classification."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class HealthStatus:
    """Health snapshot served to clients."""

    status: HealthState
    uptime: int
    queue: QueueStats
    errors: int
    last_processed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire document."""
        data: Dict[str, Any] = {
            "status": self.status.value,
            "uptime": self.uptime,
            "queue": self.queue.to_dict(),
        }
        if self.last_processed_at is not None:
            data["lastProcessedAt"] = (
                self.last_processed_at.isoformat(timespec="milliseconds").replace("+00:00", "Z")
            )
        data["errors"] = self.errors
        return data


def classify_health(stats: QueueStats) -> HealthState:
    """Derive the health state from queue statistics."""
    if stats.total_processed > 0:
        if stats.failed / stats.total_processed > DEGRADED_FAILURE_RATE:
            return HealthState.DEGRADED
    if stats.pending > DEGRADED_PENDING_THRESHOLD:
        return HealthState.DEGRADED
    return HealthState.HEALTHY


class _HealthRequestHandler(socketserver.BaseRequestHandler):
    """Writes the current status and closes the connection."""

    def handle(self) -> None:
        payload = json.dumps(self.server.monitor.get_status().to_dict(), indent=2)
        try:
            self.request.sendall(payload.encode("utf-8"))
        except OSError as e:
            logger.debug(f"Health client went away: {e}")


class _HealthServer(socketserver.ThreadingMixIn, socketserver.UnixStreamServer):
    daemon_threads = True

    def __init__(self, socket_path: str, monitor: "HealthMonitor"):
        self.monitor = monitor
        super().__init__(socket_path, _HealthRequestHandler)


class HealthMonitor:
    """Tracks processing health and serves it on a Unix socket."""

    def __init__(self, socket_path: Path, clock=time.monotonic):
        """Initialize the monitor.

        Args:
            socket_path: Filesystem path of the Unix socket.
            clock: Monotonic clock used for uptime.
        """
        self.socket_path = Path(socket_path)
        self._clock = clock
        self._started_at = clock()
        self._lock = threading.Lock()
        self._stats = QueueStats()
        self._errors = 0
        self._last_processed_at: Optional[datetime] = None
        self._server: Optional[_HealthServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._server is not None

    def start(self) -> None:
        """Bind the socket and start serving.

        Calling start on a running monitor does nothing.

        Raises:
            HealthServerError: If the socket cannot be bound.
        """
        if self._server is not None:
            return

        self._remove_socket_file()
        try:
            server = _HealthServer(str(self.socket_path), self)
        except OSError as e:
            raise HealthServerError(
                f"Cannot bind health socket {self.socket_path}: {e}",
                socket_path=str(self.socket_path),
                cause=e,
            ) from e

        self._server = server
        self._thread = threading.Thread(
            target=server.serve_forever,
            kwargs={"poll_interval": 0.2},
            daemon=True,
            name="HealthMonitor",
        )
        self._thread.start()
        logger.info(f"Health server started: {self.socket_path}")

    def stop(self) -> None:
        """Stop serving and remove the socket file."""
        server, self._server = self._server, None
        if server is None:
            return

        server.shutdown()
        server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None
        self._remove_socket_file()
        logger.info("Health server stopped")

    def update_stats(self, stats: QueueStats) -> None:
        """Store the latest queue statistics."""
        with self._lock:
            self._stats = stats

    def record_error(self) -> None:
        """Count a terminal processing failure."""
        with self._lock:
            self._errors += 1

    def record_success(self) -> None:
        """Remember when a file was last processed successfully."""
        with self._lock:
            self._last_processed_at = datetime.now(timezone.utc)

    def get_status(self) -> HealthStatus:
        """Compute the current health snapshot."""
        with self._lock:
            stats = self._stats
            errors = self._errors
            last_processed_at = self._last_processed_at

        return HealthStatus(
            status=classify_health(stats),
            uptime=int(self._clock() - self._started_at),
            queue=stats,
            errors=errors,
            last_processed_at=last_processed_at,
        )

    def _remove_socket_file(self) -> None:
        """Best-effort removal of a stale socket file."""
        try:
            os.unlink(self.socket_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.debug(f"Could not remove socket file {self.socket_path}: {e}")
