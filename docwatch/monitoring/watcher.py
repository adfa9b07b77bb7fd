"""
Filesystem Watcher
==================

Monitors a directory tree for new or changed files and hands them on once
they have been quiet for the debounce period.
"""

import itertools
import os
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from watchdog.observers import Observer
from watchdog.events import (
    FileSystemEvent,
    FileSystemEventHandler,
)

from docwatch.utils.logging_config import get_logger

logger = get_logger(__name__)

IGNORED_DIR_NAMES = {"node_modules"}

# How long a path written by the pipeline is ignored by the debouncer
OUTPUT_SUPPRESS_SECONDS = 30.0


def _path_key(file_path) -> str:
    return os.path.realpath(os.fspath(file_path))


def matches_patterns(file_path: str, patterns: Iterable[str]) -> bool:
    """Check a path against ``*.ext`` and exact-filename patterns.

    Extension patterns compare the final suffix case-insensitively, so
    ``*.pdf`` matches ``scan.PDF`` but ``*.tar.gz`` never matches anything.
    Any other pattern must equal the file's basename exactly.
    """
    name = os.path.basename(file_path)
    ext = os.path.splitext(name)[1].lower()

    for pattern in patterns:
        if pattern.startswith("*."):
            if ext and ext == pattern[1:].lower():
                return True
        elif pattern == name:
            return True
    return False


class FileSettlingChecker:
    """Ensures files are fully written before processing.

    A file is settled once its size has stayed the same for
    ``stability_seconds`` and it can be opened for reading.
    """

    def __init__(
        self,
        stability_seconds: float = 2.0,
        check_interval: float = 0.1,
        max_wait: float = 60.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the checker.

        Args:
            stability_seconds: Time the size must stay unchanged.
            check_interval: Time between size checks in seconds.
            max_wait: Give up after roughly this many seconds.
            sleep: Sleep function between checks.
        """
        self.check_interval = check_interval
        self.stability_checks = max(1, round(stability_seconds / check_interval))
        self.max_checks = max(self.stability_checks + 1, round(max_wait / check_interval))
        self._sleep = sleep

    def is_file_ready(self, file_path: Path) -> bool:
        """Poll the file size until it is stable.

        Returns:
            True if the file settled, False if it vanished or kept changing.
        """
        previous_size = -1
        stable_count = 0

        for _ in range(self.max_checks):
            try:
                current_size = file_path.stat().st_size
            except OSError:
                return False

            if current_size == previous_size:
                stable_count += 1
                if stable_count >= self.stability_checks:
                    try:
                        with open(file_path, "rb") as f:
                            f.read(1)
                        return True
                    except OSError:
                        # Still locked by the writer
                        stable_count = 0
            else:
                stable_count = 0

            previous_size = current_size
            self._sleep(self.check_interval)

        return False


class Debouncer:
    """Coalesces bursts of events per path into a single ready callback.

    Each path owns at most one pending timer; a new event for the same path
    cancels and replaces it. When a timer fires the path is handed to
    ``on_ready`` only if the file still exists and, when a settle check is
    configured, has finished being written. Paths the pipeline itself wrote
    can be suppressed so they are not picked up again.
    """

    def __init__(
        self,
        patterns: List[str],
        debounce_seconds: float,
        on_ready: Callable[[str], None],
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
        settle_check: Optional[Callable[[Path], bool]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the debouncer.

        Args:
            patterns: File patterns accepted by ``matches_patterns``.
            debounce_seconds: Quiet period before a file is ready.
            on_ready: Called with the path once the quiet period elapses.
            timer_factory: Factory with the ``threading.Timer`` signature.
            settle_check: Returns True once a file has finished being written.
            clock: Monotonic clock for output suppression.
        """
        self.patterns = patterns
        self.debounce_seconds = debounce_seconds
        self.on_ready = on_ready
        self.settle_check = settle_check
        self._timer_factory = timer_factory
        self._clock = clock
        self._pending: Dict[str, Tuple[threading.Timer, int]] = {}
        self._suppressed: Dict[str, float] = {}
        self._tokens = itertools.count()
        self._lock = threading.Lock()
        self._closed = False

    def suppress(self, file_path, seconds: float = OUTPUT_SUPPRESS_SECONDS) -> None:
        """Ignore events for a path for ``seconds``.

        Used for files written by the pipeline, which may land inside the
        watched tree.
        """
        with self._lock:
            self._suppressed[_path_key(file_path)] = self._clock() + seconds

    def _is_suppressed_locked(self, file_path: str) -> bool:
        now = self._clock()
        for key in [k for k, until in self._suppressed.items() if until <= now]:
            del self._suppressed[key]
        return _path_key(file_path) in self._suppressed

    def handle(self, file_path: str) -> None:
        """Register an event for a path, restarting its quiet period."""
        if not matches_patterns(file_path, self.patterns):
            logger.debug(f"File does not match patterns, ignoring: {file_path}")
            return

        with self._lock:
            if self._closed:
                return
            if self._is_suppressed_locked(file_path):
                logger.debug(f"Ignoring our own output: {file_path}")
                return
            existing = self._pending.get(file_path)
            if existing is not None:
                existing[0].cancel()

            token = next(self._tokens)
            timer = self._timer_factory(self.debounce_seconds, self._fire, args=(file_path, token))
            timer.daemon = True
            self._pending[file_path] = (timer, token)
            timer.start()

    def _fire(self, file_path: str, token: int) -> None:
        with self._lock:
            entry = self._pending.get(file_path)
            # A replaced timer can still fire if cancel() came too late
            if entry is None or entry[1] != token or self._closed:
                return
            del self._pending[file_path]

        if not os.path.exists(file_path):
            logger.debug(f"File no longer exists, skipping: {file_path}")
            return

        if self.settle_check is not None and not self.settle_check(Path(file_path)):
            # A later write event re-arms the timer
            logger.debug(f"File still being written, waiting for more changes: {file_path}")
            return

        with self._lock:
            if self._closed or self._is_suppressed_locked(file_path):
                return

        try:
            self.on_ready(file_path)
        except Exception as e:
            logger.error(f"Error handing off ready file {file_path}: {e}")

    def cancel_all(self) -> int:
        """Cancel every pending timer and ignore further events.

        Returns:
            Number of timers that were cancelled.
        """
        with self._lock:
            self._closed = True
            timers = [timer for timer, _ in self._pending.values()]
            self._pending.clear()

        for timer in timers:
            timer.cancel()
        return len(timers)

    def pending_count(self) -> int:
        """Number of paths waiting out their quiet period."""
        with self._lock:
            return len(self._pending)


class DebouncedEventHandler(FileSystemEventHandler):
    """Forwards watchdog file events to a Debouncer.

    Dotfiles and files inside dot-directories or node_modules are ignored,
    as is anything under an excluded directory.
    """

    def __init__(
        self,
        debouncer: Debouncer,
        watch_root: Path,
        excluded_dirs: Optional[List[Path]] = None,
    ):
        super().__init__()
        self.debouncer = debouncer
        self.watch_root = watch_root
        # Only directories strictly inside the tree can be skipped; the root
        # itself or an ancestor would hide every event
        root = Path(watch_root).resolve()
        self.excluded_dirs = [
            d for d in (p.resolve() for p in (excluded_dirs or [])) if root in d.parents
        ]

    def _should_ignore(self, file_path: str) -> bool:
        path = Path(file_path)
        try:
            relative = path.relative_to(self.watch_root)
        except ValueError:
            relative = path
        if any(part.startswith(".") or part in IGNORED_DIR_NAMES for part in relative.parts):
            return True

        resolved = path.resolve()
        for excluded in self.excluded_dirs:
            if resolved == excluded or excluded in resolved.parents:
                return True
        return False

    def _forward(self, file_path: str) -> None:
        if self._should_ignore(file_path):
            logger.debug(f"Ignoring file (excluded): {file_path}")
            return
        self.debouncer.handle(file_path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(os.fsdecode(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(os.fsdecode(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        # A file moved into the tree behaves like a new file at its destination
        if not event.is_directory:
            self._forward(os.fsdecode(event.dest_path))


class FileWatcherService:
    """Main watcher service that monitors the watch directory.

    Manages the watchdog Observer and handles starting/stopping
    the monitoring service.
    """

    def __init__(
        self,
        watch_dir: Path,
        debouncer: Debouncer,
        recursive: bool = True,
        excluded_dirs: Optional[List[Path]] = None,
        observer_factory: Callable[[], Observer] = Observer,
    ):
        """Initialize the watcher service.

        Args:
            watch_dir: Directory to watch.
            debouncer: Receives every relevant file event.
            recursive: Whether to watch subdirectories.
            excluded_dirs: Directories (e.g. output locations) whose events are ignored.
            observer_factory: Creates the watchdog observer.
        """
        self.watch_dir = Path(watch_dir).resolve()
        self.recursive = recursive
        self.handler = DebouncedEventHandler(debouncer, self.watch_dir, excluded_dirs)
        self._observer_factory = observer_factory
        self.observer: Optional[Observer] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Check if the watcher is running."""
        return self._running and self.observer is not None and self.observer.is_alive()

    def start(self) -> None:
        """Start watching the directory.

        Raises:
            RuntimeError: If the watch directory is missing or the observer
                          cannot be started.
        """
        if self._running:
            return
        if not self.watch_dir.is_dir():
            raise RuntimeError(f"Watch directory does not exist: {self.watch_dir}")

        self.observer = self._observer_factory()
        try:
            self.observer.schedule(self.handler, str(self.watch_dir), recursive=self.recursive)
            self.observer.start()
        except OSError as e:
            raise RuntimeError(f"Failed to start watcher on {self.watch_dir}: {e}") from e

        self._running = True
        logger.info(f"Watching directory: {self.watch_dir} (recursive={self.recursive})")

    def stop(self) -> None:
        """Stop the watcher service."""
        if not self._running:
            return
        self._running = False
        self.observer.stop()
        self.observer.join(timeout=5.0)
        logger.info("File watcher stopped")
