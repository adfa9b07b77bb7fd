"""
docwatch - Main Application
===========================

Main entry point and orchestration for the watch daemon.
Wires the watcher, debouncer, task queue, processing pipeline and health
endpoint together and runs them until a shutdown signal arrives.
"""

import argparse
import sys
import threading
from pathlib import Path
from typing import Callable, List, Optional

from watchdog.observers import Observer

from docwatch.actions.file_operations import ensure_directory
from docwatch.config import Config
from docwatch.monitoring import (
    Debouncer,
    FileSettlingChecker,
    FileWatcherService,
    HealthMonitor,
    QueueStats,
    QueueTask,
    TaskQueue,
)
from docwatch.processing import ProcessingPipeline, ProcessResult
from docwatch.service import DocumentService, HttpDocumentService
from docwatch.shutdown import ShutdownCoordinator
from docwatch.utils.logging_config import setup_logging, get_logger, LoggingConfig
from docwatch.utils.exceptions import ConfigurationError, DocWatchError, HealthServerError

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


class DocWatchApp:
    """Main orchestrator for watch mode.

    Ready files become queue tasks; each task runs the processing pipeline
    and the queue's permanent-failure hook routes files that cannot be
    processed.
    """

    def __init__(
        self,
        config: Config,
        service: DocumentService,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
        observer_factory: Callable[[], Observer] = Observer,
    ):
        """Initialize the application.

        Args:
            config: Resolved configuration.
            service: Remote document service.
            timer_factory: Timer factory shared by the debouncer and queue.
            observer_factory: Creates the watchdog observer.
        """
        self.config = config
        self.service = service
        self._timer_factory = timer_factory
        self._observer_factory = observer_factory

        self.queue: Optional[TaskQueue] = None
        self.debouncer: Optional[Debouncer] = None
        self.watcher: Optional[FileWatcherService] = None
        self.pipeline: Optional[ProcessingPipeline] = None
        self.health: Optional[HealthMonitor] = None
        self.coordinator: Optional[ShutdownCoordinator] = None
        self.watch_dir: Optional[Path] = None

    def _init_components(self, watch_dir: Path) -> None:
        """Validate directories and build every component.

        Raises:
            DocWatchError: If a directory is unusable.
        """
        watch = self.config.watch
        rate = self.config.rate_limit

        watch_dir = ensure_directory(watch_dir, "Watch directory")
        output_dir = ensure_directory(watch.output_dir or watch_dir / "organized", "Output directory")
        failed_dir = ensure_directory(watch.failed_dir or watch_dir / ".failed", "Failed directory")
        passthrough_dir = None
        if watch.passthrough_dir:
            passthrough_dir = ensure_directory(watch.passthrough_dir, "Pass-through directory")

        self.watch_dir = watch_dir
        settle_check = None
        if watch.stability_ms:
            settle_check = FileSettlingChecker(stability_seconds=watch.stability_ms / 1000).is_file_ready
        self.debouncer = Debouncer(
            watch.patterns,
            rate.debounce_ms / 1000,
            self.on_file_ready,
            timer_factory=self._timer_factory,
            settle_check=settle_check,
        )
        self.pipeline = ProcessingPipeline(
            self.service,
            output_dir=output_dir,
            failed_dir=failed_dir,
            passthrough_dir=passthrough_dir,
            split=self.config.split,
            dry_run=self.config.dry_run,
            on_output=self.debouncer.suppress,
        )
        self.queue = TaskQueue(
            concurrency=rate.concurrency,
            retry_attempts=rate.retry_attempts,
            retry_delay=rate.retry_delay_ms / 1000,
            on_permanent_failure=self._on_permanent_failure,
            on_stats=self._on_stats,
            timer_factory=self._timer_factory,
        )
        self.watcher = FileWatcherService(
            watch_dir,
            self.debouncer,
            recursive=watch.recursive,
            excluded_dirs=[d for d in (output_dir, failed_dir, passthrough_dir) if d is not None],
            observer_factory=self._observer_factory,
        )
        if self.config.health.enabled:
            self.health = HealthMonitor(self.config.health.socket_path)

        logger.info(
            f"Starting file watcher: watch={watch_dir} output={output_dir} failed={failed_dir} "
            f"patterns={watch.patterns} concurrency={rate.concurrency} dry_run={self.config.dry_run}"
        )

    def on_file_ready(self, file_path: str) -> None:
        """Queue a file whose debounce period has elapsed."""
        task = QueueTask(id=file_path, work=lambda: self._process(file_path))
        if not self.queue.enqueue(task):
            logger.debug(f"Already queued, ignoring: {file_path}")

    def _process(self, file_path: str) -> ProcessResult:
        result = self.pipeline.process(Path(file_path))
        if self.health is not None:
            self.health.record_success()
        return result

    def _on_permanent_failure(self, task: QueueTask, error: BaseException) -> None:
        self.pipeline.handle_failure(Path(task.id), error)
        if self.health is not None:
            self.health.record_error()

    def _on_stats(self, stats: QueueStats) -> None:
        if self.health is not None:
            self.health.update_stats(stats)

    def start(self, watch_dir: Path, install_signals: bool = False) -> None:
        """Build components, start the health endpoint and the watcher.

        Args:
            watch_dir: Directory to watch.
            install_signals: Register SIGINT/SIGTERM handlers (main thread only).

        Raises:
            DocWatchError: If a directory is unusable.
            RuntimeError: If the watcher cannot start.
        """
        self._init_components(Path(watch_dir))

        if self.health is not None:
            try:
                self.health.start()
            except HealthServerError as e:
                logger.warning(f"Failed to start health server, continuing without it: {e}")
                self.health = None

        self.coordinator = ShutdownCoordinator(
            self.queue,
            watcher=self.watcher,
            debouncer=self.debouncer,
            health=self.health,
        )
        if install_signals and threading.current_thread() is threading.main_thread():
            self.coordinator.install_signal_handlers()

        self.watcher.start()
        logger.info("Watch mode started. Press Ctrl+C to stop.")

    def stop(self) -> QueueStats:
        """Shut down; safe to call more than once."""
        return self.coordinator.shutdown()

    def run(self, watch_dir: Path) -> int:
        """Run watch mode until SIGINT/SIGTERM.

        Returns:
            Process exit code.
        """
        try:
            self.start(watch_dir, install_signals=True)
        except DocWatchError as e:
            logger.error(f"Directory validation failed: {e}")
            return EXIT_FAILURE
        except RuntimeError as e:
            logger.error(f"Failed to start watcher: {e}")
            self.coordinator.shutdown()
            return EXIT_FAILURE

        self.coordinator.wait_for_signal()
        self.coordinator.shutdown()
        return EXIT_OK


def _concurrency(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        n = 0
    if not 1 <= n <= 10:
        raise ConfigurationError("Concurrency must be between 1 and 10", config_key="concurrency")
    return n


def build_parser() -> argparse.ArgumentParser:
    """Create the command-line parser."""
    parser = argparse.ArgumentParser(
        prog="docwatch",
        description="docwatch - Watch directories and auto-organize documents"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    watch = subparsers.add_parser(
        "watch",
        help="Watch a directory and process new files"
    )
    watch.add_argument(
        "directory",
        type=Path,
        help="Directory to watch for new files"
    )
    watch.add_argument(
        "--patterns", "-p",
        nargs="+",
        help="File patterns to process (e.g. *.pdf *.jpg)"
    )
    watch.add_argument(
        "--output-dir", "-o",
        type=Path,
        help="Base output directory for organized files"
    )
    watch.add_argument(
        "--failed-dir", "-f",
        type=Path,
        help="Directory for files that fail processing"
    )
    watch.add_argument(
        "--passthrough-dir",
        type=Path,
        help="Forward unprocessable files here unchanged instead of the failed directory"
    )
    watch.add_argument(
        "--dry-run", "-n",
        action="store_true",
        help="Preview actions without moving files"
    )
    watch.add_argument(
        "--concurrency",
        help="Number of files to process in parallel (1-10)"
    )
    watch.add_argument(
        "--config", "-c",
        type=Path,
        help="Path to configuration file"
    )
    return parser


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Apply command-line options on top of the loaded configuration.

    Raises:
        ConfigurationError: If an option value is invalid.
    """
    if args.patterns:
        config.watch.patterns = args.patterns
    if args.concurrency is not None:
        config.rate_limit.concurrency = _concurrency(args.concurrency)
    if args.output_dir:
        config.watch.output_dir = args.output_dir
    if args.failed_dir:
        config.watch.failed_dir = args.failed_dir
    if args.passthrough_dir:
        config.watch.passthrough_dir = args.passthrough_dir
    if args.dry_run:
        config.dry_run = True
    return config


def main(
    argv: Optional[List[str]] = None,
    service_factory: Optional[Callable[[Config], DocumentService]] = None,
) -> int:
    """Main entry point with CLI support."""
    args = build_parser().parse_args(argv)

    try:
        config, sources = Config.load(args.config)
        config = apply_overrides(config, args)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    setup_logging(LoggingConfig(
        level=config.logging.level.upper(),
        json_format=config.logging.json,
        file_output=config.logging.file_output,
    ))
    if sources:
        logger.info(f"Loaded configuration from {', '.join(str(s) for s in sources)}")

    if service_factory is None:
        service_factory = _http_service
    service = service_factory(config)

    app = DocWatchApp(config, service)
    try:
        return app.run(args.directory)
    finally:
        if isinstance(service, HttpDocumentService):
            service.close()


def _http_service(config: Config) -> HttpDocumentService:
    token = config.service.resolve_token()
    if not token:
        logger.warning(f"No access token configured (set {config.service.token_env} or service.token)")
    return HttpDocumentService(
        config.service.base_url,
        token=token,
        timeout=config.service.timeout_seconds,
    )


if __name__ == "__main__":
    sys.exit(main())
