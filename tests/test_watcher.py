"""
Unit tests for pattern matching, debouncing and the watchdog adapter.
"""

import pytest
from watchdog.events import (
    DirCreatedEvent,
    FileCreatedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from docwatch.monitoring.watcher import (
    DebouncedEventHandler,
    Debouncer,
    FileSettlingChecker,
    FileWatcherService,
    matches_patterns,
)

PATTERNS = ["*.pdf", "*.jpg", "invoice.txt"]


class TestMatchesPatterns:
    """Tests for matches_patterns."""

    def test_extension_case_insensitive(self):
        """Test extension patterns ignore case."""
        assert matches_patterns("/inbox/Scan.PDF", PATTERNS)
        assert matches_patterns("photo.jpg", PATTERNS)

    def test_extension_must_match_exactly(self):
        """Test a longer extension does not match."""
        assert not matches_patterns("/inbox/file.pdfx", PATTERNS)
        assert not matches_patterns("/inbox/README", PATTERNS)

    def test_exact_name(self):
        """Test non-wildcard patterns compare the basename."""
        assert matches_patterns("/inbox/invoice.txt", PATTERNS)
        assert not matches_patterns("/inbox/other.txt", PATTERNS)

    def test_empty_patterns(self):
        """Test nothing matches without patterns."""
        assert not matches_patterns("/inbox/a.pdf", [])


class TestDebouncer:
    """Tests for Debouncer."""

    def _debouncer(self, timers, ready):
        return Debouncer(PATTERNS, 1.0, ready.append, timer_factory=timers)

    def test_repeated_events_coalesce(self, timers, tmp_path):
        """Test a burst of events yields one ready callback."""
        ready = []
        debouncer = self._debouncer(timers, ready)
        path = tmp_path / "scan.pdf"
        path.write_bytes(b"%PDF")

        debouncer.handle(str(path))
        debouncer.handle(str(path))

        assert len(timers.timers) == 2
        assert timers.timers[0].cancelled
        assert timers.timers[1].interval == 1.0
        assert debouncer.pending_count() == 1

        timers.live()[0].fire()
        assert ready == [str(path)]
        assert debouncer.pending_count() == 0

    def test_unmatched_path_ignored(self, timers, tmp_path):
        """Test files outside the patterns never arm a timer."""
        debouncer = self._debouncer(timers, [])
        debouncer.handle(str(tmp_path / "notes.docx"))
        assert timers.timers == []
        assert debouncer.pending_count() == 0

    def test_missing_file_skipped(self, timers, tmp_path):
        """Test files deleted during the quiet period are dropped."""
        ready = []
        debouncer = self._debouncer(timers, ready)
        debouncer.handle(str(tmp_path / "gone.pdf"))

        timers.live()[0].fire()
        assert ready == []
        assert debouncer.pending_count() == 0

    def test_stale_timer_does_not_fire(self, timers, tmp_path):
        """Test a replaced timer firing late neither calls back nor drops the new one."""
        ready = []
        debouncer = self._debouncer(timers, ready)
        path = tmp_path / "scan.pdf"
        path.write_bytes(b"%PDF")

        debouncer.handle(str(path))
        stale = timers.timers[0]
        debouncer.handle(str(path))

        stale.fire()
        assert ready == []
        assert debouncer.pending_count() == 1

    def test_cancel_all(self, timers, tmp_path):
        """Test cancel_all clears timers and closes the debouncer."""
        ready = []
        debouncer = self._debouncer(timers, ready)
        for name in ("a.pdf", "b.jpg"):
            (tmp_path / name).write_bytes(b"x")
            debouncer.handle(str(tmp_path / name))

        assert debouncer.cancel_all() == 2
        assert all(t.cancelled for t in timers.timers)
        assert debouncer.pending_count() == 0

        debouncer.handle(str(tmp_path / "a.pdf"))
        assert len(timers.timers) == 2
        assert debouncer.cancel_all() == 0

    def test_callback_error_contained(self, timers, tmp_path):
        """Test an exception from on_ready does not escape the timer."""
        def explode(path):
            raise RuntimeError("queue closed")

        debouncer = Debouncer(PATTERNS, 1.0, explode, timer_factory=timers)
        path = tmp_path / "scan.pdf"
        path.write_bytes(b"%PDF")
        debouncer.handle(str(path))

        timers.live()[0].fire()
        assert debouncer.pending_count() == 0

    def test_unsettled_file_held_back(self, timers, tmp_path):
        """Test a file still being written is not handed on."""
        ready = []
        checked = []

        def still_writing(path):
            checked.append(path)
            return False

        debouncer = Debouncer(PATTERNS, 1.0, ready.append, timer_factory=timers,
                              settle_check=still_writing)
        path = tmp_path / "scan.pdf"
        path.write_bytes(b"%PDF")
        debouncer.handle(str(path))

        timers.live()[0].fire()
        assert checked == [path]
        assert ready == []

        # The next write event starts over
        debouncer.handle(str(path))
        assert len(timers.live()) == 1

    def test_suppressed_output_ignored(self, timers, tmp_path):
        """Test paths written by the pipeline do not arm a timer until expiry."""
        now = [100.0]
        ready = []
        debouncer = Debouncer(PATTERNS, 1.0, ready.append, timer_factory=timers,
                              clock=lambda: now[0])
        path = tmp_path / "Invoice.pdf"
        path.write_bytes(b"%PDF")

        debouncer.suppress(path, seconds=30.0)
        debouncer.handle(str(path))
        assert timers.timers == []

        now[0] = 131.0
        debouncer.handle(str(path))
        timers.live()[0].fire()
        assert ready == [str(path)]

    def test_suppressed_while_waiting(self, timers, tmp_path):
        """Test a path suppressed during its quiet period is dropped on firing."""
        ready = []
        debouncer = self._debouncer(timers, ready)
        path = tmp_path / "Invoice.pdf"
        path.write_bytes(b"%PDF")

        debouncer.handle(str(path))
        debouncer.suppress(str(path))
        timers.live()[0].fire()
        assert ready == []


class TestFileSettlingChecker:
    """Tests for FileSettlingChecker."""

    def test_waits_for_stable_size(self, tmp_path):
        """Test a growing file is reported ready once its size holds."""
        path = tmp_path / "scan.pdf"
        path.write_bytes(b"%PDF")
        sleeps = []

        def sleep(seconds):
            sleeps.append(seconds)
            if len(sleeps) <= 2:
                with open(path, "ab") as f:
                    f.write(b"more")

        checker = FileSettlingChecker(stability_seconds=0.3, check_interval=0.1, sleep=sleep)
        assert checker.is_file_ready(path)
        assert len(sleeps) == 5
        assert all(s == 0.1 for s in sleeps)

    def test_gives_up_on_endless_growth(self, tmp_path):
        """Test a file that never stops growing is not ready."""
        path = tmp_path / "scan.pdf"
        path.write_bytes(b"%PDF")
        sleeps = []

        def sleep(seconds):
            sleeps.append(seconds)
            with open(path, "ab") as f:
                f.write(b"x")

        checker = FileSettlingChecker(stability_seconds=0.3, check_interval=0.1,
                                      max_wait=1.0, sleep=sleep)
        assert not checker.is_file_ready(path)
        assert len(sleeps) == 10

    def test_missing_file(self, tmp_path):
        """Test a vanished file is not ready."""
        checker = FileSettlingChecker(sleep=lambda s: None)
        assert not checker.is_file_ready(tmp_path / "gone.pdf")


class RecordingDebouncer:
    def __init__(self):
        self.paths = []

    def handle(self, path):
        self.paths.append(path)


class TestDebouncedEventHandler:
    """Tests for the watchdog event adapter."""

    def _handler(self, root, excluded=None):
        recorder = RecordingDebouncer()
        return DebouncedEventHandler(recorder, root, excluded), recorder

    def test_forwards_created_and_modified(self, tmp_path):
        """Test file events reach the debouncer."""
        handler, recorder = self._handler(tmp_path)
        handler.on_created(FileCreatedEvent(str(tmp_path / "a.pdf")))
        handler.on_modified(FileModifiedEvent(str(tmp_path / "b.pdf")))
        assert recorder.paths == [str(tmp_path / "a.pdf"), str(tmp_path / "b.pdf")]

    def test_moved_uses_destination(self, tmp_path):
        """Test a file moved into the tree is treated as new."""
        handler, recorder = self._handler(tmp_path)
        handler.on_moved(FileMovedEvent(str(tmp_path / "tmp.part"), str(tmp_path / "scan.pdf")))
        assert recorder.paths == [str(tmp_path / "scan.pdf")]

    def test_directories_ignored(self, tmp_path):
        """Test directory events are dropped."""
        handler, recorder = self._handler(tmp_path)
        handler.on_created(DirCreatedEvent(str(tmp_path / "sub")))
        assert recorder.paths == []

    @pytest.mark.parametrize("relative", [
        ".hidden.pdf",
        ".git/objects/a.pdf",
        "node_modules/pkg/doc.pdf",
    ])
    def test_ignored_locations(self, tmp_path, relative):
        """Test dotfiles, dot-directories and node_modules are ignored."""
        handler, recorder = self._handler(tmp_path)
        handler.on_created(FileCreatedEvent(str(tmp_path / relative)))
        assert recorder.paths == []

    def test_excluded_directory(self, tmp_path):
        """Test events under an output directory are ignored."""
        output = tmp_path / "organized"
        output.mkdir()
        handler, recorder = self._handler(tmp_path, [output])
        handler.on_created(FileCreatedEvent(str(output / "Invoices" / "a.pdf")))
        handler.on_created(FileCreatedEvent(str(tmp_path / "a.pdf")))
        assert recorder.paths == [str(tmp_path / "a.pdf")]

    def test_root_and_ancestors_never_excluded(self, tmp_path):
        """Test an output directory equal to or above the watch root hides nothing."""
        inbox = tmp_path / "inbox"
        inbox.mkdir()
        handler, recorder = self._handler(inbox, [inbox, tmp_path])
        handler.on_created(FileCreatedEvent(str(inbox / "scan.pdf")))
        assert handler.excluded_dirs == []
        assert recorder.paths == [str(inbox / "scan.pdf")]


class TestFileWatcherService:
    """Tests for FileWatcherService."""

    def test_start_and_stop(self, tmp_path, observers):
        """Test the observer is scheduled on the watch directory."""
        watcher = FileWatcherService(tmp_path, RecordingDebouncer(), observer_factory=observers)
        watcher.start()
        assert watcher.is_running

        observer = observers.created[0]
        handler, path, recursive = observer.scheduled[0]
        assert path == str(tmp_path.resolve())
        assert recursive is True
        assert isinstance(handler, DebouncedEventHandler)

        watcher.start()
        assert len(observers.created) == 1

        watcher.stop()
        assert observer.stopped
        assert not watcher.is_running
        watcher.stop()

    def test_missing_directory(self, tmp_path, observers):
        """Test starting on a missing directory raises."""
        watcher = FileWatcherService(tmp_path / "missing", RecordingDebouncer(),
                                     observer_factory=observers)
        with pytest.raises(RuntimeError):
            watcher.start()
        assert observers.created == []
