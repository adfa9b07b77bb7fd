"""
Shared test fixtures: manual timers, a scripted document service and a
stand-in for the watchdog observer.
"""

import threading
import time
from pathlib import Path

import pytest

from docwatch.service.base import (
    DocumentService,
    RenameSuggestion,
    SplitJob,
    SplitJobStatus,
)


class FakeTimer:
    """Timer that only fires when the test says so."""

    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.fired = True
        self.function(*self.args, **self.kwargs)


class FakeTimerFactory:
    """Drop-in for ``threading.Timer`` that records every timer created."""

    def __init__(self):
        self.timers = []
        self._lock = threading.Lock()

    def __call__(self, interval, function, args=None, kwargs=None):
        timer = FakeTimer(interval, function, args, kwargs)
        with self._lock:
            self.timers.append(timer)
        return timer

    def live(self):
        with self._lock:
            return [t for t in self.timers if t.started and not t.cancelled and not t.fired]


class FakeObserver:
    """Minimal watchdog observer replacement."""

    def __init__(self):
        self.scheduled = []
        self.alive = False
        self.stopped = False

    def schedule(self, handler, path, recursive=False):
        self.scheduled.append((handler, path, recursive))

    def start(self):
        self.alive = True

    def stop(self):
        self.alive = False
        self.stopped = True

    def join(self, timeout=None):
        pass

    def is_alive(self):
        return self.alive


class FakeObserverFactory:
    """Creates FakeObservers and remembers them."""

    def __init__(self):
        self.created = []

    def __call__(self):
        observer = FakeObserver()
        self.created.append(observer)
        return observer


class FakeDocumentService(DocumentService):
    """Scripted remote service.

    ``rename_errors`` are raised by successive rename calls before the
    suggestion is returned. ``statuses`` are returned in order by status
    polls, the last one repeating.
    """

    def __init__(self):
        self.suggestion = RenameSuggestion("scan.pdf", "2024-01-05 Invoice.pdf")
        self.rename_errors = []
        self.job = SplitJob(job_id="job-1", status_url="/jobs/job-1", status="pending")
        self.statuses = [SplitJobStatus(job_id="job-1", status="completed", documents=[])]
        self.download_failures = {}
        self.download_content = b"%PDF-1.4 part"

        self.rename_calls = []
        self.split_calls = []
        self.status_calls = []
        self.downloads = []

    def submit_rename(self, file_path):
        self.rename_calls.append(Path(file_path))
        if self.rename_errors:
            raise self.rename_errors.pop(0)
        return self.suggestion

    def submit_split(self, file_path, mode, instructions=None, pages_per_split=None):
        self.split_calls.append((Path(file_path), mode, instructions, pages_per_split))
        return self.job

    def get_job_status(self, status_url):
        self.status_calls.append(status_url)
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]

    def download_document(self, url, dest_path):
        self.downloads.append((url, Path(dest_path)))
        # Write first so a failure leaves a partial file behind
        Path(dest_path).write_bytes(self.download_content)
        if url in self.download_failures:
            raise self.download_failures[url]


def wait_until(predicate, timeout=5.0, interval=0.01):
    """Poll until predicate() is true; fail the test on timeout."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return
        time.sleep(interval)
    pytest.fail("condition not met in time")


@pytest.fixture
def timers():
    return FakeTimerFactory()


@pytest.fixture
def observers():
    return FakeObserverFactory()


@pytest.fixture
def fake_service():
    return FakeDocumentService()


@pytest.fixture
def waiter():
    return wait_until
