"""
Unit tests for split job polling.
"""

import pytest

from docwatch.processing.split_job import (
    PollAction,
    SplitJobPoller,
    evaluate_job_status,
)
from docwatch.service.base import SplitDocument, SplitJobStatus
from docwatch.utils.exceptions import ErrorCode, SplitJobError, SplitJobTimeoutError


def _status(state, **kwargs):
    return SplitJobStatus(job_id="job-1", status=state, **kwargs)


class TestEvaluateJobStatus:
    """Tests for the transition function."""

    def test_pending_and_processing_continue(self):
        """Test non-terminal states keep polling."""
        assert evaluate_job_status(_status("pending")).action is PollAction.CONTINUE
        decision = evaluate_job_status(_status("processing", progress=40))
        assert decision.action is PollAction.CONTINUE
        assert decision.progress == 40

    def test_completed(self):
        """Test completion carries the documents."""
        docs = [SplitDocument("a.pdf", "https://dl/a", [1, 2])]
        decision = evaluate_job_status(_status("completed", documents=docs))
        assert decision.action is PollAction.DONE
        assert decision.documents == docs

    def test_failed_with_and_without_message(self):
        """Test failures use the job error or a default message."""
        assert evaluate_job_status(_status("failed", error="corrupt PDF")).error == "corrupt PDF"
        assert evaluate_job_status(_status("failed")).error == "PDF split job failed"


class TestSplitJobPoller:
    """Tests for SplitJobPoller."""

    def test_polls_until_complete(self, fake_service):
        """Test the poller sleeps between non-terminal responses."""
        docs = [SplitDocument("a.pdf", "https://dl/a")]
        fake_service.statuses = [
            _status("pending"),
            _status("processing", progress=50),
            _status("completed", documents=docs),
        ]
        sleeps = []
        poller = SplitJobPoller(fake_service, interval_seconds=2.0, max_attempts=10, sleep=sleeps.append)

        assert poller.wait("/jobs/job-1", "job-1") == docs
        assert sleeps == [2.0, 2.0]
        assert fake_service.status_calls == ["/jobs/job-1"] * 3

    def test_failed_job(self, fake_service):
        """Test a failed job raises a non-retryable error."""
        fake_service.statuses = [_status("failed", error="encrypted")]
        poller = SplitJobPoller(fake_service, sleep=lambda s: None)

        with pytest.raises(SplitJobError) as exc_info:
            poller.wait("/jobs/job-1", "job-1")
        assert str(exc_info.value) == "encrypted"
        assert exc_info.value.retryable is False

    def test_timeout(self, fake_service):
        """Test exceeding the attempt ceiling raises a timeout."""
        fake_service.statuses = [_status("processing")]
        poller = SplitJobPoller(fake_service, interval_seconds=2.0, max_attempts=300, sleep=lambda s: None)

        with pytest.raises(SplitJobTimeoutError) as exc_info:
            poller.wait("/jobs/job-1", "job-1")
        assert str(exc_info.value) == "Job timed out after 10 minutes"
        assert exc_info.value.error_code is ErrorCode.SPLIT_JOB_TIMEOUT
        assert exc_info.value.retryable is False
        assert len(fake_service.status_calls) == 300
