"""
Split Job Polling
=================

Tracks a remote PDF split job until it finishes.
``evaluate_job_status`` is the pure transition function; ``SplitJobPoller``
drives it against the service with a fixed interval and attempt ceiling.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional
import time

from docwatch.service.base import DocumentService, SplitDocument, SplitJobStatus
from docwatch.utils.logging_config import get_logger
from docwatch.utils.exceptions import SplitJobError, SplitJobTimeoutError

logger = get_logger(__name__)

DEFAULT_FAILURE_MESSAGE = "PDF split job failed"


class SplitJobState(Enum):
    """Remote job states."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PollAction(Enum):
    """What the poller should do after one status fetch."""
    CONTINUE = "continue"
    DONE = "done"
    ERROR = "error"


@dataclass
class PollDecision:
    """Outcome of evaluating one status response."""
    action: PollAction
    documents: Optional[List[SplitDocument]] = None
    error: Optional[str] = None
    progress: Optional[float] = None


def evaluate_job_status(status: SplitJobStatus) -> PollDecision:
    """Map a job status response to the next poll action.

    Unknown states are treated like ``pending``.
    """
    if status.status == SplitJobState.COMPLETED.value:
        return PollDecision(PollAction.DONE, documents=list(status.documents or []))
    if status.status == SplitJobState.FAILED.value:
        return PollDecision(PollAction.ERROR, error=status.error or DEFAULT_FAILURE_MESSAGE)
    return PollDecision(PollAction.CONTINUE, progress=status.progress)


def _describe_duration(seconds: float) -> str:
    if seconds >= 60 and seconds % 60 == 0:
        minutes = int(seconds // 60)
        return f"{minutes} minute" + ("s" if minutes != 1 else "")
    return f"{seconds:g} seconds"


class SplitJobPoller:
    """Polls a split job until it completes, fails or times out."""

    def __init__(
        self,
        service: DocumentService,
        interval_seconds: float = 2.0,
        max_attempts: int = 300,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the poller.

        Args:
            service: Remote service used to fetch job status.
            interval_seconds: Delay between polls.
            max_attempts: Polls before giving up.
            sleep: Sleep function (injectable for tests).
        """
        self.service = service
        self.interval_seconds = interval_seconds
        self.max_attempts = max_attempts
        self._sleep = sleep

    def wait(self, status_url: str, job_id: Optional[str] = None) -> List[SplitDocument]:
        """Block until the job completes and return its documents.

        Raises:
            SplitJobError: If the job reports failure.
            SplitJobTimeoutError: If the job is still running after
                                  ``max_attempts`` polls.
        """
        for attempt in range(1, self.max_attempts + 1):
            status = self.service.get_job_status(status_url)
            decision = evaluate_job_status(status)

            if decision.action is PollAction.DONE:
                logger.info(
                    f"Split job completed with {len(decision.documents)} document(s)",
                    extra={"job_id": job_id, "attempt": attempt},
                )
                return decision.documents

            if decision.action is PollAction.ERROR:
                raise SplitJobError(decision.error, job_id=job_id)

            if decision.progress is not None:
                logger.debug(f"Split job processing... {decision.progress}%",
                             extra={"job_id": job_id, "attempt": attempt})
            else:
                logger.debug(f"Split job {status.status}",
                             extra={"job_id": job_id, "attempt": attempt})

            self._sleep(self.interval_seconds)

        waited = _describe_duration(self.interval_seconds * self.max_attempts)
        raise SplitJobTimeoutError(f"Job timed out after {waited}", job_id=job_id)
