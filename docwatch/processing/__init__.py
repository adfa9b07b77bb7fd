"""Processing module for per-file rename and split policies."""

from .pipeline import ProcessingPipeline, validate_file, RENAME_POLICY, SPLIT_POLICY
from .results import ProcessResult, FileIdentity, capture_identity, has_file_changed
from .split_job import SplitJobPoller, SplitJobState, PollAction, PollDecision, evaluate_job_status

__all__ = [
    "ProcessingPipeline",
    "validate_file",
    "RENAME_POLICY",
    "SPLIT_POLICY",
    "ProcessResult",
    "FileIdentity",
    "capture_identity",
    "has_file_changed",
    "SplitJobPoller",
    "SplitJobState",
    "PollAction",
    "PollDecision",
    "evaluate_job_status",
]
