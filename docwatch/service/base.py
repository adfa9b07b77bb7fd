"""
Document Service Interface
==========================

The remote document-processing capability consumed by the pipeline, and the
response types it returns. Field names follow the service's JSON payloads.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

from docwatch.utils.exceptions import ErrorCode, RemoteServiceError

T = TypeVar("T")


def _parse(kind: str, data: Any, build: Callable[[Dict[str, Any]], T]) -> T:
    """Build a response object, treating a malformed payload as permanent."""
    try:
        return build(data)
    except (KeyError, TypeError, AttributeError) as e:
        raise RemoteServiceError(
            f"Malformed {kind} response: missing or invalid field {e}",
            retryable=False,
            error_code=ErrorCode.INVALID_RESPONSE,
            cause=e,
        ) from e


@dataclass
class RenameSuggestion:
    """Name (and optional folder) suggested for a file."""
    original_filename: str
    suggested_filename: str
    folder_path: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RenameSuggestion":
        return _parse("rename", data, lambda d: cls(
            original_filename=d.get("originalFilename", ""),
            suggested_filename=d["suggestedFilename"],
            folder_path=d.get("suggestedFolderPath") or d.get("folderPath"),
        ))


@dataclass
class SplitDocument:
    """One output document produced by a split job."""
    filename: str
    download_url: str
    pages: List[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SplitDocument":
        return _parse("split document", data, lambda d: cls(
            filename=d["filename"],
            download_url=d["downloadUrl"],
            pages=list(d.get("pages") or []),
        ))


@dataclass
class SplitJob:
    """Handle returned when a split job is submitted."""
    job_id: str
    status_url: str
    status: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SplitJob":
        return _parse("split job", data, lambda d: cls(
            job_id=d["jobId"],
            status_url=d["statusUrl"],
            status=d.get("status", "pending"),
        ))


@dataclass
class SplitJobStatus:
    """Latest server-side view of a split job."""
    job_id: str
    status: str
    documents: Optional[List[SplitDocument]] = None
    progress: Optional[float] = None
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SplitJobStatus":
        def build(d: Dict[str, Any]) -> "SplitJobStatus":
            documents = d.get("documents")
            return cls(
                job_id=d.get("jobId", ""),
                status=d["status"],
                documents=[SplitDocument.from_dict(doc) for doc in documents] if documents is not None else None,
                progress=d.get("progress"),
                error=d.get("error"),
            )

        return _parse("job status", data, build)


class DocumentService(ABC):
    """Remote document-processing capability."""

    @abstractmethod
    def submit_rename(self, file_path: Path) -> RenameSuggestion:
        """Upload a file and return the suggested name."""

    @abstractmethod
    def submit_split(
        self,
        file_path: Path,
        mode: str,
        instructions: Optional[str] = None,
        pages_per_split: Optional[int] = None,
    ) -> SplitJob:
        """Upload a PDF and start a split job."""

    @abstractmethod
    def get_job_status(self, status_url: str) -> SplitJobStatus:
        """Fetch the current status of a split job."""

    @abstractmethod
    def download_document(self, url: str, dest_path: Path) -> None:
        """Download one produced document to ``dest_path``.

        Raises:
            DownloadError: If the download fails.
        """
