"""
Processing Pipeline
===================

Runs one file through the remote service and puts the outcome on disk.

Two policies:

- **rename**: upload, receive a suggested name (and folder), move the file.
- **split**: upload a PDF, poll the split job, download every output.

Failures are routed to the pass-through directory (unchanged name) when one
is configured, otherwise to the failed directory under a timestamped name.
"""

from pathlib import Path
from typing import Callable, List, Optional
import time

from docwatch.actions.file_operations import FileOperations, is_within, remove_quietly
from docwatch.config.settings import SplitConfig
from docwatch.processing.results import ProcessResult, capture_identity, has_file_changed
from docwatch.processing.split_job import SplitJobPoller
from docwatch.service.base import DocumentService, RenameSuggestion, SplitDocument
from docwatch.utils.logging_config import get_logger
from docwatch.utils.exceptions import DocWatchError, FileValidationError, ErrorCode

logger = get_logger(__name__)

RENAME_POLICY = "rename"
SPLIT_POLICY = "split"

MAX_RENAME_SIZE_BYTES = 25 * 1024 * 1024
MAX_SPLIT_SIZE_BYTES = 100 * 1024 * 1024


def validate_file(file_path: Path, max_bytes: int) -> int:
    """Check that a file exists, is a regular file and fits the size limit.

    Returns:
        File size in bytes.

    Raises:
        FileValidationError: On any violation.
    """
    try:
        stats = file_path.stat()
    except OSError as e:
        raise FileValidationError(
            f"Cannot access file: {file_path}",
            file_path=str(file_path),
            cause=e,
        )

    if not file_path.is_file():
        raise FileValidationError(
            f"Not a file: {file_path}",
            file_path=str(file_path),
            error_code=ErrorCode.NOT_A_FILE,
        )

    if stats.st_size > max_bytes:
        limit_mb = max_bytes // (1024 * 1024)
        size_mb = stats.st_size / 1024 / 1024
        raise FileValidationError(
            f"File exceeds {limit_mb}MB limit ({size_mb:.2f}MB): {file_path}",
            file_path=str(file_path),
            error_code=ErrorCode.FILE_TOO_LARGE,
        )

    return stats.st_size


class ProcessingPipeline:
    """Per-file processing with rename and split policies.

    ``process`` raises on failure so the task queue can retry it; ``execute``
    is the non-raising variant that also routes the failed file.
    """

    def __init__(
        self,
        service: DocumentService,
        output_dir: Optional[Path] = None,
        failed_dir: Optional[Path] = None,
        passthrough_dir: Optional[Path] = None,
        split: Optional[SplitConfig] = None,
        dry_run: bool = False,
        apply: bool = True,
        include_hash: bool = False,
        file_ops: Optional[FileOperations] = None,
        sleep: Callable[[float], None] = time.sleep,
        on_output: Optional[Callable[[Path], None]] = None,
    ):
        """Initialize the pipeline.

        Args:
            service: Remote document service.
            output_dir: Base directory for results. Renamed files stay next
                        to the source when None.
            failed_dir: Directory for files that fail processing.
            passthrough_dir: Forward failed files here unchanged instead.
            split: Split job settings; the split policy applies to PDFs
                   when ``split.enabled`` is set.
            dry_run: Validate and log only.
            apply: Move renamed files (otherwise only report the suggestion).
            include_hash: Include an MD5 hash in the captured file identity.
            file_ops: File operations helper.
            sleep: Sleep function used between split job polls.
            on_output: Called with every path the pipeline writes, so the
                       watcher can ignore it.
        """
        self.service = service
        self.output_dir = Path(output_dir) if output_dir else None
        self.failed_dir = Path(failed_dir) if failed_dir else None
        self.passthrough_dir = Path(passthrough_dir) if passthrough_dir else None
        self.split = split or SplitConfig()
        self.dry_run = dry_run
        self.apply = apply
        self.include_hash = include_hash
        self.file_ops = file_ops or FileOperations()
        self.on_output = on_output
        self.poller = SplitJobPoller(
            service,
            interval_seconds=self.split.poll_interval_ms / 1000,
            max_attempts=self.split.max_poll_attempts,
            sleep=sleep,
        )

    def policy_for(self, file_path: Path) -> str:
        """Choose the processing policy for a file."""
        if self.split.enabled and Path(file_path).suffix.lower() == ".pdf":
            return SPLIT_POLICY
        return RENAME_POLICY

    def process(self, file_path: Path) -> ProcessResult:
        """Process a file, raising on failure.

        Raises:
            DocWatchError: Validation, remote or filesystem failures.
        """
        path = Path(file_path)
        policy = self.policy_for(path)

        if self.dry_run:
            return self._dry_run(path, policy)
        if policy == SPLIT_POLICY:
            return self._split(path)
        return self._rename(path)

    def execute(self, file_path: Path) -> ProcessResult:
        """Process a file and convert any failure into a routed result."""
        try:
            return self.process(file_path)
        except Exception as e:
            logger.error(f"File processing failed: {file_path}: {e}",
                         extra={"file_path": str(file_path)})
            return self.handle_failure(file_path, e)

    def handle_failure(self, file_path: Path, error: BaseException) -> ProcessResult:
        """Route a permanently failed file and build its result.

        Routing problems are logged and never raised.
        """
        path = Path(file_path)
        routed = None

        if not self.dry_run and path.exists():
            try:
                if self.passthrough_dir:
                    routed = self.file_ops.move_to_passthrough(path, self.passthrough_dir)
                elif self.failed_dir:
                    routed = self.file_ops.move_to_failed(path, self.failed_dir)
            except (DocWatchError, OSError) as e:
                logger.error(f"Failed to route failed file {path}: {e}",
                             extra={"file_path": str(path)})
            if routed:
                self._announce(routed)

        return ProcessResult(
            success=False,
            original_path=str(path),
            suggested_name=path.name,
            error=str(error),
            routed_path=str(routed) if routed else None,
            policy=self.policy_for(path),
            dry_run=self.dry_run,
        )

    def _announce(self, output_path: Path) -> None:
        if self.on_output is not None:
            self.on_output(output_path)

    def _dry_run(self, path: Path, policy: str) -> ProcessResult:
        limit = MAX_SPLIT_SIZE_BYTES if policy == SPLIT_POLICY else MAX_RENAME_SIZE_BYTES
        validate_file(path, limit)
        identity = capture_identity(path, self.include_hash)
        logger.info(f"Dry run - would {policy}: {path}", extra={"file_path": str(path)})
        return ProcessResult(
            success=True,
            original_path=str(path),
            suggested_name=path.name,
            identity=identity,
            policy=policy,
            dry_run=True,
        )

    def _rename(self, path: Path) -> ProcessResult:
        validate_file(path, MAX_RENAME_SIZE_BYTES)
        identity = capture_identity(path, self.include_hash)

        logger.debug(f"Uploading file for rename: {path}", extra={"file_path": str(path)})
        suggestion = self.service.submit_rename(path)
        logger.debug(
            f"Received rename suggestion: {suggestion.suggested_filename} "
            f"(folder: {suggestion.folder_path or '-'})",
            extra={"file_path": str(path)},
        )

        destination = None
        if self.apply:
            target = self._destination_for(path, suggestion)
            if has_file_changed(path, identity):
                logger.warning(f"File changed while it was being processed: {path}",
                               extra={"file_path": str(path)})
            destination = self.file_ops.move_file(path, target)
            self._announce(destination)

        return ProcessResult(
            success=True,
            original_path=str(path),
            suggested_name=suggestion.suggested_filename,
            destination_path=str(destination) if destination else None,
            identity=identity,
            policy=RENAME_POLICY,
        )

    def _destination_for(self, path: Path, suggestion: RenameSuggestion) -> Path:
        """Build the target path, keeping it inside the output directory."""
        name = suggestion.suggested_filename
        if not name or name in (".", "..") or Path(name).name != name:
            raise FileValidationError(
                f"Invalid suggested filename: {name!r}",
                file_path=str(path),
                error_code=ErrorCode.INVALID_DESTINATION,
            )

        if self.output_dir is None:
            return path.parent / name

        target_dir = self.output_dir
        if suggestion.folder_path:
            target_dir = self.output_dir / suggestion.folder_path
            if not is_within(target_dir, self.output_dir):
                raise FileValidationError(
                    f"Suggested folder escapes the output directory: {suggestion.folder_path}",
                    file_path=str(path),
                    error_code=ErrorCode.INVALID_DESTINATION,
                )
        return target_dir / name

    def _split(self, path: Path) -> ProcessResult:
        validate_file(path, MAX_SPLIT_SIZE_BYTES)
        identity = capture_identity(path, self.include_hash)

        job = self.service.submit_split(
            path,
            self.split.mode,
            instructions=self.split.instructions,
            pages_per_split=self.split.pages_per_split,
        )
        logger.info(f"Split job submitted for {path.name}",
                    extra={"file_path": str(path), "job_id": job.job_id})

        documents = self.poller.wait(job.status_url, job.job_id)
        outputs = self._download_all(path, documents, job.job_id)

        if self.split.delete_source:
            remove_quietly(path)
            logger.debug(f"Deleted source after split: {path}", extra={"file_path": str(path)})

        logger.info(f"Split {path.name} into {len(outputs)} file(s)",
                    extra={"file_path": str(path), "job_id": job.job_id})

        return ProcessResult(
            success=True,
            original_path=str(path),
            suggested_name=path.name,
            output_paths=[str(p) for p in outputs],
            output_count=len(outputs),
            identity=identity,
            policy=SPLIT_POLICY,
        )

    def _download_all(self, path: Path, documents: List[SplitDocument], job_id: str) -> List[Path]:
        """Download split outputs in order; on failure remove what was written."""
        out_dir = self.output_dir or path.parent
        out_dir.mkdir(parents=True, exist_ok=True)

        written: List[Path] = []
        for doc in documents:
            target = self.file_ops.resolve_conflict(out_dir / Path(doc.filename).name)
            self._announce(target)
            try:
                self.service.download_document(doc.download_url, target)
            except Exception:
                logger.error(f"Download failed for {doc.filename}; removing {len(written)} earlier output(s)",
                             extra={"file_path": str(path), "job_id": job_id})
                remove_quietly(target)
                for p in written:
                    remove_quietly(p)
                raise
            written.append(target)
            logger.debug(f"Downloaded {target.name}", extra={"job_id": job_id})

        return written
