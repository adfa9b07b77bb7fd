"""
Processing Results
==================

Outcome and file identity types shared by the processing policies.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional
import hashlib

from docwatch.utils.exceptions import FileValidationError, ErrorCode


@dataclass
class FileIdentity:
    """Snapshot of a file taken before it is sent anywhere.

    Attributes:
        path: Absolute file path.
        size: File size in bytes.
        mtime: Last modification time (ISO-8601, UTC).
        hash: MD5 hex digest, when requested.
    """
    path: str
    size: int
    mtime: str
    hash: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        data = {"path": self.path, "size": self.size, "mtime": self.mtime}
        if self.hash:
            data["hash"] = self.hash
        return data


HASH_BUFFER_SIZE = 65536  # 64KB buffer


def capture_identity(file_path: Path, include_hash: bool = False) -> FileIdentity:
    """Record path, size, mtime and optionally a content hash.

    Raises:
        FileValidationError: If the file cannot be read.
    """
    path = Path(file_path).resolve()
    try:
        stat = path.stat()
    except OSError as e:
        raise FileValidationError(
            f"Cannot stat file: {e}",
            file_path=str(path),
            cause=e,
        )

    digest = None
    if include_hash:
        hasher = hashlib.md5()
        try:
            with open(path, 'rb') as f:
                while True:
                    data = f.read(HASH_BUFFER_SIZE)
                    if not data:
                        break
                    hasher.update(data)
        except OSError as e:
            raise FileValidationError(
                f"Cannot read file: {e}",
                file_path=str(path),
                error_code=ErrorCode.PERMISSION_DENIED,
                cause=e,
            )
        digest = hasher.hexdigest()

    mtime = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
    return FileIdentity(
        path=str(path),
        size=stat.st_size,
        mtime=mtime.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        hash=digest,
    )


@dataclass
class ProcessResult:
    """Result of running one file through a processing policy.

    Attributes:
        success: Whether the policy completed.
        original_path: File that was processed.
        suggested_name: Name suggested by the service (rename policy), or
            the original name otherwise.
        destination_path: Where the renamed file ended up.
        error: Error message on failure.
        output_paths: Files written by the split policy.
        output_count: Number of split outputs.
        identity: File identity captured before the remote call.
        routed_path: Where failure routing moved the file.
        policy: ``rename`` or ``split``.
        dry_run: Whether nothing was actually changed.
    """
    success: bool
    original_path: str
    suggested_name: str
    destination_path: Optional[str] = None
    error: Optional[str] = None
    output_paths: Optional[List[str]] = None
    output_count: Optional[int] = None
    identity: Optional[FileIdentity] = None
    routed_path: Optional[str] = None
    policy: str = "rename"
    dry_run: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "success": self.success,
            "original_path": self.original_path,
            "suggested_name": self.suggested_name,
            "destination_path": self.destination_path,
            "error": self.error,
            "output_paths": self.output_paths,
            "output_count": self.output_count,
            "identity": self.identity.to_dict() if self.identity else None,
            "routed_path": self.routed_path,
            "policy": self.policy,
            "dry_run": self.dry_run,
        }


def has_file_changed(file_path: Path, previous: FileIdentity) -> bool:
    """Check size and mtime against an earlier identity.

    A file that can no longer be read counts as changed.
    """
    try:
        current = capture_identity(file_path)
    except FileValidationError:
        return True
    return current.size != previous.size or current.mtime != previous.mtime
