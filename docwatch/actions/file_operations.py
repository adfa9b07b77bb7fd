"""
File Operations
===============

Safe file operations for routing processed files.
Moves try an atomic rename first and fall back to copy+delete when source
and destination live on different filesystems.
"""

import errno
import os
import shutil
import time
from pathlib import Path
from typing import Callable, Optional

from docwatch.utils.logging_config import get_logger
from docwatch.utils.exceptions import FileOperationError, ErrorCode

logger = get_logger(__name__)


def ensure_directory(path: Path, name: str = "Directory") -> Path:
    """Create a directory if needed and return its absolute path.

    Args:
        path: Directory to validate.
        name: Label used in error messages.

    Raises:
        FileOperationError: If the path exists but is not a directory, or
                            cannot be created.
    """
    resolved = Path(path).expanduser().resolve()
    try:
        resolved.mkdir(parents=True, exist_ok=True)
    except FileExistsError:
        raise FileOperationError(
            f"{name} is not a directory: {resolved}",
            file_path=str(resolved),
            error_code=ErrorCode.DIRECTORY_INVALID,
        )
    except OSError as e:
        raise FileOperationError(
            f"Cannot create {name.lower()} {resolved}: {e}",
            file_path=str(resolved),
            error_code=ErrorCode.DIRECTORY_INVALID,
            cause=e,
        )
    return resolved


def is_within(path: Path, root: Path) -> bool:
    """Check whether ``path`` resolves to ``root`` or somewhere below it."""
    path = Path(path).resolve()
    root = Path(root).resolve()
    return path == root or root in path.parents


class FileOperations:
    """Safe file operations with conflict handling.

    Provides atomic move operations with a cross-device fallback and the
    two failure routes (failed directory, pass-through directory).
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        """Initialize file operations.

        Args:
            clock: Wall clock used for failed-file timestamps.
        """
        self._clock = clock

    def move_file(
        self,
        source: Path,
        dest_path: Path,
        resolve_conflicts: bool = True
    ) -> Path:
        """Move a file, creating destination directories as needed.

        Args:
            source: Source file path.
            dest_path: Desired destination path.
            resolve_conflicts: Append a counter instead of replacing an
                               existing file.

        Returns:
            Final path of moved file.

        Raises:
            FileOperationError: If move fails.
        """
        source = Path(source)
        dest_path = Path(dest_path)

        if not source.exists():
            raise FileOperationError(
                "Source file does not exist",
                file_path=str(source),
                error_code=ErrorCode.FILE_NOT_FOUND
            )

        dest_path.parent.mkdir(parents=True, exist_ok=True)
        if resolve_conflicts:
            dest_path = self.resolve_conflict(dest_path)

        try:
            os.replace(source, dest_path)
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise FileOperationError(
                    f"Failed to move file: {e}",
                    file_path=str(source),
                    cause=e
                )
            logger.debug(f"Cross-device move, using copy+delete: {source} -> {dest_path}")
            self._copy_then_delete(source, dest_path)

        logger.info(f"Moved: {source.name} -> {dest_path}", extra={"file_path": str(source)})
        return dest_path

    def move_to_failed(self, source: Path, failed_dir: Path) -> Path:
        """Move a failed file aside under a timestamped name.

        The copy+delete route is used unconditionally so the move works the
        same whether or not the failed directory shares a filesystem.

        Args:
            source: File that failed processing.
            failed_dir: Directory for failed files.

        Returns:
            Path of the file in the failed directory.
        """
        source = Path(source)
        timestamp = int(self._clock() * 1000)
        target = Path(failed_dir) / f"{timestamp}-{source.name}"

        Path(failed_dir).mkdir(parents=True, exist_ok=True)
        self._copy_then_delete(source, target)

        logger.warning(f"File moved to failed directory: {source} -> {target}",
                       extra={"file_path": str(source)})
        return target

    def move_to_passthrough(self, source: Path, passthrough_dir: Path) -> Path:
        """Forward a file unchanged to the pass-through directory.

        The name is kept as-is so a downstream stage sees the original file.

        Returns:
            Path of the forwarded file.
        """
        source = Path(source)
        target = Path(passthrough_dir) / source.name
        moved = self.move_file(source, target, resolve_conflicts=False)
        logger.info(f"File passed through: {source} -> {moved}",
                    extra={"file_path": str(source)})
        return moved

    def _copy_then_delete(self, source: Path, target: Path) -> None:
        try:
            shutil.copy2(str(source), str(target))
            source.unlink()
        except OSError as e:
            raise FileOperationError(
                f"Failed to copy file: {e}",
                file_path=str(source),
                cause=e
            )

    def resolve_conflict(self, dest_path: Path) -> Path:
        """Resolve filename conflict by appending counter.

        Args:
            dest_path: Desired destination path.

        Returns:
            Available path (may have counter suffix).
        """
        if not dest_path.exists():
            return dest_path

        stem = dest_path.stem
        suffix = dest_path.suffix
        parent = dest_path.parent

        counter = 1
        while True:
            new_path = parent / f"{stem}_{counter}{suffix}"
            if not new_path.exists():
                return new_path
            counter += 1
            if counter > 1000:
                raise FileOperationError(
                    "Too many files with same name",
                    file_path=str(dest_path)
                )


def remove_quietly(path: Optional[Path]) -> None:
    """Delete a file if it exists, logging instead of raising."""
    if path is None:
        return
    try:
        Path(path).unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove {path}: {e}")
