"""Actions module for file operations."""

from .file_operations import FileOperations, ensure_directory, is_within, remove_quietly

__all__ = [
    "FileOperations",
    "ensure_directory",
    "is_within",
    "remove_quietly",
]
