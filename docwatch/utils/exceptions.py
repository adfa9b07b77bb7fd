"""
Custom Exceptions
=================

Defines custom exception classes for docwatch.
All exceptions include error codes for programmatic handling and a
``retryable`` flag that the task queue consults before scheduling a retry.
"""

from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """Error codes for programmatic error handling."""

    # General errors (1000-1099)
    UNKNOWN_ERROR = 1000
    CONFIGURATION_ERROR = 1001
    FILE_NOT_FOUND = 1002
    PERMISSION_DENIED = 1003

    # Validation errors (1100-1199)
    NOT_A_FILE = 1100
    FILE_TOO_LARGE = 1101
    INVALID_DESTINATION = 1102

    # Remote service errors (1200-1299)
    REMOTE_UNAVAILABLE = 1200
    REMOTE_REJECTED = 1201
    DOWNLOAD_FAILED = 1202
    INVALID_RESPONSE = 1203

    # Split job errors (1300-1399)
    SPLIT_JOB_FAILED = 1300
    SPLIT_JOB_TIMEOUT = 1301

    # Filesystem errors (1400-1499)
    MOVE_FAILED = 1400
    DIRECTORY_INVALID = 1401

    # Health endpoint errors (1500-1599)
    HEALTH_BIND_FAILED = 1500


class DocWatchError(Exception):
    """Base exception for all docwatch errors.

    Attributes:
        message: Human-readable error message.
        error_code: Programmatic error code.
        details: Additional error context.
        cause: Original exception that caused this error.
        retryable: Whether the task queue may retry the failed work.
    """

    retryable = True

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[dict] = None,
        cause: Optional[Exception] = None,
        retryable: Optional[bool] = None
    ):
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Programmatic error code.
            details: Additional context as key-value pairs.
            cause: Original exception if wrapping another error.
            retryable: Overrides the class default when given.
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause
        if retryable is not None:
            self.retryable = retryable

    def __str__(self) -> str:
        """Return the plain message; codes and details live in to_dict()."""
        return self.message

    def to_dict(self) -> dict:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "error_code": self.error_code.value,
            "error_name": self.error_code.name,
            "details": self.details,
            "retryable": self.retryable,
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(DocWatchError):
    """Raised when there's a configuration problem.

    Examples:
        - Invalid YAML in a configuration file
        - Values outside their allowed range
        - Unknown enum values (split mode, log level)
    """

    retryable = False

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        super().__init__(
            message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            details=details,
            **kwargs
        )


class FileValidationError(DocWatchError):
    """Raised when an input file cannot be processed as-is.

    Validation failures are never retried: the file will not become valid by
    waiting.
    """

    retryable = False

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.FILE_NOT_FOUND,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if file_path:
            details["file_path"] = file_path
        super().__init__(
            message,
            error_code=error_code,
            details=details,
            **kwargs
        )


class RemoteServiceError(DocWatchError):
    """Raised when the remote document service call fails.

    Connection errors, timeouts, rate limiting and 5xx responses are
    transient; everything else is permanent.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = True,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if status_code is not None:
            details["status_code"] = status_code
        error_code = kwargs.pop(
            "error_code",
            ErrorCode.REMOTE_UNAVAILABLE if retryable else ErrorCode.REMOTE_REJECTED,
        )
        super().__init__(
            message,
            error_code=error_code,
            details=details,
            retryable=retryable,
            **kwargs
        )
        self.status_code = status_code


class DownloadError(RemoteServiceError):
    """Raised when a produced document cannot be downloaded."""

    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if url:
            details["url"] = url
        kwargs.setdefault("error_code", ErrorCode.DOWNLOAD_FAILED)
        super().__init__(message, details=details, **kwargs)


class SplitJobError(DocWatchError):
    """Raised when the remote split job reports a terminal failure."""

    retryable = False

    def __init__(
        self,
        message: str,
        job_id: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.SPLIT_JOB_FAILED,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if job_id:
            details["job_id"] = job_id
        super().__init__(
            message,
            error_code=error_code,
            details=details,
            **kwargs
        )


class SplitJobTimeoutError(SplitJobError):
    """Raised when a split job is still running after the poll ceiling."""

    def __init__(self, message: str, job_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            job_id=job_id,
            error_code=ErrorCode.SPLIT_JOB_TIMEOUT,
            **kwargs
        )


class FileOperationError(DocWatchError):
    """Raised when moving, copying or creating directories fails."""

    retryable = False

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.MOVE_FAILED,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if file_path:
            details["file_path"] = file_path
        super().__init__(
            message,
            error_code=error_code,
            details=details,
            **kwargs
        )


class HealthServerError(DocWatchError):
    """Raised when the health endpoint cannot be bound."""

    retryable = False

    def __init__(self, message: str, socket_path: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if socket_path:
            details["socket_path"] = socket_path
        super().__init__(
            message,
            error_code=ErrorCode.HEALTH_BIND_FAILED,
            details=details,
            **kwargs
        )
