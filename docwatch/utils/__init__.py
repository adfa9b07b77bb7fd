"""Utilities module for docwatch."""

from .logging_config import (
    setup_logging,
    get_logger,
    LoggingConfig,
    set_correlation_id,
    new_correlation_id,
)
from .exceptions import (
    ErrorCode,
    DocWatchError,
    ConfigurationError,
    FileValidationError,
    RemoteServiceError,
    DownloadError,
    SplitJobError,
    SplitJobTimeoutError,
    FileOperationError,
    HealthServerError,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "LoggingConfig",
    "set_correlation_id",
    "new_correlation_id",
    "ErrorCode",
    "DocWatchError",
    "ConfigurationError",
    "FileValidationError",
    "RemoteServiceError",
    "DownloadError",
    "SplitJobError",
    "SplitJobTimeoutError",
    "FileOperationError",
    "HealthServerError",
]
