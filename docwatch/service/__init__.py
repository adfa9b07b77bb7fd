"""Remote document service capability."""

from .base import (
    DocumentService,
    RenameSuggestion,
    SplitDocument,
    SplitJob,
    SplitJobStatus,
)
from .http_client import HttpDocumentService

__all__ = [
    "DocumentService",
    "RenameSuggestion",
    "SplitDocument",
    "SplitJob",
    "SplitJobStatus",
    "HttpDocumentService",
]
