"""
HTTP Document Service
=====================

``DocumentService`` implementation over HTTPS using ``requests``.
Authentication is a static bearer token; obtaining and refreshing it is
handled outside docwatch.
"""

from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import requests

from docwatch.service.base import (
    DocumentService,
    RenameSuggestion,
    SplitJob,
    SplitJobStatus,
)
from docwatch.utils.exceptions import DownloadError, RemoteServiceError
from docwatch.utils.logging_config import get_logger

logger = get_logger(__name__)

# Status codes worth retrying
TRANSIENT_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}

DOWNLOAD_CHUNK_SIZE = 64 * 1024


class HttpDocumentService(DocumentService):
    """Talks to the document service REST API."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the client.

        Args:
            base_url: API root, e.g. ``https://api.renamed.to/v1``.
            token: Bearer token sent with every API request.
            timeout: Per-request timeout in seconds.
            session: Preconfigured session (tests).
        """
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout
        self._session = session or requests.Session()
        if token:
            self._session.headers.update({"Authorization": f"Bearer {token}"})

    def close(self) -> None:
        self._session.close()

    def submit_rename(self, file_path: Path) -> RenameSuggestion:
        data = self._upload("rename", file_path)
        return RenameSuggestion.from_dict(data)

    def submit_split(
        self,
        file_path: Path,
        mode: str,
        instructions: Optional[str] = None,
        pages_per_split: Optional[int] = None,
    ) -> SplitJob:
        fields: Dict[str, Any] = {"mode": mode}
        if instructions:
            fields["instructions"] = instructions
        if pages_per_split:
            fields["pagesPerSplit"] = str(pages_per_split)
        data = self._upload("pdf-split", file_path, fields)
        return SplitJob.from_dict(data)

    def get_job_status(self, status_url: str) -> SplitJobStatus:
        response = self._request("GET", self._url(status_url))
        return SplitJobStatus.from_dict(self._json(response))

    def download_document(self, url: str, dest_path: Path) -> None:
        # Download URLs are pre-signed; the API token is not sent along
        try:
            with requests.get(url, stream=True, timeout=self.timeout) as response:
                if not response.ok:
                    raise DownloadError(
                        f"Failed to download file: {response.status_code} {response.reason}",
                        url=url,
                        status_code=response.status_code,
                        retryable=response.status_code in TRANSIENT_STATUS_CODES,
                    )
                with open(dest_path, "wb") as f:
                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        f.write(chunk)
        except requests.RequestException as e:
            raise DownloadError(f"Failed to download file: {e}", url=url, cause=e) from e

    def _upload(
        self,
        path: str,
        file_path: Path,
        fields: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        file_path = Path(file_path)
        with open(file_path, "rb") as f:
            response = self._request(
                "POST",
                self._url(path),
                files={"file": (file_path.name, f)},
                data=fields or None,
            )
        return self._json(response)

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise RemoteServiceError(f"Request to {url} failed: {e}", cause=e) from e
        except requests.RequestException as e:
            raise RemoteServiceError(f"Request to {url} failed: {e}", retryable=False, cause=e) from e

        if not response.ok:
            raise RemoteServiceError(
                f"{method} {url} returned {response.status_code}: {self._error_text(response)}",
                status_code=response.status_code,
                retryable=response.status_code in TRANSIENT_STATUS_CODES,
            )
        return response

    def _url(self, path: str) -> str:
        # Endpoint names resolve under the API root; status URLs may be
        # host-relative ("/v1/jobs/...") or absolute
        return urljoin(self.base_url, path)

    @staticmethod
    def _json(response: requests.Response) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError as e:
            raise RemoteServiceError(
                f"Invalid JSON from {response.url}",
                status_code=response.status_code,
                retryable=False,
                cause=e,
            ) from e

    @staticmethod
    def _error_text(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] or response.reason
        if isinstance(body, dict):
            return str(body.get("error") or body.get("message") or body)
        return str(body)
