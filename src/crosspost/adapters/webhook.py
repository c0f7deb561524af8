"""Publish target posting media and articles to HTTP endpoints.

Media is downloaded to a temporary file, registered on the operation's
cancellation token so an abort removes it, then posted as multipart form
data to ``media_url``.  Articles are posted as JSON to ``publish_url``.
Responses are JSON objects carrying ``url`` (media) or ``link`` (article).
"""

from __future__ import annotations

import logging
import mimetypes
import os
import tempfile
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import requests

from crosspost import __version__
from crosspost.core.async_utils import run_sync
from crosspost.core.retry import retry_transient
from crosspost.errors import (
    MediaUploadError,
    NetworkTransientError,
    PublishError,
    SyncError,
    UnauthorizedError,
    ValidationError,
)

if TYPE_CHECKING:
    from crosspost.sync.cancellation import CancellationToken
    from crosspost.sync.models import PublishRequest

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10


def translate_http_error(exc: requests.RequestException, action: str) -> SyncError:
    """Map a requests failure onto the sync error taxonomy."""
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return NetworkTransientError(f"{action}: {exc}")
    response = getattr(exc, "response", None)
    status = response.status_code if response is not None else None
    match status:
        case 401 | 403:
            return UnauthorizedError(f"{action}: HTTP {status}")
        case 400 | 413 | 422:
            detail = response.text[:200] if response is not None else ""
            return ValidationError(f"{action}: HTTP {status} {detail}".rstrip())
        case int() if status >= 500:
            return NetworkTransientError(f"{action}: HTTP {status}")
        case _:
            return PublishError(f"{action}: {exc}")


class WebhookTarget:
    """``PublishTarget`` speaking plain HTTP/JSON.

    Args:
        name: Target name.
        publish_url: Article endpoint.
        media_url: Media endpoint.  Without one, media URLs are used as is.
        api_key: Bearer token.
        supports_draft: Whether the endpoint understands ``mode=draft``.
        request_timeout: Read timeout in seconds.
    """

    def __init__(
        self,
        name: str,
        publish_url: str,
        media_url: str | None = None,
        api_key: str | None = None,
        supports_draft: bool = True,
        request_timeout: float = 30.0,
    ) -> None:
        self.name = name
        self.publish_url = publish_url
        self.media_url = media_url
        self.api_key = api_key
        self.supports_draft = supports_draft
        self.request_timeout = request_timeout
        self._thread_local = threading.local()

    def __repr__(self) -> str:
        return f"WebhookTarget(name={self.name!r}, publish_url={self.publish_url!r})"

    # ------------------------------------------------------------------
    # HTTP plumbing (runs in worker threads)
    # ------------------------------------------------------------------

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers["User-Agent"] = f"crosspost/{__version__}"
        if self.api_key:
            session.headers["Authorization"] = f"Bearer {self.api_key}"
        return session

    @property
    def _timeout(self) -> tuple[float, float]:
        return (CONNECT_TIMEOUT, self.request_timeout)

    def _download(self, url: str) -> Path:
        """Fetch *url* into a temporary file and return its path."""
        suffix = Path(urlparse(url).path).suffix[:10]
        response = self._get_session().get(url, stream=True, timeout=self._timeout)
        response.raise_for_status()
        fd, tmp_path = tempfile.mkstemp(prefix="crosspost-", suffix=suffix)
        try:
            with os.fdopen(fd, "wb") as fh:
                for chunk in response.iter_content(chunk_size=64 * 1024):
                    fh.write(chunk)
        except BaseException:
            os.unlink(tmp_path)
            raise
        return Path(tmp_path)

    def _post_media(self, path: Path, source_url: str) -> str:
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        with open(path, "rb") as fh:
            response = self._get_session().post(
                self.media_url,
                files={"file": (path.name, fh, content_type)},
                data={"source_url": source_url},
                timeout=self._timeout,
            )
        response.raise_for_status()
        return str(response.json().get("url") or "")

    def _post_article(self, payload: dict[str, Any]) -> str:
        response = self._get_session().post(
            self.publish_url, json=payload, timeout=self._timeout
        )
        response.raise_for_status()
        if not response.content:
            return ""
        return str(response.json().get("link") or "")

    # ------------------------------------------------------------------
    # PublishTarget
    # ------------------------------------------------------------------

    async def upload_media(self, url: str, token: CancellationToken) -> str:
        """Rehost *url*; the temporary download never outlives the call."""
        if not self.media_url:
            return url

        try:
            path = await run_sync(self._download, url)
        except requests.RequestException as exc:
            raise MediaUploadError(f"download of {url} failed: {exc}") from exc

        def cleanup() -> None:
            path.unlink(missing_ok=True)

        token.add_cleanup(cleanup)
        try:
            token.raise_if_aborted()
            return await run_sync(self._post_media, path, url)
        except requests.RequestException as exc:
            raise MediaUploadError(f"upload of {url} to {self.name} failed: {exc}") from exc
        except ValueError as exc:
            raise MediaUploadError(f"{self.name} returned invalid JSON for {url}") from exc
        finally:
            token.remove_cleanup(cleanup)
            cleanup()

    async def publish(self, request: PublishRequest, token: CancellationToken) -> str:
        """POST the article; transient failures are retried here."""
        payload = request.model_dump(mode="json", exclude_none=True)

        async def attempt() -> str:
            try:
                return await run_sync(self._post_article, payload)
            except requests.RequestException as exc:
                raise translate_http_error(exc, f"POST {self.publish_url}") from exc
            except ValueError as exc:
                raise PublishError(f"{self.name} returned invalid JSON") from exc

        link = await retry_transient(
            attempt, token=token, description=f"publish to {self.name}"
        )
        logger.info("Published %s to %s: %s", request.item_id, self.name, link or "(no link)")
        return link
