"""Image fetch collaborators.

``HttpImageFetcher`` downloads remote images with httpx. ``LocalAssetFetcher``
serves images stored under ``<assets_dir>/<source_id>/<document_id>/`` and
delegates everything else to a fallback fetcher. Neither retries; the
pipeline owns the retry policy.
"""

import base64
import binascii
import re
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import unquote, unquote_to_bytes, urlparse

import anyio
import httpx

from wordit.config.constants import DEFAULT_FETCH_TIMEOUT, DEFAULT_USER_AGENT
from wordit.exceptions import ImageFailureError
from wordit.services.protocols import ImageFetcher
from wordit.utils.fs import safe_filename
from wordit.utils.logging import get_logger

log = get_logger(__name__)

_DATA_URI = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(?:;[\w.+-]+=[^;,]*)*)(?P<b64>;base64)?,(?P<data>.*)$", re.DOTALL)

# Statuses worth another attempt; other 4xx responses are final
_RETRYABLE_STATUS = {408, 425, 429}


def is_data_uri(url: str) -> bool:
    return url[:5].lower() == "data:"


def decode_data_uri(url: str) -> bytes:
    """Decode a ``data:`` URI into bytes.

    Raises:
        ImageFailureError: If the URI is malformed or not an image
    """
    match = _DATA_URI.match(url.strip())
    if not match:
        raise ImageFailureError(url[:64], "malformed data URI")
    mime = (match.group("mime") or "").lower()
    if mime and not mime.startswith("image/"):
        raise ImageFailureError(url[:64], f"data URI is not an image ({mime})")

    payload = match.group("data")
    if match.group("b64"):
        try:
            return base64.b64decode(unquote(payload), validate=False)
        except (binascii.Error, ValueError) as e:
            raise ImageFailureError(url[:64], f"invalid base64 payload: {e}") from e
    return unquote_to_bytes(payload)


class HttpImageFetcher:
    """Fetch images over HTTP(S).

    Supports use as an async context manager; a client passed in by the
    caller is never closed here.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        client: httpx.AsyncClient | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._headers = {"User-Agent": DEFAULT_USER_AGENT, "Accept": "image/*,*/*;q=0.8"}
        if headers:
            self._headers.update(headers)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(headers=self._headers, follow_redirects=True)
        return self._client

    async def fetch(self, url: str, source_id: str, document_id: str) -> bytes:
        client = self._get_client()
        response = await client.get(url, timeout=self.timeout, headers=self._headers)

        if 400 <= response.status_code < 500 and response.status_code not in _RETRYABLE_STATUS:
            raise ImageFailureError(url, f"HTTP {response.status_code}")
        response.raise_for_status()

        content_type = response.headers.get("content-type", "")
        log.debug(
            "Fetched image",
            url=url[:120],
            status=response.status_code,
            content_type=content_type,
            size=len(response.content),
            document_id=document_id,
        )
        return response.content

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpImageFetcher":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


class LocalAssetFetcher:
    """Serve locally stored assets before falling back to another fetcher."""

    def __init__(self, assets_dir: Path | str, fallback: ImageFetcher | None = None) -> None:
        self.assets_dir = Path(assets_dir)
        self.fallback = fallback

    def asset_path(self, url: str, source_id: str, document_id: str) -> Path | None:
        """Where a reference would live locally; None if it cannot be mapped."""
        filename = PurePosixPath(unquote(urlparse(url).path)).name
        if not filename:
            return None
        path = self.assets_dir / safe_filename(source_id) / safe_filename(document_id) / safe_filename(filename)
        try:
            path.resolve().relative_to(self.assets_dir.resolve())
        except ValueError:
            log.warning("Asset path escapes assets directory", url=url[:120])
            return None
        return path

    async def fetch(self, url: str, source_id: str, document_id: str) -> bytes:
        path = self.asset_path(url, source_id, document_id)
        if path is not None and await anyio.to_thread.run_sync(path.is_file):
            log.debug("Serving local asset", path=str(path), document_id=document_id)
            return await anyio.to_thread.run_sync(path.read_bytes)

        if self.fallback is None:
            raise ImageFailureError(url, "asset not found locally")
        return await self.fallback.fetch(url, source_id, document_id)

    async def aclose(self) -> None:
        close = getattr(self.fallback, "aclose", None)
        if close is not None:
            await close()
