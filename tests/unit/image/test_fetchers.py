"""Tests for image fetch collaborators."""

import base64
from unittest.mock import AsyncMock

import httpx
import pytest

from wordit.exceptions import ImageFailureError
from wordit.image.fetchers import HttpImageFetcher, LocalAssetFetcher, decode_data_uri, is_data_uri


class TestDataUri:
    """Tests for data URI helpers."""

    def test_is_data_uri(self):
        assert is_data_uri("data:image/png;base64,AAAA")
        assert is_data_uri("DATA:image/png;base64,AAAA")
        assert not is_data_uri("https://e.com/a.png")

    def test_decode_base64(self, png_bytes):
        uri = "data:image/png;base64," + base64.b64encode(png_bytes).decode()
        assert decode_data_uri(uri) == png_bytes

    def test_decode_percent_encoded(self):
        assert decode_data_uri("data:image/svg+xml,%3Csvg%3E") == b"<svg>"

    def test_rejects_non_image(self):
        with pytest.raises(ImageFailureError, match="not an image"):
            decode_data_uri("data:text/html;base64,PGgxPg==")

    def test_rejects_malformed(self):
        with pytest.raises(ImageFailureError, match="malformed"):
            decode_data_uri("data:image/png;base64")


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestHttpImageFetcher:
    """Tests for HttpImageFetcher."""

    @pytest.mark.asyncio
    async def test_fetch_success(self, png_bytes):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=png_bytes, headers={"content-type": "image/png"})

        async with _client(handler) as client:
            fetcher = HttpImageFetcher(client=client)
            data = await fetcher.fetch("https://e.com/a.png", "src", "doc")

        assert data == png_bytes
        assert "wordit/" in seen[0].headers["user-agent"]

    @pytest.mark.asyncio
    async def test_not_found_is_permanent(self):
        async with _client(lambda request: httpx.Response(404)) as client:
            fetcher = HttpImageFetcher(client=client)
            with pytest.raises(ImageFailureError, match="HTTP 404"):
                await fetcher.fetch("https://e.com/missing.png", "src", "doc")

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        async with _client(lambda request: httpx.Response(503)) as client:
            fetcher = HttpImageFetcher(client=client)
            with pytest.raises(httpx.HTTPStatusError):
                await fetcher.fetch("https://e.com/a.png", "src", "doc")

    @pytest.mark.asyncio
    async def test_rate_limit_is_transient(self):
        async with _client(lambda request: httpx.Response(429)) as client:
            fetcher = HttpImageFetcher(client=client)
            with pytest.raises(httpx.HTTPStatusError):
                await fetcher.fetch("https://e.com/a.png", "src", "doc")

    @pytest.mark.asyncio
    async def test_borrowed_client_is_not_closed(self):
        async with _client(lambda request: httpx.Response(200)) as client:
            fetcher = HttpImageFetcher(client=client)
            await fetcher.aclose()
            assert not client.is_closed


class TestLocalAssetFetcher:
    """Tests for LocalAssetFetcher."""

    @pytest.mark.asyncio
    async def test_serves_local_asset(self, tmp_path, png_bytes):
        asset = tmp_path / "space" / "doc-1" / "chart.png"
        asset.parent.mkdir(parents=True)
        asset.write_bytes(png_bytes)
        fallback = AsyncMock()

        fetcher = LocalAssetFetcher(tmp_path, fallback=fallback)
        data = await fetcher.fetch("https://cdn.example.com/uploads/chart.png?x=1", "space", "doc-1")

        assert data == png_bytes
        fallback.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_falls_back_when_missing(self, tmp_path):
        fallback = AsyncMock()
        fallback.fetch.return_value = b"remote"

        fetcher = LocalAssetFetcher(tmp_path, fallback=fallback)
        data = await fetcher.fetch("https://cdn.example.com/other.png", "space", "doc-1")

        assert data == b"remote"
        fallback.fetch.assert_awaited_once_with("https://cdn.example.com/other.png", "space", "doc-1")

    @pytest.mark.asyncio
    async def test_missing_without_fallback(self, tmp_path):
        fetcher = LocalAssetFetcher(tmp_path)
        with pytest.raises(ImageFailureError, match="not found locally"):
            await fetcher.fetch("https://cdn.example.com/other.png", "space", "doc-1")

    def test_path_components_are_sanitized(self, tmp_path):
        fetcher = LocalAssetFetcher(tmp_path)
        path = fetcher.asset_path("https://e.com/a.png", "../../etc", "doc")

        assert path is not None
        assert path.resolve().is_relative_to(tmp_path.resolve())

    @pytest.mark.asyncio
    async def test_aclose_closes_fallback(self, tmp_path):
        fallback = AsyncMock()
        await LocalAssetFetcher(tmp_path, fallback=fallback).aclose()
        fallback.aclose.assert_awaited_once()
