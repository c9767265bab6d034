"""Pytest configuration and fixtures."""

import asyncio
import io
from pathlib import Path

import pytest
from PIL import Image

from wordit.config.settings import (
    CacheConfig,
    ImageConfig,
    WorditSettings,
    get_settings,
)
from wordit.storage.store import FileArtifactStore

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent


def make_image_bytes(width: int = 40, height: int = 30, fmt: str = "PNG", color=(200, 30, 30)) -> bytes:
    """Encode a solid-color image."""
    buffer = io.BytesIO()
    mode = "RGB" if fmt.upper() in ("JPEG", "BMP") else "RGBA"
    fill = color if mode == "RGB" else (*color, 255)
    Image.new(mode, (width, height), fill).save(buffer, format=fmt)
    return buffer.getvalue()


class FakeFetcher:
    """In-memory image fetcher that records calls and peak concurrency.

    ``responses`` maps a URL to bytes, to an exception instance raised on every
    attempt, or to a list consumed one attempt at a time.
    """

    def __init__(self, responses: dict | None = None, delay: float = 0.0, default: bytes | None = None):
        self.responses = dict(responses or {})
        self.delay = delay
        self.default = default
        self.calls: list[tuple[str, str, str]] = []
        self.active = 0
        self.peak = 0

    async def fetch(self, url: str, source_id: str, document_id: str) -> bytes:
        self.calls.append((url, source_id, document_id))
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            response = self.responses.get(url, self.default)
            if isinstance(response, list):
                response = response.pop(0) if len(response) > 1 else response[0]
            if isinstance(response, BaseException):
                raise response
            if response is None:
                raise ConnectionError(f"no response for {url}")
            return response
        finally:
            self.active -= 1

    def calls_for(self, url: str) -> int:
        return sum(1 for call in self.calls if call[0] == url)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached process-wide; isolate tests from each other."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes(40, 30)


@pytest.fixture
def large_png_bytes() -> bytes:
    return make_image_bytes(3000, 1500)


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes(64, 48, fmt="JPEG")


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "documents"


@pytest.fixture
def settings(cache_dir: Path) -> WorditSettings:
    """Settings tuned for fast tests: no retry delays, short lock waits."""
    return WorditSettings(
        image=ImageConfig(retry_base_delay=0, retry_max_delay=0, fetch_timeout=5),
        cache=CacheConfig(
            directory=str(cache_dir),
            lock_retries=2,
            lock_min_wait=0.01,
            lock_max_wait=0.02,
        ),
        generation_timeout=10,
    )


@pytest.fixture
def store(cache_dir: Path) -> FileArtifactStore:
    return FileArtifactStore(cache_dir, lock_retries=2, lock_min_wait=0.01, lock_max_wait=0.02)


@pytest.fixture
def make_image():
    """Factory for encoded test images."""
    return make_image_bytes


@pytest.fixture
def fake_fetcher():
    """Factory for ``FakeFetcher`` instances."""
    return FakeFetcher
