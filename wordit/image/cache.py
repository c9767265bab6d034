"""Bounded, time-boxed image cache shared across generations."""

import time
from collections import OrderedDict

from wordit.config.constants import DEFAULT_IMAGE_CACHE_TTL
from wordit.image.jobs import ResolvedImage


class ImageCache:
    """LRU cache with TTL for resolved images, keyed by source and URL.

    Uses OrderedDict for O(1) LRU eviction.
    """

    def __init__(self, maxsize: int = 128, ttl_seconds: float = DEFAULT_IMAGE_CACHE_TTL) -> None:
        """Initialize the cache.

        Args:
            maxsize: Maximum number of entries to cache
            ttl_seconds: Time-to-live in seconds
        """
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self._cache: OrderedDict[tuple[str, str], tuple[ResolvedImage, float]] = OrderedDict()
        self._maxsize = maxsize
        self._ttl = ttl_seconds

    def get(self, source_id: str, url: str) -> ResolvedImage | None:
        """Get a cached image if present and not expired."""
        key = (source_id, url)
        if key not in self._cache:
            return None

        image, timestamp = self._cache[key]
        if time.monotonic() - timestamp > self._ttl:
            del self._cache[key]
            return None

        self._cache.move_to_end(key)
        return image

    def set(self, source_id: str, url: str, image: ResolvedImage) -> None:
        key = (source_id, url)
        if key in self._cache:
            self._cache[key] = (image, time.monotonic())
            self._cache.move_to_end(key)
            return

        if len(self._cache) >= self._maxsize:
            self._cache.popitem(last=False)

        self._cache[key] = (image, time.monotonic())

    def clear(self) -> None:
        self._cache.clear()

    @property
    def size(self) -> int:
        """Number of cached entries."""
        return len(self._cache)
