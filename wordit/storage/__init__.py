"""Artifact persistence and cache coordination."""

from wordit.storage.cache import CacheCoordinator, CacheEntry, CachePolicy, CacheState
from wordit.storage.store import FileArtifactStore

__all__ = [
    "FileArtifactStore",
    "CacheCoordinator",
    "CacheEntry",
    "CachePolicy",
    "CacheState",
]
