"""Artifact cache coordination.

Per document identity the coordinator moves ``absent -> generating ->
cached`` (or ``failed``, which is retry-eligible). A hit never invokes the
generator. On a miss, the identity lock is tried without waiting: the
holder generates and persists, while concurrent requests generate on the
fly without persisting, so the first writer determines the cached artifact.
"""

import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from wordit.config.settings import CacheConfig
from wordit.exceptions import WriteFailureError
from wordit.services.protocols import ArtifactStore
from wordit.storage.store import FileArtifactStore
from wordit.utils.logging import get_logger

log = get_logger(__name__)

Generator = Callable[[], Awaitable[bytes]]


class CachePolicy(str, Enum):
    """When a stored artifact counts as a hit."""

    EXISTENCE = "existence"  # artifact present
    CONTENT_HASH = "content_hash"  # artifact present and built from the same markup


class CacheState(str, Enum):
    ABSENT = "absent"
    GENERATING = "generating"
    CACHED = "cached"
    FAILED = "failed"


@dataclass
class CacheEntry:
    """A stored artifact and what is known about it."""

    document_id: str
    path: Path
    size: int
    mtime: float
    content_hash: str | None = None
    last_access: float | None = None

    @property
    def modified(self) -> datetime:
        return datetime.fromtimestamp(self.mtime)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["path"] = str(self.path)
        return data


class CacheCoordinator:
    """Answer artifact requests from the store or by generating them."""

    def __init__(
        self,
        store: ArtifactStore,
        policy: CachePolicy | str = CachePolicy.EXISTENCE,
        max_entries: int | None = None,
    ) -> None:
        self.store = store
        self.policy = CachePolicy(policy)
        self.max_entries = max_entries
        self._states: dict[str, CacheState] = {}
        self._last_access: dict[str, float] = {}

    @classmethod
    def from_config(cls, config: CacheConfig, base_path: Path | None = None) -> "CacheCoordinator":
        return cls(
            FileArtifactStore.from_config(config, base_path),
            policy=config.policy,
            max_entries=config.max_entries,
        )

    def state(self, document_id: str) -> CacheState:
        return self._states.get(document_id, CacheState.ABSENT)

    async def lookup(self, document_id: str, content_hash: str | None = None) -> CacheEntry | None:
        """Return the cache entry if the stored artifact is a hit."""
        if not await self.store.exists(document_id):
            return None

        metadata = await self.store.read_metadata(document_id) or {}
        stored_id = metadata.get("document_id")
        if stored_id is not None and stored_id != document_id:
            log.warning("Stored artifact belongs to another identity", document_id=document_id, stored_id=stored_id)
            return None

        stored_hash = metadata.get("content_hash")
        if self.policy is CachePolicy.CONTENT_HASH and content_hash is not None and stored_hash != content_hash:
            log.info("Cached artifact is stale", document_id=document_id)
            return None

        path = self.store.path_for(document_id)
        try:
            stat = path.stat()
        except FileNotFoundError:
            return None
        return CacheEntry(
            document_id=document_id,
            path=path,
            size=stat.st_size,
            mtime=stat.st_mtime,
            content_hash=stored_hash,
            last_access=self._last_access.get(document_id),
        )

    async def get_or_generate(
        self,
        document_id: str,
        generator: Generator,
        content_hash: str | None = None,
    ) -> bytes:
        """Return the cached artifact, generating and persisting it on a miss.

        Args:
            document_id: Document identity
            generator: Produces the artifact bytes
            content_hash: Hash of the source markup, recorded with the artifact

        Returns:
            Artifact bytes

        Raises:
            WriteFailureError: If the artifact could not be persisted
            StructuralCorruptionError: If the generated bytes are invalid
        """
        data = await self._read_hit(document_id, content_hash)
        if data is not None:
            return data

        if not await self.store.acquire(document_id, blocking=False):
            log.info("Artifact write in progress, generating without caching", document_id=document_id)
            return await generator()

        try:
            # Another writer may have finished between the lookup and the lock
            data = await self._read_hit(document_id, content_hash)
            if data is not None:
                return data

            self._states[document_id] = CacheState.GENERATING
            start = time.perf_counter()
            data = await generator()
            await self.store.write_atomic(document_id, data)
            self._states[document_id] = CacheState.CACHED
            await self._write_metadata(document_id, data, content_hash)
            self._last_access[document_id] = time.time()
            log.info(
                "Artifact cached",
                document_id=document_id,
                size=len(data),
                duration_ms=round((time.perf_counter() - start) * 1000),
            )
        except BaseException:
            if self._states.get(document_id) is not CacheState.CACHED:
                self._states[document_id] = CacheState.FAILED
            raise
        finally:
            await self.store.release(document_id)

        if self.max_entries:
            await self.evict(self.max_entries, keep={document_id})
        return data

    async def _write_metadata(self, document_id: str, data: bytes, content_hash: str | None) -> None:
        # The artifact is already in place; a missing sidecar only costs a later hash check
        try:
            await self.store.write_metadata(
                document_id,
                {
                    "document_id": document_id,
                    "content_hash": content_hash,
                    "size": len(data),
                    "created_at": datetime.now().isoformat(),
                },
            )
        except WriteFailureError as e:
            log.warning("Artifact metadata not written", document_id=document_id, error=str(e))

    async def _read_hit(self, document_id: str, content_hash: str | None) -> bytes | None:
        entry = await self.lookup(document_id, content_hash)
        if entry is None:
            return None
        try:
            data = await self.store.read(document_id)
        except FileNotFoundError:
            return None
        self._states[document_id] = CacheState.CACHED
        self._last_access[document_id] = time.time()
        log.info("Cache hit", document_id=document_id, size=len(data))
        return data

    async def entries(self) -> list[CacheEntry]:
        """All stored artifacts, most recently used first."""
        result = []
        for path in self.store.iter_artifacts():
            metadata = await self.store.read_artifact_metadata(path) or {}
            # Without a sidecar the file name is the best available label
            document_id = metadata.get("document_id") or path.stem
            content_hash = metadata.get("content_hash")
            try:
                stat = path.stat()
            except FileNotFoundError:
                continue
            result.append(
                CacheEntry(
                    document_id=document_id,
                    path=path,
                    size=stat.st_size,
                    mtime=stat.st_mtime,
                    content_hash=content_hash,
                    last_access=self._last_access.get(document_id),
                )
            )
        result.sort(key=lambda e: e.last_access or e.mtime, reverse=True)
        return result

    async def evict(self, max_entries: int, keep: set[str] | None = None) -> list[str]:
        """Delete least recently used artifacts beyond ``max_entries``.

        Returns:
            Evicted document identities
        """
        keep = keep or set()
        entries = await self.entries()
        evicted: list[str] = []
        for entry in entries[max_entries:]:
            if entry.document_id in keep or self.store.is_locked(entry.document_id):
                continue
            if await self.store.delete_artifact(entry.path):
                evicted.append(entry.document_id)
                self._states.pop(entry.document_id, None)
                self._last_access.pop(entry.document_id, None)
        if evicted:
            log.info("Evicted cached artifacts", count=len(evicted), max_entries=max_entries)
        return evicted

    async def invalidate(self, document_id: str) -> bool:
        """Drop the cached artifact of one identity."""
        async with self.store.lock(document_id):
            removed = await self.store.delete(document_id)
        self._states.pop(document_id, None)
        self._last_access.pop(document_id, None)
        return removed
