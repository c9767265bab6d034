"""File-backed artifact store.

Artifacts live at ``<root>/<name>-<digest>.docx``, where ``name`` is a
readable rendering of the document id and ``digest`` keeps ids that render
alike apart. Writers serialize per document identity through an in-process
``asyncio.Lock`` plus an exclusive ``.lock`` file for other processes. The
lock file names its owner and is touched while held, so only abandoned
locks go stale. Replacement is atomic, and the previous artifact is kept as
``.bak`` until the new one is in place.
"""

import asyncio
import json
import os
import shutil
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import anyio

from wordit.config.constants import (
    ARTIFACT_DIGEST_LENGTH,
    ARTIFACT_NAME_MAX_LENGTH,
    BACKUP_SUFFIX,
    DEFAULT_CACHE_DIR,
    DEFAULT_LOCK_MAX_WAIT,
    DEFAULT_LOCK_MIN_WAIT,
    DEFAULT_LOCK_RETRIES,
    DEFAULT_LOCK_STALE_SECONDS,
    DOCX_EXTENSION,
    LOCK_SUFFIX,
    SIDECAR_SUFFIX,
)
from wordit.config.settings import CacheConfig
from wordit.document.package import check_package, validate_package
from wordit.exceptions import LockAcquisitionError, StructuralCorruptionError, WriteFailureError
from wordit.utils.fs import atomic_write, compute_content_hash, ensure_directory, safe_filename
from wordit.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class _HeldLock:
    token: str
    refresher: asyncio.Task


def _lock_owner(lock_path: Path) -> str | None:
    try:
        content = lock_path.read_text(encoding="utf-8").split()
    except OSError:
        return None
    return content[0] if content else None


class FileArtifactStore:
    """Artifact storage on the local file system."""

    def __init__(
        self,
        root: Path | str = DEFAULT_CACHE_DIR,
        lock_stale_seconds: float = DEFAULT_LOCK_STALE_SECONDS,
        lock_retries: int = DEFAULT_LOCK_RETRIES,
        lock_min_wait: float = DEFAULT_LOCK_MIN_WAIT,
        lock_max_wait: float = DEFAULT_LOCK_MAX_WAIT,
    ) -> None:
        self.root = Path(root)
        self.lock_stale_seconds = lock_stale_seconds
        self.lock_retries = lock_retries
        self.lock_min_wait = lock_min_wait
        self.lock_max_wait = lock_max_wait
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._held: dict[str, _HeldLock] = {}

    @classmethod
    def from_config(cls, config: CacheConfig, base_path: Path | None = None) -> "FileArtifactStore":
        root = base_path / config.directory if base_path else Path(config.directory)
        return cls(
            root,
            lock_stale_seconds=config.lock_stale_seconds,
            lock_retries=config.lock_retries,
            lock_min_wait=config.lock_min_wait,
            lock_max_wait=config.lock_max_wait,
        )

    # Paths

    def path_for(self, document_id: str) -> Path:
        name = safe_filename(document_id)[:ARTIFACT_NAME_MAX_LENGTH] or "_"
        digest = compute_content_hash(document_id)[:ARTIFACT_DIGEST_LENGTH]
        return self.root / f"{name}-{digest}{DOCX_EXTENSION}"

    def _sibling(self, document_id: str, suffix: str) -> Path:
        path = self.path_for(document_id)
        return path.with_name(path.name + suffix)

    def lock_path_for(self, document_id: str) -> Path:
        return self._sibling(document_id, LOCK_SUFFIX)

    def backup_path_for(self, document_id: str) -> Path:
        return self._sibling(document_id, BACKUP_SUFFIX)

    def metadata_path_for(self, document_id: str) -> Path:
        return self._sibling(document_id, SIDECAR_SUFFIX)

    # Queries

    async def exists(self, document_id: str) -> bool:
        path = self.path_for(document_id)

        def check() -> bool:
            try:
                return path.is_file() and path.stat().st_size > 0
            except OSError:
                return False

        return await anyio.to_thread.run_sync(check)

    async def read(self, document_id: str) -> bytes:
        """Read an artifact.

        Raises:
            FileNotFoundError: If no artifact is stored for the identity
        """
        return await anyio.to_thread.run_sync(self.path_for(document_id).read_bytes)

    async def read_metadata(self, document_id: str) -> dict[str, Any] | None:
        return await anyio.to_thread.run_sync(self._load_metadata, self.metadata_path_for(document_id))

    async def read_artifact_metadata(self, artifact: Path) -> dict[str, Any] | None:
        """Metadata stored beside an artifact path from ``iter_artifacts``."""
        return await anyio.to_thread.run_sync(self._load_metadata, artifact.with_name(artifact.name + SIDECAR_SUFFIX))

    @staticmethod
    def _load_metadata(path: Path) -> dict[str, Any] | None:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            log.warning("Unreadable artifact metadata", path=str(path), error=str(e))
            return None

    async def write_metadata(self, document_id: str, metadata: dict[str, Any]) -> None:
        """Write the metadata sidecar of an identity.

        Raises:
            WriteFailureError: If the file system operation failed
        """
        path = self.metadata_path_for(document_id)

        def dump() -> None:
            with atomic_write(path) as f:
                json.dump(metadata, f, indent=2, ensure_ascii=False)

        try:
            await anyio.to_thread.run_sync(dump)
        except OSError as e:
            raise WriteFailureError(document_id, f"metadata: {e}", cause=e) from e

    def iter_artifacts(self) -> list[Path]:
        """Stored artifact paths, sorted by name."""
        if not self.root.is_dir():
            return []
        return sorted(p for p in self.root.glob(f"*{DOCX_EXTENSION}") if p.is_file())

    # Locking

    async def acquire(self, document_id: str, blocking: bool = True) -> bool:
        """Take the identity lock.

        Args:
            document_id: Identity to lock
            blocking: Wait and retry; otherwise make a single attempt

        Returns:
            True when acquired; False only for a failed non-blocking attempt

        Raises:
            LockAcquisitionError: If a blocking acquire exhausts its retries
        """
        current = self._locks.get(document_id)
        if not blocking and current is not None and current.locked():
            return False

        lock = self._checkout(document_id)
        try:
            await lock.acquire()
        except BaseException:
            self._checkin(document_id)
            raise

        retries = self.lock_retries if blocking else 0
        token = uuid.uuid4().hex
        try:
            acquired = await self._acquire_lock_file(document_id, token, retries)
        except BaseException:
            lock.release()
            self._checkin(document_id)
            raise

        if not acquired:
            lock.release()
            self._checkin(document_id)
            if blocking:
                raise LockAcquisitionError(document_id, retries + 1)
            return False

        refresher = asyncio.create_task(self._refresh_lock(document_id, token))
        self._held[document_id] = _HeldLock(token, refresher)
        log.debug("Lock acquired", document_id=document_id)
        return True

    async def release(self, document_id: str) -> None:
        held = self._held.pop(document_id, None)
        if held is None:
            log.debug("Release of a lock that is not held", document_id=document_id)
            return
        try:
            held.refresher.cancel()
            await asyncio.gather(held.refresher, return_exceptions=True)
            await anyio.to_thread.run_sync(self._remove_lock_file, self.lock_path_for(document_id), held.token)
        finally:
            self._locks[document_id].release()
            self._checkin(document_id)
        log.debug("Lock released", document_id=document_id)

    @asynccontextmanager
    async def lock(self, document_id: str) -> AsyncIterator[None]:
        """Hold the identity lock for the duration of the block."""
        await self.acquire(document_id)
        try:
            yield
        finally:
            await self.release(document_id)

    def is_locked(self, document_id: str) -> bool:
        lock = self._locks.get(document_id)
        return (lock is not None and lock.locked()) or self.lock_path_for(document_id).exists()

    def _checkout(self, document_id: str) -> asyncio.Lock:
        lock = self._locks.setdefault(document_id, asyncio.Lock())
        self._lock_users[document_id] = self._lock_users.get(document_id, 0) + 1
        return lock

    def _checkin(self, document_id: str) -> None:
        users = self._lock_users.get(document_id, 0) - 1
        if users > 0:
            self._lock_users[document_id] = users
            return
        self._lock_users.pop(document_id, None)
        self._locks.pop(document_id, None)

    async def _acquire_lock_file(self, document_id: str, token: str, retries: int) -> bool:
        lock_path = self.lock_path_for(document_id)
        for attempt in range(retries + 1):
            if await anyio.to_thread.run_sync(self._try_lock_file, lock_path, token):
                return True
            if attempt < retries:
                delay = min(self.lock_min_wait * (2**attempt), self.lock_max_wait)
                log.debug("Lock busy, retrying", document_id=document_id, attempt=attempt + 1, delay=delay)
                await asyncio.sleep(delay)
        return False

    def _try_lock_file(self, lock_path: Path, token: str) -> bool:
        ensure_directory(lock_path.parent)
        for _ in range(2):
            try:
                fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                if not self._is_stale(lock_path):
                    return False
                log.warning("Removing stale lock", path=str(lock_path))
                lock_path.unlink(missing_ok=True)
                continue
            with os.fdopen(fd, "w") as f:
                f.write(f"{token} {os.getpid()} {time.time():.3f}\n")
            return True
        return False

    def _is_stale(self, lock_path: Path) -> bool:
        try:
            age = time.time() - lock_path.stat().st_mtime
        except FileNotFoundError:
            return True
        return age > self.lock_stale_seconds

    async def _refresh_lock(self, document_id: str, token: str) -> None:
        """Keep a held lock file fresh until the task is cancelled."""
        lock_path = self.lock_path_for(document_id)
        interval = self.lock_stale_seconds / 2
        while True:
            await asyncio.sleep(interval)
            if not await anyio.to_thread.run_sync(self._touch_lock_file, lock_path, token):
                log.warning("Held lock was taken over", document_id=document_id, path=str(lock_path))
                return

    @staticmethod
    def _touch_lock_file(lock_path: Path, token: str) -> bool:
        if _lock_owner(lock_path) != token:
            return False
        try:
            os.utime(lock_path)
        except OSError:
            return False
        return True

    @staticmethod
    def _remove_lock_file(lock_path: Path, token: str) -> None:
        owner = _lock_owner(lock_path)
        if owner is None:
            return
        if owner != token:
            log.warning("Lock file owned by another writer left in place", path=str(lock_path))
            return
        lock_path.unlink(missing_ok=True)

    # Writing

    async def write_atomic(self, document_id: str, data: bytes) -> Path:
        """Atomically replace the artifact of an identity.

        The caller must hold the identity lock. The bytes are validated
        before and after they reach disk; on any failure the previous
        artifact stays (or is restored) in place.

        Raises:
            StructuralCorruptionError: If the bytes are not a valid package
            WriteFailureError: If the file system operation failed
        """
        validate_package(data, document_id)
        return await anyio.to_thread.run_sync(self._write_sync, document_id, data)

    def _write_sync(self, document_id: str, data: bytes) -> Path:
        target = self.path_for(document_id)
        backup = self.backup_path_for(document_id)
        start = time.perf_counter()

        try:
            ensure_directory(self.root)
            if target.exists():
                shutil.copy2(target, backup)

            with atomic_write(target, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
                written = Path(f.name).read_bytes()
                reason = check_package(written)
                if reason is not None:
                    raise StructuralCorruptionError(document_id, f"written bytes invalid: {reason}")
        except StructuralCorruptionError:
            self._restore_backup(target, backup)
            raise
        except OSError as e:
            self._restore_backup(target, backup)
            raise WriteFailureError(document_id, str(e), cause=e) from e

        backup.unlink(missing_ok=True)
        log.info(
            "Artifact written",
            document_id=document_id,
            path=str(target),
            size=len(data),
            duration_ms=round((time.perf_counter() - start) * 1000),
        )
        return target

    def _restore_backup(self, target: Path, backup: Path) -> None:
        if not backup.exists():
            return
        try:
            if target.exists() and check_package(target.read_bytes()) is None:
                backup.unlink(missing_ok=True)
                return
            os.replace(backup, target)
            log.warning("Restored previous artifact from backup", path=str(target))
        except OSError as e:
            log.error("Backup restore failed", path=str(target), error=str(e))

    async def delete(self, document_id: str) -> bool:
        """Remove an artifact and its metadata. Returns True if one existed."""
        removed = await self.delete_artifact(self.path_for(document_id))
        if removed:
            log.info("Artifact deleted", document_id=document_id)
        return removed

    async def delete_artifact(self, artifact: Path) -> bool:
        """Remove an artifact path from ``iter_artifacts`` and its metadata."""
        metadata = artifact.with_name(artifact.name + SIDECAR_SUFFIX)

        def remove() -> bool:
            existed = artifact.exists()
            artifact.unlink(missing_ok=True)
            metadata.unlink(missing_ok=True)
            return existed

        return await anyio.to_thread.run_sync(remove)
