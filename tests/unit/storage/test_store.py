"""Tests for the file-backed artifact store."""

import asyncio
import os
import time

import pytest

from wordit.document.assembler import DocumentAssembler
from wordit.exceptions import LockAcquisitionError, StructuralCorruptionError, WriteFailureError
from wordit.markup.parser import parse
from wordit.services.protocols import ArtifactStore
from wordit.storage.store import FileArtifactStore


def docx(text: str) -> bytes:
    return DocumentAssembler().assemble(parse(f"<p>{text}</p>"), title=text)


class TestPaths:
    """Artifact path layout."""

    def test_paths(self, store, cache_dir):
        artifact = store.path_for("doc-1")
        assert artifact.parent == cache_dir
        assert artifact.name.startswith("doc-1-")
        assert artifact.suffix == ".docx"
        assert store.lock_path_for("doc-1") == cache_dir / f"{artifact.name}.lock"
        assert store.backup_path_for("doc-1") == cache_dir / f"{artifact.name}.bak"
        assert store.metadata_path_for("doc-1") == cache_dir / f"{artifact.name}.json"

    def test_paths_are_stable(self, store, cache_dir):
        assert store.path_for("doc-1") == FileArtifactStore(cache_dir).path_for("doc-1")

    def test_unsafe_identities(self, store, cache_dir):
        assert store.path_for("../etc/passwd").parent == cache_dir
        assert store.path_for("").name.startswith("_-")

    @pytest.mark.parametrize(
        "first,second",
        [
            ("team/42", "team_42"),
            ("a", ".a"),
            ("a:b", "a|b"),
            ("x" * 300, "x" * 300 + "y"),
            ("Doc", "doc"),
        ],
    )
    def test_identities_that_sanitize_alike_get_distinct_files(self, store, first, second):
        assert store.path_for(first).name.lower() != store.path_for(second).name.lower()

    def test_long_identity_name_is_bounded(self, store):
        assert len(store.path_for("x" * 1000).name) < 150


class TestWriteAtomic:
    """Atomic replacement."""

    @pytest.mark.asyncio
    async def test_write_and_read(self, store):
        data = docx("one")
        async with store.lock("doc"):
            path = await store.write_atomic("doc", data)

        assert path == store.path_for("doc")
        assert await store.exists("doc")
        assert await store.read("doc") == data
        assert not store.backup_path_for("doc").exists()
        assert not store.lock_path_for("doc").exists()

    @pytest.mark.asyncio
    async def test_replace_existing(self, store):
        second = docx("two")
        async with store.lock("doc"):
            await store.write_atomic("doc", docx("one"))
            await store.write_atomic("doc", second)

        assert await store.read("doc") == second
        assert not store.backup_path_for("doc").exists()

    @pytest.mark.asyncio
    async def test_invalid_bytes_are_rejected(self, store):
        original = docx("one")
        async with store.lock("doc"):
            await store.write_atomic("doc", original)
            with pytest.raises(StructuralCorruptionError):
                await store.write_atomic("doc", b"not a docx")

        assert await store.read("doc") == original

    @pytest.mark.asyncio
    async def test_post_write_corruption_restores_backup(self, store, monkeypatch):
        original = docx("one")
        async with store.lock("doc"):
            await store.write_atomic("doc", original)
            monkeypatch.setattr("wordit.storage.store.check_package", lambda data: "simulated corruption")
            with pytest.raises(StructuralCorruptionError, match="simulated corruption"):
                await store.write_atomic("doc", docx("two"))

        assert store.path_for("doc").read_bytes() == original
        assert not store.backup_path_for("doc").exists()
        assert [p.name for p in store.root.iterdir() if p.name.endswith(".tmp")] == []

    @pytest.mark.asyncio
    async def test_os_error_becomes_write_failure(self, store, monkeypatch):
        original = docx("one")

        def broken_write(*args, **kwargs):
            raise OSError("disk full")

        async with store.lock("doc"):
            await store.write_atomic("doc", original)
            monkeypatch.setattr("wordit.storage.store.atomic_write", broken_write)
            with pytest.raises(WriteFailureError) as exc_info:
                await store.write_atomic("doc", docx("two"))

        assert exc_info.value.document_id == "doc"
        assert isinstance(exc_info.value.cause, OSError)
        assert store.path_for("doc").read_bytes() == original
        assert not store.backup_path_for("doc").exists()

    @pytest.mark.asyncio
    async def test_exists_ignores_empty_file(self, store):
        store.root.mkdir(parents=True)
        store.path_for("doc").write_bytes(b"")
        assert not await store.exists("doc")


class TestLocking:
    """Identity locks."""

    @pytest.mark.asyncio
    async def test_non_blocking_acquire(self, store):
        assert await store.acquire("doc", blocking=False) is True
        assert store.is_locked("doc")
        assert await store.acquire("doc", blocking=False) is False

        await store.release("doc")
        assert not store.is_locked("doc")
        assert await store.acquire("doc", blocking=False) is True
        await store.release("doc")

    @pytest.mark.asyncio
    async def test_other_identities_are_independent(self, store):
        assert await store.acquire("a", blocking=False)
        assert await store.acquire("b", blocking=False)
        await store.release("a")
        await store.release("b")

    @pytest.mark.asyncio
    async def test_blocking_acquire_waits_for_release(self, store):
        order = []

        async def holder():
            async with store.lock("doc"):
                order.append("first in")
                await asyncio.sleep(0.05)
                order.append("first out")

        async def waiter():
            await asyncio.sleep(0.01)
            async with store.lock("doc"):
                order.append("second in")

        await asyncio.gather(holder(), waiter())
        assert order == ["first in", "first out", "second in"]

    @pytest.mark.asyncio
    async def test_foreign_lock_file_exhausts_retries(self, store):
        store.root.mkdir(parents=True)
        store.lock_path_for("doc").write_text("other 4242 0\n")

        with pytest.raises(LockAcquisitionError) as exc_info:
            await store.acquire("doc")

        assert exc_info.value.attempts == 3
        assert "doc" not in store._locks

    @pytest.mark.asyncio
    async def test_foreign_lock_non_blocking(self, store):
        store.root.mkdir(parents=True)
        store.lock_path_for("doc").write_text("other 4242 0\n")
        assert await store.acquire("doc", blocking=False) is False

    @pytest.mark.asyncio
    async def test_stale_lock_is_removed(self, store):
        store.root.mkdir(parents=True)
        lock_path = store.lock_path_for("doc")
        lock_path.write_text("other 4242 0\n")
        old = time.time() - store.lock_stale_seconds - 5
        os.utime(lock_path, (old, old))

        assert await store.acquire("doc") is True
        assert str(os.getpid()) in lock_path.read_text()
        await store.release("doc")

    @pytest.mark.asyncio
    async def test_held_lock_is_refreshed(self, cache_dir):
        holder = FileArtifactStore(cache_dir, lock_stale_seconds=0.4)
        other = FileArtifactStore(cache_dir, lock_stale_seconds=0.4)

        assert await holder.acquire("doc", blocking=False)
        await asyncio.sleep(1.0)

        assert await other.acquire("doc", blocking=False) is False
        await holder.release("doc")
        assert await other.acquire("doc", blocking=False) is True
        await other.release("doc")

    @pytest.mark.asyncio
    async def test_release_keeps_lock_file_of_new_owner(self, store):
        assert await store.acquire("doc")
        lock_path = store.lock_path_for("doc")
        lock_path.write_text("other 4242 0\n")

        await store.release("doc")

        assert lock_path.read_text() == "other 4242 0\n"
        assert not store._locks

    @pytest.mark.asyncio
    async def test_release_without_acquire_is_harmless(self, store):
        store.root.mkdir(parents=True)
        store.lock_path_for("doc").write_text("other 4242 0\n")

        await store.release("doc")

        assert store.lock_path_for("doc").exists()

    @pytest.mark.asyncio
    async def test_lock_table_shrinks_after_release(self, store):
        for name in ("a", "b", "c"):
            async with store.lock(name):
                assert name in store._locks
        assert store._locks == {}
        assert store._lock_users == {}

    @pytest.mark.asyncio
    async def test_lock_kept_while_waiters_remain(self, store):
        await store.acquire("doc")
        waiter = asyncio.create_task(store.acquire("doc"))
        await asyncio.sleep(0.01)

        await store.release("doc")
        assert await waiter is True
        assert "doc" in store._locks

        await store.release("doc")
        assert "doc" not in store._locks


class TestMetadata:
    """Sidecar metadata and listing."""

    @pytest.mark.asyncio
    async def test_round_trip(self, store):
        await store.write_metadata("doc", {"content_hash": "abc", "size": 3})
        assert await store.read_metadata("doc") == {"content_hash": "abc", "size": 3}

    @pytest.mark.asyncio
    async def test_missing_and_corrupt(self, store):
        assert await store.read_metadata("doc") is None
        store.root.mkdir(parents=True)
        store.metadata_path_for("doc").write_text("{broken")
        assert await store.read_metadata("doc") is None

    @pytest.mark.asyncio
    async def test_metadata_write_failure(self, store, monkeypatch):
        def broken_write(*args, **kwargs):
            raise OSError("read-only file system")

        monkeypatch.setattr("wordit.storage.store.atomic_write", broken_write)

        with pytest.raises(WriteFailureError) as exc_info:
            await store.write_metadata("doc", {"document_id": "doc"})

        assert exc_info.value.document_id == "doc"
        assert isinstance(exc_info.value.cause, OSError)

    @pytest.mark.asyncio
    async def test_iter_artifacts_and_delete(self, store):
        async with store.lock("a"):
            await store.write_atomic("a", docx("a"))
        async with store.lock("b"):
            await store.write_atomic("b", docx("b"))
        await store.write_metadata("a", {"document_id": "a"})

        assert store.iter_artifacts() == sorted([store.path_for("a"), store.path_for("b")])
        assert await store.read_artifact_metadata(store.path_for("a")) == {"document_id": "a"}
        assert await store.read_artifact_metadata(store.path_for("b")) is None

        assert await store.delete("a") is True
        assert not store.metadata_path_for("a").exists()
        assert await store.delete("a") is False
        assert store.iter_artifacts() == [store.path_for("b")]

        assert await store.delete_artifact(store.path_for("b")) is True
        assert store.iter_artifacts() == []

    def test_iter_artifacts_without_root(self, tmp_path):
        assert FileArtifactStore(tmp_path / "missing").iter_artifacts() == []


class TestProtocol:
    def test_satisfies_artifact_store(self, store):
        assert isinstance(store, ArtifactStore)
