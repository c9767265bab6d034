"""Protocol definitions for wordit collaborators.

The generation pipeline depends on these interfaces only; concrete
implementations are injected, which keeps the core testable with mocks.
"""

from collections.abc import Awaitable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a URL validation."""

    ok: bool
    reason: str | None = None

    @classmethod
    def accepted(cls) -> "ValidationResult":
        return cls(ok=True)

    @classmethod
    def rejected(cls, reason: str) -> "ValidationResult":
        return cls(ok=False, reason=reason)


@runtime_checkable
class ImageFetcher(Protocol):
    """Fetches raw image bytes. Implementations must not retry."""

    async def fetch(self, url: str, source_id: str, document_id: str) -> bytes:
        """Fetch the image behind ``url``.

        Args:
            url: Image reference from the markup
            source_id: Origin namespace the reference belongs to
            document_id: Document being generated

        Returns:
            Raw image bytes

        Raises:
            Exception: Any failure; the pipeline wraps calls in its own retry policy
        """
        ...


@runtime_checkable
class UrlValidator(Protocol):
    """Accepts or rejects an image URL before it is fetched."""

    def validate(self, url: str) -> ValidationResult | Awaitable[ValidationResult]:
        """Validate a URL; may return the result directly or an awaitable."""
        ...


@runtime_checkable
class ArtifactStore(Protocol):
    """Durable artifact storage keyed by document identity."""

    async def exists(self, document_id: str) -> bool: ...

    async def read(self, document_id: str) -> bytes: ...

    async def write_atomic(self, document_id: str, data: bytes) -> Path: ...

    async def acquire(self, document_id: str, blocking: bool = True) -> bool: ...

    async def release(self, document_id: str) -> None: ...

    def lock(self, document_id: str) -> AbstractAsyncContextManager[None]: ...

    def is_locked(self, document_id: str) -> bool: ...

    def path_for(self, document_id: str) -> Path: ...

    def iter_artifacts(self) -> list[Path]: ...

    async def read_metadata(self, document_id: str) -> dict[str, Any] | None: ...

    async def read_artifact_metadata(self, artifact: Path) -> dict[str, Any] | None: ...

    async def write_metadata(self, document_id: str, metadata: dict[str, Any]) -> None: ...

    async def delete(self, document_id: str) -> bool: ...

    async def delete_artifact(self, artifact: Path) -> bool: ...
