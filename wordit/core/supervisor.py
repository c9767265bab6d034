"""Generation supervisor.

Drives one artifact generation end to end: sanitize, resolve cards, parse,
resolve images, assemble and validate, all under a single deadline, then
hands the bytes to the cache coordinator. Only timeout, write failure and
structural corruption reach the caller; everything else degrades locally.
"""

import asyncio
import time
from pathlib import Path
from typing import Any

import anyio

from wordit.config.settings import WorditSettings, get_settings
from wordit.core.deadline import Deadline
from wordit.document.assembler import DocumentAssembler
from wordit.document.package import validate_package
from wordit.exceptions import GenerationTimeoutError, InvalidInputError
from wordit.image.pipeline import ImageResolutionPipeline
from wordit.markup.cards import resolve_cards
from wordit.markup.parser import MarkupParser
from wordit.markup.sanitizer import sanitize
from wordit.markup.tree import ContentTree
from wordit.services.protocols import ImageFetcher, UrlValidator
from wordit.storage.cache import CacheCoordinator
from wordit.storage.store import FileArtifactStore
from wordit.utils.fs import compute_content_hash
from wordit.utils.logging import document_context, get_logger

log = get_logger(__name__)

DEFAULT_SOURCE_ID = "default"


class GenerationSupervisor:
    """Generate and cache Word artifacts from rich-text markup.

    Example:
        >>> async with GenerationSupervisor() as supervisor:
        ...     data = await supervisor.generate_artifact("doc-1", "<h1>Hi</h1>", "space", "Hi")
    """

    def __init__(
        self,
        settings: WorditSettings | None = None,
        *,
        fetcher: ImageFetcher | None = None,
        validator: UrlValidator | None = None,
        store: FileArtifactStore | None = None,
        coordinator: CacheCoordinator | None = None,
        pipeline: ImageResolutionPipeline | None = None,
        assembler: DocumentAssembler | None = None,
        parser: MarkupParser | None = None,
        timeout: float | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.timeout = timeout if timeout is not None else self.settings.generation_timeout

        if coordinator is None:
            if store is not None:
                coordinator = CacheCoordinator(
                    store,
                    policy=self.settings.cache.policy,
                    max_entries=self.settings.cache.max_entries,
                )
            else:
                coordinator = CacheCoordinator.from_config(self.settings.cache)
        self.coordinator = coordinator

        self.pipeline = pipeline or ImageResolutionPipeline.from_settings(
            self.settings, fetcher=fetcher, validator=validator
        )
        self.assembler = assembler or DocumentAssembler(
            self.settings.document,
            max_width_inches=self.settings.image.max_width_inches,
            max_height_inches=self.settings.image.max_height_inches,
        )
        self.parser = parser or MarkupParser(code_font=self.settings.document.code_font)

    @property
    def store(self) -> FileArtifactStore:
        return self.coordinator.store

    async def __aenter__(self) -> "GenerationSupervisor":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.pipeline.aclose()

    async def generate_artifact(
        self,
        document_id: str,
        raw_markup: str | None,
        source_id: str = DEFAULT_SOURCE_ID,
        title: str = "",
    ) -> bytes:
        """Return the Word artifact of a document, generating it on a cache miss.

        Args:
            document_id: Stable document identity used for caching and locking
            raw_markup: Source HTML, possibly with embedded cards
            source_id: Namespace the document's image references belong to
            title: Document title

        Returns:
            Bytes of a structurally valid ``.docx`` package

        Raises:
            GenerationTimeoutError: If generation exceeded the deadline
            WriteFailureError: If the artifact could not be persisted
            StructuralCorruptionError: If the assembled bytes are invalid
        """
        if not document_id:
            raise ValueError("document_id must not be empty")

        content_hash = compute_content_hash(raw_markup or "")

        async def generate() -> bytes:
            return await self.render(document_id, raw_markup, source_id, title)

        start = time.perf_counter()
        with document_context(document_id, source_id=source_id):
            data = await self.coordinator.get_or_generate(document_id, generate, content_hash=content_hash)
            log.info(
                "Artifact ready",
                size=len(data),
                duration_ms=round((time.perf_counter() - start) * 1000),
            )
        return data

    async def render(
        self,
        document_id: str,
        raw_markup: str | None,
        source_id: str = DEFAULT_SOURCE_ID,
        title: str = "",
        deadline: Deadline | None = None,
    ) -> bytes:
        """Generate artifact bytes without touching the cache.

        Raises:
            GenerationTimeoutError: If the deadline elapsed before assembly finished
            StructuralCorruptionError: If the assembled bytes are invalid
        """
        deadline = deadline or Deadline.after(self.timeout)
        log.info("Generating artifact", document_id=document_id, source_id=source_id, timeout=deadline.timeout)

        try:
            async with asyncio.timeout(deadline.remaining()):
                tree = await anyio.to_thread.run_sync(self.build_tree, raw_markup)
                images = await self.pipeline.resolve_images(tree, source_id, document_id, deadline)
                if deadline.expired:
                    raise TimeoutError
                data, report = await anyio.to_thread.run_sync(
                    self.assembler.assemble_with_report, tree, images, title
                )
        except TimeoutError as e:
            log.warning("Generation timed out", document_id=document_id, timeout=deadline.timeout)
            raise GenerationTimeoutError(document_id, deadline.timeout) from e

        for url, reason in report.skipped_images:
            log.warning("Image omitted from artifact", document_id=document_id, url=url[:120], reason=reason)

        validate_package(data, document_id)
        return data

    def build_tree(self, raw_markup: str | None) -> ContentTree:
        """Sanitize, resolve cards and parse; invalid input yields an empty tree."""
        try:
            return self._build_tree(raw_markup)
        except InvalidInputError as e:
            log.info("Using placeholder document", reason=str(e))
            return ContentTree()

    def _build_tree(self, raw_markup: str | None) -> ContentTree:
        if raw_markup is None or not raw_markup.strip():
            raise InvalidInputError("empty markup")

        markup = sanitize(raw_markup)
        resolved = resolve_cards(markup)
        if resolved is not markup:
            # Card fragments carry payload values; re-check them
            resolved = sanitize(resolved)

        tree = self.parser.parse(resolved)
        if tree.is_empty:
            raise InvalidInputError("markup has no renderable content")
        return tree


def generate_artifact_sync(
    document_id: str,
    raw_markup: str | None,
    source_id: str = DEFAULT_SOURCE_ID,
    title: str = "",
    settings: WorditSettings | None = None,
    cache_dir: Path | None = None,
) -> bytes:
    """Blocking wrapper around ``GenerationSupervisor.generate_artifact``."""

    async def run() -> bytes:
        active = settings or get_settings()
        store = None
        if cache_dir is not None:
            store = FileArtifactStore(
                cache_dir,
                lock_stale_seconds=active.cache.lock_stale_seconds,
                lock_retries=active.cache.lock_retries,
                lock_min_wait=active.cache.lock_min_wait,
                lock_max_wait=active.cache.lock_max_wait,
            )
        async with GenerationSupervisor(active, store=store) as supervisor:
            return await supervisor.generate_artifact(document_id, raw_markup, source_id, title)

    return asyncio.run(run())
