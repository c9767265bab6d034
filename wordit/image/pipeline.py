"""Image resolution pipeline.

Every distinct image reference in a content tree becomes one ``ImageJob``.
Jobs run concurrently under a fixed ceiling; each is validated, fetched with
retry, and made embeddable. A failing job never affects the others, and
jobs still running when the deadline elapses are failed with ``timeout``.
"""

import asyncio
import inspect
import time
from typing import Any

import anyio

from wordit.config.constants import DEFAULT_FETCH_TIMEOUT, DEFAULT_LARGE_FILE_THRESHOLD, IMAGE_CONCURRENCY
from wordit.config.settings import WorditSettings
from wordit.core.deadline import Deadline
from wordit.exceptions import ImageFailureError, ValidationRejectedError
from wordit.image.cache import ImageCache
from wordit.image.fetchers import HttpImageFetcher, LocalAssetFetcher, decode_data_uri, is_data_uri
from wordit.image.jobs import ImageJob, ImageJobState, ResolvedImage
from wordit.image.retry import RetryPolicy
from wordit.image.transform import ImageTransformer, TransformConfig
from wordit.image.validator import DefaultUrlValidator
from wordit.markup.tree import ContentTree
from wordit.services.protocols import ImageFetcher, UrlValidator, ValidationResult
from wordit.utils.fs import format_size
from wordit.utils.logging import get_logger

log = get_logger(__name__)

TIMEOUT_REASON = "timeout"


def collect_image_urls(tree: ContentTree) -> list[str]:
    """Distinct image references in document order."""
    seen: dict[str, None] = {}
    for ref in tree.image_refs():
        seen.setdefault(ref.src, None)
    return list(seen)


class ImageResolutionPipeline:
    """Resolve the images of one content tree at a time."""

    concurrency = IMAGE_CONCURRENCY

    def __init__(
        self,
        fetcher: ImageFetcher,
        validator: UrlValidator | None = None,
        transformer: ImageTransformer | None = None,
        retry_policy: RetryPolicy | None = None,
        large_file_threshold: int = DEFAULT_LARGE_FILE_THRESHOLD,
        cache: ImageCache | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.validator = validator or DefaultUrlValidator()
        self.transformer = transformer or ImageTransformer()
        self.retry_policy = retry_policy or RetryPolicy()
        self.large_file_threshold = large_file_threshold
        self.cache = cache

    @classmethod
    def from_settings(
        cls,
        settings: WorditSettings,
        fetcher: ImageFetcher | None = None,
        validator: UrlValidator | None = None,
    ) -> "ImageResolutionPipeline":
        """Build a pipeline with collaborators configured from settings."""
        image = settings.image
        if fetcher is None:
            fetcher = HttpImageFetcher(timeout=image.fetch_timeout or DEFAULT_FETCH_TIMEOUT)
            if image.assets_dir:
                fetcher = LocalAssetFetcher(image.assets_dir, fallback=fetcher)
        if validator is None:
            security = settings.security
            validator = DefaultUrlValidator(
                allowed_schemes=security.allowed_schemes,
                allowed_hosts=security.allowed_hosts,
                blocked_hosts=security.blocked_hosts,
                block_private_networks=security.block_private_networks,
            )
        cache = ImageCache(image.cache_entries, image.cache_ttl_seconds) if image.cache_entries else None
        return cls(
            fetcher=fetcher,
            validator=validator,
            transformer=ImageTransformer(
                TransformConfig(max_dimension=image.max_dimension, jpeg_quality=image.jpeg_quality)
            ),
            retry_policy=RetryPolicy(
                max_attempts=image.max_attempts,
                base_delay=image.retry_base_delay,
                max_delay=image.retry_max_delay,
            ),
            large_file_threshold=image.large_file_threshold,
            cache=cache,
        )

    async def resolve_images(
        self,
        tree: ContentTree,
        source_id: str,
        document_id: str,
        deadline: Deadline | None = None,
    ) -> dict[str, ImageJob]:
        """Resolve every distinct image reference of a tree.

        Args:
            tree: Parsed document
            source_id: Origin namespace of the references
            document_id: Document being generated
            deadline: Shared generation deadline; None waits for all jobs

        Returns:
            Terminal jobs keyed by reference URL
        """
        urls = collect_image_urls(tree)
        if not urls:
            return {}

        jobs = {url: ImageJob(url=url, document_id=document_id, source_id=source_id) for url in urls}
        semaphore = asyncio.Semaphore(self.concurrency)
        start = time.perf_counter()

        tasks = [asyncio.create_task(self._run_job(job, semaphore, deadline)) for job in jobs.values()]
        try:
            _, pending = await asyncio.wait(tasks, timeout=deadline.remaining() if deadline else None)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            for job in jobs.values():
                job.fail(TIMEOUT_REASON)  # no-op for terminal jobs
            # Cancelled jobs must finish unwinding before their results are read
            await asyncio.gather(*tasks, return_exceptions=True)

        embedded = sum(1 for job in jobs.values() if job.embedded)
        log.info(
            "Images resolved",
            document_id=document_id,
            total=len(jobs),
            embedded=embedded,
            failed=len(jobs) - embedded,
            timed_out=len(pending),
            duration_ms=round((time.perf_counter() - start) * 1000),
        )
        return jobs

    async def _run_job(self, job: ImageJob, semaphore: asyncio.Semaphore, deadline: Deadline | None) -> None:
        async with semaphore:
            try:
                image = await self._resolve(job, deadline)
            except Exception as e:
                reason = e.reason if isinstance(e, ImageFailureError) else f"{type(e).__name__}: {e}"
                job.fail(reason)
                return
            if job.is_terminal:
                # Failed by the deadline while the transform was finishing
                return
            job.embed(image)
            log.debug(
                "Image embedded",
                url=job.url[:120],
                format=image.format,
                size=image.size,
                attempts=job.attempts,
                document_id=job.document_id,
            )

    async def _resolve(self, job: ImageJob, deadline: Deadline | None) -> ResolvedImage:
        if is_data_uri(job.url):
            # Inline payloads skip validation and the fetch collaborator
            job.advance(ImageJobState.FETCHING)
            data = decode_data_uri(job.url)
        else:
            job.advance(ImageJobState.VALIDATING)
            await self._validate(job.url)
            job.advance(ImageJobState.FETCHING)
            cached = self.cache.get(job.source_id, job.url) if self.cache is not None else None
            if cached is not None:
                job.advance(ImageJobState.OPTIMIZING)
                return cached
            data = await self._fetch_with_retry(job, deadline)

        if self.large_file_threshold and len(data) > self.large_file_threshold:
            log.warning(
                "Large image payload",
                url=job.url[:120],
                size=format_size(len(data)),
                threshold=format_size(self.large_file_threshold),
            )

        job.advance(ImageJobState.OPTIMIZING)
        image = await anyio.to_thread.run_sync(self.transformer.transform, data, job.url)
        if self.cache is not None and not is_data_uri(job.url):
            self.cache.set(job.source_id, job.url, image)
        return image

    async def _validate(self, url: str) -> None:
        result: Any = self.validator.validate(url)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, bool):
            result = ValidationResult(ok=result, reason=None if result else "rejected")
        if not result.ok:
            raise ValidationRejectedError(url, result.reason or "rejected")

    async def _fetch_with_retry(self, job: ImageJob, deadline: Deadline | None) -> bytes:
        state = self.retry_policy.new_state()
        while True:
            job.attempts = state.begin_attempt()
            try:
                return await self.fetcher.fetch(job.url, job.source_id, job.document_id)
            except Exception as e:
                if not state.record_failure(e):
                    raise
                delay = deadline.clamp(state.next_delay) if deadline else state.next_delay
                log.debug(
                    "Retrying image fetch",
                    url=job.url[:120],
                    attempt=state.attempt,
                    delay=round(delay, 3),
                    error=str(e),
                )
                await asyncio.sleep(delay)

    async def aclose(self) -> None:
        """Close collaborators that hold network resources."""
        close = getattr(self.fetcher, "aclose", None)
        if close is not None:
            result = close()
            if inspect.isawaitable(result):
                await result
