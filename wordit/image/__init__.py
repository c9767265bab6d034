"""Image resolution: validation, fetching, transformation, job tracking."""

from wordit.image.cache import ImageCache
from wordit.image.fetchers import HttpImageFetcher, LocalAssetFetcher
from wordit.image.jobs import ImageJob, ImageJobState, ResolvedImage
from wordit.image.pipeline import ImageResolutionPipeline
from wordit.image.retry import RetryPolicy
from wordit.image.transform import ImageTransformer
from wordit.image.validator import DefaultUrlValidator

__all__ = [
    "ImageResolutionPipeline",
    "ImageJob",
    "ImageJobState",
    "ResolvedImage",
    "RetryPolicy",
    "ImageTransformer",
    "HttpImageFetcher",
    "LocalAssetFetcher",
    "DefaultUrlValidator",
    "ImageCache",
]
