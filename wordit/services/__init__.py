"""Collaborator interfaces for the generation pipeline."""

from wordit.services.protocols import ArtifactStore, ImageFetcher, UrlValidator, ValidationResult

__all__ = [
    "ArtifactStore",
    "ImageFetcher",
    "UrlValidator",
    "ValidationResult",
]
