"""Custom exceptions for WordIt."""


class WorditError(Exception):
    """Base exception class for WordIt."""

    pass


class InvalidInputError(WorditError):
    """Markup is empty or could not be parsed.

    Never surfaced to callers: generation falls back to a placeholder document.
    """

    pass


class ImageFailureError(WorditError):
    """A single image could not be resolved."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Image failed for {url}: {reason}")


class ValidationRejectedError(ImageFailureError):
    """Image URL was rejected by the URL validator."""

    pass


class GenerationTimeoutError(WorditError):
    """Generation exceeded its deadline."""

    def __init__(self, document_id: str, timeout: float) -> None:
        self.document_id = document_id
        self.timeout = timeout
        super().__init__(f"Generation of {document_id} timed out after {timeout:g}s")


class WriteFailureError(WorditError):
    """Artifact could not be atomically written."""

    def __init__(self, document_id: str, message: str, cause: Exception | None = None) -> None:
        self.document_id = document_id
        self.cause = cause
        super().__init__(f"Write failed for {document_id}: {message}")


class LockAcquisitionError(WriteFailureError):
    """Identity lock could not be acquired within the retry budget."""

    def __init__(self, document_id: str, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(document_id, f"could not acquire lock after {attempts} attempts")


class StructuralCorruptionError(WorditError):
    """Artifact bytes are not a valid Word package."""

    def __init__(self, document_id: str, reason: str) -> None:
        self.document_id = document_id
        self.reason = reason
        super().__init__(f"Artifact for {document_id} is corrupt: {reason}")


class ConfigurationError(WorditError):
    """Configuration error."""

    pass
