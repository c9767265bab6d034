"""Image job lifecycle."""

from dataclasses import dataclass, field
from enum import Enum

from wordit.utils.logging import get_logger

log = get_logger(__name__)


class ImageJobState(str, Enum):
    PENDING = "pending"
    VALIDATING = "validating"
    FETCHING = "fetching"
    OPTIMIZING = "optimizing"
    EMBEDDED = "embedded"
    FAILED = "failed"


TERMINAL_STATES = frozenset({ImageJobState.EMBEDDED, ImageJobState.FAILED})

# FAILED is reachable from every non-terminal state
_TRANSITIONS: dict[ImageJobState, frozenset[ImageJobState]] = {
    ImageJobState.PENDING: frozenset({ImageJobState.VALIDATING, ImageJobState.FETCHING}),
    ImageJobState.VALIDATING: frozenset({ImageJobState.FETCHING}),
    ImageJobState.FETCHING: frozenset({ImageJobState.OPTIMIZING}),
    ImageJobState.OPTIMIZING: frozenset({ImageJobState.EMBEDDED}),
    ImageJobState.EMBEDDED: frozenset(),
    ImageJobState.FAILED: frozenset(),
}


class InvalidTransitionError(RuntimeError):
    """A job was moved along an edge its lifecycle does not have."""


@dataclass
class ResolvedImage:
    """An image payload ready for embedding."""

    data: bytes
    format: str  # Pillow format name, e.g. "PNG"
    width: int  # pixels
    height: int  # pixels
    original_size: int = 0

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class ImageJob:
    """Resolution of one distinct image reference within one generation."""

    url: str
    document_id: str
    source_id: str
    state: ImageJobState = ImageJobState.PENDING
    image: ResolvedImage | None = None
    failure_reason: str | None = None
    attempts: int = 0
    history: list[ImageJobState] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def embedded(self) -> bool:
        return self.state is ImageJobState.EMBEDDED

    @property
    def failed(self) -> bool:
        return self.state is ImageJobState.FAILED

    def advance(self, state: ImageJobState) -> None:
        """Move to a non-terminal next state.

        Raises:
            InvalidTransitionError: If the lifecycle has no such edge
        """
        if state not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"{self.state.value} -> {state.value} for {self.url}")
        self.history.append(self.state)
        self.state = state

    def embed(self, image: ResolvedImage) -> None:
        self.advance(ImageJobState.EMBEDDED)
        self.image = image

    def fail(self, reason: str) -> None:
        """Mark the job failed; a no-op once it is terminal."""
        if self.is_terminal:
            return
        self.history.append(self.state)
        self.state = ImageJobState.FAILED
        self.failure_reason = reason
        self.image = None
        log.warning("Image job failed", url=self.url[:120], reason=reason, document_id=self.document_id)
