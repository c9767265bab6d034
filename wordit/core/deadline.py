"""Wall-clock deadline shared by every stage of one generation."""

import time


class Deadline:
    """A point in monotonic time after which work must stop.

    Example:
        >>> deadline = Deadline.after(30)
        >>> deadline.remaining() <= 30
        True
    """

    def __init__(self, expires_at: float, timeout: float) -> None:
        self.expires_at = expires_at
        self.timeout = timeout

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        return cls(time.monotonic() + seconds, seconds)

    def remaining(self) -> float:
        """Seconds left, never negative."""
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def clamp(self, seconds: float) -> float:
        """Shorten a timeout so it never outlives the deadline."""
        return min(seconds, self.remaining())

    def __repr__(self) -> str:
        return f"Deadline(timeout={self.timeout:g}, remaining={self.remaining():.3f})"
