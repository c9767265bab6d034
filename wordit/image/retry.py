"""Retry policy for image fetches.

The backoff is an explicit state machine: the pipeline asks the state
whether to try again and how long to wait, and does the waiting itself.
"""

from dataclasses import dataclass

from wordit.config.constants import DEFAULT_MAX_ATTEMPTS, DEFAULT_RETRY_BASE_DELAY, DEFAULT_RETRY_MAX_DELAY
from wordit.exceptions import ImageFailureError


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with a small attempt ceiling."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_RETRY_BASE_DELAY
    max_delay: float = DEFAULT_RETRY_MAX_DELAY
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)

    def is_retryable(self, error: BaseException) -> bool:
        # ImageFailureError marks a permanent outcome (HTTP 404, rejected URL, ...)
        return not isinstance(error, ImageFailureError)

    def new_state(self) -> "RetryState":
        return RetryState(self)


class RetryState:
    """Attempt count and next delay for one job."""

    def __init__(self, policy: RetryPolicy) -> None:
        self.policy = policy
        self.attempt = 0
        self.next_delay = 0.0
        self.last_error: BaseException | None = None

    def begin_attempt(self) -> int:
        self.attempt += 1
        return self.attempt

    def record_failure(self, error: BaseException) -> bool:
        """Record a failed attempt.

        Returns:
            True if another attempt should follow after ``next_delay`` seconds
        """
        self.last_error = error
        if not self.policy.is_retryable(error) or self.attempt >= self.policy.max_attempts:
            self.next_delay = 0.0
            return False
        self.next_delay = self.policy.delay_for(self.attempt)
        return True

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.policy.max_attempts
