"""Tests for the image job lifecycle and retry policy."""

import pytest

from wordit.exceptions import ImageFailureError
from wordit.image.jobs import ImageJob, ImageJobState, InvalidTransitionError, ResolvedImage
from wordit.image.retry import RetryPolicy


def _job() -> ImageJob:
    return ImageJob(url="https://e.com/a.png", document_id="doc", source_id="src")


def _image() -> ResolvedImage:
    return ResolvedImage(data=b"png", format="PNG", width=1, height=1)


class TestImageJob:
    """Tests for ImageJob transitions."""

    def test_happy_path(self):
        job = _job()
        job.advance(ImageJobState.VALIDATING)
        job.advance(ImageJobState.FETCHING)
        job.advance(ImageJobState.OPTIMIZING)
        job.embed(_image())

        assert job.embedded
        assert job.is_terminal
        assert job.history == [
            ImageJobState.PENDING,
            ImageJobState.VALIDATING,
            ImageJobState.FETCHING,
            ImageJobState.OPTIMIZING,
        ]

    def test_inline_payload_skips_validation(self):
        job = _job()
        job.advance(ImageJobState.FETCHING)
        assert job.state is ImageJobState.FETCHING

    def test_cannot_skip_fetching(self):
        job = _job()
        with pytest.raises(InvalidTransitionError):
            job.advance(ImageJobState.OPTIMIZING)

    def test_cannot_embed_before_optimizing(self):
        job = _job()
        job.advance(ImageJobState.FETCHING)
        with pytest.raises(InvalidTransitionError):
            job.embed(_image())

    def test_fail_from_any_non_terminal_state(self):
        job = _job()
        job.advance(ImageJobState.VALIDATING)
        job.fail("rejected")

        assert job.failed
        assert job.failure_reason == "rejected"
        assert job.image is None

    def test_terminal_states_are_final(self):
        job = _job()
        job.fail("first")
        job.fail("second")
        assert job.failure_reason == "first"

        with pytest.raises(InvalidTransitionError):
            job.advance(ImageJobState.FETCHING)

    def test_fail_after_embed_is_ignored(self):
        job = _job()
        job.advance(ImageJobState.FETCHING)
        job.advance(ImageJobState.OPTIMIZING)
        job.embed(_image())
        job.fail("timeout")
        assert job.embedded


class TestRetryPolicy:
    """Tests for RetryPolicy and RetryState."""

    def test_exponential_delays_are_capped(self):
        policy = RetryPolicy(max_attempts=5, base_delay=0.5, max_delay=1.5)
        assert [policy.delay_for(n) for n in range(1, 5)] == [0.5, 1.0, 1.5, 1.5]

    def test_requires_an_attempt(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_retries_transient_errors_until_exhausted(self):
        state = RetryPolicy(max_attempts=3, base_delay=0.1).new_state()

        state.begin_attempt()
        assert state.record_failure(ConnectionError()) is True
        assert state.next_delay == pytest.approx(0.1)

        state.begin_attempt()
        assert state.record_failure(ConnectionError()) is True
        assert state.next_delay == pytest.approx(0.2)

        state.begin_attempt()
        assert state.record_failure(ConnectionError()) is False
        assert state.exhausted

    def test_permanent_failures_are_not_retried(self):
        state = RetryPolicy(max_attempts=3).new_state()
        state.begin_attempt()
        assert state.record_failure(ImageFailureError("u", "HTTP 404")) is False
        assert isinstance(state.last_error, ImageFailureError)
