"""Tests for the generation deadline."""

import time

from wordit.core.deadline import Deadline


class TestDeadline:
    def test_after(self):
        deadline = Deadline.after(30)

        assert deadline.timeout == 30
        assert 29 < deadline.remaining() <= 30
        assert not deadline.expired

    def test_expired(self):
        deadline = Deadline.after(0.01)
        time.sleep(0.02)

        assert deadline.expired
        assert deadline.remaining() == 0.0

    def test_clamp(self):
        deadline = Deadline.after(1)

        assert deadline.clamp(0.5) == 0.5
        assert deadline.clamp(10) <= 1

    def test_clamp_after_expiry(self):
        deadline = Deadline(time.monotonic() - 1, 5)
        assert deadline.clamp(3) == 0.0

    def test_repr(self):
        assert repr(Deadline.after(2)).startswith("Deadline(timeout=2, remaining=")
