"""Cancellation and deadline handling for update attempts.

A Context travels with every network call and with the final filesystem
swap. It can be cancelled from another thread (a signal handler, a UI
button) and can carry a deadline; both surface as UpdateCancelledError.
"""

import threading
import time

from selfupdate.errors import DeadlineExceededError, UpdateCancelledError


class Context:
    """Cancellation signal with an optional deadline."""

    def __init__(self, timeout: float | None = None):
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """Abort every operation that checks this context."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None when there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def check(self) -> None:
        """Raise if the context was cancelled or its deadline has passed."""
        if self.cancelled:
            raise UpdateCancelledError()
        if self.expired:
            raise DeadlineExceededError()


def background() -> Context:
    """Return a context that never expires."""
    return Context()


def with_timeout(seconds: float) -> Context:
    """Return a context that expires after ``seconds``."""
    return Context(timeout=seconds)
