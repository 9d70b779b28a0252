"""Operation context carrying a caller deadline and cancellation signal."""

import threading
import time
from typing import Optional

from .errors import DeadlineExceededError, OperationCancelledError


class OperationContext:
    """Deadline and cancellation state propagated down to every transport call.

    A context is created by the caller of a public operation and passed to
    each blocking network call, so a caller-requested timeout aborts the
    in-flight request instead of leaving a put half committed.
    """

    def __init__(self, timeout: Optional[float] = None, deadline: Optional[float] = None):
        """Initialize context.

        Args:
            timeout: Seconds from now until the deadline
            deadline: Absolute deadline on the time.monotonic() clock
        """
        if timeout is not None and deadline is not None:
            raise ValueError("Pass either timeout or deadline, not both")
        if timeout is not None:
            deadline = time.monotonic() + timeout
        self.deadline = deadline
        self._cancelled = threading.Event()

    @classmethod
    def background(cls) -> "OperationContext":
        """Context with no deadline that is never cancelled unless asked."""
        return cls()

    def cancel(self) -> None:
        """Request cancellation (thread-safe)."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, None if unbounded."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self, operation: str = "operation") -> None:
        """Raise if the context was cancelled or its deadline passed."""
        if self.cancelled:
            raise OperationCancelledError(f"{operation} cancelled by caller")
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise DeadlineExceededError(f"{operation} exceeded caller deadline")

    def timeout_for(self, default: float) -> float:
        """HTTP timeout bounded by the remaining deadline."""
        remaining = self.remaining()
        if remaining is None:
            return default
        return min(default, remaining)

    def sleep(self, seconds: float, operation: str = "operation") -> None:
        """Backoff sleep that wakes early on cancellation and never outlives the deadline."""
        remaining = self.remaining()
        if remaining is not None and seconds >= remaining:
            raise DeadlineExceededError(
                f"{operation} would exceed caller deadline while backing off {seconds:.2f}s"
            )
        if self._cancelled.wait(seconds):
            raise OperationCancelledError(f"{operation} cancelled by caller")


def ensure_context(ctx: Optional[OperationContext]) -> OperationContext:
    """Return ctx, or a fresh unbounded context when the caller passed none."""
    return ctx if ctx is not None else OperationContext.background()
