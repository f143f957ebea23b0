"""Caller-side cancellation and deadlines for multi-request operations."""

import threading
import time
from typing import Optional

from .exceptions import OperationCancelledError


class CancelToken:
    """Cancellation signal shared between a caller and a running operation.

    The client checks the token before every round trip, so a cancelled
    operation stops after the request in flight completes. Nothing is
    rolled back.

    Example:
        >>> token = CancelToken(timeout=30)
        >>> client.add_items("42", ["1234"], cancel=token)  # doctest: +SKIP
        >>> token.cancel()  # from another thread
    """

    def __init__(self, timeout: Optional[float] = None):
        """Create a token.

        Args:
            timeout: Optional deadline in seconds from now
        """
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.expired

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, or None if there is no deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self, operation: str = "operation") -> None:
        """Raise OperationCancelledError if cancelled or past the deadline."""
        if self._event.is_set():
            raise OperationCancelledError(f"{operation} cancelled")
        if self.expired:
            raise OperationCancelledError(f"{operation} deadline exceeded")

    def wait(self, seconds: float) -> None:
        """Sleep up to ``seconds``, returning early if cancelled."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._event.wait(seconds)
