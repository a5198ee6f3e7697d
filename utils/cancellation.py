"""
Cooperative cancellation for network-bound pipeline work.

A CancelToken combines an explicit cancel flag with an optional overall
deadline. Every network call in the pipeline derives its timeout from the
token so an aborted or expired request does not leave work running
indefinitely.
"""

import threading
import time
from typing import Callable, Optional

from utils.errors import AnalysisCancelled


class CancelToken:
    """Cancel flag plus optional overall deadline (monotonic clock)."""

    def __init__(
        self,
        deadline_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self._clock = clock
        self._event = threading.Event()
        self._deadline = clock() + deadline_seconds if deadline_seconds is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and self._clock() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is no deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def timeout_for(self, default: float) -> float:
        """
        Timeout to use for the next network call.

        Raises:
            AnalysisCancelled: If the token is already cancelled or expired
        """
        if self.cancelled:
            raise AnalysisCancelled("Analysis was cancelled or its deadline elapsed")
        remaining = self.remaining()
        if remaining is None:
            return default
        return min(default, remaining)

    def bound(self, timeout: Optional[float]) -> Optional[float]:
        """Clamp an optional wait timeout to the remaining deadline."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        if timeout is None:
            return remaining
        return min(timeout, remaining)
