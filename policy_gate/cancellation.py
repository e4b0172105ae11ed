"""
Cancellation tokens for background evaluations.

A token combines an explicit cancel flag with an optional monotonic
deadline, so a stuck remote dependency cannot hold a worker forever.
"""

from __future__ import annotations

import threading
import time
from typing import Optional


class EvaluationCancelled(Exception):
    """Raised at a suspension point once the token is cancelled or expired."""


class CancellationToken:

    def __init__(self, timeout_seconds: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = (
            time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        )
        self._reason = ""

    def cancel(self, reason: str = "cancelled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.expired

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, or None when there is no deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self, step: str) -> None:
        if self._event.is_set():
            raise EvaluationCancelled(f"Cancelled before {step}: {self._reason}")
        if self.expired:
            raise EvaluationCancelled(f"Deadline exceeded before {step}")

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True if cancelled meanwhile."""
        remaining = self.remaining()
        if remaining is not None and remaining < seconds:
            self._event.wait(remaining)
            return True
        return self._event.wait(seconds)
