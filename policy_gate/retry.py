"""
Retrying HTTP caller.

Runs an idempotent request with a bounded number of attempts. Transient
failures (connection errors, timeouts, 5xx, 408, 429) are retried with
exponential backoff and jitter. Any other 4xx response is handed back to
the caller after a single attempt.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from policy_gate.cancellation import CancellationToken, EvaluationCancelled

logger = logging.getLogger(__name__)

_RETRIABLE_STATUS = {408, 429}
_TRANSIENT_ERRORS = (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)


class RetryExhausted(Exception):
    """All attempts failed; ``last_error`` holds the final underlying error."""

    def __init__(self, attempts: int, last_error: Exception):
        super().__init__(f"Request failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class TransientStatusError(Exception):
    """A retriable status code (5xx, 408, 429)."""

    def __init__(self, response: httpx.Response):
        super().__init__(f"HTTP {response.status_code} {response.reason_phrase}".rstrip())
        self.response = response


@dataclass
class AttemptRecord:
    attempt: int
    max_attempts: int
    status_code: Optional[int] = None
    error: Optional[str] = None
    will_retry: bool = False
    delay: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.status_code is not None and self.status_code < 400


def is_retriable_status(status_code: int) -> bool:
    return status_code >= 500 or status_code in _RETRIABLE_STATUS


class RetryingCaller:

    def __init__(
        self,
        max_attempts: int = 5,
        base_delay: float = 0.5,
        max_delay: float = 8.0,
        on_attempt: Optional[Callable[[AttemptRecord], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.on_attempt = on_attempt
        self._sleep = sleep

    def backoff(self, attempt: int) -> float:
        """Delay after ``attempt`` (1-based): capped exponential, jittered 50-100%."""
        ceiling = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        return ceiling * random.uniform(0.5, 1.0)

    def invoke(
        self,
        operation: Callable[[], httpx.Response],
        cancel: Optional[CancellationToken] = None,
    ) -> httpx.Response:
        """Call ``operation`` until it succeeds, fails permanently, or runs out of attempts.

        Returns the successful response, or a non-retriable 4xx response
        unchanged. Raises RetryExhausted when every attempt failed
        transiently and EvaluationCancelled if ``cancel`` fires first.
        """
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            if cancel is not None:
                cancel.raise_if_cancelled(f"HTTP attempt {attempt}")

            record = AttemptRecord(attempt=attempt, max_attempts=self.max_attempts)
            try:
                response = operation()
            except _TRANSIENT_ERRORS as exc:
                last_error = exc
                record.error = f"{type(exc).__name__}: {exc}"
            else:
                record.status_code = response.status_code
                if not is_retriable_status(response.status_code):
                    self._notify(record)
                    return response
                last_error = TransientStatusError(response)
                record.error = str(last_error)

            if attempt < self.max_attempts:
                record.will_retry = True
                record.delay = self.backoff(attempt)
            self._notify(record)

            if record.will_retry:
                self._wait(record.delay, cancel)

        raise RetryExhausted(self.max_attempts, last_error)

    def _wait(self, delay: float, cancel: Optional[CancellationToken]) -> None:
        if cancel is None:
            self._sleep(delay)
        elif cancel.wait(delay):
            raise EvaluationCancelled("Cancelled while waiting to retry")

    def _notify(self, record: AttemptRecord) -> None:
        if record.will_retry:
            logger.warning(
                "HTTP attempt %d/%d failed (%s); retrying in %.2fs",
                record.attempt, record.max_attempts, record.error, record.delay,
            )
        elif record.error:
            logger.warning(
                "HTTP attempt %d/%d failed (%s); giving up",
                record.attempt, record.max_attempts, record.error,
            )
        else:
            logger.debug(
                "HTTP attempt %d/%d returned %s",
                record.attempt, record.max_attempts, record.status_code,
            )

        if self.on_attempt is None:
            return
        try:
            self.on_attempt(record)
        except Exception:
            logger.debug("Attempt observer raised; ignoring", exc_info=True)
