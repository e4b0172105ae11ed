"""
Bounded worker pool for background evaluations.

Admission is capped at ``max_workers + max_pending`` units. A full pool
rejects new work with WorkerPoolSaturated instead of queueing without limit.
Each future carries a supervision callback that frees its slot and logs any
exception the unit raised, so failures of detached work are never lost.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

logger = logging.getLogger(__name__)


class WorkerPoolSaturated(RuntimeError):
    """No admission slot left for another background evaluation."""


class EvaluationWorkerPool:

    def __init__(self, max_workers: int = 8, max_pending: int = 64):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self.capacity = max_workers + max(0, max_pending)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="policy-eval"
        )
        self._slots = threading.BoundedSemaphore(self.capacity)
        self._lock = threading.Lock()
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    def submit(self, name: str, fn: Callable[..., Any], *args: Any) -> Future:
        if not self._slots.acquire(blocking=False):
            raise WorkerPoolSaturated(
                f"Evaluation capacity exhausted ({self.capacity} in flight)"
            )
        try:
            future = self._executor.submit(fn, *args)
        except BaseException:
            self._slots.release()
            raise
        with self._lock:
            self._in_flight += 1
        future.add_done_callback(lambda f: self._supervise(name, f))
        return future

    def _supervise(self, name: str, future: Future) -> None:
        with self._lock:
            self._in_flight -= 1
        self._slots.release()
        if future.cancelled():
            logger.info("Background evaluation %s was cancelled before it started", name)
            return
        exc = future.exception()
        if exc is not None:
            logger.error(
                "Background evaluation %s terminated with an error",
                name,
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=not wait)
