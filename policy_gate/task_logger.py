"""
Evaluation Logger

Routes progress messages for one evaluation to the process log, to an
optional in-memory buffer (synchronous calls return it as ``logs``) and to
an optional remote timeline sink owned by the pipeline. Remote sink errors
are logged locally and never raised to the caller.
"""

from __future__ import annotations

import io
import logging
import re
import traceback
from typing import Callable, Mapping, Optional, Protocol

from policy_gate.models import TaskContext

logger = logging.getLogger(__name__)

_MACRO = re.compile(r"\$\(([^)]+)\)")


class TimelineSink(Protocol):
    """Remote append-only log stream for one pipeline job."""

    def create_record_if_absent(self, task_context: TaskContext) -> None:
        ...

    def append(self, text: str) -> None:
        ...

    def close(self) -> None:
        ...


TimelineSinkFactory = Callable[[TaskContext], TimelineSink]


def expand_variables(message: str, variables: Optional[Mapping[str, str]]) -> str:
    """Replace ``$(name)`` macros; lookup is case-insensitive, unknown names stay."""
    if not variables or "$(" not in message:
        return message
    lookup = {k.lower(): v for k, v in variables.items()}

    def _sub(match: re.Match) -> str:
        value = lookup.get(match.group(1).strip().lower())
        return match.group(0) if value is None else value

    return _MACRO.sub(_sub, message)


class EvaluationLogger:
    """Fan-out logger; use as a context manager so close() always runs."""

    def __init__(
        self,
        variables: Optional[Mapping[str, str]] = None,
        timeline: Optional[TimelineSink] = None,
        capture: bool = False,
        name: str = "evaluation",
    ):
        self._variables = dict(variables or {})
        self._timeline = timeline
        self._buffer: Optional[io.StringIO] = io.StringIO() if capture else None
        self._name = name
        self._closed = False

    @property
    def has_timeline(self) -> bool:
        return self._timeline is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def getvalue(self) -> str:
        """Captured text (empty unless created with capture=True)."""
        return self._buffer.getvalue() if self._buffer is not None else ""

    def ensure_timeline_record(self, task_context: TaskContext) -> None:
        """Create the remote timeline record unless the context already has one.

        Failures propagate: without a record the remote log cannot be written.
        """
        if self._timeline is None or task_context.has_timeline_record:
            return
        self._timeline.create_record_if_absent(task_context)

    def log(self, message: str) -> None:
        text = expand_variables(message, self._variables)
        logger.info("[%s] %s", self._name, text)
        if self._buffer is not None:
            self._buffer.write(text)
            self._buffer.write("\n")
        self._append_remote(text)

    def log_failure(self, exc: BaseException) -> None:
        text = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        logger.error("[%s] %s", self._name, text.rstrip())
        if self._buffer is not None:
            self._buffer.write(text)
        self._append_remote(text)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._timeline is None:
            return
        try:
            self._timeline.close()
        except Exception:
            logger.warning("[%s] Failed to close timeline log", self._name, exc_info=True)

    def _append_remote(self, text: str) -> None:
        if self._timeline is None or self._closed:
            return
        try:
            self._timeline.append(text)
        except Exception as exc:
            logger.warning("[%s] Timeline log write failed: %s", self._name, exc)

    def __enter__(self) -> EvaluationLogger:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
