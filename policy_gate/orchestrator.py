"""
Evaluation Orchestrator

Chooses the evaluation mode exactly once per request:

  * no ``authToken``: evaluate inline and return the verdict to the caller;
  * ``authToken`` present: snapshot the request, hand it to the bounded
    worker pool and return an acceptance at once. The background unit runs
    the engine, posts the verdict to the check-runs endpoint and publishes
    telemetry, logging progress to the pipeline timeline.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union
from uuid import UUID, uuid4

import httpx

from policy_gate.cancellation import CancellationToken, EvaluationCancelled
from policy_gate.config import GateConfig
from policy_gate.engine import EngineOutcome, PolicyEngine, PolicyEngineError, coerce_outcome
from policy_gate.models import (
    EvaluationRequest,
    EvaluationResponse,
    TaskContext,
    TelemetryEvent,
    task_context_from_request,
    validate_request,
)
from policy_gate.reporter import ResultReporter
from policy_gate.retry import RetryingCaller
from policy_gate.task_logger import EvaluationLogger, TimelineSinkFactory
from policy_gate.telemetry import (
    CustomerIntelligenceSink,
    TelemetryPublisher,
    TelemetrySinkFactory,
)
from policy_gate.workers import EvaluationWorkerPool

logger = logging.getLogger(__name__)

_ENGINE_POLL_SECONDS = 0.25


# ---------------------------------------------------------------------------
# Background unit types
# ---------------------------------------------------------------------------

@dataclass
class BackgroundEvaluation:
    """Owned copy of everything the background unit needs."""
    execution_id: str
    provenance: Any
    policy: str
    check_suite_id: UUID
    task_context: TaskContext
    variables: dict[str, str] = field(default_factory=dict)

    @classmethod
    def snapshot(cls, request: EvaluationRequest, task_context: TaskContext) -> BackgroundEvaluation:
        return cls(
            execution_id=uuid4().hex,
            provenance=copy.deepcopy(request.image_provenance),
            policy=request.policy_data,
            check_suite_id=request.check_suite_id,
            task_context=task_context,
            variables=dict(request.variables),
        )


class EvaluationHandle:
    """Caller-side view of one background evaluation."""

    def __init__(self, unit: BackgroundEvaluation, cancel: CancellationToken):
        self.execution_id = unit.execution_id
        self.check_suite_id = unit.check_suite_id
        self.token = cancel
        self.future: Optional[Future] = None
        self._delivery_passed = threading.Event()

    @property
    def delivered(self) -> bool:
        """True once the result delivery step has run."""
        return self._delivery_passed.is_set()

    def mark_delivered(self) -> None:
        self._delivery_passed.set()

    def cancel(self, reason: str = "cancelled by caller") -> bool:
        """Stop the unit before it delivers a result. No-op afterwards."""
        if self.delivered:
            return False
        self.token.cancel(reason)
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the unit finishes (tests and shutdown only)."""
        if self.future is None:
            return True
        done, _ = wait_futures([self.future], timeout=timeout)
        return bool(done)


@dataclass
class AsyncAcceptance:
    handle: EvaluationHandle


EvaluationResult = Union[EvaluationResponse, AsyncAcceptance]


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class EvaluationOrchestrator:

    def __init__(
        self,
        engine: PolicyEngine,
        config: Optional[GateConfig] = None,
        pool: Optional[EvaluationWorkerPool] = None,
        timeline_factory: Optional[TimelineSinkFactory] = None,
        telemetry_sink_factory: Optional[TelemetrySinkFactory] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or GateConfig()
        self.engine = engine
        self.pool = pool or EvaluationWorkerPool(
            max_workers=self.config.max_workers,
            max_pending=self.config.max_pending,
        )
        self._timeline_factory = timeline_factory
        self._telemetry_sink_factory = telemetry_sink_factory or self._default_telemetry_sink
        self._transport = transport
        self.reporter = ResultReporter(
            RetryingCaller(
                max_attempts=self.config.http_attempts,
                base_delay=self.config.retry_base_delay_seconds,
                max_delay=self.config.retry_max_delay_seconds,
                sleep=sleep,
            ),
            timeout_seconds=self.config.http_timeout_seconds,
            max_message_chars=self.config.max_result_message_chars,
            transport=transport,
        )
        self._engine_executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="policy-engine"
        )

    # -- entry point --------------------------------------------------------

    def evaluate(self, request: EvaluationRequest) -> EvaluationResult:
        """Validate ``request`` and run it in the mode its authToken selects.

        Raises InvalidEvaluationRequest for client errors and
        PolicyEngineError when a synchronous evaluation fails.
        EvaluationCancelled when a synchronous evaluation outlives its deadline.
        """
        validate_request(request)
        if request.is_async:
            return self.submit(request)
        return self.evaluate_sync(request)

    # -- synchronous path ---------------------------------------------------

    def evaluate_sync(self, request: EvaluationRequest) -> EvaluationResponse:
        task_logger = EvaluationLogger(request.variables, capture=True, name="sync")
        with task_logger:
            task_logger.log("Initializing evaluation.")
            cancel = CancellationToken(self.config.evaluation_timeout_seconds)
            try:
                outcome = self._invoke_engine(
                    request.image_provenance,
                    request.policy_data,
                    request.variables,
                    cancel,
                    "synchronous evaluation",
                )
            except (PolicyEngineError, EvaluationCancelled):
                raise
            except Exception as exc:
                raise PolicyEngineError(f"Policy evaluation failed: {exc}") from exc

            if outcome.log:
                task_logger.log(outcome.log)
            task_logger.log(f"Policy check succeeded: {outcome.succeeded}")

        return EvaluationResponse(
            violations=list(outcome.violations),
            logs=task_logger.getvalue(),
            violation_type=outcome.violation_type,
        )

    # -- asynchronous path --------------------------------------------------

    def submit(self, request: EvaluationRequest) -> AsyncAcceptance:
        """Schedule a background evaluation and return without waiting.

        Raises InvalidEvaluationRequest for an incomplete task context and
        WorkerPoolSaturated when the pool has no free slot.
        """
        task_context = task_context_from_request(request)
        unit = BackgroundEvaluation.snapshot(request, task_context)
        handle = EvaluationHandle(
            unit, CancellationToken(self.config.evaluation_timeout_seconds)
        )
        handle.future = self.pool.submit(
            f"{unit.check_suite_id}/{unit.execution_id}",
            self.run_background,
            unit,
            handle,
        )
        logger.info(
            "Accepted asynchronous evaluation %s for check suite %s",
            unit.execution_id, unit.check_suite_id,
        )
        return AsyncAcceptance(handle=handle)

    def run_background(self, unit: BackgroundEvaluation, handle: EvaluationHandle) -> None:
        """The background unit of work. Steps run strictly in order."""
        ctx = unit.task_context
        cancel = handle.token
        timeline = self._timeline_factory(ctx) if self._timeline_factory else None

        with EvaluationLogger(unit.variables, timeline=timeline, name=unit.execution_id) as task_logger:
            try:
                task_logger.ensure_timeline_record(ctx)
                task_logger.log(
                    f"Initializing evaluation. Execution id - {unit.execution_id}"
                )

                outcome = self._invoke_engine(
                    unit.provenance,
                    unit.policy,
                    unit.variables,
                    cancel,
                    f"check suite {unit.check_suite_id}",
                )
                if outcome.log:
                    task_logger.log(outcome.log)
                task_logger.log(f"Policy check succeeded: {outcome.succeeded}")

                event = TelemetryEvent.for_evaluation(
                    ctx,
                    unit.check_suite_id,
                    outcome.succeeded,
                    outcome.violation_type,
                    self.config.telemetry_layer,
                )

                cancel.raise_if_cancelled("result delivery")
                try:
                    self.reporter.report(
                        ctx,
                        unit.check_suite_id,
                        outcome.succeeded,
                        outcome.log,
                        task_logger,
                        cancel=cancel,
                    )
                except EvaluationCancelled:
                    raise
                except Exception as exc:
                    task_logger.log(f"Failed to report check status: {exc}")
                handle.mark_delivered()

                TelemetryPublisher(self._telemetry_sink_factory(ctx)).publish(event)
            except Exception as exc:
                task_logger.log_failure(exc)
                raise

    def _invoke_engine(
        self,
        provenance: Any,
        policy: str,
        variables: dict[str, str],
        cancel: CancellationToken,
        label: str,
    ) -> EngineOutcome:
        """Run the engine on the engine executor, waiting no longer than ``cancel`` allows.

        A stuck engine is abandoned (its thread finishes on its own) and
        EvaluationCancelled is raised.
        """
        cancel.raise_if_cancelled("policy evaluation")
        future = self._engine_executor.submit(self.engine.execute, provenance, policy, variables)
        while True:
            remaining = cancel.remaining()
            timeout = _ENGINE_POLL_SECONDS if remaining is None else min(remaining, _ENGINE_POLL_SECONDS)
            done, _ = wait_futures([future], timeout=timeout, return_when=FIRST_COMPLETED)
            if done:
                return coerce_outcome(future.result())
            if cancel.cancelled:
                future.cancel()
                raise EvaluationCancelled(
                    f"Policy evaluation abandoned for {label}"
                )

    def _default_telemetry_sink(self, ctx: TaskContext) -> CustomerIntelligenceSink:
        return CustomerIntelligenceSink(
            ctx.plan_url,
            ctx.auth_token,
            timeout_seconds=self.config.telemetry_timeout_seconds,
            transport=self._transport,
        )

    def shutdown(self, wait: bool = True) -> None:
        self.pool.shutdown(wait=wait)
        self._engine_executor.shutdown(wait=wait, cancel_futures=not wait)
