"""Artifact policy gate: evaluation orchestration and check-suite result reporting."""

from policy_gate.engine import EngineOutcome, PolicyEngine, PolicyEngineError
from policy_gate.models import (
    CheckSuiteResult,
    EvaluationRequest,
    EvaluationResponse,
    InvalidEvaluationRequest,
    TaskContext,
    TelemetryEvent,
    ViolationType,
)
from policy_gate.orchestrator import AsyncAcceptance, EvaluationOrchestrator

__all__ = [
    "AsyncAcceptance",
    "CheckSuiteResult",
    "EngineOutcome",
    "EvaluationOrchestrator",
    "EvaluationRequest",
    "EvaluationResponse",
    "InvalidEvaluationRequest",
    "PolicyEngine",
    "PolicyEngineError",
    "TaskContext",
    "TelemetryEvent",
    "ViolationType",
]
