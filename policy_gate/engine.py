"""
Policy Engine Interface

The gate does not evaluate policy itself. It hands the provenance document,
the policy text and the pipeline variables to a PolicyEngine and treats
every violation it returns as an opaque record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from policy_gate.config import load_object
from policy_gate.models import ViolationType


class PolicyEngineError(Exception):
    """The engine could not produce a verdict."""


@dataclass
class EngineOutcome:
    violations: list[Any] = field(default_factory=list)
    violation_type: ViolationType = ViolationType.NONE
    log: str = ""

    @property
    def succeeded(self) -> bool:
        return not self.violations


@runtime_checkable
class PolicyEngine(Protocol):
    def execute(
        self,
        provenance: Any,
        policy: str,
        variables: Mapping[str, str],
    ) -> EngineOutcome:
        ...


class UnconfiguredPolicyEngine:
    """Placeholder used when POLICY_GATE_ENGINE is not set."""

    def execute(self, provenance: Any, policy: str, variables: Mapping[str, str]) -> EngineOutcome:
        raise PolicyEngineError(
            "No policy engine configured. Set POLICY_GATE_ENGINE to 'module:attribute'."
        )


def coerce_outcome(raw: Any) -> EngineOutcome:
    """Accept an EngineOutcome or a ``(violations, violation_type, log)`` tuple."""
    if isinstance(raw, EngineOutcome):
        violations, violation_type, log = raw.violations, raw.violation_type, raw.log
    elif isinstance(raw, tuple) and len(raw) == 3:
        violations, violation_type, log = raw
    else:
        raise PolicyEngineError(f"Engine returned an unsupported result: {type(raw).__name__}")
    try:
        violation_type = ViolationType(violation_type or ViolationType.NONE)
    except ValueError as exc:
        raise PolicyEngineError(
            f"Engine returned an unknown violation type: {violation_type!r}"
        ) from exc
    return EngineOutcome(
        violations=list(violations or []),
        violation_type=violation_type,
        log=log or "",
    )


def load_policy_engine(path: Optional[str]) -> PolicyEngine:
    """Instantiate the engine named by ``path`` (a class or an instance)."""
    if not path:
        return UnconfiguredPolicyEngine()
    obj = load_object(path)
    if isinstance(obj, type):
        obj = obj()
    if not isinstance(obj, PolicyEngine):
        raise TypeError(f"{path} does not provide an execute() method")
    return obj
