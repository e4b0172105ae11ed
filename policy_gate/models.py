"""
Policy Gate Data Models

Inbound request, synchronous response, the check-suite result posted back
to the pipeline, and the telemetry event emitted after an asynchronous
evaluation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InvalidEvaluationRequest(ValueError):
    """Client input error. Always answered with HTTP 400."""


# ---------------------------------------------------------------------------
# Domain types
# ---------------------------------------------------------------------------

class ViolationType(str, Enum):
    NONE = "None"
    WARNING = "Warning"
    ERROR = "Error"


class CheckStatus(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class TaskContext:
    """Identifiers needed to reach the pipeline that issued the check."""
    plan_url: str
    auth_token: str
    project_id: str
    job_id: str
    hub_name: Optional[str] = None
    plan_id: Optional[str] = None
    timeline_id: Optional[str] = None
    task_instance_id: Optional[str] = None

    @property
    def has_timeline_record(self) -> bool:
        return bool(self.task_instance_id)


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------

class EvaluationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_provenance: Any = Field(default=None, alias="imageProvenance")
    policy_data: Optional[str] = Field(default=None, alias="policyData")
    check_suite_id: Optional[UUID] = Field(default=None, alias="checkSuiteId")
    auth_token: Optional[str] = Field(default=None, alias="authToken")
    variables: dict[str, str] = Field(default_factory=dict)

    # Task context (required only for asynchronous evaluation)
    plan_url: Optional[str] = Field(default=None, alias="planUrl")
    project_id: Optional[str] = Field(default=None, alias="projectId")
    hub_name: Optional[str] = Field(default=None, alias="hubName")
    plan_id: Optional[str] = Field(default=None, alias="planId")
    job_id: Optional[str] = Field(default=None, alias="jobId")
    timeline_id: Optional[str] = Field(default=None, alias="timelineId")
    task_instance_id: Optional[str] = Field(default=None, alias="taskInstanceId")

    @field_validator("variables", mode="before")
    @classmethod
    def _null_variables(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def is_async(self) -> bool:
        return bool(self.auth_token and self.auth_token.strip())


class EvaluationResponse(BaseModel):
    """Body of the synchronous 200 response."""
    model_config = ConfigDict(populate_by_name=True)

    violations: list[Any] = []
    logs: str = ""
    violation_type: ViolationType = Field(default=ViolationType.NONE, alias="violationType")


class CheckSuiteResult(BaseModel):
    """Verdict posted to the check-runs endpoint. Immutable once built."""
    model_config = ConfigDict(frozen=True)

    check_suite_id: UUID
    status: Literal["approved", "rejected"]
    result_message: str

    @classmethod
    def from_verdict(cls, check_suite_id: UUID, succeeded: bool, message: str) -> CheckSuiteResult:
        status = CheckStatus.APPROVED if succeeded else CheckStatus.REJECTED
        return cls(check_suite_id=check_suite_id, status=status.value, result_message=message)

    def to_payload(self) -> dict[str, dict[str, str]]:
        """Wire format: ``{"<checkSuiteId>": {"status": ..., "resultMessage": ...}}``."""
        return {
            str(self.check_suite_id): {
                "status": self.status,
                "resultMessage": self.result_message,
            }
        }


class TelemetryEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    project_id: str
    job_id: str
    check_suite_id: UUID
    result: Literal["succeeded", "failed"]
    layer: str
    reason: Optional[str] = None

    @classmethod
    def for_evaluation(
        cls,
        task_context: TaskContext,
        check_suite_id: UUID,
        succeeded: bool,
        violation_type: ViolationType,
        layer: str,
    ) -> TelemetryEvent:
        return cls(
            project_id=task_context.project_id,
            job_id=task_context.job_id,
            check_suite_id=check_suite_id,
            result="succeeded" if succeeded else "failed",
            layer=layer,
            reason=(
                None if succeeded
                else f"Found violations in evaluation. Violation type: {violation_type.value}"
            ),
        )

    def properties(self) -> dict[str, str]:
        props = {
            "projectId": self.project_id,
            "jobId": self.job_id,
            "checkSuiteId": str(self.check_suite_id),
            "result": self.result,
            "layer": self.layer,
        }
        if self.reason is not None:
            props["reason"] = self.reason
        return props


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

_REQUIRED_TASK_FIELDS = (
    ("check_suite_id", "checkSuiteId"),
    ("plan_url", "planUrl"),
    ("project_id", "projectId"),
    ("job_id", "jobId"),
)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (dict, list)):
        return len(value) == 0
    return False


def validate_request(request: EvaluationRequest) -> None:
    """Reject requests with no provenance or no policy text."""
    if _is_empty(request.image_provenance):
        raise InvalidEvaluationRequest("Image provenance is empty")
    if _is_empty(request.policy_data):
        raise InvalidEvaluationRequest("Policy data is empty")


def task_context_from_request(request: EvaluationRequest) -> TaskContext:
    """Build the TaskContext for an asynchronous request.

    Raises InvalidEvaluationRequest listing every missing field.
    """
    missing = [
        alias for attr, alias in _REQUIRED_TASK_FIELDS
        if _is_empty(getattr(request, attr))
    ]
    if missing:
        raise InvalidEvaluationRequest(
            "Task context is incomplete. Missing: " + ", ".join(missing)
        )
    return TaskContext(
        plan_url=request.plan_url.rstrip("/"),
        auth_token=request.auth_token,
        project_id=request.project_id,
        job_id=request.job_id,
        hub_name=request.hub_name,
        plan_id=request.plan_id,
        timeline_id=request.timeline_id,
        task_instance_id=request.task_instance_id,
    )
