"""
Test doubles shared by the policy gate test suites.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Mapping, Optional
from uuid import UUID

import httpx

from policy_gate.config import GateConfig
from policy_gate.engine import EngineOutcome
from policy_gate.models import EvaluationRequest, TaskContext, ViolationType

CHECK_SUITE_ID = UUID("6f1c3b52-9a0e-4a59-8f0b-2b2f7c1d4e10")
PLAN_URL = "https://dev.example.com/contoso"
PROJECT_ID = "0d1e2f3a-0000-4000-8000-000000000001"
JOB_ID = "job-42"
AUTH_TOKEN = "s3cret-token"

FAST_CONFIG = GateConfig(
    http_attempts=5,
    retry_base_delay_seconds=0.0,
    retry_max_delay_seconds=0.0,
    http_timeout_seconds=2.0,
    telemetry_timeout_seconds=1.0,
    evaluation_timeout_seconds=10.0,
    max_workers=2,
    max_pending=2,
    max_result_message_chars=1024,
    telemetry_layer="test-layer",
    engine_path=None,
    timeline_factory_path=None,
    log_level="DEBUG",
)


def eventually(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def task_context(**overrides: Any) -> TaskContext:
    values = {
        "plan_url": PLAN_URL,
        "auth_token": AUTH_TOKEN,
        "project_id": PROJECT_ID,
        "job_id": JOB_ID,
    }
    values.update(overrides)
    return TaskContext(**values)


def request_body(policy: str = "allow_all", async_mode: bool = False, **extra: Any) -> dict:
    body: dict[str, Any] = {
        "imageProvenance": {"digest": "sha256:abc"},
        "policyData": policy,
        "checkSuiteId": str(CHECK_SUITE_ID),
        "variables": {"Build.BuildId": "17"},
    }
    if async_mode:
        body.update({
            "authToken": AUTH_TOKEN,
            "planUrl": PLAN_URL,
            "projectId": PROJECT_ID,
            "jobId": JOB_ID,
            "planId": "plan-1",
            "hubName": "checks",
        })
    body.update(extra)
    return body


def make_request(policy: str = "allow_all", async_mode: bool = False, **extra: Any) -> EvaluationRequest:
    return EvaluationRequest.model_validate(request_body(policy, async_mode, **extra))


# ---------------------------------------------------------------------------
# Engines
# ---------------------------------------------------------------------------

class KeywordEngine:
    """``deny_all`` yields one violation; any other policy passes."""

    def __init__(self):
        self.calls: list[tuple[Any, str, dict]] = []

    def execute(self, provenance: Any, policy: str, variables: Mapping[str, str]) -> EngineOutcome:
        self.calls.append((provenance, policy, dict(variables)))
        if policy.strip() == "deny_all":
            return EngineOutcome(
                violations=[{"rule": "deny_all", "message": "All artifacts are denied"}],
                violation_type=ViolationType.ERROR,
                log="Rule deny_all matched",
            )
        return EngineOutcome(log="No rules matched")


class BlockingEngine(KeywordEngine):
    """Waits on ``release`` before answering, so tests can observe timing."""

    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()
        self.finished = threading.Event()

    def execute(self, provenance: Any, policy: str, variables: Mapping[str, str]) -> EngineOutcome:
        self.started.set()
        self.release.wait(10)
        try:
            return super().execute(provenance, policy, variables)
        finally:
            self.finished.set()


class FailingEngine:
    def __init__(self, exc: Optional[Exception] = None):
        self.exc = exc or RuntimeError("engine exploded")

    def execute(self, provenance: Any, policy: str, variables: Mapping[str, str]) -> EngineOutcome:
        raise self.exc


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------

class SpyTimeline:

    def __init__(self, fail_create: bool = False, fail_append: bool = False):
        self.fail_create = fail_create
        self.fail_append = fail_append
        self.created: list[TaskContext] = []
        self.lines: list[str] = []
        self.closes = 0

    def create_record_if_absent(self, task_context: TaskContext) -> None:
        if self.fail_create:
            raise ConnectionError("timeline service unavailable")
        self.created.append(task_context)

    def append(self, text: str) -> None:
        if self.fail_append:
            raise ConnectionError("timeline write failed")
        self.lines.append(text)

    def close(self) -> None:
        self.closes += 1

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


class SpyTelemetrySink:

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.events: list[dict] = []

    def publish_event(self, properties: Mapping[str, str]) -> None:
        self.events.append(dict(properties))
        if self.fail:
            raise RuntimeError("telemetry backend down")


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Optional[Callable[[httpx.Request], httpx.Response]] = None):
        self.requests: list[httpx.Request] = []
        self._handler_fn = handler or (lambda request: httpx.Response(200, json={}))
        super().__init__(self._record)

    def _record(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        return self._handler_fn(request)

    def check_run_posts(self) -> list[httpx.Request]:
        return [r for r in self.requests if "/_apis/pipelines/checks/runs/" in r.url.path]

    def telemetry_posts(self) -> list[httpx.Request]:
        return [r for r in self.requests if "/_apis/customerintelligence/" in r.url.path]


def refuse_connections(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)
