"""
Result Reporter Test Suite
Wire format, authentication and best-effort delivery of check-suite results.
"""

from __future__ import annotations

import base64
import json

import httpx
import pytest
from pydantic import ValidationError

from policy_gate.models import CheckSuiteResult
from policy_gate.reporter import TRUNCATION_MARKER, ResultReporter, cap_message, check_run_url
from policy_gate.retry import RetryingCaller
from policy_gate.task_logger import EvaluationLogger
from tests.helpers import (
    AUTH_TOKEN,
    CHECK_SUITE_ID,
    PLAN_URL,
    PROJECT_ID,
    RecordingTransport,
    refuse_connections,
    task_context,
)


def make_reporter(transport: httpx.BaseTransport, max_chars: int = 1024) -> ResultReporter:
    caller = RetryingCaller(max_attempts=5, base_delay=0.0, max_delay=0.0, sleep=lambda s: None)
    return ResultReporter(caller, timeout_seconds=1.0, max_message_chars=max_chars, transport=transport)


def test_check_run_url():
    assert check_run_url(task_context(), CHECK_SUITE_ID) == (
        f"{PLAN_URL}/{PROJECT_ID}/_apis/pipelines/checks/runs/{CHECK_SUITE_ID}?api-version=5.0"
    )


def test_report_posts_verdict_with_basic_auth():
    transport = RecordingTransport()
    reporter = make_reporter(transport)
    task_logger = EvaluationLogger(capture=True)

    ok = reporter.report(task_context(), CHECK_SUITE_ID, True, "all clear", task_logger)

    assert ok is True
    assert len(transport.requests) == 1
    request = transport.requests[0]
    assert request.method == "POST"
    assert str(request.url) == check_run_url(task_context(), CHECK_SUITE_ID)
    expected = base64.b64encode(f":{AUTH_TOKEN}".encode()).decode()
    assert request.headers["authorization"] == f"Basic {expected}"
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {
        str(CHECK_SUITE_ID): {"status": "approved", "resultMessage": "all clear"}
    }
    assert "to post current check status" in task_logger.getvalue()


def test_failed_verdict_is_rejected():
    transport = RecordingTransport()
    reporter = make_reporter(transport)

    reporter.report(task_context(), CHECK_SUITE_ID, False, "1 violation", EvaluationLogger())

    body = json.loads(transport.requests[0].content)
    assert body[str(CHECK_SUITE_ID)]["status"] == "rejected"


def test_permanent_network_failure_is_swallowed():
    transport = RecordingTransport(refuse_connections)
    reporter = make_reporter(transport)
    task_logger = EvaluationLogger(capture=True)

    ok = reporter.report(task_context(), CHECK_SUITE_ID, True, "msg", task_logger)

    assert ok is False
    assert len(transport.requests) == 5
    assert "Failed to update check status with error message" in task_logger.getvalue()


def test_client_error_response_is_not_retried():
    transport = RecordingTransport(lambda request: httpx.Response(401, text="unauthorized"))
    reporter = make_reporter(transport)
    task_logger = EvaluationLogger(capture=True)

    ok = reporter.report(task_context(), CHECK_SUITE_ID, True, "msg", task_logger)

    assert ok is False
    assert len(transport.requests) == 1
    assert "HTTP 401" in task_logger.getvalue()


def test_server_error_then_success():
    statuses = iter([502, 500, 200])
    transport = RecordingTransport(lambda request: httpx.Response(next(statuses)))
    reporter = make_reporter(transport)

    assert reporter.report(task_context(), CHECK_SUITE_ID, True, "msg", EvaluationLogger())
    assert len(transport.requests) == 3


def test_large_message_is_capped():
    transport = RecordingTransport()
    reporter = make_reporter(transport, max_chars=100)

    reporter.report(task_context(), CHECK_SUITE_ID, False, "x" * 5000, EvaluationLogger())

    message = json.loads(transport.requests[0].content)[str(CHECK_SUITE_ID)]["resultMessage"]
    assert len(message) == 100
    assert message.endswith(TRUNCATION_MARKER)


def test_cap_message_leaves_short_text_alone():
    assert cap_message("short", 100) == "short"
    assert cap_message("anything", 0) == "anything"


def test_check_suite_result_is_immutable():
    result = CheckSuiteResult.from_verdict(CHECK_SUITE_ID, True, "ok")
    with pytest.raises(ValidationError):
        result.status = "rejected"
