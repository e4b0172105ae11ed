"""
Check-suite result reporter.

Posts the verdict of an asynchronous evaluation to the pipeline's
check-runs endpoint:

    POST {planUrl}/{projectId}/_apis/pipelines/checks/runs/{checkSuiteId}?api-version=5.0
    Authorization: Basic base64(":" + authToken)

Delivery is best-effort. Once retries are exhausted the failure is written
to the evaluation log and swallowed; the background unit carries on.
"""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

import httpx

from policy_gate.cancellation import CancellationToken
from policy_gate.config import CHECK_RUNS_API_VERSION
from policy_gate.models import CheckSuiteResult, TaskContext
from policy_gate.retry import RetryExhausted, RetryingCaller
from policy_gate.task_logger import EvaluationLogger

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n... [result message truncated]"


def check_run_url(task_context: TaskContext, check_suite_id: UUID) -> str:
    return (
        f"{task_context.plan_url}/{task_context.project_id}"
        f"/_apis/pipelines/checks/runs/{check_suite_id}"
        f"?api-version={CHECK_RUNS_API_VERSION}"
    )


def cap_message(message: str, max_chars: int) -> str:
    if max_chars <= 0 or len(message) <= max_chars:
        return message
    keep = max(0, max_chars - len(TRUNCATION_MARKER))
    return message[:keep] + TRUNCATION_MARKER


class ResultReporter:

    def __init__(
        self,
        caller: RetryingCaller,
        timeout_seconds: float = 30.0,
        max_message_chars: int = 64 * 1024,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._caller = caller
        self._timeout = timeout_seconds
        self._max_message_chars = max_message_chars
        self._transport = transport

    def build_result(self, check_suite_id: UUID, succeeded: bool, message: str) -> CheckSuiteResult:
        return CheckSuiteResult.from_verdict(
            check_suite_id,
            succeeded,
            cap_message(message or "", self._max_message_chars),
        )

    def report(
        self,
        task_context: TaskContext,
        check_suite_id: UUID,
        succeeded: bool,
        message: str,
        task_logger: EvaluationLogger,
        cancel: Optional[CancellationToken] = None,
    ) -> bool:
        """Deliver the verdict. Returns True when the endpoint accepted it.

        Delivery errors are logged and swallowed; EvaluationCancelled
        propagates.
        """
        url = check_run_url(task_context, check_suite_id)
        result = self.build_result(check_suite_id, succeeded, message)
        payload = result.to_payload()
        auth = httpx.BasicAuth(username="", password=task_context.auth_token)

        task_logger.log(f"Invoking {url} to post current check status")
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = self._caller.invoke(
                    lambda: client.post(url, json=payload, auth=auth),
                    cancel=cancel,
                )
        except (RetryExhausted, httpx.HTTPError) as exc:
            task_logger.log(f"Failed to update check status with error message : {exc}")
            logger.debug("Check status update failed for %s", check_suite_id, exc_info=True)
            return False

        if response.is_error:
            task_logger.log(
                f"Failed to update check status: HTTP {response.status_code} {response.text[:500]}"
            )
            return False

        logger.info(
            "Posted check status '%s' for check suite %s", result.status, check_suite_id
        )
        return True
