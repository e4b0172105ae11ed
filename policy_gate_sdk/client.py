"""
Policy Gate SDK — Client
Thin synchronous wrapper over the artifact policy gate.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional
from uuid import UUID

import httpx

from policy_gate_sdk.models import EvaluationResult


class PolicyGateClient:
    """
    Client for the artifact policy gate.

    Requests a synchronous verdict, or (with an auth token and task
    context) schedules an asynchronous evaluation whose verdict is posted
    to the pipeline's check-runs endpoint.
    """

    def __init__(
        self,
        gateway_url: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Args:
            gateway_url: Base URL of the gate (e.g. "http://localhost:8000")
            timeout: HTTP request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.gateway_url = gateway_url.rstrip("/")
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def evaluate(
        self,
        image_provenance: Any,
        policy_data: str,
        variables: Optional[Mapping[str, str]] = None,
        check_suite_id: UUID | str | None = None,
        auth_token: str | None = None,
        task_context: Optional[Mapping[str, str]] = None,
    ) -> EvaluationResult:
        """
        Submit provenance and policy text for evaluation.

        Args:
            image_provenance: Provenance document of the artifact
            policy_data: Policy text handed to the engine
            variables: Pipeline variables for log templating
            check_suite_id: Check suite to report to (asynchronous mode)
            auth_token: Pipeline token; its presence selects asynchronous mode
            task_context: planUrl, projectId, jobId, ... (asynchronous mode)

        Returns:
            EvaluationResult with the verdict (200), an acceptance (204),
            or the gate's error text.
        """
        payload: dict[str, Any] = {
            "imageProvenance": image_provenance,
            "policyData": policy_data,
            "variables": dict(variables or {}),
        }
        if check_suite_id is not None:
            payload["checkSuiteId"] = str(check_suite_id)
        if auth_token:
            payload["authToken"] = auth_token
        payload.update(task_context or {})

        resp = self._client.post(f"{self.gateway_url}/evaluate", json=payload)

        if resp.status_code == 204:
            return EvaluationResult(status_code=204, accepted=True)

        if resp.headers.get("content-type", "").startswith("application/json"):
            body = resp.json()
        else:
            body = {"error": resp.text}

        if resp.status_code != 200:
            return EvaluationResult(
                status_code=resp.status_code,
                error=body.get("error", resp.text),
                raw=body,
            )

        return EvaluationResult(
            status_code=200,
            violations=body.get("violations", []),
            violation_type=body.get("violationType"),
            logs=body.get("logs", ""),
            raw=body,
        )

    def health(self) -> dict:
        """Check gate health via GET /health."""
        resp = self._client.get(f"{self.gateway_url}/health")
        return resp.json()

    def close(self) -> None:
        self._client.close()
