"""
Telemetry publisher.

Fire-and-forget: one attempt, no retries, every error swallowed. Telemetry
must never turn a finished evaluation into a failure.
"""

from __future__ import annotations

import logging
from typing import Callable, Mapping, Optional, Protocol

import httpx

from policy_gate.models import TaskContext, TelemetryEvent

logger = logging.getLogger(__name__)

CI_AREA = "ArtifactPolicy"
CI_FEATURE = "PolicyEvaluation"
CI_API_VERSION = "5.0-preview.1"


class TelemetrySink(Protocol):
    def publish_event(self, properties: Mapping[str, str]) -> None:
        ...


TelemetrySinkFactory = Callable[[TaskContext], TelemetrySink]


class CustomerIntelligenceSink:
    """Posts events to the account's customer-intelligence endpoint."""

    def __init__(
        self,
        plan_url: str,
        auth_token: str,
        timeout_seconds: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = (
            f"{plan_url.rstrip('/')}/_apis/customerintelligence/Events"
            f"?api-version={CI_API_VERSION}"
        )
        self._auth = httpx.BasicAuth(username="", password=auth_token)
        self._timeout = timeout_seconds
        self._transport = transport

    def publish_event(self, properties: Mapping[str, str]) -> None:
        body = [{"area": CI_AREA, "feature": CI_FEATURE, "properties": dict(properties)}]
        with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
            client.post(self.url, json=body, auth=self._auth).raise_for_status()


class TelemetryPublisher:

    def __init__(self, sink: TelemetrySink):
        self._sink = sink

    def publish(self, event: TelemetryEvent) -> None:
        try:
            self._sink.publish_event(event.properties())
        except Exception:
            logger.debug(
                "Telemetry publish failed for check suite %s", event.check_suite_id,
                exc_info=True,
            )
