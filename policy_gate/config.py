"""
Gate Configuration

Environment-driven settings for the artifact policy gate. Every value has a
default so the service starts with no environment at all; tests build a
GateConfig directly instead of touching os.environ.
"""

from __future__ import annotations

import importlib
import os
from dataclasses import dataclass
from typing import Any, Optional


# ---------------------------------------------------------------------------
# Defaults (from env vars)
# ---------------------------------------------------------------------------

HTTP_ATTEMPTS = int(os.environ.get("POLICY_GATE_HTTP_ATTEMPTS", "5"))
RETRY_BASE_DELAY_SECONDS = float(
    os.environ.get("POLICY_GATE_RETRY_BASE_DELAY_SECONDS", "0.5")
)
RETRY_MAX_DELAY_SECONDS = float(
    os.environ.get("POLICY_GATE_RETRY_MAX_DELAY_SECONDS", "8")
)
HTTP_TIMEOUT_SECONDS = float(os.environ.get("POLICY_GATE_HTTP_TIMEOUT_SECONDS", "30"))
TELEMETRY_TIMEOUT_SECONDS = float(
    os.environ.get("POLICY_GATE_TELEMETRY_TIMEOUT_SECONDS", "5")
)
EVALUATION_TIMEOUT_SECONDS = float(
    os.environ.get("POLICY_GATE_EVALUATION_TIMEOUT_SECONDS", "600")
)
MAX_WORKERS = int(os.environ.get("POLICY_GATE_MAX_WORKERS", "8"))
MAX_PENDING = int(os.environ.get("POLICY_GATE_MAX_PENDING", "64"))
MAX_RESULT_MESSAGE_CHARS = int(
    os.environ.get("POLICY_GATE_MAX_RESULT_MESSAGE_CHARS", str(64 * 1024))
)
TELEMETRY_LAYER = os.environ.get("POLICY_GATE_TELEMETRY_LAYER", "Artifact policy gate")
ENGINE_PATH = os.environ.get("POLICY_GATE_ENGINE") or None
TIMELINE_FACTORY_PATH = os.environ.get("POLICY_GATE_TIMELINE_FACTORY") or None
LOG_LEVEL = os.environ.get("POLICY_GATE_LOG_LEVEL", "INFO")

CHECK_RUNS_API_VERSION = "5.0"


@dataclass(frozen=True)
class GateConfig:
    """Read-only settings shared by every evaluation."""
    http_attempts: int = HTTP_ATTEMPTS
    retry_base_delay_seconds: float = RETRY_BASE_DELAY_SECONDS
    retry_max_delay_seconds: float = RETRY_MAX_DELAY_SECONDS
    http_timeout_seconds: float = HTTP_TIMEOUT_SECONDS
    telemetry_timeout_seconds: float = TELEMETRY_TIMEOUT_SECONDS
    evaluation_timeout_seconds: float = EVALUATION_TIMEOUT_SECONDS
    max_workers: int = MAX_WORKERS
    max_pending: int = MAX_PENDING
    max_result_message_chars: int = MAX_RESULT_MESSAGE_CHARS
    telemetry_layer: str = TELEMETRY_LAYER
    engine_path: Optional[str] = ENGINE_PATH
    timeline_factory_path: Optional[str] = TIMELINE_FACTORY_PATH
    log_level: str = LOG_LEVEL

    @classmethod
    def from_env(cls) -> GateConfig:
        """Re-read the environment (module constants are frozen at import)."""
        env = os.environ
        return cls(
            http_attempts=int(env.get("POLICY_GATE_HTTP_ATTEMPTS", HTTP_ATTEMPTS)),
            retry_base_delay_seconds=float(
                env.get("POLICY_GATE_RETRY_BASE_DELAY_SECONDS", RETRY_BASE_DELAY_SECONDS)
            ),
            retry_max_delay_seconds=float(
                env.get("POLICY_GATE_RETRY_MAX_DELAY_SECONDS", RETRY_MAX_DELAY_SECONDS)
            ),
            http_timeout_seconds=float(
                env.get("POLICY_GATE_HTTP_TIMEOUT_SECONDS", HTTP_TIMEOUT_SECONDS)
            ),
            telemetry_timeout_seconds=float(
                env.get("POLICY_GATE_TELEMETRY_TIMEOUT_SECONDS", TELEMETRY_TIMEOUT_SECONDS)
            ),
            evaluation_timeout_seconds=float(
                env.get("POLICY_GATE_EVALUATION_TIMEOUT_SECONDS", EVALUATION_TIMEOUT_SECONDS)
            ),
            max_workers=int(env.get("POLICY_GATE_MAX_WORKERS", MAX_WORKERS)),
            max_pending=int(env.get("POLICY_GATE_MAX_PENDING", MAX_PENDING)),
            max_result_message_chars=int(
                env.get("POLICY_GATE_MAX_RESULT_MESSAGE_CHARS", MAX_RESULT_MESSAGE_CHARS)
            ),
            telemetry_layer=env.get("POLICY_GATE_TELEMETRY_LAYER", TELEMETRY_LAYER),
            engine_path=env.get("POLICY_GATE_ENGINE") or None,
            timeline_factory_path=env.get("POLICY_GATE_TIMELINE_FACTORY") or None,
            log_level=env.get("POLICY_GATE_LOG_LEVEL", LOG_LEVEL),
        )


def load_object(path: str) -> Any:
    """Resolve a ``package.module:attribute`` reference.

    Raises ValueError for a malformed path; ImportError/AttributeError
    propagate so a misconfigured deployment fails at startup.
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Expected 'module:attribute', got {path!r}")
    obj: Any = importlib.import_module(module_name)
    for part in attr.split("."):
        obj = getattr(obj, part)
    return obj
