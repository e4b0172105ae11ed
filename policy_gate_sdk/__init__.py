"""Thin client for the artifact policy gate."""

from policy_gate_sdk.client import PolicyGateClient
from policy_gate_sdk.models import EvaluationResult

__all__ = ["EvaluationResult", "PolicyGateClient"]
