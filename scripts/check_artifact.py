#!/usr/bin/env python3
"""
Artifact Check — command-line policy check

Sends an artifact's provenance and a policy file to the policy gate and
prints the verdict.

Input: a JSON blob on stdin, {"imageProvenance": {...}, "policyData": "..."},
or two arguments: <provenance.json> <policy-file>.

Exit codes:
    0 — no violations
    1 — violations found
    3 — error (bad input, gate unreachable, gate error)
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

from policy_gate_sdk import PolicyGateClient


def _read_input(argv: list[str], stdin) -> tuple[object, str]:
    if len(argv) >= 3:
        provenance = json.loads(Path(argv[1]).read_text(encoding="utf-8"))
        policy = Path(argv[2]).read_text(encoding="utf-8")
        return provenance, policy

    raw_input = stdin.read().strip()
    if not raw_input:
        raise ValueError("No input provided via stdin or args.")
    payload = json.loads(raw_input)
    return payload["imageProvenance"], payload["policyData"]


def main(argv: list[str] | None = None, stdin=None, client: PolicyGateClient | None = None) -> int:
    argv = sys.argv if argv is None else argv
    stdin = sys.stdin if stdin is None else stdin

    try:
        provenance, policy = _read_input(argv, stdin)
    except (OSError, ValueError, KeyError) as exc:
        print(f"[policy-gate] ERROR: Invalid input — {exc}", file=sys.stderr)
        return 3

    if client is None:
        client = PolicyGateClient(
            gateway_url=os.environ.get("POLICY_GATE_URL", "http://localhost:8000"),
        )

    try:
        result = client.evaluate(provenance, policy)
    except Exception as exc:
        print(f"[policy-gate] ERROR: Gate unreachable — {exc}", file=sys.stderr)
        return 3

    if result.status_code != 200:
        print(f"[policy-gate] ERROR: HTTP {result.status_code} — {result.error}", file=sys.stderr)
        return 3

    if result.logs:
        print(result.logs.rstrip())

    if result.succeeded:
        print("[policy-gate] PASSED")
        return 0

    print(f"[policy-gate] FAILED ({len(result.violations)} violations, type={result.violation_type})")
    for v in result.violations:
        print(f"  - {json.dumps(v) if not isinstance(v, str) else v}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
