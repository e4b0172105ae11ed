"""
Policy Gate SDK — Data Models
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class EvaluationResult(BaseModel):
    """Result of a POST /evaluate call."""
    status_code: int
    accepted: bool = False          # 204: evaluation continues in the background
    violations: list[Any] = []
    violation_type: str | None = None
    logs: str = ""
    error: str | None = None
    raw: dict = {}                  # full JSON body, when there is one

    @property
    def succeeded(self) -> bool:
        """True for a synchronous verdict with no violations."""
        return self.status_code == 200 and not self.violations
