"""Data models for evidence requests and the policy gate's verdicts."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from investigator.schema import Priority, WireModel


class RejectionCode(str, Enum):
    INVALID_SCHEMA = "INVALID_SCHEMA"
    NEED_NOT_ALLOWED = "NEED_NOT_ALLOWED"
    WINDOW_OUT_OF_BOUNDS = "WINDOW_OUT_OF_BOUNDS"
    INVALID_WINDOW = "INVALID_WINDOW"
    WINDOW_TOO_LARGE = "WINDOW_TOO_LARGE"
    MAX_ITEMS_TOO_HIGH = "MAX_ITEMS_TOO_HIGH"
    DUPLICATE_NEED = "DUPLICATE_NEED"
    PER_ITERATION_LIMIT_EXCEEDED = "PER_ITERATION_LIMIT_EXCEEDED"


class EvidenceRequestScope(WireModel):
    window_start: datetime | None = None
    window_end: datetime | None = None
    service: str | None = None
    region: str | None = None
    max_items: int | None = None


class EvidenceRequest(WireModel):
    """A request for more evidence, proposed by the reasoning step or a planner.

    ``need`` is a free string here so that the allowlist check, not schema
    parsing, decides whether an unfamiliar need is acceptable.
    """

    need: str = Field(min_length=1, max_length=64)
    priority: Priority
    reason: str = Field(min_length=1, max_length=400)
    scope: EvidenceRequestScope | None = None


class RejectedRequest(BaseModel):
    request: Any
    reason: str = Field(min_length=1)
    code: RejectionCode


class PolicyLimits(BaseModel):
    max_window_hours: float
    max_items: int
    max_needs_per_iteration: int


class PolicyResult(BaseModel):
    approved: list[EvidenceRequest] = []
    rejected: list[RejectedRequest] = []

    @property
    def proposed_count(self) -> int:
        return len(self.approved) + len(self.rejected)
