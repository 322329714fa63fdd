"""Request and response contracts for the reasoning step."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field

from investigator.hypothesis.models import Hypothesis
from investigator.schema import PrimarySignal, Priority, SourceType, WireModel

REQUEST_KIND = "REASONING_REQUEST_V1"
RESPONSE_KIND = "REASONING_V1"


class ArtifactDigest(WireModel):
    """Curated view of an artifact; payloads never reach the model."""

    artifact_id: str = Field(min_length=1, max_length=128)
    kind: str = Field(min_length=1, max_length=64)
    title: str = Field(min_length=1, max_length=200)
    summary: str = Field(min_length=1, max_length=4000)


class Timeline(WireModel):
    start: datetime
    end: datetime


class ReasoningContext(WireModel):
    incident_summary: str = Field(min_length=1, max_length=2000)
    source_type: SourceType
    timeline: Timeline
    evidence_artifacts: list[ArtifactDigest] = Field(default=[], max_length=50)
    completeness_score: int | None = None
    missing_evidence: list[str] = []


class ReasoningRequest(WireModel):
    kind: str = REQUEST_KIND
    incident_id: str = Field(min_length=1)
    evidence_bundle_id: str | None = None
    prompt_version: str = Field(min_length=1, max_length=64)
    catalog_version: str = Field(min_length=1, max_length=64)
    candidates: list[str] = Field(min_length=1, max_length=10)
    context: ReasoningContext


class Explainability(WireModel):
    primary_signal: PrimarySignal
    latency_factor: float = Field(ge=0.0, le=1.0)
    error_factor: float = Field(ge=0.0, le=1.0)
    rationale: str = Field(min_length=1, max_length=1500)
    evidence_refs: list[str] = Field(default=[], max_length=50)


class RecommendedAction(WireModel):
    id: str = Field(min_length=1, max_length=64)
    title: str = Field(min_length=1, max_length=160)
    steps: list[str] = Field(min_length=1, max_length=12)
    priority: Priority
    evidence_refs: list[str] = Field(default=[], max_length=50)


class ReasoningResponse(WireModel):
    kind: str = RESPONSE_KIND
    model: str = Field(default="unknown", min_length=1, max_length=120)
    prompt_version: str = Field(default="v1", min_length=1, max_length=64)
    hypotheses: list[Hypothesis] = Field(min_length=1, max_length=10)
    explainability: Explainability
    recommended_actions: list[RecommendedAction] = Field(default=[], max_length=10)
    # Validated one by one by the policy gate, not here
    missing_evidence_requests: list[Any] = Field(default=[], max_length=10)
    overall_confidence: float = Field(ge=0.0, le=1.0)


class ReasoningResult(WireModel):
    """A validated response together with the exact prompt that produced it."""

    response: ReasoningResponse
    request: ReasoningRequest
    system_prompt: str
    user_prompt: str
