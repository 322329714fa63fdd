"""Investigation state — the typed state object that flows through the LangGraph."""

from __future__ import annotations

from typing import TypedDict

from investigator.evidence.models import EvidenceArtifact, EvidenceBundle, EvidenceCompleteness, IncidentContext
from investigator.investigation.models import SessionStatus
from investigator.investigation.plan import CollectorPlan
from investigator.policy.models import PolicyResult
from investigator.reasoning.models import ReasoningResult
from investigator.schema import PrimarySignal


class InvestigationState(TypedDict, total=False):
    # Input
    session_id: str
    incident: IncidentContext
    max_iterations: int
    confidence_target: float
    created_by: str | None

    # Per iteration
    iteration: int
    started_at: float
    primary_signal: PrimarySignal
    bundle: EvidenceBundle | None
    completeness: EvidenceCompleteness
    previous_score: int | None

    # Reasoning
    reasoning: ReasoningResult | None
    reasoning_error: str | None

    # Gate and collection
    policy: PolicyResult | None
    plan: CollectorPlan | None
    new_artifacts: list[EvidenceArtifact]
    new_sources: list[str]

    # Output
    overall_confidence: float | None
    status: SessionStatus
    reason: str | None
