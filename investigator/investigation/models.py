"""Session, iteration and analysis records produced by the investigation loop."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field

from investigator.evidence.models import EvidenceCompleteness
from investigator.reasoning.models import ReasoningResponse
from investigator.schema import PrimarySignal, WireModel


class SessionStatus(str, Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    STOPPED = "STOPPED"
    FAILED = "FAILED"

    @property
    def terminal(self) -> bool:
        return self != SessionStatus.RUNNING


class InvestigationSession(WireModel):
    session_id: str
    incident_id: str
    status: SessionStatus = SessionStatus.RUNNING
    current_iteration: int = 0
    max_iterations: int = Field(ge=1, le=10)
    confidence_target: float = Field(ge=0.0, le=1.0)
    reason: str | None = None
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime


class InvestigationIteration(WireModel):
    session_id: str
    iteration: int = Field(ge=1)
    evidence_bundle_id: str | None = None
    analysis_id: str | None = None
    completeness_score: int | None = None
    overall_confidence: float | None = None
    decision: dict[str, Any] = {}
    notes: str | None = None
    created_at: datetime


class RootCause(WireModel):
    rank: int
    hypothesis_id: str
    title: str
    confidence: float
    evidence_refs: list[str] = []


class AnalysisExplainability(WireModel):
    primary_signal: PrimarySignal = PrimarySignal.UNKNOWN
    latency_factor: float = 1.0
    error_factor: float = 1.0
    rationale: str = "Analysis pending reasoning"


class AnalysisResult(WireModel):
    summary: str
    likely_root_causes: list[RootCause] = []
    explainability: AnalysisExplainability = AnalysisExplainability()


class IncidentAnalysis(WireModel):
    analysis_id: str
    incident_id: str
    session_id: str
    iteration: int
    evidence_bundle_id: str | None = None
    completeness: EvidenceCompleteness
    reasoning: ReasoningResponse | None = None
    result: AnalysisResult
    created_at: datetime


class PromptTrace(WireModel):
    trace_id: str
    incident_id: str
    analysis_id: str
    evidence_bundle_id: str | None = None
    model: str
    prompt_version: str
    catalog_version: str
    prompt_hash: str
    request_hash: str
    response_hash: str
    created_at: datetime


# ── Read model ─────────────────────────────────────────────────────


class IterationView(WireModel):
    iteration: int
    created_at: datetime
    evidence_bundle_id: str | None = None
    analysis_id: str | None = None
    completeness_score: int | None = None
    overall_confidence: float | None = None


class SessionStatusView(WireModel):
    session_id: str
    incident_id: str
    status: SessionStatus
    current_iteration: int
    max_iterations: int
    confidence_target: float
    reason: str | None = None
    iterations: list[IterationView] = []

    @classmethod
    def build(cls, session: InvestigationSession, iterations: list[InvestigationIteration]) -> "SessionStatusView":
        ordered = sorted(iterations, key=lambda it: it.iteration)
        return cls(
            session_id=session.session_id,
            incident_id=session.incident_id,
            status=session.status,
            current_iteration=session.current_iteration,
            max_iterations=session.max_iterations,
            confidence_target=session.confidence_target,
            reason=session.reason,
            iterations=[
                IterationView(
                    iteration=it.iteration,
                    created_at=it.created_at,
                    evidence_bundle_id=it.evidence_bundle_id,
                    analysis_id=it.analysis_id,
                    completeness_score=it.completeness_score,
                    overall_confidence=it.overall_confidence,
                )
                for it in ordered
            ],
        )
