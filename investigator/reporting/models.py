"""Data models for postmortems, analysis comparisons and explainability graphs."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import Field

from investigator.schema import PrimarySignal, Priority, SourceType, WireModel

POSTMORTEM_KIND = "POSTMORTEM_V2"
COMPARE_KIND = "ANALYSIS_COMPARE_V1"
GRAPH_KIND = "EXPLAINABILITY_GRAPH_V1"


# ── Postmortem ─────────────────────────────────────────────────────


class PostmortemSource(WireModel):
    source_type: SourceType
    source_url: str | None = None


class PostmortemSummary(WireModel):
    headline: str = Field(min_length=1, max_length=200)
    impact: str = Field(min_length=1, max_length=2000)
    root_cause: str = Field(min_length=1, max_length=2000)
    confidence: float = Field(ge=0.0, le=1.0)


class PostmortemTimeline(WireModel):
    start: datetime
    end: datetime
    notes: list[str] = Field(default=[], max_length=30)


class ArtifactSummary(WireModel):
    artifact_id: str
    kind: str
    title: str
    summary: str


class PostmortemEvidence(WireModel):
    bundle_id: str | None = None
    completeness_score: int = Field(ge=0, le=100)
    missing: list[str] = Field(default=[], max_length=30)
    artifact_summaries: list[ArtifactSummary] = Field(default=[], max_length=80)


class TopHypothesis(WireModel):
    id: str
    title: str
    confidence: float
    rationale: str
    evidence_refs: list[str] = []


class PostmortemReasoning(WireModel):
    primary_signal: PrimarySignal
    rationale: str
    top_hypotheses: list[TopHypothesis] = Field(default=[], max_length=10)


class PostmortemAction(WireModel):
    priority: Priority
    title: str
    steps: list[str]
    evidence_refs: list[str] = []


class ReferenceKind(str, Enum):
    EVIDENCE_BUNDLE = "EVIDENCE_BUNDLE"
    ANALYSIS = "ANALYSIS"
    PROMPT_TRACE = "PROMPT_TRACE"


class PostmortemReference(WireModel):
    kind: ReferenceKind
    ref: str
    hash: str | None = None


class Postmortem(WireModel):
    """Deterministic projection of one stored analysis; no model call involved."""

    kind: str = POSTMORTEM_KIND
    incident_id: str
    analysis_id: str
    generated_at: datetime
    generator_version: str
    source: PostmortemSource
    summary: PostmortemSummary
    timeline: PostmortemTimeline
    evidence: PostmortemEvidence
    reasoning: PostmortemReasoning
    actions: list[PostmortemAction] = Field(default=[], max_length=20)
    references: list[PostmortemReference] = Field(default=[], max_length=20)


# ── Analysis compare ───────────────────────────────────────────────


class DiffType(str, Enum):
    ADDED = "ADDED"
    REMOVED = "REMOVED"
    CHANGED = "CHANGED"
    UNCHANGED = "UNCHANGED"


class DiffItem(WireModel):
    type: DiffType
    key: str = Field(min_length=1, max_length=200)
    before: Any = None
    after: Any = None
    note: str | None = None


class ComparedAnalysis(WireModel):
    analysis_id: str
    created_at: datetime
    evidence_bundle_id: str | None = None
    confidence: float


class EvidenceDiff(WireModel):
    bundle_changed: bool
    artifact_diffs: list[DiffItem] = []


class ReasoningDiff(WireModel):
    primary_signal_diff: DiffItem
    hypothesis_diffs: list[DiffItem] = []
    actions_diffs: list[DiffItem] = []


class CompletenessDiff(WireModel):
    score_diff: DiffItem
    missing_diffs: list[DiffItem] = []


class CompareSummary(WireModel):
    headline: str
    key_changes: list[str] = []


class AnalysisCompare(WireModel):
    kind: str = COMPARE_KIND
    incident_id: str
    a: ComparedAnalysis
    b: ComparedAnalysis
    evidence: EvidenceDiff
    reasoning: ReasoningDiff
    completeness: CompletenessDiff
    summary: CompareSummary


# ── Explainability graph ───────────────────────────────────────────


NodeType = Literal["EVIDENCE", "CLAIM", "HYPOTHESIS", "ACTION", "CONCLUSION"]


class GraphNode(WireModel):
    id: str = Field(min_length=1, max_length=128)
    type: NodeType
    title: str = Field(min_length=1, max_length=200)
    subtitle: str | None = None
    meta: dict[str, Any] = {}


class GraphEdge(WireModel):
    source: str = Field(alias="from")
    target: str = Field(alias="to")
    label: str | None = None
    weight: float | None = Field(default=None, ge=0.0, le=1.0)


class ExplainabilityGraph(WireModel):
    kind: str = GRAPH_KIND
    incident_id: str
    analysis_id: str
    nodes: list[GraphNode] = Field(default=[], max_length=400)
    edges: list[GraphEdge] = Field(default=[], max_length=800)
