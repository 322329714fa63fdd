"""Data models for incidents, evidence artifacts, bundles and completeness."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import ConfigDict, Field, field_validator, model_validator

from investigator.evidence.hashing import HASH_ALGO, HASH_INPUT_VERSION
from investigator.schema import EvidenceKind, PrimarySignal, Priority, SourceType, WireModel

# Artifact kinds produced by collectors, keyed by the evidence kind they satisfy.
ARTIFACT_KINDS: dict[EvidenceKind, str] = {
    EvidenceKind.METRICS: "metrics_summary",
    EvidenceKind.LOGS: "logs_summary",
    EvidenceKind.TRACES: "traces_summary",
    EvidenceKind.DEPLOYS: "deploys_summary",
    EvidenceKind.CONFIG: "config_diff_summary",
    EvidenceKind.GOOGLE_STATUS: "google_status",
}

# Source tags recorded on a bundle, keyed the same way.
SOURCE_TAGS: dict[EvidenceKind, str] = {
    EvidenceKind.METRICS: "METRICS",
    EvidenceKind.LOGS: "LOGS",
    EvidenceKind.TRACES: "TRACES",
    EvidenceKind.DEPLOYS: "DEPLOYS",
    EvidenceKind.CONFIG: "CONFIG",
    EvidenceKind.GOOGLE_STATUS: "GOOGLE_CLOUD",
}


class TimeWindow(WireModel):
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _utc(cls, ts: datetime) -> datetime:
        # Naive times are read as UTC
        return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)

    @model_validator(mode="after")
    def _ordered(self) -> "TimeWindow":
        if self.start >= self.end:
            raise ValueError("window start must be before end")
        return self


class IncidentContext(WireModel):
    """What the caller knows about the incident; read-only to the engine."""

    model_config = ConfigDict(frozen=True)

    incident_id: str = Field(min_length=1)
    source_type: SourceType = SourceType.SCENARIO
    window: TimeWindow
    hints: tuple[str, ...] = ()
    primary_signal: PrimarySignal = PrimarySignal.UNKNOWN
    # Out-of-band evidence (e.g. an imported provider status incident)
    external_evidence: dict[str, Any] | None = None


class EvidenceArtifact(WireModel):
    """One normalized unit of evidence."""

    kind: str = Field(min_length=1, max_length=64)
    artifact_id: str = Field(min_length=1, max_length=128)
    title: str = Field(min_length=1, max_length=200)
    summary: str = Field(min_length=1, max_length=4000)
    payload: Any = None

    @property
    def completeness_mode(self) -> str | None:
        if isinstance(self.payload, dict):
            completeness = self.payload.get("completeness")
            if isinstance(completeness, dict):
                return completeness.get("mode")
        return None


class EvidenceBundle(WireModel):
    """Immutable, content-addressed snapshot of every artifact gathered so far."""

    model_config = ConfigDict(frozen=True)

    bundle_id: str = Field(min_length=16)
    incident_id: str = Field(min_length=1)
    created_at: datetime
    created_by: str | None = None
    sources: list[str] = []
    artifacts: list[EvidenceArtifact] = []
    hash_algo: str = HASH_ALGO
    hash_input_version: str = HASH_INPUT_VERSION

    def hash_input(self) -> dict:
        return self.wire(exclude={"bundle_id"})

    def artifact_ids(self) -> set[str]:
        return {a.artifact_id for a in self.artifacts}

    def kinds(self) -> set[str]:
        return {a.kind for a in self.artifacts}

    def has(self, kind: EvidenceKind) -> bool:
        return ARTIFACT_KINDS[kind] in self.kinds() or SOURCE_TAGS[kind] in self.sources

    def artifact_of(self, kind: EvidenceKind) -> EvidenceArtifact | None:
        wanted = ARTIFACT_KINDS[kind]
        for artifact in reversed(self.artifacts):
            if artifact.kind == wanted:
                return artifact
        return None


class EvidenceNeed(WireModel):
    need: EvidenceKind
    priority: Priority
    reason: str = Field(min_length=1, max_length=400)


class EvidenceCompleteness(WireModel):
    score: int = Field(ge=0, le=100)
    present: list[EvidenceKind] = []
    missing: list[EvidenceNeed] = []
    notes: list[str] = []
