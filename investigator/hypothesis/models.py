"""Data models for root-cause hypotheses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from investigator.schema import EvidenceKind, WireModel


class HypothesisCatalogEntry(BaseModel):
    """A root-cause explanation the reasoning step is allowed to choose."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    triggers: tuple[str, ...] = ()
    requires: tuple[EvidenceKind, ...] = ()


class Hypothesis(WireModel):
    """A single ranked hypothesis returned by the reasoning step."""

    id: str = Field(min_length=1, max_length=64)
    title: str = Field(min_length=1, max_length=120)
    confidence: float = Field(ge=0.0, le=1.0)
    rationale: str = Field(min_length=1, max_length=1200)
    evidence_refs: list[str] = Field(default=[], max_length=50)


class Capabilities(BaseModel):
    """Which evidence kinds are available to support a hypothesis."""

    metrics: bool = False
    logs: bool = False
    traces: bool = False
    deploys: bool = False
    config: bool = False
    google_status: bool = False

    def has(self, kind: EvidenceKind) -> bool:
        return {
            EvidenceKind.METRICS: self.metrics,
            EvidenceKind.LOGS: self.logs,
            EvidenceKind.TRACES: self.traces,
            EvidenceKind.DEPLOYS: self.deploys,
            EvidenceKind.CONFIG: self.config,
            EvidenceKind.GOOGLE_STATUS: self.google_status,
        }[kind]


class SignalFlags(BaseModel):
    """Observations extracted from evidence that sharpen hypothesis selection."""

    recent_deploy: bool = False
    config_changed: bool = False
    new_error_signature: bool = False
    timeouts: bool = False
