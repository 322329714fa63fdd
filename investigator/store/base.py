"""Persistence contract for incidents, sessions, bundles, analyses and the audit chain."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from investigator.audit.models import AuditEvent
from investigator.evidence.models import EvidenceBundle, IncidentContext
from investigator.investigation.models import (
    IncidentAnalysis,
    InvestigationIteration,
    InvestigationSession,
    PromptTrace,
)

# Receives the chain head (or None for an empty chain) and returns the next event.
AuditEventFactory = Callable[[AuditEvent | None], AuditEvent]


class InvestigationStore(ABC):
    """Append-only where it matters: iterations, bundles and audit events are
    never rewritten once stored."""

    # ── Incidents ──────────────────────────────────────────────────

    @abstractmethod
    async def save_incident(self, incident: IncidentContext) -> None: ...

    @abstractmethod
    async def get_incident(self, incident_id: str) -> IncidentContext | None: ...

    # ── Sessions ───────────────────────────────────────────────────

    @abstractmethod
    async def create_session(self, session: InvestigationSession) -> None: ...

    @abstractmethod
    async def update_session(self, session_id: str, **changes) -> InvestigationSession:
        """Apply field changes and bump ``updated_at``. Raises SessionNotFound."""

    @abstractmethod
    async def get_session(self, session_id: str) -> InvestigationSession | None: ...

    # ── Iterations ─────────────────────────────────────────────────

    @abstractmethod
    async def append_iteration(self, iteration: InvestigationIteration) -> None:
        """Raises DuplicateIteration if (session_id, iteration) already exists."""

    @abstractmethod
    async def list_iterations(self, session_id: str) -> list[InvestigationIteration]: ...

    # ── Evidence bundles ───────────────────────────────────────────

    @abstractmethod
    async def upsert_bundle(self, bundle: EvidenceBundle) -> tuple[EvidenceBundle, bool]:
        """Store by content hash. Returns the stored bundle and whether it was new."""

    @abstractmethod
    async def get_bundle(self, bundle_id: str) -> EvidenceBundle | None: ...

    @abstractmethod
    async def latest_bundle_for_incident(self, incident_id: str) -> EvidenceBundle | None: ...

    # ── Analyses and prompt traces ─────────────────────────────────

    @abstractmethod
    async def save_analysis(self, analysis: IncidentAnalysis) -> None: ...

    @abstractmethod
    async def get_analysis(self, analysis_id: str) -> IncidentAnalysis | None: ...

    @abstractmethod
    async def save_prompt_trace(self, trace: PromptTrace) -> None: ...

    @abstractmethod
    async def get_prompt_trace_for_analysis(self, analysis_id: str) -> PromptTrace | None: ...

    # ── Audit chain ────────────────────────────────────────────────

    @abstractmethod
    async def append_audit_event(self, chain_id: str, build: AuditEventFactory) -> AuditEvent:
        """Read the chain head, build the next event and insert it as one atomic step.

        Raises AuditSequenceConflict if the sequence number was already taken.
        """

    @abstractmethod
    async def list_audit_events(self, chain_id: str) -> list[AuditEvent]:
        """All events of a chain, ascending by seq."""

    async def close(self) -> None:
        return None
