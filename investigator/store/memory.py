"""In-process store. Default backend and the one the test suite runs against."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from investigator.audit.models import AuditEvent
from investigator.errors import AuditSequenceConflict, DuplicateIteration, SessionNotFound
from investigator.evidence.models import EvidenceBundle, IncidentContext
from investigator.investigation.models import (
    IncidentAnalysis,
    InvestigationIteration,
    InvestigationSession,
    PromptTrace,
)
from investigator.store.base import AuditEventFactory, InvestigationStore


class MemoryStore(InvestigationStore):
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self.incidents: dict[str, IncidentContext] = {}
        self.sessions: dict[str, InvestigationSession] = {}
        self.iterations: dict[str, dict[int, InvestigationIteration]] = {}
        self.bundles: dict[str, EvidenceBundle] = {}
        self._bundles_by_incident: dict[str, list[str]] = {}
        self.analyses: dict[str, IncidentAnalysis] = {}
        self.prompt_traces: dict[str, PromptTrace] = {}
        self.audit_events: dict[str, dict[int, AuditEvent]] = {}

    async def save_incident(self, incident: IncidentContext) -> None:
        self.incidents[incident.incident_id] = incident

    async def get_incident(self, incident_id: str) -> IncidentContext | None:
        return self.incidents.get(incident_id)

    async def create_session(self, session: InvestigationSession) -> None:
        self.sessions[session.session_id] = session

    async def update_session(self, session_id: str, **changes) -> InvestigationSession:
        async with self._lock:
            current = self.sessions.get(session_id)
            if current is None:
                raise SessionNotFound(session_id)
            updated = current.model_copy(update={**changes, "updated_at": datetime.now(timezone.utc)})
            self.sessions[session_id] = updated
            return updated

    async def get_session(self, session_id: str) -> InvestigationSession | None:
        return self.sessions.get(session_id)

    async def append_iteration(self, iteration: InvestigationIteration) -> None:
        async with self._lock:
            rows = self.iterations.setdefault(iteration.session_id, {})
            if iteration.iteration in rows:
                raise DuplicateIteration(iteration.session_id, iteration.iteration)
            rows[iteration.iteration] = iteration

    async def list_iterations(self, session_id: str) -> list[InvestigationIteration]:
        rows = self.iterations.get(session_id, {})
        return [rows[n] for n in sorted(rows)]

    async def upsert_bundle(self, bundle: EvidenceBundle) -> tuple[EvidenceBundle, bool]:
        async with self._lock:
            existing = self.bundles.get(bundle.bundle_id)
            if existing is not None:
                return existing, False
            self.bundles[bundle.bundle_id] = bundle
            self._bundles_by_incident.setdefault(bundle.incident_id, []).append(bundle.bundle_id)
            return bundle, True

    async def get_bundle(self, bundle_id: str) -> EvidenceBundle | None:
        return self.bundles.get(bundle_id)

    async def latest_bundle_for_incident(self, incident_id: str) -> EvidenceBundle | None:
        ids = self._bundles_by_incident.get(incident_id)
        return self.bundles[ids[-1]] if ids else None

    async def save_analysis(self, analysis: IncidentAnalysis) -> None:
        self.analyses[analysis.analysis_id] = analysis

    async def get_analysis(self, analysis_id: str) -> IncidentAnalysis | None:
        return self.analyses.get(analysis_id)

    async def save_prompt_trace(self, trace: PromptTrace) -> None:
        self.prompt_traces[trace.trace_id] = trace

    async def get_prompt_trace_for_analysis(self, analysis_id: str) -> PromptTrace | None:
        for trace in self.prompt_traces.values():
            if trace.analysis_id == analysis_id:
                return trace
        return None

    async def append_audit_event(self, chain_id: str, build: AuditEventFactory) -> AuditEvent:
        async with self._lock:
            chain = self.audit_events.setdefault(chain_id, {})
            head = chain[max(chain)] if chain else None
            event = build(head)
            if event.seq in chain:
                raise AuditSequenceConflict(chain_id, event.seq)
            chain[event.seq] = event
            return event

    async def list_audit_events(self, chain_id: str) -> list[AuditEvent]:
        chain = self.audit_events.get(chain_id, {})
        return [chain[seq] for seq in sorted(chain)]
