"""Read-side reports over stored analyses. Nothing here writes to the store."""

from __future__ import annotations

import logging

from investigator.errors import AnalysisNotFound, IncidentNotFound, SessionNotFound
from investigator.evidence.models import EvidenceBundle, IncidentContext
from investigator.investigation.models import IncidentAnalysis
from investigator.reporting.compare import compare_analyses
from investigator.reporting.graph import build_explainability_graph
from investigator.reporting.models import AnalysisCompare, ExplainabilityGraph, Postmortem
from investigator.reporting.postmortem import build_postmortem
from investigator.store.base import InvestigationStore

logger = logging.getLogger("investigator.reporting")


class ReportingService:
    def __init__(self, store: InvestigationStore) -> None:
        self._store = store

    async def _incident(self, incident_id: str) -> IncidentContext:
        incident = await self._store.get_incident(incident_id)
        if incident is None:
            raise IncidentNotFound(incident_id)
        return incident

    async def _analysis(self, incident_id: str, analysis_id: str) -> IncidentAnalysis:
        analysis = await self._store.get_analysis(analysis_id)
        # An analysis of another incident is reported as missing
        if analysis is None or analysis.incident_id != incident_id:
            raise AnalysisNotFound(analysis_id)
        return analysis

    async def _bundle(self, analysis: IncidentAnalysis) -> EvidenceBundle | None:
        if analysis.evidence_bundle_id is None:
            return None
        return await self._store.get_bundle(analysis.evidence_bundle_id)

    async def postmortem(self, incident_id: str, analysis_id: str) -> Postmortem:
        incident = await self._incident(incident_id)
        analysis = await self._analysis(incident_id, analysis_id)
        trace = await self._store.get_prompt_trace_for_analysis(analysis_id)
        return build_postmortem(incident, analysis, await self._bundle(analysis), trace)

    async def session_postmortem(self, session_id: str) -> Postmortem:
        """Postmortem of the latest analysis a session produced."""
        session = await self._store.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        iterations = await self._store.list_iterations(session_id)
        analysis_ids = [it.analysis_id for it in iterations if it.analysis_id]
        if not analysis_ids:
            raise AnalysisNotFound(f"no analysis recorded for session {session_id}")
        return await self.postmortem(session.incident_id, analysis_ids[-1])

    async def explainability_graph(self, incident_id: str, analysis_id: str) -> ExplainabilityGraph:
        await self._incident(incident_id)
        analysis = await self._analysis(incident_id, analysis_id)
        graph = build_explainability_graph(analysis, await self._bundle(analysis))
        logger.info(
            "Explainability graph built: analysis=%s nodes=%d edges=%d",
            analysis_id, len(graph.nodes), len(graph.edges),
        )
        return graph

    async def compare(self, incident_id: str, analysis_id_a: str, analysis_id_b: str) -> AnalysisCompare:
        await self._incident(incident_id)
        a = await self._analysis(incident_id, analysis_id_a)
        b = await self._analysis(incident_id, analysis_id_b)
        result = compare_analyses(incident_id, a, b, await self._bundle(a), await self._bundle(b))
        logger.info(
            "Analyses compared: incident=%s a=%s b=%s changes=%d",
            incident_id, analysis_id_a, analysis_id_b, len(result.summary.key_changes),
        )
        return result
