"""Domain exceptions shared across the investigator."""

from __future__ import annotations


class InvestigatorError(Exception):
    pass


class IncidentNotFound(InvestigatorError):
    def __init__(self, incident_id: str) -> None:
        super().__init__(f"Incident not found: {incident_id}")
        self.incident_id = incident_id


class SessionNotFound(InvestigatorError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Investigation session not found: {session_id}")
        self.session_id = session_id


class AnalysisNotFound(InvestigatorError):
    def __init__(self, analysis_id: str) -> None:
        super().__init__(f"Analysis not found: {analysis_id}")
        self.analysis_id = analysis_id


class DuplicateIteration(InvestigatorError):
    """An iteration record already exists for this (session, iteration)."""

    def __init__(self, session_id: str, iteration: int) -> None:
        super().__init__(f"Iteration {iteration} already recorded for session {session_id}")
        self.session_id = session_id
        self.iteration = iteration


class AuditSequenceConflict(InvestigatorError):
    """Another append claimed the same (chain_id, seq) first."""

    def __init__(self, chain_id: str, seq: int) -> None:
        super().__init__(f"Audit sequence conflict on chain {chain_id} at seq {seq}")
        self.chain_id = chain_id
        self.seq = seq
