"""Investigation sessions — start, run to a terminal state, and report status."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone

from investigator.audit.chain import AuditLog
from investigator.audit.models import EntityType
from investigator.collectors.registry import CollectorRegistry
from investigator.errors import IncidentNotFound, SessionNotFound
from investigator.investigation.graph import compile_investigation_graph, recursion_limit
from investigator.investigation.models import InvestigationSession, SessionStatus, SessionStatusView
from investigator.policy.evidence_requests import EvidenceRequestPolicy
from investigator.reasoning.reasoner import Reasoner
from investigator.store.base import InvestigationStore
from investigator.telemetry import investigations_started, sessions_finished

logger = logging.getLogger("investigator.investigation")


class InvestigationService:
    """Owns session lifecycle. Each session runs as one detached task; the number
    running at once is bounded by a semaphore."""

    def __init__(
        self,
        store: InvestigationStore,
        audit: AuditLog,
        reasoner: Reasoner,
        registry: CollectorRegistry,
        policy: EvidenceRequestPolicy,
        max_concurrent: int = 3,
    ) -> None:
        self._store = store
        self._audit = audit
        self._graph = compile_investigation_graph(store, audit, reasoner, registry, policy)
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: dict[str, asyncio.Task] = {}

    async def start_investigation(
        self,
        incident_id: str,
        max_iterations: int = 5,
        confidence_target: float = 0.8,
        created_by: str | None = None,
    ) -> InvestigationSession:
        """Create the session and return immediately; the loop runs in the background."""
        incident = await self._store.get_incident(incident_id)
        if incident is None:
            raise IncidentNotFound(incident_id)

        now = datetime.now(timezone.utc)
        session = InvestigationSession(
            session_id=uuid.uuid4().hex,
            incident_id=incident_id,
            max_iterations=max_iterations,
            confidence_target=confidence_target,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        await self._store.create_session(session)
        await self._audit.append_event(
            "INVESTIGATION_SESSION_STARTED",
            EntityType.INVESTIGATION_SESSION,
            session.session_id,
            entity_ref=incident_id,
            payload={
                "sessionId": session.session_id,
                "incidentId": incident_id,
                "maxIterations": max_iterations,
                "confidenceTarget": confidence_target,
            },
        )
        investigations_started.inc()
        logger.info("Started investigation session %s for incident %s", session.session_id, incident_id)

        task = asyncio.create_task(self._run_with_guard(session.session_id))
        self._tasks[session.session_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(session.session_id, None))
        return session

    async def _run_with_guard(self, session_id: str) -> None:
        async with self._semaphore:
            try:
                await self.run_investigation(session_id)
            except Exception:
                logger.exception("Investigation loop failed for session %s", session_id)

    async def run_investigation(self, session_id: str) -> InvestigationSession:
        """Drive one session to a terminal state. Unexpected errors mark the
        session FAILED and are re-raised."""
        session = await self._store.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        incident = await self._store.get_incident(session.incident_id)
        if incident is None:
            raise IncidentNotFound(session.incident_id)

        initial_state = {
            "session_id": session_id,
            "incident": incident,
            "max_iterations": session.max_iterations,
            "confidence_target": session.confidence_target,
            "created_by": session.created_by,
            "iteration": 0,
            "primary_signal": incident.primary_signal,
            "status": SessionStatus.RUNNING,
            "reason": None,
        }

        try:
            result = await self._graph.ainvoke(
                initial_state, config={"recursion_limit": recursion_limit(session.max_iterations)}
            )
        except Exception as exc:
            current = await self._store.get_session(session_id)
            iteration = current.current_iteration if current else 0
            logger.error("Error in iteration %d of session %s: %s", iteration, session_id, exc)
            await self._finish(session_id, SessionStatus.FAILED, f"Error in iteration {iteration}: {exc}")
            raise

        status = result.get("status", SessionStatus.RUNNING)
        reason = result.get("reason")
        if status == SessionStatus.RUNNING:
            status = SessionStatus.STOPPED
            reason = f"Maximum iterations reached: {session.max_iterations}"
        return await self._finish(session_id, status, reason)

    async def _finish(self, session_id: str, status: SessionStatus, reason: str | None) -> InvestigationSession:
        session = await self._store.update_session(session_id, status=status, reason=reason)
        sessions_finished.labels(status=status.value).inc()
        await self._audit.append_event(
            "INVESTIGATION_SESSION_FINISHED",
            EntityType.INVESTIGATION_SESSION,
            session_id,
            entity_ref=session.incident_id,
            payload={
                "sessionId": session_id,
                "incidentId": session.incident_id,
                "status": status.value,
                "iterations": session.current_iteration,
                "reason": reason,
            },
        )
        logger.info(
            "Investigation session %s finished: status=%s reason=%s", session_id, status.value, reason
        )
        return session

    async def get_session_status(self, session_id: str) -> SessionStatusView:
        session = await self._store.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        iterations = await self._store.list_iterations(session_id)
        return SessionStatusView.build(session, iterations)

    async def wait(self, session_id: str) -> None:
        """Block until the session's background task, if any, is done."""
        task = self._tasks.get(session_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def close(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
