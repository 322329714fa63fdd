"""End-to-end tests for the investigation loop, driven by a scripted reasoner."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from conftest import CHAIN_ID, FakeReasoner, make_response, make_service, stub_registry

from investigator.audit.verify import verify_chain
from investigator.collectors.registry import CollectorRegistry
from investigator.errors import IncidentNotFound
from investigator.evidence.models import IncidentContext, TimeWindow
from investigator.hypothesis.catalog import CATALOG_VERSION
from investigator.investigation.graph import NO_APPROVED_EVIDENCE_REQUESTS, recursion_limit
from investigator.investigation.models import InvestigationSession, SessionStatus
from investigator.reasoning.errors import ReasoningError, ReasoningErrorCode
from investigator.store.memory import MemoryStore


async def run_session(store, incident, reasoner, max_iterations=3, registry=None, safe_mode=True):
    await store.save_incident(incident)
    service = make_service(store, reasoner, registry=registry, safe_mode=safe_mode)
    session = await service.start_investigation(
        incident.incident_id, max_iterations=max_iterations, confidence_target=0.8
    )
    await service.wait(session.session_id)
    return service, await store.get_session(session.session_id)


def event_types(events):
    return [e.event_type for e in events]


class FailingIterationStore(MemoryStore):
    async def append_iteration(self, iteration):
        raise RuntimeError("disk full")


class TestConvergence:
    @pytest.mark.asyncio
    async def test_completes_when_confidence_target_reached(self, store, incident):
        reasoner = FakeReasoner([make_response(0.5), make_response(0.65), make_response(0.82)])
        service, session = await run_session(store, incident, reasoner, max_iterations=3)

        assert session.status == SessionStatus.COMPLETED
        assert session.reason == "Confidence target reached: 0.82 >= 0.8"
        iterations = await store.list_iterations(session.session_id)
        assert [it.iteration for it in iterations] == [1, 2, 3]
        assert [it.overall_confidence for it in iterations] == [0.5, 0.65, 0.82]
        assert all(it.decision["collectorPlan"]["strategy"] == "DETERMINISTIC" for it in iterations)

    @pytest.mark.asyncio
    async def test_fallback_plan_collects_highest_priority_needs_first(self, store, incident):
        reasoner = FakeReasoner([make_response(0.9)])
        _, session = await run_session(store, incident, reasoner)

        [iteration] = await store.list_iterations(session.session_id)
        assert iteration.decision["collectorPlan"]["collectors"] == ["METRICS", "TRACES"]
        bundle = store.bundles[iteration.evidence_bundle_id]
        assert bundle.sources == ["METRICS", "TRACES"]

    @pytest.mark.asyncio
    async def test_model_directed_collection(self, store, incident):
        requests = [{"need": "LOGS", "priority": "P0", "reason": "Look for timeout signatures"}]
        reasoner = FakeReasoner([make_response(0.9, requests=requests)])
        _, session = await run_session(store, incident, reasoner)

        [iteration] = await store.list_iterations(session.session_id)
        assert iteration.decision["collectorPlan"]["strategy"] == "MODEL_DIRECTED"
        assert iteration.decision["collectorPlan"]["collectors"] == ["LOGS"]
        assert [r["need"] for r in iteration.decision["policy"]["approved"]] == ["LOGS"]
        assert store.bundles[iteration.evidence_bundle_id].sources == ["LOGS"]

    @pytest.mark.asyncio
    async def test_reasoning_requests_are_bounded_by_candidates(self, store, incident):
        reasoner = FakeReasoner([make_response(0.9)])
        await run_session(store, incident, reasoner)
        request = reasoner.requests[0]
        assert 1 <= len(request.candidates) <= 8
        assert request.candidates[-1] == "UNKNOWN"


class TestStopConditions:
    @pytest.mark.asyncio
    async def test_all_requests_rejected_stops_without_collecting(self, store, incident):
        out_of_bounds = [{
            "need": "LOGS", "priority": "P0", "reason": "Look earlier",
            "scope": {"windowStart": "2023-12-31T00:00:00+00:00"},
        }]
        registry = stub_registry()
        for kind in registry.kinds():
            registry.get(kind).collect = AsyncMock()
        reasoner = FakeReasoner([make_response(0.3, requests=out_of_bounds)])

        _, session = await run_session(store, incident, reasoner, registry=registry)

        assert session.status == SessionStatus.STOPPED
        assert session.reason.startswith(NO_APPROVED_EVIDENCE_REQUESTS)
        assert "WINDOW_OUT_OF_BOUNDS" in session.reason
        for kind in registry.kinds():
            registry.get(kind).collect.assert_not_called()
        [iteration] = await store.list_iterations(session.session_id)
        assert iteration.decision["policy"]["rejected"][0]["code"] == "WINDOW_OUT_OF_BOUNDS"
        assert iteration.notes == session.reason

    @pytest.mark.asyncio
    async def test_max_iterations_reached(self, store, incident):
        reasoner = FakeReasoner([make_response(0.1)])
        _, session = await run_session(store, incident, reasoner, max_iterations=2)

        assert session.status == SessionStatus.STOPPED
        assert session.reason == "Maximum iterations reached: 2"
        assert len(await store.list_iterations(session.session_id)) == 2

    @pytest.mark.asyncio
    async def test_reasoning_failures_do_not_break_the_loop(self, store, incident):
        failure = ReasoningError("Model call failed", ReasoningErrorCode.MODEL_CALL_FAILED)
        reasoner = FakeReasoner([failure])
        _, session = await run_session(store, incident, reasoner, max_iterations=4)

        assert session.status == SessionStatus.STOPPED
        iterations = await store.list_iterations(session.session_id)
        assert 1 <= len(iterations) <= 4
        for it in iterations:
            assert it.overall_confidence is None
            assert it.decision["reasoningError"] == "MODEL_CALL_FAILED: Model call failed"
        assert not store.prompt_traces

    @pytest.mark.asyncio
    async def test_unexpected_reasoner_exception_is_contained(self, store, incident):
        reasoner = FakeReasoner([ValueError("boom"), make_response(0.9)])
        _, session = await run_session(store, incident, reasoner)

        assert session.status == SessionStatus.COMPLETED
        first = (await store.list_iterations(session.session_id))[0]
        assert first.decision["reasoningError"] == "ValueError: boom"

    @pytest.mark.asyncio
    async def test_no_new_evidence_across_sessions(self, store, incident):
        empty = CollectorRegistry([])
        _, first = await run_session(store, incident, FakeReasoner([make_response(0.2)]), registry=empty)
        _, second = await run_session(store, incident, FakeReasoner([make_response(0.2)]), registry=empty)

        assert first.status == SessionStatus.STOPPED
        assert first.reason == "No new evidence could be collected"
        assert second.status == SessionStatus.STOPPED
        assert second.reason == "Completeness did not improve and no new evidence collected"

        events = await store.list_audit_events(CHAIN_ID)
        assert event_types(events).count("EVIDENCE_BUNDLE_CREATED") == 1
        assert len(store.bundles) == 1


class TestFailures:
    @pytest.mark.asyncio
    async def test_unexpected_error_marks_session_failed_and_reraises(self, incident):
        store = FailingIterationStore()
        await store.save_incident(incident)
        now = datetime.now(timezone.utc)
        await store.create_session(InvestigationSession(
            session_id="sess-1", incident_id=incident.incident_id, max_iterations=3,
            confidence_target=0.8, created_at=now, updated_at=now,
        ))
        service = make_service(store, FakeReasoner([make_response(0.5)]))

        with pytest.raises(RuntimeError, match="disk full"):
            await service.run_investigation("sess-1")

        session = await store.get_session("sess-1")
        assert session.status == SessionStatus.FAILED
        assert session.reason == "Error in iteration 1: disk full"

    @pytest.mark.asyncio
    async def test_unknown_incident(self, store):
        service = make_service(store, FakeReasoner([make_response(0.5)]))
        with pytest.raises(IncidentNotFound):
            await service.start_investigation("missing")

    def test_recursion_limit_covers_every_iteration(self):
        assert recursion_limit(10) >= 10 * 5


class TestAuditTrail:
    @pytest.mark.asyncio
    async def test_chain_verifies_after_a_run(self, store, incident):
        reasoner = FakeReasoner([make_response(0.5), make_response(0.9)])
        _, session = await run_session(store, incident, reasoner)

        events = await store.list_audit_events(CHAIN_ID)
        types = event_types(events)
        assert types[0] == "INVESTIGATION_SESSION_STARTED"
        assert types[-1] == "INVESTIGATION_SESSION_FINISHED"
        assert types.count("INCIDENT_ANALYSIS_CREATED") == 2
        assert types.count("PROMPT_TRACE_CREATED") == 2
        assert types.count("EVIDENCE_BUNDLE_CREATED") == 2
        assert verify_chain(events, CHAIN_ID).ok
        assert {t.catalog_version for t in store.prompt_traces.values()} == {CATALOG_VERSION}

    @pytest.mark.asyncio
    async def test_status_view(self, store, incident):
        service, session = await run_session(store, incident, FakeReasoner([make_response(0.9)]))
        view = await service.get_session_status(session.session_id)
        assert view.status == SessionStatus.COMPLETED
        assert view.current_iteration == 1
        assert [it.iteration for it in view.iterations] == [1]
        assert view.wire()["iterations"][0]["overallConfidence"] == 0.9


class TestNaiveIncidentWindow:
    @pytest.mark.asyncio
    async def test_naive_window_and_scope_do_not_fail_the_session(self, store):
        incident = IncidentContext(
            incident_id="inc-naive",
            window=TimeWindow(start=datetime(2024, 1, 1, 12, 0), end=datetime(2024, 1, 1, 12, 30)),
        )
        requests = [{"need": "LOGS", "priority": "P0", "reason": "r", "scope": {"windowStart": "2024-01-01T12:05:00"}}]
        reasoner = FakeReasoner([make_response(0.9, requests=requests)])
        _, session = await run_session(store, incident, reasoner)

        assert session.status == SessionStatus.COMPLETED
        [iteration] = await store.list_iterations(session.session_id)
        assert [r["need"] for r in iteration.decision["policy"]["approved"]] == ["LOGS"]
        assert iteration.decision["policy"]["rejected"] == []
