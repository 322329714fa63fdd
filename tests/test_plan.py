"""Tests for collector planning and request-to-collector mapping."""

from datetime import timedelta

from conftest import stub_registry

from investigator.evidence.models import EvidenceNeed
from investigator.investigation.plan import (
    PlanStrategy,
    assign_plan,
    build_collect_context,
    map_requests_to_collectors,
    plan_collectors,
)
from investigator.policy.models import EvidenceRequest, EvidenceRequestScope
from investigator.schema import EvidenceKind, Priority


def need(kind, priority):
    return EvidenceNeed(need=kind, priority=priority, reason=f"{kind.value} missing")


def request(kind, priority=Priority.P1, scope=None):
    return EvidenceRequest(need=kind.value, priority=priority, reason="needed", scope=scope)


class TestFallbackPlan:
    def test_p0_first_and_capped(self):
        plan = plan_collectors(
            [need(EvidenceKind.LOGS, Priority.P2), need(EvidenceKind.TRACES, Priority.P0),
             need(EvidenceKind.DEPLOYS, Priority.P1), need(EvidenceKind.CONFIG, Priority.P1)],
            existing_sources=[],
        )
        assert plan.strategy == PlanStrategy.DETERMINISTIC
        assert plan.collectors == [EvidenceKind.TRACES, EvidenceKind.DEPLOYS]
        assert plan.reason.startswith("Selected 2 collector(s)")

    def test_skips_kinds_already_present(self):
        plan = plan_collectors(
            [need(EvidenceKind.TRACES, Priority.P0), need(EvidenceKind.LOGS, Priority.P1)],
            existing_sources=["TRACES", "logs_summary"],
        )
        assert plan.collectors == []
        assert plan.reason == "No new collectors needed (all evidence types already present)"

    def test_assign_plan_skips_unregistered_kinds(self, incident):
        plan = plan_collectors(
            [need(EvidenceKind.GOOGLE_STATUS, Priority.P0), need(EvidenceKind.METRICS, Priority.P0)], []
        )
        assignments = assign_plan(plan, stub_registry(), incident)
        assert [a.kind for a in assignments] == [EvidenceKind.METRICS]
        assert assignments[0].context.window == incident.window


class TestModelDirected:
    def test_maps_in_priority_order_and_skips_google_status(self, incident):
        assignments, plan = map_requests_to_collectors(
            [request(EvidenceKind.DEPLOYS, Priority.P2), request(EvidenceKind.GOOGLE_STATUS, Priority.P0),
             request(EvidenceKind.LOGS, Priority.P0)],
            stub_registry(),
            incident,
        )
        assert [a.kind for a in assignments] == [EvidenceKind.LOGS, EvidenceKind.DEPLOYS]
        assert plan.strategy == PlanStrategy.MODEL_DIRECTED
        assert plan.collectors == [EvidenceKind.LOGS, EvidenceKind.DEPLOYS]
        assert "no collector for GOOGLE_STATUS" in plan.reason


class TestCollectContext:
    def test_defaults_to_session_window(self, incident):
        ctx = build_collect_context(None, incident)
        assert ctx.window == incident.window
        assert ctx.hints == ["service:checkout", "env:production"]

    def test_scope_narrows_window_and_adds_hints(self, incident):
        start = incident.window.start + timedelta(minutes=10)
        scope = EvidenceRequestScope(window_start=start, service="payments", region="eu", max_items=20)
        ctx = build_collect_context(request(EvidenceKind.LOGS, scope=scope), incident)
        assert ctx.window.start == start
        assert ctx.window.end == incident.window.end
        assert ctx.hints == ["service:payments", "region:eu", "max_items:20", "service:checkout", "env:production"]
        assert ctx.hint("service") == "payments"
        assert ctx.max_items(200) == 20

    def test_naive_scope_times_read_as_utc(self, incident):
        naive_end = (incident.window.end - timedelta(minutes=5)).replace(tzinfo=None)
        scope = EvidenceRequestScope(window_end=naive_end)
        ctx = build_collect_context(request(EvidenceKind.TRACES, scope=scope), incident)
        assert ctx.window.end == incident.window.end - timedelta(minutes=5)
