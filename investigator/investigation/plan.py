"""Collector selection — model-directed mapping and the deterministic fallback plan."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from investigator.collectors.base import BaseCollector, CollectContext
from investigator.collectors.registry import CollectorRegistry
from investigator.evidence.models import ARTIFACT_KINDS, SOURCE_TAGS, EvidenceNeed, IncidentContext, TimeWindow
from investigator.policy.models import EvidenceRequest
from investigator.schema import PRIORITY_RANK, EvidenceKind

FALLBACK_COLLECTOR_LIMIT = 2


class PlanStrategy(str, Enum):
    MODEL_DIRECTED = "MODEL_DIRECTED"
    DETERMINISTIC = "DETERMINISTIC"


class CollectorPlan(BaseModel):
    strategy: PlanStrategy
    collectors: list[EvidenceKind] = []
    reason: str


class CollectorAssignment(BaseModel):
    model_config = {"arbitrary_types_allowed": True}

    kind: EvidenceKind
    collector: BaseCollector
    context: CollectContext


def _already_present(kind: EvidenceKind, existing_sources: set[str]) -> bool:
    return SOURCE_TAGS[kind] in existing_sources or ARTIFACT_KINDS[kind] in existing_sources


def plan_collectors(
    missing: list[EvidenceNeed],
    existing_sources: list[str],
    limit: int = FALLBACK_COLLECTOR_LIMIT,
) -> CollectorPlan:
    """Pick up to ``limit`` missing kinds, P0 first, skipping kinds already present."""
    present = set(existing_sources)
    ranked = sorted(missing, key=lambda n: PRIORITY_RANK[n.priority])
    selected = [n for n in ranked if not _already_present(n.need, present)][:limit]

    if selected:
        reasons = "; ".join(f"{n.need.value} ({n.priority.value}): {n.reason}" for n in selected)
        reason = f"Selected {len(selected)} collector(s): {reasons}"
    else:
        reason = "No new collectors needed (all evidence types already present)"
    return CollectorPlan(
        strategy=PlanStrategy.DETERMINISTIC,
        collectors=[n.need for n in selected],
        reason=reason,
    )


def build_collect_context(request: EvidenceRequest | None, incident: IncidentContext) -> CollectContext:
    """Request scope overrides the session window; its hints take precedence over the incident's."""
    hints: list[str] = []
    scope = request.scope if request else None
    window = incident.window
    if scope:
        start = scope.window_start or incident.window.start
        end = scope.window_end or incident.window.end
        window = TimeWindow(start=start, end=end)
        if scope.service:
            hints.append(f"service:{scope.service}")
        if scope.region:
            hints.append(f"region:{scope.region}")
        if scope.max_items is not None:
            hints.append(f"max_items:{scope.max_items}")
    hints.extend(incident.hints)
    return CollectContext(incident_id=incident.incident_id, window=window, hints=hints)


def map_requests_to_collectors(
    approved: list[EvidenceRequest],
    registry: CollectorRegistry,
    incident: IncidentContext,
) -> tuple[list[CollectorAssignment], CollectorPlan]:
    """Resolve approved requests to collectors. GOOGLE_STATUS evidence is injected
    out-of-band and never maps to a collector."""
    assignments: list[CollectorAssignment] = []
    skipped: list[str] = []
    for request in sorted(approved, key=lambda r: PRIORITY_RANK[r.priority]):
        if request.need == EvidenceKind.GOOGLE_STATUS.value:
            skipped.append(request.need)
            continue
        collector = registry.get(request.need)
        if collector is None:
            skipped.append(request.need)
            continue
        assignments.append(CollectorAssignment(
            kind=collector.kind,
            collector=collector,
            context=build_collect_context(request, incident),
        ))

    reason = f"Model requested {len(approved)} need(s); dispatching {len(assignments)} collector(s)"
    if skipped:
        reason += f"; no collector for {', '.join(skipped)}"
    plan = CollectorPlan(
        strategy=PlanStrategy.MODEL_DIRECTED,
        collectors=[a.kind for a in assignments],
        reason=reason,
    )
    return assignments, plan


def assign_plan(plan: CollectorPlan, registry: CollectorRegistry, incident: IncidentContext) -> list[CollectorAssignment]:
    assignments = []
    for kind in plan.collectors:
        collector = registry.get(kind)
        if collector is None:
            continue
        assignments.append(CollectorAssignment(
            kind=kind, collector=collector, context=build_collect_context(None, incident),
        ))
    return assignments
