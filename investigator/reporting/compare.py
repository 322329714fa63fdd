"""Analysis compare — what changed between two analyses of the same incident.

Diffs cover evidence artifacts, ranked hypotheses, recommended actions, the
primary signal and evidence completeness. Keys are visited in first-seen order,
A before B, so the output is stable for the same inputs.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable

from investigator.evidence.models import EvidenceBundle
from investigator.investigation.models import IncidentAnalysis
from investigator.reporting.models import (
    AnalysisCompare,
    ComparedAnalysis,
    CompareSummary,
    CompletenessDiff,
    DiffItem,
    DiffType,
    EvidenceDiff,
    ReasoningDiff,
)
from investigator.schema import PrimarySignal

MAX_DIFFS = 200
MAX_KEY_CHANGES = 20
# Confidence moves smaller than this are not reported as changes
CONFIDENCE_EPSILON = 0.01


def _diff_keyed(
    prefix: str,
    before: dict[str, Any],
    after: dict[str, Any],
    view: Callable[[Any], dict],
    changed: Callable[[Any, Any], str | None],
) -> list[DiffItem]:
    """``changed`` returns a note when the two sides differ, else None."""
    diffs: list[DiffItem] = []
    keys = list(before) + [k for k in after if k not in before]
    for key in keys:
        a, b = before.get(key), after.get(key)
        item_key = f"{prefix}:{key}"
        if a is None:
            diffs.append(DiffItem(type=DiffType.ADDED, key=item_key, after=view(b)))
        elif b is None:
            diffs.append(DiffItem(type=DiffType.REMOVED, key=item_key, before=view(a)))
        else:
            note = changed(a, b)
            if note is None:
                diffs.append(DiffItem(type=DiffType.UNCHANGED, key=item_key))
            else:
                diffs.append(DiffItem(type=DiffType.CHANGED, key=item_key, before=view(a), after=view(b), note=note))
    return diffs[:MAX_DIFFS]


def _count(diffs: Iterable[DiffItem], kind: DiffType) -> int:
    return sum(1 for d in diffs if d.type == kind)


def _artifact_diffs(bundle_a: EvidenceBundle | None, bundle_b: EvidenceBundle | None) -> list[DiffItem]:
    def artifacts(bundle):
        return {a.artifact_id: a for a in bundle.artifacts} if bundle else {}

    def view(a):
        return {"kind": a.kind, "title": a.title, "summary": a.summary[:200]}

    def changed(a, b):
        if (a.kind, a.title, a.summary) != (b.kind, b.title, b.summary):
            return "Artifact content changed"
        return None

    return _diff_keyed("artifact", artifacts(bundle_a), artifacts(bundle_b), view, changed)


def _hypothesis_diffs(a: IncidentAnalysis, b: IncidentAnalysis) -> list[DiffItem]:
    def ranked(analysis):
        hypotheses = analysis.reasoning.hypotheses if analysis.reasoning else []
        return {h.id: (rank, h) for rank, h in enumerate(hypotheses, start=1)}

    def view(entry):
        rank, h = entry
        return {"rank": rank, "confidence": h.confidence, "title": h.title}

    def changed(x, y):
        (rank_a, ha), (rank_b, hb) = x, y
        if rank_a != rank_b:
            return f"Rank changed {rank_a} → {rank_b}"
        if abs(ha.confidence - hb.confidence) > CONFIDENCE_EPSILON:
            return f"Confidence changed {ha.confidence:.2f} → {hb.confidence:.2f}"
        return None

    return _diff_keyed("hypothesis", ranked(a), ranked(b), view, changed)


def _action_diffs(a: IncidentAnalysis, b: IncidentAnalysis) -> list[DiffItem]:
    def actions(analysis):
        return {act.id: act for act in (analysis.reasoning.recommended_actions if analysis.reasoning else [])}

    def view(act):
        return {"priority": act.priority.value, "title": act.title, "stepsCount": len(act.steps)}

    def changed(x, y):
        if x.priority != y.priority:
            return f"Priority changed {x.priority.value} → {y.priority.value}"
        if x.steps != y.steps:
            return "Steps changed"
        return None

    return _diff_keyed("action", actions(a), actions(b), view, changed)


def _missing_diffs(a: IncidentAnalysis, b: IncidentAnalysis) -> list[DiffItem]:
    def missing(analysis):
        return {n.need.value: n for n in analysis.completeness.missing}

    def view(n):
        return {"need": n.need.value, "priority": n.priority.value, "reason": n.reason[:200]}

    def changed(x, y):
        if x.priority != y.priority:
            return f"Priority changed {x.priority.value} → {y.priority.value}"
        if x.reason != y.reason:
            return "Reason updated"
        return None

    return _diff_keyed("missing", missing(a), missing(b), view, changed)


def _scalar_diff(key: str, label: str, before: Any, after: Any) -> DiffItem:
    if before == after:
        return DiffItem(type=DiffType.UNCHANGED, key=key)
    return DiffItem(
        type=DiffType.CHANGED, key=key, before=before, after=after, note=f"{label} changed: {before} → {after}"
    )


def _signal(analysis: IncidentAnalysis) -> str:
    return (analysis.reasoning.explainability.primary_signal if analysis.reasoning else PrimarySignal.UNKNOWN).value


def _confidence(analysis: IncidentAnalysis) -> float:
    return analysis.reasoning.overall_confidence if analysis.reasoning else 0.0


def compare_analyses(
    incident_id: str,
    a: IncidentAnalysis,
    b: IncidentAnalysis,
    bundle_a: EvidenceBundle | None = None,
    bundle_b: EvidenceBundle | None = None,
) -> AnalysisCompare:
    """Diff analysis ``a`` (before) against ``b`` (after). Both must belong to the incident."""
    for analysis in (a, b):
        if analysis.incident_id != incident_id:
            raise ValueError(f"Analysis {analysis.analysis_id} does not belong to incident {incident_id}")

    artifact_diffs = _artifact_diffs(bundle_a, bundle_b)
    hypothesis_diffs = _hypothesis_diffs(a, b)
    actions_diffs = _action_diffs(a, b)
    signal_diff = _scalar_diff("primarySignal", "Primary signal", _signal(a), _signal(b))
    score_diff = _scalar_diff("completenessScore", "Completeness score", a.completeness.score, b.completeness.score)

    key_changes: list[str] = []
    bundle_changed = a.evidence_bundle_id != b.evidence_bundle_id
    if bundle_changed:
        key_changes.append(
            f"Evidence bundle changed: {a.evidence_bundle_id or 'none'} → {b.evidence_bundle_id or 'none'}"
        )
    for kind, verb in ((DiffType.ADDED, "Added"), (DiffType.REMOVED, "Removed")):
        n = _count(artifact_diffs, kind)
        if n:
            key_changes.append(f"{verb} {n} evidence artifact(s)")
    if a.reasoning and b.reasoning and a.reasoning.hypotheses[0].id != b.reasoning.hypotheses[0].id:
        key_changes.append(
            f"Top hypothesis changed: {a.reasoning.hypotheses[0].title} → {b.reasoning.hypotheses[0].title}"
        )
    confidence_a, confidence_b = _confidence(a), _confidence(b)
    if abs(confidence_a - confidence_b) > CONFIDENCE_EPSILON:
        key_changes.append(f"Confidence changed: {confidence_a:.2f} → {confidence_b:.2f}")
    for diff in (score_diff, signal_diff):
        if diff.type == DiffType.CHANGED:
            key_changes.append(diff.note)
    for kind, verb in ((DiffType.ADDED, "Added"), (DiffType.REMOVED, "Removed")):
        n = _count(actions_diffs, kind)
        if n:
            key_changes.append(f"{verb} {n} recommended action(s)")

    headline = (
        f"Analysis comparison: {len(key_changes)} key change(s) detected"
        if key_changes else "Analysis comparison: no significant changes detected"
    )
    return AnalysisCompare(
        incident_id=incident_id,
        a=ComparedAnalysis(
            analysis_id=a.analysis_id, created_at=a.created_at,
            evidence_bundle_id=a.evidence_bundle_id, confidence=confidence_a,
        ),
        b=ComparedAnalysis(
            analysis_id=b.analysis_id, created_at=b.created_at,
            evidence_bundle_id=b.evidence_bundle_id, confidence=confidence_b,
        ),
        evidence=EvidenceDiff(bundle_changed=bundle_changed, artifact_diffs=artifact_diffs),
        reasoning=ReasoningDiff(
            primary_signal_diff=signal_diff, hypothesis_diffs=hypothesis_diffs, actions_diffs=actions_diffs
        ),
        completeness=CompletenessDiff(score_diff=score_diff, missing_diffs=_missing_diffs(a, b)),
        summary=CompareSummary(headline=headline, key_changes=key_changes[:MAX_KEY_CHANGES]),
    )
