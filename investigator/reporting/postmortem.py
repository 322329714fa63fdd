"""Postmortem generator — builds the report from stored records, never from a model call.

The same analysis, bundle and trace always yield the same postmortem apart from
``generatedAt``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from investigator.evidence.models import EvidenceBundle, IncidentContext
from investigator.investigation.models import IncidentAnalysis, PromptTrace
from investigator.reporting.models import (
    ArtifactSummary,
    Postmortem,
    PostmortemAction,
    PostmortemEvidence,
    PostmortemReasoning,
    PostmortemReference,
    PostmortemSource,
    PostmortemSummary,
    PostmortemTimeline,
    ReferenceKind,
    TopHypothesis,
)
from investigator.schema import PrimarySignal

logger = logging.getLogger("investigator.reporting")

POSTMORTEM_GENERATOR_VERSION = "v2"
MAX_TOP_HYPOTHESES = 10
MAX_ACTIONS = 20
MAX_ARTIFACT_SUMMARIES = 80


def _impact(analysis: IncidentAnalysis) -> str:
    reasoning = analysis.reasoning
    if reasoning is None:
        return "Incident detected and analyzed."
    ex = reasoning.explainability
    if ex.primary_signal == PrimarySignal.LATENCY:
        return f"Latency spike detected (latency factor {ex.latency_factor:.2f}). {ex.rationale[:500]}"
    if ex.primary_signal == PrimarySignal.ERRORS:
        return f"Error rate spike detected (error factor {ex.error_factor:.2f}). {ex.rationale[:500]}"
    return ex.rationale[:1000]


def _root_cause(analysis: IncidentAnalysis) -> str:
    if analysis.reasoning is None:
        return "Analysis in progress."
    top = analysis.reasoning.hypotheses[0]
    return f"{top.title}. {top.rationale[:1000]}"


def _timeline_notes(incident: IncidentContext) -> list[str]:
    external = incident.external_evidence or {}
    status_timeline = external.get("timeline")
    if not isinstance(status_timeline, dict):
        return [f"Analysis window: {incident.window.start.isoformat()} to {incident.window.end.isoformat()}"]

    notes = []
    for key, label in (("begin", "Incident started"), ("update", "Last update"), ("end", "Incident resolved")):
        if status_timeline.get(key):
            notes.append(f"{label}: {status_timeline[key]}")
    return notes


def build_postmortem(
    incident: IncidentContext,
    analysis: IncidentAnalysis,
    bundle: EvidenceBundle | None = None,
    trace: PromptTrace | None = None,
    generated_at: datetime | None = None,
) -> Postmortem:
    reasoning = analysis.reasoning
    completeness = analysis.completeness

    references = []
    if bundle is not None:
        # Bundle ids are content hashes
        references.append(
            PostmortemReference(kind=ReferenceKind.EVIDENCE_BUNDLE, ref=bundle.bundle_id, hash=bundle.bundle_id)
        )
    references.append(PostmortemReference(kind=ReferenceKind.ANALYSIS, ref=analysis.analysis_id))
    if trace is not None:
        references.append(
            PostmortemReference(kind=ReferenceKind.PROMPT_TRACE, ref=trace.trace_id, hash=trace.response_hash)
        )

    external = incident.external_evidence or {}
    postmortem = Postmortem(
        incident_id=incident.incident_id,
        analysis_id=analysis.analysis_id,
        generated_at=generated_at or datetime.now(timezone.utc),
        generator_version=POSTMORTEM_GENERATOR_VERSION,
        source=PostmortemSource(source_type=incident.source_type, source_url=external.get("url")),
        summary=PostmortemSummary(
            headline=f"Incident {incident.incident_id}"[:200],
            impact=_impact(analysis),
            root_cause=_root_cause(analysis),
            confidence=reasoning.overall_confidence if reasoning else 0.0,
        ),
        timeline=PostmortemTimeline(
            start=incident.window.start, end=incident.window.end, notes=_timeline_notes(incident)
        ),
        evidence=PostmortemEvidence(
            bundle_id=bundle.bundle_id if bundle else analysis.evidence_bundle_id,
            completeness_score=completeness.score,
            missing=[f"{n.priority.value} {n.need.value}: {n.reason}" for n in completeness.missing],
            artifact_summaries=[
                ArtifactSummary(artifact_id=a.artifact_id, kind=a.kind, title=a.title, summary=a.summary)
                for a in (bundle.artifacts if bundle else [])[:MAX_ARTIFACT_SUMMARIES]
            ],
        ),
        reasoning=PostmortemReasoning(
            primary_signal=reasoning.explainability.primary_signal if reasoning else PrimarySignal.UNKNOWN,
            rationale=reasoning.explainability.rationale if reasoning else "Analysis in progress.",
            top_hypotheses=[
                TopHypothesis(
                    id=h.id, title=h.title, confidence=h.confidence,
                    rationale=h.rationale, evidence_refs=h.evidence_refs,
                )
                for h in (reasoning.hypotheses if reasoning else [])[:MAX_TOP_HYPOTHESES]
            ],
        ),
        actions=[
            PostmortemAction(priority=a.priority, title=a.title, steps=a.steps, evidence_refs=a.evidence_refs)
            for a in (reasoning.recommended_actions if reasoning else [])[:MAX_ACTIONS]
        ],
        references=references,
    )
    logger.info(
        "Postmortem generated: incident=%s analysis=%s confidence=%.0f%%",
        incident.incident_id, analysis.analysis_id, postmortem.summary.confidence * 100,
    )
    return postmortem


def render_postmortem_markdown(postmortem: Postmortem) -> str:
    pm = postmortem
    lines = [
        f"# Postmortem — {pm.summary.headline}",
        "",
        f"**Incident ID:** {pm.incident_id}  ",
        f"**Analysis ID:** {pm.analysis_id}  ",
        f"**Source:** {pm.source.source_type.value}",
        "",
        "## Summary",
        f"- **Impact:** {pm.summary.impact}",
        f"- **Root cause:** {pm.summary.root_cause}",
        f"- **Confidence:** {round(pm.summary.confidence * 100)}%",
        "",
        "## Timeline",
        f"- **Window:** {pm.timeline.start.isoformat()} to {pm.timeline.end.isoformat()}",
        *(f"- {note}" for note in pm.timeline.notes),
        "",
        "## Evidence",
        f"- **Bundle:** {pm.evidence.bundle_id or 'none'}",
        f"- **Completeness:** {pm.evidence.completeness_score}/100",
    ]
    if pm.evidence.missing:
        lines += ["", "### Missing evidence", *(f"- {m}" for m in pm.evidence.missing)]
    if pm.evidence.artifact_summaries:
        lines += ["", "| Artifact | Kind | Summary |", "|---|---|---|"]
        lines += [
            f"| {a.title} | {a.kind} | {a.summary.replace('|', '/')} |" for a in pm.evidence.artifact_summaries
        ]

    lines += [
        "",
        "## Reasoning",
        f"- **Primary signal:** {pm.reasoning.primary_signal.value}",
        f"- **Rationale:** {pm.reasoning.rationale}",
    ]
    for rank, h in enumerate(pm.reasoning.top_hypotheses, start=1):
        lines.append(f"{rank}. **{h.title}** ({round(h.confidence * 100)}%): {h.rationale}")

    if pm.actions:
        lines += ["", "## Actions"]
        for action in pm.actions:
            lines.append(f"### [{action.priority.value}] {action.title}")
            lines += [f"{n}. {step}" for n, step in enumerate(action.steps, start=1)]

    lines += ["", "## References"]
    for ref in pm.references:
        suffix = f" (hash {ref.hash})" if ref.hash else ""
        lines.append(f"- {ref.kind.value}: {ref.ref}{suffix}")
    return "\n".join(lines) + "\n"
