"""Explainability graph — how evidence, the primary-signal claim, hypotheses and
actions connect to the conclusion of one analysis.

Node ids are stable (``evi:<artifactId>``, ``claim:primary``, ``hyp:<id>``,
``act:<id>``, ``conclusion:root``, ``missing:<need>``), so two builds of the
same analysis are identical. Edges only reference evidence actually in the bundle.
"""

from __future__ import annotations

from investigator.evidence.models import EvidenceBundle
from investigator.investigation.models import IncidentAnalysis
from investigator.reporting.models import ExplainabilityGraph, GraphEdge, GraphNode
from investigator.schema import Priority

CLAIM_NODE = "claim:primary"
CONCLUSION_NODE = "conclusion:root"

_ACTION_WEIGHT = {Priority.P0: 1.0, Priority.P1: 0.7, Priority.P2: 0.4}
_MISSING_WEIGHT = {Priority.P0: 0.9, Priority.P1: 0.6, Priority.P2: 0.3}


def _snippet(text: str, limit: int = 100) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def build_explainability_graph(analysis: IncidentAnalysis, bundle: EvidenceBundle | None = None) -> ExplainabilityGraph:
    nodes: list[GraphNode] = []
    edges: list[GraphEdge] = []
    evidence_nodes: dict[str, str] = {}

    def link(refs: list[str], target: str, label: str, weight: float) -> None:
        for ref in refs:
            if ref in evidence_nodes:
                edges.append(GraphEdge(source=evidence_nodes[ref], target=target, label=label, weight=weight))

    for artifact in bundle.artifacts if bundle else []:
        node_id = f"evi:{artifact.artifact_id}"
        nodes.append(GraphNode(
            id=node_id[:128],
            type="EVIDENCE",
            title=artifact.title,
            subtitle=artifact.kind,
            meta={"artifactId": artifact.artifact_id, "kind": artifact.kind, "summary": artifact.summary},
        ))
        evidence_nodes[artifact.artifact_id] = node_id[:128]

    reasoning = analysis.reasoning
    if reasoning is not None:
        ex = reasoning.explainability
        nodes.append(GraphNode(
            id=CLAIM_NODE,
            type="CLAIM",
            title=f"Primary Signal: {ex.primary_signal.value}",
            subtitle=_snippet(ex.rationale),
            meta={
                "primarySignal": ex.primary_signal.value,
                "latencyFactor": ex.latency_factor,
                "errorFactor": ex.error_factor,
                "rationale": ex.rationale,
                "evidenceRefs": ex.evidence_refs,
            },
        ))
        link(ex.evidence_refs, CLAIM_NODE, "supports", 0.8)

        for rank, h in enumerate(reasoning.hypotheses, start=1):
            node_id = f"hyp:{h.id}"
            nodes.append(GraphNode(
                id=node_id,
                type="HYPOTHESIS",
                title=h.title,
                subtitle=f"Confidence: {round(h.confidence * 100)}% | Rank: {rank}",
                meta={
                    "hypothesisId": h.id,
                    "rank": rank,
                    "confidence": h.confidence,
                    "rationale": h.rationale,
                    "evidenceRefs": h.evidence_refs,
                },
            ))
            link(h.evidence_refs, node_id, "supports", h.confidence)
            edges.append(GraphEdge(source=CLAIM_NODE, target=node_id, label="supports ranking", weight=h.confidence))

        for action in reasoning.recommended_actions:
            node_id = f"act:{action.id}"
            nodes.append(GraphNode(
                id=node_id,
                type="ACTION",
                title=action.title,
                subtitle=f"Priority: {action.priority.value}",
                meta={
                    "actionId": action.id,
                    "priority": action.priority.value,
                    "steps": action.steps,
                    "evidenceRefs": action.evidence_refs,
                },
            ))
            link(action.evidence_refs, node_id, "triggers", _ACTION_WEIGHT[action.priority])

    top = reasoning.hypotheses[0] if reasoning else None
    overall = reasoning.overall_confidence if reasoning else 0.0
    nodes.append(GraphNode(
        id=CONCLUSION_NODE,
        type="CONCLUSION",
        title=f"Most likely root cause: {top.title if top else 'Unknown'}",
        subtitle=f"Overall Confidence: {round(overall * 100)}%",
        meta={"topHypothesisId": top.id if top else None, "overallConfidence": overall},
    ))
    if top is not None:
        edges.append(GraphEdge(source=f"hyp:{top.id}", target=CONCLUSION_NODE, label="leads to", weight=overall))

    for need in analysis.completeness.missing:
        node_id = f"missing:{need.need.value}"
        nodes.append(GraphNode(
            id=node_id,
            type="EVIDENCE",
            title=f"Missing: {need.need.value}",
            subtitle=f"Priority: {need.priority.value}",
            meta={"need": need.need.value, "priority": need.priority.value, "reason": need.reason},
        ))
        edges.append(GraphEdge(
            source=CONCLUSION_NODE, target=node_id, label="needs", weight=_MISSING_WEIGHT[need.priority]
        ))

    return ExplainabilityGraph(
        incident_id=analysis.incident_id, analysis_id=analysis.analysis_id, nodes=nodes, edges=edges
    )
