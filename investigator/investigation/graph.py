"""LangGraph investigation workflow — one pass of the graph body is one iteration."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Literal

from langgraph.graph import END, StateGraph

from investigator.audit.chain import AuditLog
from investigator.audit.models import EntityType
from investigator.collectors.registry import CollectorRegistry
from investigator.evidence.bundle import build_evidence_bundle
from investigator.evidence.completeness import compute_evidence_completeness
from investigator.evidence.models import EvidenceBundle, IncidentContext
from investigator.hypothesis.preselector import (
    capabilities_from_bundle,
    flags_from_bundle,
    select_hypothesis_candidates,
)
from investigator.investigation.models import (
    AnalysisExplainability,
    AnalysisResult,
    IncidentAnalysis,
    InvestigationIteration,
    PromptTrace,
    RootCause,
    SessionStatus,
)
from investigator.investigation.plan import assign_plan, map_requests_to_collectors, plan_collectors
from investigator.investigation.state import InvestigationState
from investigator.policy.evidence_requests import EvidenceRequestPolicy
from investigator.reasoning.errors import ReasoningError
from investigator.reasoning.models import ReasoningResponse
from investigator.reasoning.prompt import build_reasoning_request
from investigator.reasoning.reasoner import Reasoner
from investigator.reasoning.trace_hash import hash_prompt_parts, hash_request, hash_response
from investigator.store.base import InvestigationStore
from investigator.telemetry import iteration_duration, iterations_total, reasoning_failures

logger = logging.getLogger("investigator.investigation")

NO_APPROVED_EVIDENCE_REQUESTS = "NO_APPROVED_EVIDENCE_REQUESTS"
NODES_PER_ITERATION = 5


def _incident_summary(incident: IncidentContext, iteration: int) -> str:
    summary = (
        f"Incident {incident.incident_id} ({incident.source_type.value}) observed between "
        f"{incident.window.start.isoformat()} and {incident.window.end.isoformat()}; "
        f"investigation iteration {iteration}."
    )
    if incident.hints:
        summary += f" Hints: {', '.join(incident.hints)}."
    return summary


def _existing_sources(bundle: EvidenceBundle | None) -> list[str]:
    if bundle is None:
        return []
    return list(bundle.sources) + [a.kind for a in bundle.artifacts]


def _analysis_result(iteration: int, response: ReasoningResponse | None) -> AnalysisResult:
    summary = f"Investigation iteration {iteration} analysis"
    if response is None:
        return AnalysisResult(summary=summary)
    ex = response.explainability
    return AnalysisResult(
        summary=summary,
        likely_root_causes=[
            RootCause(
                rank=rank,
                hypothesis_id=h.id,
                title=h.title,
                confidence=h.confidence,
                evidence_refs=h.evidence_refs,
            )
            for rank, h in enumerate(response.hypotheses, start=1)
        ],
        explainability=AnalysisExplainability(
            primary_signal=ex.primary_signal,
            latency_factor=ex.latency_factor,
            error_factor=ex.error_factor,
            rationale=ex.rationale,
        ),
    )


def build_investigation_graph(
    store: InvestigationStore,
    audit: AuditLog,
    reasoner: Reasoner,
    registry: CollectorRegistry,
    policy: EvidenceRequestPolicy,
) -> StateGraph:
    """Construct the LangGraph state machine for one investigation session."""

    # ── Node functions ──────────────────────────────────────────────

    async def load_evidence(state: InvestigationState) -> dict:
        incident = state["incident"]
        iteration = state.get("iteration", 0) + 1
        logger.info(
            "Investigation session %s, iteration %d/%d",
            state["session_id"], iteration, state["max_iterations"],
        )
        await store.update_session(state["session_id"], current_iteration=iteration)

        if iteration == 1:
            bundle = await store.latest_bundle_for_incident(incident.incident_id)
        else:
            bundle = state.get("bundle")
        completeness = compute_evidence_completeness(bundle, state["primary_signal"], incident.source_type)

        return {
            "iteration": iteration,
            "started_at": time.monotonic(),
            "bundle": bundle,
            "completeness": completeness,
            "previous_score": completeness.score if bundle is not None else None,
            "reasoning": None,
            "reasoning_error": None,
            "policy": None,
            "plan": None,
            "new_artifacts": [],
            "new_sources": [],
            "overall_confidence": None,
        }

    async def reason(state: InvestigationState) -> dict:
        incident = state["incident"]
        iteration = state["iteration"]
        bundle = state.get("bundle")
        completeness = state["completeness"]

        candidates = select_hypothesis_candidates(
            state["primary_signal"],
            completeness.score,
            capabilities_from_bundle(bundle, incident.source_type),
            flags_from_bundle(bundle),
        )
        try:
            request = build_reasoning_request(
                incident_id=incident.incident_id,
                evidence_bundle_id=bundle.bundle_id if bundle else None,
                source_type=incident.source_type,
                incident_summary=_incident_summary(incident, iteration),
                timeline_start=incident.window.start,
                timeline_end=incident.window.end,
                artifacts=bundle.artifacts if bundle else [],
                candidates=candidates,
                completeness_score=completeness.score,
                missing_evidence=[n.need.value for n in completeness.missing],
            )
            result = await reasoner.reason(request)
        except ReasoningError as exc:
            reasoning_failures.labels(code=exc.code.value).inc()
            logger.warning("Reasoning failed in iteration %d: %s", iteration, exc)
            return {"reasoning": None, "reasoning_error": str(exc)}
        except Exception as exc:
            reasoning_failures.labels(code="UNEXPECTED").inc()
            logger.exception("Reasoning raised unexpectedly in iteration %d", iteration)
            return {"reasoning": None, "reasoning_error": f"{type(exc).__name__}: {exc}"}

        signal = result.response.explainability.primary_signal
        return {
            "reasoning": result,
            "primary_signal": signal,
            "completeness": compute_evidence_completeness(bundle, signal, incident.source_type),
        }

    async def gate(state: InvestigationState) -> dict:
        reasoning = state.get("reasoning")
        proposed = reasoning.response.missing_evidence_requests if reasoning else []
        if not proposed:
            return {"policy": None}

        result = policy.evaluate(proposed, state["incident"].window)
        if result.approved:
            return {"policy": result}

        codes = sorted({r.code.value for r in result.rejected})
        reason = (
            f"{NO_APPROVED_EVIDENCE_REQUESTS}: all {result.proposed_count} proposed evidence "
            f"request(s) were rejected ({', '.join(codes)})"
        )
        logger.info("Session %s stopping: %s", state["session_id"], reason)
        return {"policy": result, "status": SessionStatus.STOPPED, "reason": reason}

    async def collect(state: InvestigationState) -> dict:
        incident = state["incident"]
        iteration = state["iteration"]
        bundle = state.get("bundle")
        approved = state["policy"].approved if state.get("policy") else []

        if approved:
            assignments, plan = map_requests_to_collectors(approved, registry, incident)
        else:
            plan = plan_collectors(state["completeness"].missing, _existing_sources(bundle))
            assignments = assign_plan(plan, registry, incident)
        logger.info("Collector plan for iteration %d: %s", iteration, plan.reason)

        results = await asyncio.gather(*(a.collector.collect(a.context) for a in assignments))

        known = bundle.artifact_ids() if bundle else set()
        new_artifacts, new_sources = [], []
        for result in results:
            if result is None or result.artifact.artifact_id in known:
                continue
            known.add(result.artifact.artifact_id)
            new_artifacts.append(result.artifact)
            new_sources.append(result.source_tag)

        update = {"plan": plan, "new_artifacts": new_artifacts, "new_sources": new_sources}
        if not new_artifacts and iteration > 1:
            logger.info("No new evidence collected in iteration %d, stopping", iteration)
            update.update(status=SessionStatus.STOPPED, reason="No new evidence could be collected")
        return update

    async def consolidate(state: InvestigationState) -> dict:
        incident = state["incident"]
        session_id = state["session_id"]
        iteration = state["iteration"]
        prior = state.get("bundle")
        new_artifacts = state.get("new_artifacts", [])

        if prior is not None and not new_artifacts:
            bundle = prior
        else:
            bundle = build_evidence_bundle(
                incident.incident_id,
                created_at=incident.window.end,
                created_by=state.get("created_by"),
                prior=prior,
                artifacts=new_artifacts,
                source_tags=state.get("new_sources", []),
                external_evidence=incident.external_evidence,
            )
        bundle, inserted = await store.upsert_bundle(bundle)
        if inserted:
            await audit.append_event(
                "EVIDENCE_BUNDLE_CREATED",
                EntityType.EVIDENCE_BUNDLE,
                bundle.bundle_id,
                entity_ref=incident.incident_id,
                payload={
                    "bundleId": bundle.bundle_id,
                    "incidentId": incident.incident_id,
                    "sources": bundle.sources,
                    "artifactCount": len(bundle.artifacts),
                },
            )

        completeness = compute_evidence_completeness(bundle, state["primary_signal"], incident.source_type)
        reasoning = state.get("reasoning")
        response = reasoning.response if reasoning else None
        now = datetime.now(timezone.utc)

        analysis = IncidentAnalysis(
            analysis_id=uuid.uuid4().hex,
            incident_id=incident.incident_id,
            session_id=session_id,
            iteration=iteration,
            evidence_bundle_id=bundle.bundle_id,
            completeness=completeness,
            reasoning=response,
            result=_analysis_result(iteration, response),
            created_at=now,
        )
        await store.save_analysis(analysis)
        await audit.append_event(
            "INCIDENT_ANALYSIS_CREATED",
            EntityType.INCIDENT_ANALYSIS,
            analysis.analysis_id,
            entity_ref=bundle.bundle_id,
            payload={
                "analysisId": analysis.analysis_id,
                "incidentId": incident.incident_id,
                "sessionId": session_id,
                "iteration": iteration,
                "evidenceBundleId": bundle.bundle_id,
                "completenessScore": completeness.score,
            },
        )

        if reasoning is not None:
            trace = PromptTrace(
                trace_id=uuid.uuid4().hex,
                incident_id=incident.incident_id,
                analysis_id=analysis.analysis_id,
                evidence_bundle_id=bundle.bundle_id,
                model=reasoning.response.model,
                prompt_version=reasoning.response.prompt_version,
                catalog_version=reasoning.request.catalog_version,
                prompt_hash=hash_prompt_parts(reasoning.system_prompt, reasoning.user_prompt),
                request_hash=hash_request(reasoning.request),
                response_hash=hash_response(reasoning.response),
                created_at=now,
            )
            await store.save_prompt_trace(trace)
            await audit.append_event(
                "PROMPT_TRACE_CREATED",
                EntityType.PROMPT_TRACE,
                trace.trace_id,
                entity_ref=analysis.analysis_id,
                payload={
                    "traceId": trace.trace_id,
                    "analysisId": analysis.analysis_id,
                    "incidentId": incident.incident_id,
                    "catalogVersion": trace.catalog_version,
                    "promptHash": trace.prompt_hash,
                    "requestHash": trace.request_hash,
                    "responseHash": trace.response_hash,
                },
            )

        overall = response.overall_confidence if response else None
        plan = state.get("plan")
        policy_result = state.get("policy")
        decision = {
            "collectorPlan": plan.model_dump(mode="json") if plan else None,
            "missingNeeds": [n.wire() for n in completeness.missing],
            "policy": {
                "approved": [r.wire() for r in policy_result.approved],
                "rejected": [{"code": r.code.value, "reason": r.reason} for r in policy_result.rejected],
            } if policy_result else None,
            "reasoningError": state.get("reasoning_error"),
        }
        await store.append_iteration(InvestigationIteration(
            session_id=session_id,
            iteration=iteration,
            evidence_bundle_id=bundle.bundle_id,
            analysis_id=analysis.analysis_id,
            completeness_score=completeness.score,
            overall_confidence=overall,
            decision=decision,
            notes=plan.reason if plan else state.get("reason"),
            created_at=now,
        ))
        iterations_total.inc()
        iteration_duration.observe(time.monotonic() - state["started_at"])
        logger.info(
            "Iteration %d complete: confidence=%s, completeness=%d", iteration, overall, completeness.score
        )

        update = {"bundle": bundle, "completeness": completeness, "overall_confidence": overall}
        if state.get("status") != SessionStatus.RUNNING:
            return update

        target = state["confidence_target"]
        previous = state.get("previous_score")
        if overall is not None and overall >= target:
            update.update(
                status=SessionStatus.COMPLETED,
                reason=f"Confidence target reached: {overall:.2f} >= {target}",
            )
        elif previous is not None and completeness.score <= previous and not new_artifacts:
            update.update(
                status=SessionStatus.STOPPED,
                reason="Completeness did not improve and no new evidence collected",
            )
        elif iteration >= state["max_iterations"]:
            update.update(
                status=SessionStatus.STOPPED,
                reason=f"Maximum iterations reached: {state['max_iterations']}",
            )
        return update

    # ── Routing logic ───────────────────────────────────────────────

    def after_gate(state: InvestigationState) -> Literal["collect", "consolidate"]:
        return "collect" if state.get("status") == SessionStatus.RUNNING else "consolidate"

    def after_collect(state: InvestigationState) -> Literal["consolidate", "end"]:
        return "consolidate" if state.get("status") == SessionStatus.RUNNING else "end"

    def should_continue(state: InvestigationState) -> Literal["load_evidence", "end"]:
        return "load_evidence" if state.get("status") == SessionStatus.RUNNING else "end"

    # ── Build the graph ─────────────────────────────────────────────

    graph = StateGraph(InvestigationState)

    graph.add_node("load_evidence", load_evidence)
    graph.add_node("reason", reason)
    graph.add_node("gate", gate)
    graph.add_node("collect", collect)
    graph.add_node("consolidate", consolidate)

    graph.set_entry_point("load_evidence")
    graph.add_edge("load_evidence", "reason")
    graph.add_edge("reason", "gate")

    graph.add_conditional_edges("gate", after_gate, {
        "collect": "collect",
        "consolidate": "consolidate",
    })
    graph.add_conditional_edges("collect", after_collect, {
        "consolidate": "consolidate",
        "end": END,
    })
    graph.add_conditional_edges("consolidate", should_continue, {
        "load_evidence": "load_evidence",
        "end": END,
    })

    return graph


def compile_investigation_graph(
    store: InvestigationStore,
    audit: AuditLog,
    reasoner: Reasoner,
    registry: CollectorRegistry,
    policy: EvidenceRequestPolicy,
):
    """Build and compile the investigation graph, ready to invoke."""
    graph = build_investigation_graph(store, audit, reasoner, registry, policy)
    return graph.compile()


def recursion_limit(max_iterations: int) -> int:
    return max_iterations * (NODES_PER_ITERATION + 1) + 10
