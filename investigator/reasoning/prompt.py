"""Prompt for the reasoning step, plus the request builder that bounds its input."""

from __future__ import annotations

import json
from datetime import datetime

from investigator.evidence.models import EvidenceArtifact
from investigator.hypothesis.catalog import CATALOG_VERSION
from investigator.reasoning.models import (
    ArtifactDigest,
    ReasoningContext,
    ReasoningRequest,
    Timeline,
)
from investigator.schema import SourceType

PROMPT_VERSION = "v1"
MAX_ARTIFACTS = 50

_SYSTEM_PROMPT = """\
You are an autonomous SRE investigator. Use ONLY the provided evidence summaries; \
do not invent evidence. Cite evidence by artifactId in evidenceRefs.

CRITICAL: pick hypothesis ids only from this candidate list: {candidates}.
If you want to suggest a different hypothesis, map it to the closest candidate or \
choose UNKNOWN.

If more evidence would raise your confidence, ask for it in missingEvidenceRequests \
(need is one of METRICS, LOGS, TRACES, DEPLOYS, CONFIG, GOOGLE_STATUS; priority \
P0/P1/P2; optional scope with windowStart, windowEnd, service, region, maxItems).

Respond ONLY with valid JSON matching this schema:
{{
  "hypotheses": [
    {{"id": "CANDIDATE_ID", "title": "short title", "confidence": 0.6,
      "rationale": "why", "evidenceRefs": ["artifactId"]}}
  ],
  "explainability": {{"primarySignal": "LATENCY | ERRORS | UNKNOWN",
    "latencyFactor": 0.5, "errorFactor": 0.5, "rationale": "why", "evidenceRefs": []}},
  "recommendedActions": [
    {{"id": "a1", "title": "what to do", "steps": ["step"], "priority": "P1", "evidenceRefs": []}}
  ],
  "missingEvidenceRequests": [
    {{"need": "TRACES", "priority": "P0", "reason": "why it is needed"}}
  ],
  "overallConfidence": 0.6
}}
"""


def build_reasoning_request(
    incident_id: str,
    evidence_bundle_id: str | None,
    source_type: SourceType,
    incident_summary: str,
    timeline_start: datetime,
    timeline_end: datetime,
    artifacts: list[EvidenceArtifact],
    candidates: list[str],
    completeness_score: int | None = None,
    missing_evidence: list[str] | None = None,
) -> ReasoningRequest:
    digests = [
        ArtifactDigest(
            artifact_id=a.artifact_id,
            kind=a.kind,
            title=a.title,
            summary=a.summary,
        )
        for a in artifacts[:MAX_ARTIFACTS]
    ]
    return ReasoningRequest(
        incident_id=incident_id,
        evidence_bundle_id=evidence_bundle_id,
        prompt_version=PROMPT_VERSION,
        catalog_version=CATALOG_VERSION,
        candidates=candidates,
        context=ReasoningContext(
            incident_summary=incident_summary[:2000],
            source_type=source_type,
            timeline=Timeline(start=timeline_start, end=timeline_end),
            evidence_artifacts=digests,
            completeness_score=completeness_score,
            missing_evidence=missing_evidence or [],
        ),
    )


def build_reasoning_prompt(request: ReasoningRequest) -> tuple[str, str]:
    system = _SYSTEM_PROMPT.format(candidates=", ".join(request.candidates))
    user = json.dumps({
        "task": "Rank root-cause hypotheses, explain the primary signal, recommend "
                "actions and request missing evidence.",
        "request": request.wire(),
    })
    return system, user
