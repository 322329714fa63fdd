"""Evidence bundle builder — merges artifacts into one content-addressed bundle."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable

from investigator.evidence.hashing import HASH_ALGO, HASH_INPUT_VERSION, hash_object
from investigator.evidence.models import (
    ARTIFACT_KINDS,
    SOURCE_TAGS,
    EvidenceArtifact,
    EvidenceBundle,
)
from investigator.schema import EvidenceKind

logger = logging.getLogger("investigator.evidence")

EXTERNAL_STATUS_ARTIFACT_ID = "google_status:v1"


def external_status_artifact(evidence: dict[str, Any]) -> EvidenceArtifact:
    """Wrap an imported provider status blob as a regular artifact."""
    title = str(evidence.get("title") or "Provider status incident")[:200]
    summary = str(
        evidence.get("summary")
        or evidence.get("description")
        or "Imported provider status evidence for this incident."
    )[:4000]
    return EvidenceArtifact(
        kind=ARTIFACT_KINDS[EvidenceKind.GOOGLE_STATUS],
        artifact_id=EXTERNAL_STATUS_ARTIFACT_ID,
        title=title,
        summary=summary,
        payload=evidence,
    )


def build_evidence_bundle(
    incident_id: str,
    created_at: datetime,
    created_by: str | None = None,
    prior: EvidenceBundle | None = None,
    artifacts: Iterable[EvidenceArtifact] = (),
    source_tags: Iterable[str] = (),
    external_evidence: dict[str, Any] | None = None,
) -> EvidenceBundle:
    """Assemble a bundle from prior fragments, new artifacts and external evidence.

    Sources are a first-seen union, artifacts are appended in order with an
    artifact id that is already present being skipped. ``created_at`` is part
    of the hashed content, so callers pass the evidence as-of time rather than
    the wall clock to keep ids a pure function of content.
    """
    sources: list[str] = list(prior.sources) if prior else []
    merged: list[EvidenceArtifact] = list(prior.artifacts) if prior else []
    seen = {a.artifact_id for a in merged}

    def add_source(tag: str) -> None:
        if tag and tag not in sources:
            sources.append(tag)

    def add_artifact(artifact: EvidenceArtifact) -> None:
        if artifact.artifact_id in seen:
            return
        seen.add(artifact.artifact_id)
        merged.append(artifact)

    if external_evidence:
        add_source(SOURCE_TAGS[EvidenceKind.GOOGLE_STATUS])
        add_artifact(external_status_artifact(external_evidence))

    for tag in source_tags:
        add_source(tag)
    for artifact in artifacts:
        add_artifact(artifact)

    payload = {
        "incidentId": incident_id,
        "createdAt": created_at,
        "createdBy": created_by,
        "sources": sources,
        "artifacts": merged,
        "hashAlgo": HASH_ALGO,
        "hashInputVersion": HASH_INPUT_VERSION,
    }
    draft = EvidenceBundle.model_validate({"bundleId": "0" * 64, **payload})
    bundle = draft.model_copy(update={"bundle_id": hash_object(draft.hash_input())})

    logger.debug(
        "Bundle built: incident=%s bundle=%s artifacts=%d sources=%s",
        incident_id, bundle.bundle_id[:12], len(merged), sources,
    )
    return bundle


def verify_bundle_id(bundle: EvidenceBundle) -> bool:
    return hash_object(bundle.hash_input()) == bundle.bundle_id
