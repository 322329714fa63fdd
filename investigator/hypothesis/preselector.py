"""Hypothesis preselector — deterministic, bounded candidate list for the reasoning step."""

from __future__ import annotations

from investigator.evidence.models import EvidenceBundle
from investigator.hypothesis.catalog import HYPOTHESIS_CATALOG, UNKNOWN_ID
from investigator.hypothesis.models import Capabilities, SignalFlags
from investigator.schema import EvidenceKind, PrimarySignal, SourceType

MAX_SCORED = 7
MAX_CANDIDATES = 8
LOW_COMPLETENESS_THRESHOLD = 40
REQUIRED_EVIDENCE_BONUS = 0.5


def trigger_tags(
    primary_signal: PrimarySignal,
    completeness_score: int,
    has: Capabilities,
    flags: SignalFlags,
) -> set[str]:
    tags: set[str] = set()
    if primary_signal == PrimarySignal.LATENCY:
        tags.update(("latency_spike", "p95_up"))
    if primary_signal == PrimarySignal.ERRORS:
        tags.update(("error_spike", "errors_up"))
    if has.google_status:
        tags.add("google_cloud_incident")
    if flags.recent_deploy:
        tags.add("recent_deploy")
    if flags.config_changed:
        tags.add("config_changed")
    if flags.new_error_signature:
        tags.add("new_error_signature")
    if flags.timeouts:
        tags.add("timeouts")
    if completeness_score < LOW_COMPLETENESS_THRESHOLD:
        tags.add("low_completeness")
    return tags


def score_catalog(
    primary_signal: PrimarySignal,
    completeness_score: int,
    has: Capabilities,
    flags: SignalFlags,
) -> list[tuple[str, float]]:
    """Score every catalog entry; the result keeps catalog order for ties."""
    tags = trigger_tags(primary_signal, completeness_score, has, flags)
    scored = []
    for entry in HYPOTHESIS_CATALOG:
        overlap = sum(1 for t in entry.triggers if t in tags)
        bonus = sum(1 for r in entry.requires if has.has(r)) * REQUIRED_EVIDENCE_BONUS
        scored.append((entry.id, overlap + bonus))
    # sorted() is stable, so equal scores stay in declaration order
    return sorted(scored, key=lambda item: item[1], reverse=True)


def select_hypothesis_candidates(
    primary_signal: PrimarySignal,
    completeness_score: int,
    has: Capabilities,
    flags: SignalFlags,
) -> list[str]:
    scored = score_catalog(primary_signal, completeness_score, has, flags)
    candidates = [hid for hid, score in scored if score > 0][:MAX_SCORED]
    if UNKNOWN_ID not in candidates:
        candidates.append(UNKNOWN_ID)
    return candidates[:MAX_CANDIDATES]


# ── Deriving inputs from a bundle ──────────────────────────────────


def capabilities_from_bundle(
    bundle: EvidenceBundle | None, source_type: SourceType = SourceType.SCENARIO
) -> Capabilities:
    if bundle is None:
        return Capabilities(google_status=source_type == SourceType.GOOGLE_CLOUD)
    return Capabilities(
        metrics=bundle.has(EvidenceKind.METRICS),
        logs=bundle.has(EvidenceKind.LOGS),
        traces=bundle.has(EvidenceKind.TRACES),
        deploys=bundle.has(EvidenceKind.DEPLOYS),
        config=bundle.has(EvidenceKind.CONFIG),
        google_status=bundle.has(EvidenceKind.GOOGLE_STATUS) or source_type == SourceType.GOOGLE_CLOUD,
    )


def _payload(bundle: EvidenceBundle, kind: EvidenceKind) -> dict:
    artifact = bundle.artifact_of(kind)
    if artifact is None or not isinstance(artifact.payload, dict):
        return {}
    return artifact.payload


def flags_from_bundle(bundle: EvidenceBundle | None) -> SignalFlags:
    if bundle is None:
        return SignalFlags()

    deploys = _payload(bundle, EvidenceKind.DEPLOYS).get("deploys") or []
    diffs = _payload(bundle, EvidenceKind.CONFIG).get("diffs") or []
    log_groups = _payload(bundle, EvidenceKind.LOGS).get("topGroups") or []
    traces = _payload(bundle, EvidenceKind.TRACES)

    error_groups = [g for g in log_groups if str(g.get("level", "")).lower() in ("error", "critical", "fatal")]
    timeout_logs = any("timeout" in str(g.get("signature", "")) for g in log_groups)
    timeout_spans = int((traces.get("totals") or {}).get("timeouts", 0) or 0) > 0

    return SignalFlags(
        recent_deploy=len(deploys) > 0,
        config_changed=len(diffs) > 0,
        new_error_signature=len(error_groups) > 0,
        timeouts=timeout_logs or timeout_spans,
    )
