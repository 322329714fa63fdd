"""Evidence completeness — how much of the expected evidence surface is present.

The score is a pure projection of a bundle: identical inputs always give
identical output, nothing here reads the clock or any global state.
"""

from __future__ import annotations

from investigator.evidence.models import EvidenceBundle, EvidenceCompleteness, EvidenceNeed
from investigator.schema import (
    PRIORITY_RANK,
    CollectorMode,
    EvidenceKind,
    PrimarySignal,
    Priority,
    SourceType,
)

WEIGHTS: dict[EvidenceKind, int] = {
    EvidenceKind.METRICS: 25,
    EvidenceKind.LOGS: 20,
    EvidenceKind.TRACES: 20,
    EvidenceKind.DEPLOYS: 15,
    EvidenceKind.CONFIG: 15,
    EvidenceKind.GOOGLE_STATUS: 5,
}
STUB_PENALTY = 5

_CORE_KINDS = (
    EvidenceKind.METRICS,
    EvidenceKind.LOGS,
    EvidenceKind.TRACES,
    EvidenceKind.DEPLOYS,
    EvidenceKind.CONFIG,
)

# (kind, priority, reason) evaluated in order for each primary signal
_SIGNAL_RULES: dict[PrimarySignal, tuple[tuple[EvidenceKind, Priority, str], ...]] = {
    PrimarySignal.LATENCY: (
        (EvidenceKind.TRACES, Priority.P0, "Traces pinpoint slow spans and downstream dependencies."),
        (EvidenceKind.DEPLOYS, Priority.P1, "Deployments help correlate regressions with changes."),
        (EvidenceKind.CONFIG, Priority.P1, "Config diffs identify runtime misconfiguration."),
        (EvidenceKind.LOGS, Priority.P2, "Logs may reveal timeouts and errors correlated with latency."),
    ),
    PrimarySignal.ERRORS: (
        (EvidenceKind.LOGS, Priority.P0, "Logs reveal error signatures and failing code paths."),
        (EvidenceKind.TRACES, Priority.P1, "Traces show failing spans and error propagation."),
        (EvidenceKind.DEPLOYS, Priority.P1, "Deployments help correlate error spikes with releases."),
        (EvidenceKind.CONFIG, Priority.P1, "Config diffs identify feature flags or bad settings."),
    ),
    PrimarySignal.UNKNOWN: (
        (EvidenceKind.LOGS, Priority.P1, "Logs help classify the failure mode."),
        (EvidenceKind.TRACES, Priority.P1, "Traces help localize slow/failing paths."),
    ),
}


def normalize_signal(value: str | PrimarySignal | None) -> PrimarySignal:
    if isinstance(value, PrimarySignal):
        return value
    try:
        return PrimarySignal(str(value or "").upper())
    except ValueError:
        return PrimarySignal.UNKNOWN


def requires_external_status(source_type: SourceType) -> bool:
    return source_type == SourceType.GOOGLE_CLOUD


def compute_evidence_completeness(
    bundle: EvidenceBundle | None,
    primary_signal: str | PrimarySignal | None = PrimarySignal.UNKNOWN,
    source_type: SourceType = SourceType.SCENARIO,
) -> EvidenceCompleteness:
    signal = normalize_signal(primary_signal)
    wants_status = requires_external_status(source_type)

    present = [k for k in _CORE_KINDS if bundle is not None and bundle.has(k)]
    status_present = bundle is not None and bundle.has(EvidenceKind.GOOGLE_STATUS)
    if wants_status and status_present:
        present.append(EvidenceKind.GOOGLE_STATUS)

    score = sum(WEIGHTS[k] for k in present)

    stub_penalty = 0
    if bundle is not None:
        for artifact in bundle.artifacts:
            if artifact.completeness_mode == CollectorMode.STUB.value:
                stub_penalty += STUB_PENALTY
    score = max(0, min(100, score - stub_penalty))

    missing: list[EvidenceNeed] = []
    if EvidenceKind.METRICS not in present:
        missing.append(EvidenceNeed(
            need=EvidenceKind.METRICS,
            priority=Priority.P0,
            reason="Metrics establish magnitude and timing of impact.",
        ))
    for kind, priority, reason in _SIGNAL_RULES[signal]:
        if kind not in present:
            missing.append(EvidenceNeed(need=kind, priority=priority, reason=reason))
    if wants_status and not status_present:
        missing.append(EvidenceNeed(
            need=EvidenceKind.GOOGLE_STATUS,
            priority=Priority.P0,
            reason="Google status evidence is the primary external signal for this incident.",
        ))

    notes = [f"Stub evidence penalty applied: -{stub_penalty}"] if stub_penalty else []

    return EvidenceCompleteness(
        score=score,
        present=present,
        missing=dedupe_needs(missing),
        notes=notes,
    )


def dedupe_needs(needs: list[EvidenceNeed]) -> list[EvidenceNeed]:
    """Keep one entry per need, the highest priority one, in first-seen order."""
    best: dict[EvidenceKind, EvidenceNeed] = {}
    for need in needs:
        current = best.get(need.need)
        if current is None or PRIORITY_RANK[need.priority] < PRIORITY_RANK[current.priority]:
            best[need.need] = need
    return list(best.values())
