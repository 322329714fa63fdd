"""Audit chain verification — continuity and content integrity, reported at the first break."""

from __future__ import annotations

import logging
from typing import Sequence

from investigator.audit.models import GENESIS, AuditEvent, ChainVerification
from investigator.evidence.hashing import hash_object
from investigator.store.base import InvestigationStore

logger = logging.getLogger("investigator.audit")

FALLBACK_WINDOW = 500


def verify_chain(events: Sequence[AuditEvent], chain_id: str, allow_gaps: bool = False) -> ChainVerification:
    """Walk ``events`` ascending by seq and stop at the first broken invariant.

    With ``allow_gaps`` the input may be a filtered subset of the chain:
    prev-hash continuity is then only checked between consecutive seqs.
    """
    ordered = sorted(events, key=lambda e: e.seq)
    total = len(ordered)

    def failure(index: int, event: AuditEvent, reason: str) -> ChainVerification:
        logger.warning("Audit chain verification failed: chain=%s %s", chain_id, reason)
        return ChainVerification(
            ok=False,
            verified_count=index,
            first_failure_index=event.seq,
            first_failure_reason=reason,
            chain_id=chain_id,
            total_events=total,
        )

    prev: AuditEvent | None = None
    for i, event in enumerate(ordered):
        if event.seq == 1 and event.prev_hash != GENESIS:
            return failure(i, event, f"Chain broken at seq 1: prevHash must be {GENESIS}")
        if event.seq > 1 and event.prev_hash == GENESIS:
            return failure(i, event, f"Chain gap at seq {event.seq}: prevHash is {GENESIS} but seq > 1")

        if prev is not None:
            consecutive = event.seq == prev.seq + 1
            if not consecutive and not allow_gaps:
                return failure(i, event, f"Chain gap at seq {event.seq}: expected seq {prev.seq + 1}")
            if consecutive and event.prev_hash != prev.hash:
                return failure(
                    i, event,
                    f"Chain broken at seq {event.seq}: prevHash mismatch. "
                    f"Expected {prev.hash[:16]}..., got {event.prev_hash[:16]}...",
                )

        computed = hash_object(event.hash_input())
        if computed != event.hash:
            return failure(
                i, event,
                f"Hash mismatch at seq {event.seq}: computed {computed[:16]}..., "
                f"stored {event.hash[:16]}... (tampering detected)",
            )
        prev = event

    return ChainVerification(ok=True, verified_count=total, chain_id=chain_id, total_events=total)


class AuditVerifier:
    def __init__(self, store: InvestigationStore, chain_id: str) -> None:
        self._store = store
        self._chain_id = chain_id

    async def _belongs_to(self, event: AuditEvent, incident_id: str) -> bool:
        payload = event.payload if isinstance(event.payload, dict) else {}
        if payload.get("incidentId") == incident_id:
            return True
        if payload.get("analysisId"):
            analysis = await self._store.get_analysis(payload["analysisId"])
            return analysis is not None and analysis.incident_id == incident_id
        if payload.get("bundleId"):
            bundle = await self._store.get_bundle(payload["bundleId"])
            return bundle is not None and bundle.incident_id == incident_id
        if payload.get("sessionId"):
            session = await self._store.get_session(payload["sessionId"])
            return session is not None and session.incident_id == incident_id
        return False

    async def verify_incident_chain(self, incident_id: str) -> ChainVerification:
        """Verify the events tied to one incident; if there are none, the chain tail."""
        events = await self._store.list_audit_events(self._chain_id)
        related = [e for e in events if await self._belongs_to(e, incident_id)]
        if related:
            return verify_chain(related, self._chain_id, allow_gaps=True)
        return verify_chain(events[-FALLBACK_WINDOW:], self._chain_id)
