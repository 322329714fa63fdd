"""Hash-chained audit log. Appends are best-effort: a failed append is logged
and counted but never surfaces to the operation it records."""

from __future__ import annotations

import logging
from typing import Any

from investigator.audit.models import GENESIS, AuditEvent, AuditEventInput, EntityType
from investigator.evidence.hashing import hash_object
from investigator.store.base import InvestigationStore
from investigator.telemetry import audit_append_failures

logger = logging.getLogger("investigator.audit")


def compute_event_hash(
    chain_id: str,
    seq: int,
    prev_hash: str,
    event_type: str,
    entity_type: EntityType | str,
    entity_id: str,
    entity_ref: str | None,
    payload: Any,
) -> str:
    return hash_object({
        "chainId": chain_id,
        "seq": seq,
        "prevHash": prev_hash,
        "eventType": event_type,
        "entityType": entity_type.value if isinstance(entity_type, EntityType) else entity_type,
        "entityId": entity_id,
        "entityRef": entity_ref,
        "payload": payload,
    })


def next_event(chain_id: str, head: AuditEvent | None, event: AuditEventInput) -> AuditEvent:
    seq = head.seq + 1 if head else 1
    prev_hash = head.hash if head else GENESIS
    payload = event.model_dump(mode="json")["payload"]
    return AuditEvent(
        chain_id=chain_id,
        seq=seq,
        prev_hash=prev_hash,
        hash=compute_event_hash(
            chain_id, seq, prev_hash,
            event.event_type, event.entity_type, event.entity_id, event.entity_ref, payload,
        ),
        event_type=event.event_type,
        entity_type=event.entity_type,
        entity_id=event.entity_id,
        entity_ref=event.entity_ref,
        payload=payload,
    )


class AuditLog:
    def __init__(self, store: InvestigationStore, chain_id: str) -> None:
        self._store = store
        self.chain_id = chain_id

    async def append_event(
        self,
        event_type: str,
        entity_type: EntityType,
        entity_id: str,
        entity_ref: str | None = None,
        payload: Any = None,
    ) -> AuditEvent | None:
        try:
            event = AuditEventInput(
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                entity_ref=entity_ref,
                payload=payload,
            )
            appended = await self._store.append_audit_event(
                self.chain_id, lambda head: next_event(self.chain_id, head, event)
            )
        except Exception:
            audit_append_failures.inc()
            logger.exception(
                "Failed to append audit event: type=%s entity=%s:%s",
                event_type, getattr(entity_type, "value", entity_type), entity_id,
            )
            return None

        logger.debug(
            "Audit event appended: %s (seq %d, hash %s...)", event_type, appended.seq, appended.hash[:8]
        )
        return appended
