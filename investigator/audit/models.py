"""Audit chain records and verification verdicts."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import Field

from investigator.schema import WireModel

GENESIS = "GENESIS"


class EntityType(str, Enum):
    EVIDENCE_BUNDLE = "EVIDENCE_BUNDLE"
    PROMPT_TRACE = "PROMPT_TRACE"
    INCIDENT_ANALYSIS = "INCIDENT_ANALYSIS"
    INVESTIGATION_SESSION = "INVESTIGATION_SESSION"


class AuditEventInput(WireModel):
    """What a caller asks to record; chain position is assigned on append."""

    event_type: str = Field(min_length=1)
    entity_type: EntityType
    entity_id: str = Field(min_length=1)
    entity_ref: str | None = None
    payload: Any = None


class AuditEvent(WireModel):
    chain_id: str
    seq: int = Field(ge=1)
    prev_hash: str
    hash: str
    event_type: str
    entity_type: EntityType
    entity_id: str
    entity_ref: str | None = None
    payload: Any = None

    def hash_input(self) -> dict:
        return self.wire(exclude={"hash"})


class ChainVerification(WireModel):
    ok: bool
    verified_count: int
    first_failure_index: int | None = None
    first_failure_reason: str | None = None
    chain_id: str
    total_events: int
