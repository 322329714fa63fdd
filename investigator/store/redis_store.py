"""Redis-backed store. Records are JSON documents keyed by id; the audit chain
is a hash of seq -> event plus a head pointer; both are watched during an append."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TypeVar

import redis.asyncio as aioredis
from pydantic import BaseModel
from redis.exceptions import WatchError

from investigator.audit.models import AuditEvent
from investigator.errors import AuditSequenceConflict, DuplicateIteration, SessionNotFound
from investigator.evidence.models import EvidenceBundle, IncidentContext
from investigator.investigation.models import (
    IncidentAnalysis,
    InvestigationIteration,
    InvestigationSession,
    PromptTrace,
)
from investigator.store.base import AuditEventFactory, InvestigationStore

logger = logging.getLogger("investigator.store")

KEY_PREFIX = "inv:"
AUDIT_APPEND_ATTEMPTS = 5

M = TypeVar("M", bound=BaseModel)


def _dump(model: BaseModel) -> str:
    return model.model_dump_json(by_alias=True)


class RedisStore(InvestigationStore):
    def __init__(self, client: aioredis.Redis, prefix: str = KEY_PREFIX) -> None:
        self._r = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> "RedisStore":
        client = aioredis.from_url(url, decode_responses=True, max_connections=10)
        return cls(client)

    async def ping(self) -> bool:
        return await self._r.ping()

    async def close(self) -> None:
        await self._r.aclose()

    def _key(self, *parts: str) -> str:
        return self._prefix + ":".join(parts)

    async def _load(self, key: str, model: type[M]) -> M | None:
        raw = await self._r.get(key)
        return model.model_validate_json(raw) if raw else None

    # ── Incidents ──────────────────────────────────────────────────

    async def save_incident(self, incident: IncidentContext) -> None:
        await self._r.set(self._key("incident", incident.incident_id), _dump(incident))

    async def get_incident(self, incident_id: str) -> IncidentContext | None:
        return await self._load(self._key("incident", incident_id), IncidentContext)

    # ── Sessions ───────────────────────────────────────────────────

    async def create_session(self, session: InvestigationSession) -> None:
        await self._r.set(self._key("session", session.session_id), _dump(session))

    async def update_session(self, session_id: str, **changes) -> InvestigationSession:
        # One loop task owns each session, so a plain read-modify-write is enough.
        current = await self.get_session(session_id)
        if current is None:
            raise SessionNotFound(session_id)
        updated = current.model_copy(update={**changes, "updated_at": datetime.now(timezone.utc)})
        await self._r.set(self._key("session", session_id), _dump(updated))
        return updated

    async def get_session(self, session_id: str) -> InvestigationSession | None:
        return await self._load(self._key("session", session_id), InvestigationSession)

    # ── Iterations ─────────────────────────────────────────────────

    async def append_iteration(self, iteration: InvestigationIteration) -> None:
        created = await self._r.hsetnx(
            self._key("iterations", iteration.session_id), str(iteration.iteration), _dump(iteration)
        )
        if not created:
            raise DuplicateIteration(iteration.session_id, iteration.iteration)

    async def list_iterations(self, session_id: str) -> list[InvestigationIteration]:
        rows = await self._r.hgetall(self._key("iterations", session_id))
        return [InvestigationIteration.model_validate_json(rows[n]) for n in sorted(rows, key=int)]

    # ── Evidence bundles ───────────────────────────────────────────

    async def upsert_bundle(self, bundle: EvidenceBundle) -> tuple[EvidenceBundle, bool]:
        inserted = await self._r.set(self._key("bundle", bundle.bundle_id), _dump(bundle), nx=True)
        if not inserted:
            existing = await self.get_bundle(bundle.bundle_id)
            return existing or bundle, False
        await self._r.rpush(self._key("incident_bundles", bundle.incident_id), bundle.bundle_id)
        return bundle, True

    async def get_bundle(self, bundle_id: str) -> EvidenceBundle | None:
        return await self._load(self._key("bundle", bundle_id), EvidenceBundle)

    async def latest_bundle_for_incident(self, incident_id: str) -> EvidenceBundle | None:
        bundle_id = await self._r.lindex(self._key("incident_bundles", incident_id), -1)
        return await self.get_bundle(bundle_id) if bundle_id else None

    # ── Analyses and prompt traces ─────────────────────────────────

    async def save_analysis(self, analysis: IncidentAnalysis) -> None:
        await self._r.set(self._key("analysis", analysis.analysis_id), _dump(analysis))

    async def get_analysis(self, analysis_id: str) -> IncidentAnalysis | None:
        return await self._load(self._key("analysis", analysis_id), IncidentAnalysis)

    async def save_prompt_trace(self, trace: PromptTrace) -> None:
        await self._r.set(self._key("prompt_trace", trace.trace_id), _dump(trace))
        await self._r.set(self._key("analysis_trace", trace.analysis_id), trace.trace_id)

    async def get_prompt_trace_for_analysis(self, analysis_id: str) -> PromptTrace | None:
        trace_id = await self._r.get(self._key("analysis_trace", analysis_id))
        return await self._load(self._key("prompt_trace", trace_id), PromptTrace) if trace_id else None

    # ── Audit chain ────────────────────────────────────────────────

    async def append_audit_event(self, chain_id: str, build: AuditEventFactory) -> AuditEvent:
        events_key = self._key("audit", chain_id)
        head_key = self._key("audit", chain_id, "head")

        for attempt in range(1, AUDIT_APPEND_ATTEMPTS + 1):
            async with self._r.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(head_key, events_key)
                    head_seq = await pipe.get(head_key)
                    head = None
                    if head_seq:
                        raw = await pipe.hget(events_key, head_seq)
                        head = AuditEvent.model_validate_json(raw) if raw else None
                    event = build(head)
                    # The head only moves once the seq slot is known to be free
                    if await pipe.hexists(events_key, str(event.seq)):
                        raise AuditSequenceConflict(chain_id, event.seq)

                    pipe.multi()
                    pipe.hset(events_key, str(event.seq), _dump(event))
                    pipe.set(head_key, str(event.seq))
                    await pipe.execute()
                except WatchError:
                    logger.warning(
                        "Audit chain moved during append: chain=%s attempt=%d", chain_id, attempt
                    )
                    continue
            return event

        raise AuditSequenceConflict(chain_id, -1)

    async def list_audit_events(self, chain_id: str) -> list[AuditEvent]:
        rows = await self._r.hgetall(self._key("audit", chain_id))
        return [AuditEvent.model_validate_json(rows[seq]) for seq in sorted(rows, key=int)]
