"""Tests for the in-process and Redis-backed investigation stores."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from investigator.audit.models import EntityType
from investigator.errors import AuditSequenceConflict, DuplicateIteration, SessionNotFound
from investigator.evidence.bundle import build_evidence_bundle
from investigator.investigation.models import InvestigationIteration, InvestigationSession, SessionStatus
from investigator.store.redis_store import RedisStore


NOW = datetime(2024, 1, 1, 13, 0, tzinfo=timezone.utc)


def session(session_id="sess-1"):
    return InvestigationSession(
        session_id=session_id, incident_id="inc-1", max_iterations=3, confidence_target=0.8,
        created_at=NOW, updated_at=NOW,
    )


def iteration(n):
    return InvestigationIteration(session_id="sess-1", iteration=n, created_at=NOW)


class TestSessions:
    @pytest.mark.asyncio
    async def test_update_bumps_timestamp(self, store):
        created = session()
        await store.create_session(created)
        updated = await store.update_session("sess-1", status=SessionStatus.COMPLETED, reason="done")
        assert updated.status == SessionStatus.COMPLETED
        assert updated.updated_at >= created.updated_at
        assert (await store.get_session("sess-1")).reason == "done"

    @pytest.mark.asyncio
    async def test_update_unknown_session(self, store):
        with pytest.raises(SessionNotFound):
            await store.update_session("missing", status=SessionStatus.FAILED)

    @pytest.mark.asyncio
    async def test_incident_round_trip(self, store, incident):
        await store.save_incident(incident)
        assert await store.get_incident("inc-1") == incident
        assert await store.get_incident("inc-2") is None


class TestIterations:
    @pytest.mark.asyncio
    async def test_iteration_numbers_are_unique(self, store):
        await store.append_iteration(iteration(1))
        with pytest.raises(DuplicateIteration):
            await store.append_iteration(iteration(1))

    @pytest.mark.asyncio
    async def test_listed_in_order(self, store):
        for n in (2, 1, 3):
            await store.append_iteration(iteration(n))
        assert [i.iteration for i in await store.list_iterations("sess-1")] == [1, 2, 3]
        assert await store.list_iterations("sess-2") == []


class TestRedisStore:
    @pytest.fixture
    def client(self):
        return AsyncMock()

    @pytest.fixture
    def redis_store(self, client):
        return RedisStore(client)

    @pytest.mark.asyncio
    async def test_incident_stored_as_camel_case_json(self, redis_store, client, incident):
        await redis_store.save_incident(incident)
        key, raw = client.set.call_args.args
        assert key == "inv:incident:inc-1"
        assert json.loads(raw)["incidentId"] == "inc-1"

        client.get.return_value = raw
        assert await redis_store.get_incident("inc-1") == incident

    @pytest.mark.asyncio
    async def test_duplicate_iteration(self, redis_store, client):
        client.hsetnx.return_value = False
        with pytest.raises(DuplicateIteration):
            await redis_store.append_iteration(iteration(1))
        assert client.hsetnx.call_args.args[:2] == ("inv:iterations:sess-1", "1")

    @pytest.mark.asyncio
    async def test_upsert_new_bundle_is_indexed(self, redis_store, client):
        bundle = build_evidence_bundle("inc-1", created_at=NOW)
        client.set.return_value = True
        stored, inserted = await redis_store.upsert_bundle(bundle)
        assert inserted and stored == bundle
        assert client.set.call_args.kwargs == {"nx": True}
        client.rpush.assert_awaited_once_with("inv:incident_bundles:inc-1", bundle.bundle_id)

    @pytest.mark.asyncio
    async def test_upsert_existing_bundle(self, redis_store, client):
        bundle = build_evidence_bundle("inc-1", created_at=NOW)
        client.set.return_value = None
        client.get.return_value = bundle.model_dump_json(by_alias=True)
        stored, inserted = await redis_store.upsert_bundle(bundle)
        assert not inserted
        assert stored.bundle_id == bundle.bundle_id
        client.rpush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_bundles_for_incident(self, redis_store, client):
        client.lindex.return_value = None
        assert await redis_store.latest_bundle_for_incident("inc-1") is None

    @pytest.mark.asyncio
    async def test_audit_events_listed_by_numeric_seq(self, redis_store, client, audit):
        events = [await audit.append_event("TEST_EVENT", EntityType.PROMPT_TRACE, f"t-{i}") for i in range(11)]
        client.hgetall.return_value = {str(e.seq): e.model_dump_json(by_alias=True) for e in reversed(events)}
        listed = await redis_store.list_audit_events("chain")
        assert [e.seq for e in listed] == list(range(1, 12))

    @pytest.fixture
    def pipe(self, client):
        pipe = AsyncMock()
        pipe.__aenter__.return_value = pipe
        pipe.multi, pipe.hset, pipe.set = Mock(), Mock(), Mock()
        client.pipeline = Mock(return_value=pipe)
        return pipe

    @pytest.mark.asyncio
    async def test_audit_append_moves_head(self, redis_store, pipe, audit):
        first = await audit.append_event("TEST_EVENT", EntityType.PROMPT_TRACE, "t-0")
        second = await audit.append_event("TEST_EVENT", EntityType.PROMPT_TRACE, "t-1")
        pipe.get.return_value = "1"
        pipe.hget.return_value = first.model_dump_json(by_alias=True)
        pipe.hexists.return_value = False

        seen = []
        appended = await redis_store.append_audit_event("chain", lambda head: seen.append(head) or second)

        assert appended == second
        assert seen == [first]
        pipe.watch.assert_awaited_once_with("inv:audit:chain:head", "inv:audit:chain")
        pipe.hset.assert_called_once_with("inv:audit:chain", "2", second.model_dump_json(by_alias=True))
        pipe.set.assert_called_once_with("inv:audit:chain:head", "2")

    @pytest.mark.asyncio
    async def test_taken_seq_leaves_head_alone(self, redis_store, pipe, audit):
        event = await audit.append_event("TEST_EVENT", EntityType.PROMPT_TRACE, "t-0")
        pipe.get.return_value = None
        pipe.hexists.return_value = True

        with pytest.raises(AuditSequenceConflict):
            await redis_store.append_audit_event("chain", lambda head: event)
        pipe.set.assert_not_called()
        pipe.execute.assert_not_awaited()
