"""Tests for evidence collectors: stub payloads, real-mode parsing and fault isolation."""

import httpx
import pytest
from conftest import stub_registry

from investigator.collectors.base import CollectContext
from investigator.collectors.config_diff import ConfigDiffCollector
from investigator.collectors.deploys import DeploysCollector
from investigator.collectors.logs import LogsCollector, LokiClient, group_lines, log_signature
from investigator.collectors.metrics import MetricsCollector
from investigator.collectors.traces import TracesCollector, summarize_traces
from investigator.policy.safe_mode import CollectorModeResolver
from investigator.schema import CollectorMode, EvidenceKind

SAFE = CollectorModeResolver(safe_mode=True)


@pytest.fixture
def ctx(window):
    return CollectContext(incident_id="inc-1", window=window, hints=["service:checkout"])


class ExplodingLogs(LogsCollector):
    def _collect_stub(self, ctx):
        raise RuntimeError("backend exploded")


class TestStubCollectors:
    @pytest.mark.asyncio
    async def test_metrics_stub_shows_degradation(self, ctx):
        result = await MetricsCollector(SAFE).collect(ctx)
        signals = result.artifact.payload["signals"]
        assert result.mode == CollectorMode.STUB
        assert result.source_tag == "METRICS"
        assert signals["latencyP95Ms"]["incident"] == 300.0
        assert signals["errorRate"]["incident"] == 0.05
        assert signals["rps"]["incident"] == 130.0
        assert signals["latencyP95Ms"]["baseline"] < signals["latencyP95Ms"]["incident"]

    @pytest.mark.asyncio
    async def test_artifact_id_is_kind_version_window(self, ctx):
        result = await LogsCollector(SAFE).collect(ctx)
        assert result.artifact.artifact_id == (
            "logs_summary:v1:2024-01-01T12:00:00+00:00-2024-01-01T12:30:00+00:00"
        )
        assert result.artifact.kind == "logs_summary"
        assert result.artifact.completeness_mode == "STUB"

    @pytest.mark.asyncio
    async def test_logs_stub_groups(self, ctx):
        payload = (await LogsCollector(SAFE).collect(ctx)).artifact.payload
        assert [g["count"] for g in payload["topGroups"]] == [12, 5, 3]
        assert payload["totals"] == {"lines": 20, "errorLines": 17, "groups": 3}
        assert "checkout-db timeout" in payload["topGroups"][0]["signature"]

    @pytest.mark.asyncio
    async def test_traces_stub_totals(self, ctx):
        payload = (await TracesCollector(SAFE).collect(ctx)).artifact.payload
        assert payload["totals"] == {"traces": 8, "errorTraces": 2, "slowTraces": 3, "timeouts": 2}
        assert payload["slowest"][0]["durationMs"] == 5200

    @pytest.mark.asyncio
    async def test_deploys_stub_at_window_midpoint(self, ctx):
        payload = (await DeploysCollector(SAFE).collect(ctx)).artifact.payload
        assert len(payload["deploys"]) == 1
        assert payload["deploys"][0]["ts"] == "2024-01-01T12:15:00+00:00"
        assert payload["deploys"][0]["service"] == "checkout"

    @pytest.mark.asyncio
    async def test_config_stub_sorted_by_key(self, ctx):
        payload = (await ConfigDiffCollector(SAFE).collect(ctx)).artifact.payload
        keys = [d["key"] for d in payload["diffs"]]
        assert keys == sorted(keys)
        assert {"DB_POOL_SIZE", "FEATURE_FLAG_X"} <= set(keys)

    @pytest.mark.asyncio
    async def test_stub_output_is_deterministic(self, ctx):
        first = await TracesCollector(SAFE).collect(ctx)
        second = await TracesCollector(SAFE).collect(ctx)
        assert first.artifact == second.artifact


class TestFaultIsolation:
    @pytest.mark.asyncio
    async def test_failure_yields_none(self, ctx):
        assert await ExplodingLogs(SAFE).collect(ctx) is None

    @pytest.mark.asyncio
    async def test_real_backend_error_yields_none(self, ctx):
        loki = LokiClient("http://loki.test")
        loki._http = httpx.AsyncClient(
            base_url="http://loki.test", transport=httpx.MockTransport(lambda request: httpx.Response(503))
        )
        collector = LogsCollector(CollectorModeResolver(safe_mode=False), loki)
        assert collector.mode == CollectorMode.REAL
        assert await collector.collect(ctx) is None
        await collector.close()


class TestRealMode:
    @pytest.mark.asyncio
    async def test_loki_streams_are_grouped(self, ctx):
        seen = {}

        def handler(request):
            seen["query"] = request.url.params["query"]
            seen["limit"] = request.url.params["limit"]
            return httpx.Response(200, json={"data": {"result": [{
                "stream": {"level": "error"},
                "values": [
                    ["1", "request 1234 failed: timeout"],
                    ["2", "request 5678 failed: timeout"],
                ],
            }]}})

        loki = LokiClient("http://loki.test")
        loki._http = httpx.AsyncClient(base_url="http://loki.test", transport=httpx.MockTransport(handler))
        collector = LogsCollector(CollectorModeResolver(safe_mode=False), loki)

        result = await collector.collect(ctx.model_copy(update={"hints": ["service:checkout", "max_items:25"]}))
        assert result.mode == CollectorMode.REAL
        assert result.artifact.payload["topGroups"] == [{
            "signature": "request <num> failed: timeout",
            "count": 2,
            "level": "error",
            "sample": "request 1234 failed: timeout",
        }]
        assert 'service_name="checkout"' in seen["query"]
        assert seen["limit"] == "25"
        await collector.close()

    @pytest.mark.asyncio
    async def test_safe_mode_keeps_configured_backend_on_stub(self, ctx):
        loki = LokiClient("http://loki.test")
        collector = LogsCollector(SAFE, loki)
        result = await collector.collect(ctx)
        assert result.mode == CollectorMode.STUB
        await collector.close()


class TestHelpers:
    def test_log_signature_masks_variable_tokens(self):
        a = log_signature("User 42 hit 0xdeadbeef in 7b6c1f2e-1a2b-4c3d-8e9f-0a1b2c3d4e5f")
        b = log_signature("user 7 hit 0xcafe in 00000000-1111-2222-3333-444444444444")
        assert a == b == "user <num> hit <hex> in <uuid>"
        assert log_signature("") == "<empty>"

    def test_group_lines_orders_by_count_then_signature(self):
        lines = [{"line": "b failed"}, {"line": "a failed"}, {"line": "b failed"}]
        assert [g["signature"] for g in group_lines(lines)] == ["b failed", "a failed"]

    def test_summarize_traces_handles_missing_fields(self):
        summary = summarize_traces([{"traceID": "t1"}])
        assert summary["slowest"][0] == {
            "traceId": "t1", "rootService": "unknown", "rootName": "unknown", "durationMs": 0, "error": False,
        }


class TestRegistry:
    def test_lookup(self):
        registry = stub_registry()
        assert registry.get(EvidenceKind.LOGS).kind == EvidenceKind.LOGS
        assert registry.get("TRACES").kind == EvidenceKind.TRACES
        assert registry.get(EvidenceKind.GOOGLE_STATUS) is None
        assert registry.get("BOGUS") is None
        assert len(registry.kinds()) == 5
