"""Traces collector — Tempo search summarized into slow, failing and timed-out traces."""

from __future__ import annotations

import logging
from datetime import datetime

import httpx

from investigator.collectors.base import BaseCollector, CollectContext, completeness, window_dict
from investigator.evidence.models import TimeWindow
from investigator.policy.safe_mode import CollectorModeResolver
from investigator.schema import CollectorMode, EvidenceKind

logger = logging.getLogger("investigator.collectors")

DEFAULT_LIMIT = 50
SLOW_TRACE_MS = 1000
TIMEOUT_TRACE_MS = 5000
MAX_SLOWEST = 10


class TempoClient:
    def __init__(self, base_url: str, timeout: float = 15.0) -> None:
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def close(self) -> None:
        await self._http.aclose()

    async def search(self, tags: str, start: datetime, end: datetime, limit: int = DEFAULT_LIMIT) -> list[dict]:
        """Search for traces matching tags within a time window."""
        params: dict = {
            "start": str(int(start.timestamp())),
            "end": str(int(end.timestamp())),
            "limit": limit,
        }
        if tags:
            params["tags"] = tags

        resp = await self._http.get("/api/search", params=params)
        resp.raise_for_status()
        return resp.json().get("traces", [])


def summarize_traces(traces: list[dict]) -> dict:
    """Reduce Tempo search hits to counts and the slowest traces."""
    normalized = []
    for t in traces:
        duration = int(t.get("durationMs") or 0)
        status = str(t.get("status") or "").lower()
        normalized.append({
            "traceId": str(t.get("traceID") or t.get("traceId") or ""),
            "rootService": t.get("rootServiceName") or "unknown",
            "rootName": t.get("rootTraceName") or "unknown",
            "durationMs": duration,
            "error": status == "error" or bool(t.get("error")),
        })
    slowest = sorted(normalized, key=lambda t: (-t["durationMs"], t["traceId"]))[:MAX_SLOWEST]
    return {
        "totals": {
            "traces": len(normalized),
            "errorTraces": sum(1 for t in normalized if t["error"]),
            "slowTraces": sum(1 for t in normalized if t["durationMs"] >= SLOW_TRACE_MS),
            "timeouts": sum(1 for t in normalized if t["durationMs"] >= TIMEOUT_TRACE_MS),
        },
        "slowest": slowest,
    }


class TracesCollector(BaseCollector):
    kind = EvidenceKind.TRACES
    title = "Traces Summary"

    def __init__(self, resolver: CollectorModeResolver, tempo: TempoClient | None = None) -> None:
        super().__init__(resolver)
        self._tempo = tempo

    @property
    def configured_mode(self) -> CollectorMode:
        return CollectorMode.REAL if self._tempo else CollectorMode.STUB

    async def close(self) -> None:
        if self._tempo:
            await self._tempo.close()

    async def _collect_real(self, ctx: CollectContext) -> dict:
        service = ctx.hint("service")
        tags = f"service.name={service}" if service else ""
        traces = await self._tempo.search(
            tags, ctx.window.start, ctx.window.end, limit=ctx.max_items(DEFAULT_LIMIT)
        )
        return self._summary(ctx.window, traces, CollectorMode.REAL)

    def _collect_stub(self, ctx: CollectContext) -> dict:
        service = ctx.hint("service") or "api"
        traces = [
            {"traceID": f"stub-{i:04d}", "rootServiceName": service, "rootTraceName": "GET /checkout",
             "durationMs": ms, "status": "error" if ms >= TIMEOUT_TRACE_MS else "ok"}
            for i, ms in enumerate((5200, 5100, 1800, 950, 420, 380, 210, 190))
        ]
        return self._summary(
            ctx.window, traces, CollectorMode.STUB,
            "Tracing backend not configured or blocked by safe mode; returning synthetic traces.",
        )

    def _summary(self, window: TimeWindow, traces: list[dict], mode: CollectorMode, *notes: str) -> dict:
        return {
            "kind": "TRACES_SUMMARY_V1",
            "window": window_dict(window),
            **summarize_traces(traces),
            "completeness": completeness(mode, *notes),
        }

    def describe(self, ctx: CollectContext, payload: dict) -> str:
        totals = payload["totals"]
        return (
            f"Traces for incident {ctx.incident_id} ({payload['completeness']['mode']} mode): "
            f"{totals['traces']} traces, {totals['errorTraces']} with errors, "
            f"{totals['slowTraces']} slower than {SLOW_TRACE_MS}ms, {totals['timeouts']} timeouts"
        )
