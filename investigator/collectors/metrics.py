"""Metrics collector — PromQL range queries summarized into baseline vs incident halves."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import httpx

from investigator.collectors.base import BaseCollector, CollectContext, completeness, window_dict
from investigator.evidence.models import TimeWindow
from investigator.policy.safe_mode import CollectorModeResolver
from investigator.schema import CollectorMode, EvidenceKind

logger = logging.getLogger("investigator.collectors")

STEP_SECONDS = 60
MAX_POINTS = 600

Point = tuple[datetime, float]


class PrometheusClient:
    def __init__(self, base_url: str, timeout: float = 15.0) -> None:
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def close(self) -> None:
        await self._http.aclose()

    async def range_query(
        self,
        promql: str,
        start: datetime,
        end: datetime,
        step: str = f"{STEP_SECONDS}s",
    ) -> list[Point]:
        """Execute a PromQL range query and return the first series' points."""
        resp = await self._http.get("/api/v1/query_range", params={
            "query": promql,
            "start": start.timestamp(),
            "end": end.timestamp(),
            "step": step,
        })
        resp.raise_for_status()
        body = resp.json()

        if body.get("status") != "success":
            logger.warning("PromQL range query failed: %s — %s", promql, body.get("error"))
            return []

        result = body["data"]["result"]
        if not result:
            return []
        return [
            (datetime.fromtimestamp(float(ts), tz=timezone.utc), float(value))
            for ts, value in result[0].get("values", [])
        ]


def _avg(points: list[Point], start: datetime, end: datetime) -> float:
    values = [v for ts, v in points if start <= ts <= end]
    return sum(values) / len(values) if values else 0.0


def summarize_signal(points: list[Point], window: TimeWindow) -> dict:
    midpoint = window.start + (window.end - window.start) / 2
    baseline = _avg(points, window.start, midpoint)
    incident = _avg(points, midpoint, window.end)
    return {
        "baseline": round(baseline, 4),
        "incident": round(incident, 4),
        "delta": round(incident - baseline, 4),
    }


def _series(name: str, points: list[Point]) -> dict:
    return {
        "name": name,
        "points": [{"ts": ts.isoformat(), "value": round(v, 4)} for ts, v in points[:MAX_POINTS]],
    }


class MetricsCollector(BaseCollector):
    kind = EvidenceKind.METRICS
    title = "Metrics Summary"

    def __init__(self, resolver: CollectorModeResolver, prometheus: PrometheusClient | None = None) -> None:
        super().__init__(resolver)
        self._prometheus = prometheus

    @property
    def configured_mode(self) -> CollectorMode:
        return CollectorMode.REAL if self._prometheus else CollectorMode.STUB

    async def close(self) -> None:
        if self._prometheus:
            await self._prometheus.close()

    def _queries(self, service: str | None) -> dict[str, str]:
        matchers = [f'service="{service}"'] if service else []
        selector = "{" + ",".join(matchers) + "}" if matchers else ""
        errors = "{" + ",".join(['status_code=~"5.."'] + matchers) + "}"
        return {
            "latencyP95Ms": (
                "1000 * histogram_quantile(0.95, sum(rate("
                f"http_request_duration_seconds_bucket{selector}[5m])) by (le))"
            ),
            "errorRate": (
                f"sum(rate(http_requests_total{errors}[5m]))"
                f" / sum(rate(http_requests_total{selector}[5m]))"
            ),
            "rps": f"sum(rate(http_requests_total{selector}[5m]))",
        }

    async def _collect_real(self, ctx: CollectContext) -> dict:
        series: dict[str, list[Point]] = {}
        for name, promql in self._queries(ctx.hint("service")).items():
            series[name] = await self._prometheus.range_query(promql, ctx.window.start, ctx.window.end)
        return self._summary(ctx.window, series, CollectorMode.REAL)

    def _collect_stub(self, ctx: CollectContext) -> dict:
        window = ctx.window
        midpoint = window.start + (window.end - window.start) / 2
        series: dict[str, list[Point]] = {"latencyP95Ms": [], "errorRate": [], "rps": []}
        ts = window.start
        while ts <= window.end and len(series["rps"]) < MAX_POINTS:
            degraded = ts >= midpoint
            series["latencyP95Ms"].append((ts, 300.0 if degraded else 120.0))
            series["errorRate"].append((ts, 0.05 if degraded else 0.01))
            series["rps"].append((ts, 130.0 if degraded else 100.0))
            ts += timedelta(seconds=STEP_SECONDS)
        return self._summary(
            window, series, CollectorMode.STUB,
            "Metrics backend not configured or blocked by safe mode; returning synthetic series.",
        )

    def _summary(self, window: TimeWindow, series: dict[str, list[Point]], mode: CollectorMode, *notes: str) -> dict:
        return {
            "kind": "METRICS_SUMMARY_V1",
            "window": window_dict(window),
            "stepSeconds": STEP_SECONDS,
            "signals": {name: summarize_signal(points, window) for name, points in series.items()},
            "series": [_series(name, points) for name, points in series.items()],
            "completeness": completeness(mode, *notes),
        }

    def describe(self, ctx: CollectContext, payload: dict) -> str:
        signals = payload["signals"]
        return (
            f"Metrics for incident {ctx.incident_id} ({payload['completeness']['mode']} mode): "
            f"p95 latency {signals['latencyP95Ms']['baseline']:.0f}ms -> {signals['latencyP95Ms']['incident']:.0f}ms, "
            f"error rate {signals['errorRate']['baseline']:.2%} -> {signals['errorRate']['incident']:.2%}, "
            f"rps {signals['rps']['baseline']:.0f} -> {signals['rps']['incident']:.0f}"
        )
