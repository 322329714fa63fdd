"""Logs collector — LogQL range query, lines grouped by a deterministic signature."""

from __future__ import annotations

import json
import logging
import re
from collections import Counter
from datetime import datetime

import httpx

from investigator.collectors.base import BaseCollector, CollectContext, completeness, window_dict
from investigator.evidence.models import TimeWindow
from investigator.policy.safe_mode import CollectorModeResolver
from investigator.schema import CollectorMode, EvidenceKind

logger = logging.getLogger("investigator.collectors")

DEFAULT_LIMIT = 200
MAX_GROUPS = 20

_UUID = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}")
_HEX = re.compile(r"\b0x[0-9a-f]+\b")
_NUM = re.compile(r"\b\d+(\.\d+)?\b")
_TOKEN = re.compile(r"\b[a-z0-9+/]{20,}={0,2}")
_SPACE = re.compile(r"\s+")
_LEVEL = re.compile(r"\b(debug|info|warn|warning|error|critical|fatal)\b", re.IGNORECASE)


def log_signature(message: str) -> str:
    """Mask variable tokens so lines from one code path share a signature."""
    s = (message or "").lower()
    s = _UUID.sub("<uuid>", s)
    s = _HEX.sub("<hex>", s)
    s = _NUM.sub("<num>", s)
    s = _TOKEN.sub("<token>", s)
    s = _SPACE.sub(" ", s).strip()
    return s[:300] or "<empty>"


def _level(line: str, labels: dict) -> str:
    if labels.get("level"):
        return str(labels["level"]).lower()
    try:
        parsed = json.loads(line)
        if isinstance(parsed, dict) and parsed.get("level"):
            return str(parsed["level"]).lower()
    except ValueError:
        pass
    match = _LEVEL.search(line)
    return match.group(1).lower() if match else "unknown"


def _message(line: str) -> str:
    try:
        parsed = json.loads(line)
        if isinstance(parsed, dict):
            return str(parsed.get("message") or parsed.get("msg") or line)
    except ValueError:
        pass
    return line


def group_lines(lines: list[dict]) -> list[dict]:
    """Group ``{"line", "labels"}`` entries by signature, largest groups first."""
    counts: Counter[str] = Counter()
    samples: dict[str, str] = {}
    levels: dict[str, str] = {}
    for entry in lines:
        message = _message(entry.get("line", ""))
        sig = log_signature(message)
        counts[sig] += 1
        samples.setdefault(sig, message[:500])
        levels.setdefault(sig, _level(entry.get("line", ""), entry.get("labels", {})))
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:MAX_GROUPS]
    return [
        {"signature": sig, "count": n, "level": levels[sig], "sample": samples[sig]}
        for sig, n in ranked
    ]


class LokiClient:
    def __init__(self, base_url: str, timeout: float = 15.0) -> None:
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def close(self) -> None:
        await self._http.aclose()

    async def query_range(self, logql: str, start: datetime, end: datetime, limit: int = DEFAULT_LIMIT) -> list[dict]:
        """Execute a LogQL range query and flatten the streams into lines."""
        resp = await self._http.get("/loki/api/v1/query_range", params={
            "query": logql,
            "start": str(int(start.timestamp() * 1e9)),
            "end": str(int(end.timestamp() * 1e9)),
            "limit": limit,
        })
        resp.raise_for_status()
        body = resp.json()

        lines = []
        for stream in body.get("data", {}).get("result", []):
            for ts, line in stream.get("values", []):
                lines.append({"timestamp": ts, "line": line, "labels": stream.get("stream", {})})
        return lines[:limit]


class LogsCollector(BaseCollector):
    kind = EvidenceKind.LOGS
    title = "Logs Summary"

    def __init__(self, resolver: CollectorModeResolver, loki: LokiClient | None = None) -> None:
        super().__init__(resolver)
        self._loki = loki

    @property
    def configured_mode(self) -> CollectorMode:
        return CollectorMode.REAL if self._loki else CollectorMode.STUB

    async def close(self) -> None:
        if self._loki:
            await self._loki.close()

    async def _collect_real(self, ctx: CollectContext) -> dict:
        service = ctx.hint("service")
        selector = f'{{service_name="{service}"}}' if service else '{service_name=~".+"}'
        logql = f'{selector} |~ "(?i)(error|exception|timeout|fatal)"'
        lines = await self._loki.query_range(
            logql, ctx.window.start, ctx.window.end, limit=ctx.max_items(DEFAULT_LIMIT)
        )
        return self._summary(ctx.window, lines, CollectorMode.REAL)

    def _collect_stub(self, ctx: CollectContext) -> dict:
        service = ctx.hint("service") or "api"
        lines = (
            [{"line": f"ERROR upstream request to {service}-db timeout after 5000 ms", "labels": {"level": "error"}}] * 12
            + [{"line": "ERROR connection pool exhausted (size=20)", "labels": {"level": "error"}}] * 5
            + [{"line": "WARN retrying request attempt 2", "labels": {"level": "warn"}}] * 3
        )
        return self._summary(
            ctx.window, lines, CollectorMode.STUB,
            "Logs backend not configured or blocked by safe mode; returning synthetic log groups.",
        )

    def _summary(self, window: TimeWindow, lines: list[dict], mode: CollectorMode, *notes: str) -> dict:
        groups = group_lines(lines)
        errors = sum(g["count"] for g in groups if g["level"] in ("error", "critical", "fatal"))
        return {
            "kind": "LOGS_SUMMARY_V1",
            "window": window_dict(window),
            "totals": {"lines": len(lines), "errorLines": errors, "groups": len(groups)},
            "topGroups": groups,
            "completeness": completeness(mode, *notes),
        }

    def describe(self, ctx: CollectContext, payload: dict) -> str:
        totals = payload["totals"]
        top = payload["topGroups"][0]["signature"] if payload["topGroups"] else "none"
        return (
            f"Logs for incident {ctx.incident_id} ({payload['completeness']['mode']} mode): "
            f"{totals['lines']} lines, {totals['errorLines']} error lines, "
            f"{totals['groups']} signature groups; top: {top}"
        )
