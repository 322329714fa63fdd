"""Config collector — runtime configuration changes from a change-feed endpoint."""

from __future__ import annotations

import logging
from datetime import datetime

import httpx

from investigator.collectors.base import BaseCollector, CollectContext, completeness, window_dict
from investigator.evidence.models import TimeWindow
from investigator.policy.safe_mode import CollectorModeResolver
from investigator.schema import CollectorMode, EvidenceKind

logger = logging.getLogger("investigator.collectors")

MAX_DIFFS = 100
CHANGE_TYPES = ("ADDED", "REMOVED", "UPDATED")


class ConfigChangeClient:
    """Reads ``[{key, before, after, changeType, ts}]`` from a change feed."""

    def __init__(self, url: str, timeout: float = 15.0) -> None:
        self._url = url
        self._http = httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._http.aclose()

    async def fetch_changes(self, start: datetime, end: datetime, service: str | None = None) -> list[dict]:
        params = {"start": start.isoformat(), "end": end.isoformat()}
        if service:
            params["service"] = service
        resp = await self._http.get(self._url, params=params)
        resp.raise_for_status()
        body = resp.json()
        return body.get("changes", []) if isinstance(body, dict) else body


def _change_type(before, after) -> str:
    if before is None:
        return "ADDED"
    if after is None:
        return "REMOVED"
    return "UPDATED"


class ConfigDiffCollector(BaseCollector):
    kind = EvidenceKind.CONFIG
    title = "Config Diff Summary"

    def __init__(self, resolver: CollectorModeResolver, changes: ConfigChangeClient | None = None) -> None:
        super().__init__(resolver)
        self._changes = changes

    @property
    def configured_mode(self) -> CollectorMode:
        return CollectorMode.REAL if self._changes else CollectorMode.STUB

    async def close(self) -> None:
        if self._changes:
            await self._changes.close()

    async def _collect_real(self, ctx: CollectContext) -> dict:
        raw = await self._changes.fetch_changes(ctx.window.start, ctx.window.end, ctx.hint("service"))
        diffs = []
        for item in raw:
            before, after = item.get("before"), item.get("after")
            change_type = str(item.get("changeType") or "").upper()
            diffs.append({
                "key": str(item.get("key")),
                "before": before,
                "after": after,
                "changeType": change_type if change_type in CHANGE_TYPES else _change_type(before, after),
            })
        return self._summary(ctx.window, diffs, CollectorMode.REAL)

    def _collect_stub(self, ctx: CollectContext) -> dict:
        service = ctx.hint("service") or ""
        diffs = []
        for i in range(len(service) % 3 + 1):
            change_type = ("ADDED", "UPDATED", "UPDATED")[i % 3]
            diffs.append({
                "key": f"CONFIG_{i + 1}",
                "before": None if change_type == "ADDED" else "old_value",
                "after": "new_value",
                "changeType": change_type,
            })
        diffs.append({"key": "DB_POOL_SIZE", "before": "10", "after": "20", "changeType": "UPDATED"})
        diffs.append({"key": "FEATURE_FLAG_X", "before": None, "after": "enabled", "changeType": "ADDED"})
        return self._summary(
            ctx.window, diffs, CollectorMode.STUB,
            "Config change feed not configured or blocked by safe mode; returning synthetic diffs.",
        )

    def _summary(self, window: TimeWindow, diffs: list[dict], mode: CollectorMode, *notes: str) -> dict:
        ordered = sorted(diffs, key=lambda d: d["key"])[:MAX_DIFFS]
        return {
            "kind": "CONFIG_DIFF_SUMMARY_V1",
            "window": window_dict(window),
            "diffs": ordered,
            "completeness": completeness(mode, *notes),
        }

    def describe(self, ctx: CollectContext, payload: dict) -> str:
        keys = ", ".join(d["key"] for d in payload["diffs"][:5]) or "none"
        return (
            f"Config changes for incident {ctx.incident_id} "
            f"({payload['completeness']['mode']} mode, {len(payload['diffs'])} diffs): {keys}"
        )
