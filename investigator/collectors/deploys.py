"""Deploys collector — deployment events from the GitHub deployments API."""

from __future__ import annotations

import logging
from datetime import datetime

import httpx

from investigator.collectors.base import BaseCollector, CollectContext, completeness, window_dict
from investigator.evidence.models import TimeWindow
from investigator.policy.safe_mode import CollectorModeResolver
from investigator.schema import CollectorMode, EvidenceKind

logger = logging.getLogger("investigator.collectors")

MAX_DEPLOYS = 200


class GitHubDeploysClient:
    def __init__(self, base_url: str, token: str, repo: str, timeout: float = 15.0) -> None:
        self._repo = repo
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
            },
        )

    async def close(self) -> None:
        await self._http.aclose()

    async def list_deployments(self, environment: str | None = None, per_page: int = 100) -> list[dict]:
        params: dict = {"per_page": per_page}
        if environment:
            params["environment"] = environment
        resp = await self._http.get(f"/repos/{self._repo}/deployments", params=params)
        resp.raise_for_status()
        return resp.json()


def _parse_ts(raw: str) -> datetime | None:
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None


class DeploysCollector(BaseCollector):
    kind = EvidenceKind.DEPLOYS
    title = "Deployments Summary"

    def __init__(self, resolver: CollectorModeResolver, github: GitHubDeploysClient | None = None) -> None:
        super().__init__(resolver)
        self._github = github

    @property
    def configured_mode(self) -> CollectorMode:
        return CollectorMode.REAL if self._github else CollectorMode.STUB

    async def close(self) -> None:
        if self._github:
            await self._github.close()

    async def _collect_real(self, ctx: CollectContext) -> dict:
        raw = await self._github.list_deployments(environment=ctx.hint("env"))
        events = []
        for d in raw:
            ts = _parse_ts(d.get("created_at", ""))
            if ts is None or not (ctx.window.start <= ts <= ctx.window.end):
                continue
            events.append({
                "id": str(d.get("id")),
                "ts": ts.isoformat(),
                "system": "GITHUB",
                "service": ctx.hint("service"),
                "environment": d.get("environment"),
                "version": d.get("ref"),
                "commitSha": d.get("sha"),
                "actor": (d.get("creator") or {}).get("login"),
                "description": d.get("description") or "",
            })
        return self._summary(ctx.window, events, CollectorMode.REAL)

    def _collect_stub(self, ctx: CollectContext) -> dict:
        midpoint = ctx.window.start + (ctx.window.end - ctx.window.start) / 2
        event = {
            "id": f"stub-deploy-{int(midpoint.timestamp())}",
            "ts": midpoint.isoformat(),
            "system": "UNKNOWN",
            "service": ctx.hint("service"),
            "environment": "production",
            "version": "v1.0.0",
            "commitSha": None,
            "actor": "system",
            "description": "Stub deployment event (real deploy source not configured)",
        }
        return self._summary(
            ctx.window, [event], CollectorMode.STUB,
            "Deploy source not configured or blocked by safe mode; returning a synthetic deployment.",
        )

    def _summary(self, window: TimeWindow, events: list[dict], mode: CollectorMode, *notes: str) -> dict:
        ordered = sorted(events, key=lambda e: (e["ts"], e["id"]))[:MAX_DEPLOYS]
        return {
            "kind": "DEPLOYS_SUMMARY_V1",
            "window": window_dict(window),
            "deploys": ordered,
            "completeness": completeness(mode, *notes),
        }

    def describe(self, ctx: CollectContext, payload: dict) -> str:
        deploys = payload["deploys"]
        latest = f"; latest {deploys[-1]['version']} at {deploys[-1]['ts']}" if deploys else ""
        return (
            f"Deployment events for incident {ctx.incident_id} "
            f"({payload['completeness']['mode']} mode, {len(deploys)} events){latest}"
        )
