"""Collector contract and the fault-isolating base every collector extends."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from pydantic import BaseModel

from investigator.evidence.models import ARTIFACT_KINDS, SOURCE_TAGS, EvidenceArtifact, TimeWindow
from investigator.policy.safe_mode import CollectorModeResolver
from investigator.schema import CollectorMode, EvidenceKind
from investigator.telemetry import collector_runs

logger = logging.getLogger("investigator.collectors")


class CollectContext(BaseModel):
    incident_id: str
    window: TimeWindow
    hints: list[str] = []

    def hint(self, prefix: str) -> str | None:
        """Value of the first ``prefix:value`` hint, if any."""
        for h in self.hints:
            if h.startswith(f"{prefix}:"):
                return h.split(":", 1)[1] or None
        return None

    def max_items(self, default: int) -> int:
        raw = self.hint("max_items")
        try:
            return max(1, int(raw)) if raw else default
        except ValueError:
            return default


class CollectorResult(BaseModel):
    artifact: EvidenceArtifact
    source_tag: str
    mode: CollectorMode


class BaseCollector(ABC):
    """Fetch, normalize and wrap one kind of evidence.

    ``collect`` never raises: a failing backend yields ``None`` so sibling
    collectors running in the same iteration are unaffected.
    """

    kind: EvidenceKind

    def __init__(self, resolver: CollectorModeResolver) -> None:
        self._resolver = resolver

    @property
    def configured_mode(self) -> CollectorMode:
        return CollectorMode.STUB

    @property
    def mode(self) -> CollectorMode:
        return self._resolver.resolve(self.kind, self.configured_mode)

    async def close(self) -> None:
        return None

    async def collect(self, ctx: CollectContext) -> CollectorResult | None:
        mode = self.mode
        try:
            if mode == CollectorMode.REAL:
                payload = await self._collect_real(ctx)
            else:
                payload = self._collect_stub(ctx)
            artifact = self._to_artifact(ctx, payload)
        except Exception:
            logger.exception(
                "Collector %s failed: incident=%s mode=%s", self.kind.value, ctx.incident_id, mode.value
            )
            collector_runs.labels(kind=self.kind.value, mode=mode.value, outcome="error").inc()
            return None

        collector_runs.labels(kind=self.kind.value, mode=mode.value, outcome="ok").inc()
        logger.info(
            "Collected %s evidence: incident=%s mode=%s artifact=%s",
            self.kind.value, ctx.incident_id, mode.value, artifact.artifact_id,
        )
        return CollectorResult(artifact=artifact, source_tag=SOURCE_TAGS[self.kind], mode=mode)

    def artifact_id(self, ctx: CollectContext) -> str:
        return (
            f"{ARTIFACT_KINDS[self.kind]}:v1:"
            f"{ctx.window.start.isoformat()}-{ctx.window.end.isoformat()}"
        )

    def _to_artifact(self, ctx: CollectContext, payload: dict) -> EvidenceArtifact:
        return EvidenceArtifact(
            kind=ARTIFACT_KINDS[self.kind],
            artifact_id=self.artifact_id(ctx),
            title=self.title,
            summary=self.describe(ctx, payload)[:4000],
            payload=payload,
        )

    @property
    @abstractmethod
    def title(self) -> str: ...

    @abstractmethod
    def describe(self, ctx: CollectContext, payload: dict) -> str: ...

    @abstractmethod
    async def _collect_real(self, ctx: CollectContext) -> dict: ...

    @abstractmethod
    def _collect_stub(self, ctx: CollectContext) -> dict: ...


def completeness(mode: CollectorMode, *notes: str) -> dict:
    return {"mode": mode.value, "notes": list(notes)}


def window_dict(window: TimeWindow) -> dict:
    return {"start": window.start.isoformat(), "end": window.end.isoformat()}
