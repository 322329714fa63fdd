"""Collector registry — one collector per evidence kind, built from settings."""

from __future__ import annotations

from investigator.collectors.base import BaseCollector
from investigator.collectors.config_diff import ConfigChangeClient, ConfigDiffCollector
from investigator.collectors.deploys import DeploysCollector, GitHubDeploysClient
from investigator.collectors.logs import LokiClient, LogsCollector
from investigator.collectors.metrics import MetricsCollector, PrometheusClient
from investigator.collectors.traces import TempoClient, TracesCollector
from investigator.config import Settings
from investigator.policy.safe_mode import CollectorModeResolver
from investigator.schema import EvidenceKind


class CollectorRegistry:
    def __init__(self, collectors: list[BaseCollector]) -> None:
        self._by_kind: dict[EvidenceKind, BaseCollector] = {c.kind: c for c in collectors}

    def get(self, kind: EvidenceKind | str) -> BaseCollector | None:
        try:
            return self._by_kind.get(EvidenceKind(kind))
        except ValueError:
            return None

    def kinds(self) -> list[EvidenceKind]:
        return list(self._by_kind)

    async def close(self) -> None:
        for collector in self._by_kind.values():
            await collector.close()


def build_collectors(settings: Settings, resolver: CollectorModeResolver) -> CollectorRegistry:
    """Wire each collector to its backend client when that backend is configured."""
    timeout = settings.backend_timeout_seconds

    prometheus = PrometheusClient(settings.prometheus_url, timeout) if settings.prometheus_url else None
    loki = LokiClient(settings.loki_url, timeout) if settings.loki_url else None
    tempo = TempoClient(settings.tempo_url, timeout) if settings.tempo_url else None
    github = (
        GitHubDeploysClient(settings.github_api_url, settings.github_token, settings.github_repo, timeout)
        if settings.github_token and settings.github_repo
        else None
    )
    changes = ConfigChangeClient(settings.config_changes_url, timeout) if settings.config_changes_url else None

    return CollectorRegistry([
        MetricsCollector(resolver, prometheus),
        LogsCollector(resolver, loki),
        TracesCollector(resolver, tempo),
        DeploysCollector(resolver, github),
        ConfigDiffCollector(resolver, changes),
    ])
