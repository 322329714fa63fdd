"""Shared pytest fixtures for investigator tests."""

from datetime import datetime, timezone

import pytest

from investigator.audit.chain import AuditLog
from investigator.collectors.config_diff import ConfigDiffCollector
from investigator.collectors.deploys import DeploysCollector
from investigator.collectors.logs import LogsCollector
from investigator.collectors.metrics import MetricsCollector
from investigator.collectors.registry import CollectorRegistry
from investigator.collectors.traces import TracesCollector
from investigator.evidence.models import EvidenceArtifact, IncidentContext, TimeWindow
from investigator.investigation.service import InvestigationService
from investigator.policy.evidence_requests import EvidenceRequestPolicy
from investigator.policy.safe_mode import CollectorModeResolver, limits_for
from investigator.reasoning.models import ReasoningResult
from investigator.reasoning.reasoner import validate_response
from investigator.schema import PrimarySignal, SourceType
from investigator.store.memory import MemoryStore

CHAIN_ID = "test-chain"


class FakeReasoner:
    """Plays back a script of responses (dicts) or exceptions; the last entry repeats."""

    def __init__(self, script):
        self.script = list(script)
        self.requests = []

    async def reason(self, request):
        self.requests.append(request)
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        parsed = {"model": "fake-model", **item}
        response = validate_response(parsed, request)
        return ReasoningResult(response=response, request=request, system_prompt="system", user_prompt="user")


def make_response(confidence, signal="LATENCY", requests=()):
    return {
        "hypotheses": [
            {
                "id": "UNKNOWN",
                "title": "Unknown / insufficient evidence",
                "confidence": confidence,
                "rationale": "Evidence so far is inconclusive.",
                "evidenceRefs": [],
            }
        ],
        "explainability": {
            "primarySignal": signal,
            "latencyFactor": 0.6,
            "errorFactor": 0.2,
            "rationale": "p95 latency rose during the incident window.",
        },
        "missingEvidenceRequests": list(requests),
        "overallConfidence": confidence,
    }


def make_artifact(kind, mode="REAL", artifact_id=None, payload=None):
    body = {"completeness": {"mode": mode, "notes": []}} if payload is None else payload
    return EvidenceArtifact(
        kind=kind,
        artifact_id=artifact_id or f"{kind}:v1:test",
        title=f"{kind} artifact",
        summary=f"Summary of {kind}",
        payload=body,
    )


def stub_registry(safe_mode=True):
    resolver = CollectorModeResolver(safe_mode)
    return CollectorRegistry([
        MetricsCollector(resolver),
        LogsCollector(resolver),
        TracesCollector(resolver),
        DeploysCollector(resolver),
        ConfigDiffCollector(resolver),
    ])


def make_service(store, reasoner, registry=None, safe_mode=True):
    audit = AuditLog(store, CHAIN_ID)
    policy = EvidenceRequestPolicy(limits_for(safe_mode))
    return InvestigationService(store, audit, reasoner, registry or stub_registry(safe_mode), policy)


@pytest.fixture
def window():
    return TimeWindow(
        start=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
        end=datetime(2024, 1, 1, 12, 30, tzinfo=timezone.utc),
    )


@pytest.fixture
def incident(window):
    return IncidentContext(
        incident_id="inc-1",
        source_type=SourceType.SCENARIO,
        window=window,
        hints=("service:checkout", "env:production"),
        primary_signal=PrimarySignal.UNKNOWN,
    )


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def audit(store):
    return AuditLog(store, CHAIN_ID)
