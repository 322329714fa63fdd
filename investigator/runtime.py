"""Process wiring — builds the store, collectors, policy and service from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from investigator.audit.chain import AuditLog
from investigator.audit.verify import AuditVerifier
from investigator.collectors.registry import CollectorRegistry, build_collectors
from investigator.config import Settings
from investigator.investigation.service import InvestigationService
from investigator.policy.evidence_requests import EvidenceRequestPolicy
from investigator.policy.safe_mode import CollectorModeResolver, limits_for
from investigator.reasoning.reasoner import LLMReasoner, Reasoner, build_llm
from investigator.reporting.service import ReportingService
from investigator.store.base import InvestigationStore
from investigator.store.memory import MemoryStore
from investigator.store.redis_store import RedisStore

logger = logging.getLogger("investigator")


@dataclass
class Runtime:
    settings: Settings
    store: InvestigationStore
    registry: CollectorRegistry
    audit: AuditLog
    verifier: AuditVerifier
    service: InvestigationService
    reporting: ReportingService

    async def close(self) -> None:
        await self.service.close()
        await self.registry.close()
        await self.store.close()


def build_store(settings: Settings) -> InvestigationStore:
    if settings.store_backend == "redis":
        return RedisStore.from_url(settings.redis_url)
    if settings.store_backend == "memory":
        return MemoryStore()
    raise ValueError(f"Unsupported store backend: {settings.store_backend}")


def build_runtime(
    settings: Settings,
    reasoner: Reasoner | None = None,
    store: InvestigationStore | None = None,
    registry: CollectorRegistry | None = None,
) -> Runtime:
    store = store or build_store(settings)
    resolver = CollectorModeResolver(settings.safe_mode, settings.real_allowlist)
    registry = registry or build_collectors(settings, resolver)
    policy = EvidenceRequestPolicy(limits_for(settings.safe_mode))
    if reasoner is None:
        reasoner = LLMReasoner(build_llm(settings), settings.llm_model, settings.reasoning_timeout_seconds)

    audit = AuditLog(store, settings.audit_chain_id)
    service = InvestigationService(
        store, audit, reasoner, registry, policy,
        max_concurrent=settings.max_concurrent_investigations,
    )
    logger.info(
        "Runtime built: store=%s safe_mode=%s real_allowlist=%s",
        settings.store_backend, settings.safe_mode, settings.real_allowlist,
    )
    return Runtime(
        settings=settings,
        store=store,
        registry=registry,
        audit=audit,
        verifier=AuditVerifier(store, settings.audit_chain_id),
        service=service,
        reporting=ReportingService(store),
    )
