"""Static hypothesis catalog. Versioned with the engine, never mutated at runtime."""

from __future__ import annotations

from investigator.hypothesis.models import HypothesisCatalogEntry
from investigator.schema import EvidenceKind

CATALOG_VERSION = "v1"
UNKNOWN_ID = "UNKNOWN"

_M, _L, _T = EvidenceKind.METRICS, EvidenceKind.LOGS, EvidenceKind.TRACES
_D, _C, _G = EvidenceKind.DEPLOYS, EvidenceKind.CONFIG, EvidenceKind.GOOGLE_STATUS

HYPOTHESIS_CATALOG: tuple[HypothesisCatalogEntry, ...] = (
    HypothesisCatalogEntry(
        id="DB_QUERY_REGRESSION",
        title="Database query regression",
        description="A query plan change, missing index, or N+1 behavior caused latency and/or errors.",
        triggers=("latency_spike", "p95_up", "db_time_up", "timeouts", "recent_deploy"),
        requires=(_M, _T, _D),
    ),
    HypothesisCatalogEntry(
        id="CONFIG_REGRESSION",
        title="Configuration regression",
        description="A runtime config/feature flag/env change caused failure or degraded performance.",
        triggers=("config_changed", "error_spike", "recent_deploy"),
        requires=(_C, _D, _L),
    ),
    HypothesisCatalogEntry(
        id="DEPLOY_BUG",
        title="Deployment introduced a bug",
        description="A code change caused new errors/latency; correlates strongly with a deployment event.",
        triggers=("recent_deploy", "new_error_signature", "error_spike", "latency_spike"),
        requires=(_D, _L, _T),
    ),
    HypothesisCatalogEntry(
        id="DOWNSTREAM_OUTAGE",
        title="Downstream dependency outage",
        description="An external or internal downstream service is degraded/unavailable, causing cascading failures.",
        triggers=("errors_up", "timeouts", "google_cloud_incident"),
        requires=(_T, _L, _G),
    ),
    HypothesisCatalogEntry(
        id="CAPACITY_SATURATION",
        title="Capacity saturation / resource exhaustion",
        description="CPU/memory/connections are saturated leading to queueing, latency, and errors.",
        triggers=("rps_up", "latency_spike", "errors_up"),
        requires=(_M, _L),
    ),
    HypothesisCatalogEntry(
        id="NETWORK_DNS_ISSUE",
        title="Network or DNS issue",
        description="Network connectivity problems, DNS resolution failures, or routing issues causing timeouts and errors.",
        triggers=("timeouts", "errors_up", "latency_spike"),
        requires=(_T, _L),
    ),
    HypothesisCatalogEntry(
        id="CACHE_MISS_STORM",
        title="Cache miss storm",
        description="Cache invalidation or miss storm causing increased load on downstream systems and latency spikes.",
        triggers=("latency_spike", "rps_up", "recent_deploy"),
        requires=(_M, _T),
    ),
    HypothesisCatalogEntry(
        id="RATE_LIMIT_THROTTLING",
        title="Rate limit or throttling",
        description="Rate limits or throttling mechanisms triggered, causing errors and degraded performance.",
        triggers=("errors_up", "rps_up", "timeouts"),
        requires=(_M, _L),
    ),
    HypothesisCatalogEntry(
        id="AUTH_OIDC_ISSUE",
        title="Authentication or OIDC issue",
        description="Authentication provider or OIDC service issues causing 401/403 errors and access failures.",
        triggers=("error_spike", "auth_errors", "google_cloud_incident"),
        requires=(_L, _G),
    ),
    HypothesisCatalogEntry(
        id=UNKNOWN_ID,
        title="Unknown / insufficient evidence",
        description="Evidence is incomplete or conflicting; more data is required to conclude.",
        triggers=("low_completeness",),
        requires=(),
    ),
)

CATALOG_BY_ID: dict[str, HypothesisCatalogEntry] = {h.id: h for h in HYPOTHESIS_CATALOG}


def is_catalog_id(hypothesis_id: str) -> bool:
    return hypothesis_id in CATALOG_BY_ID
