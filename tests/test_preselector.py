"""Tests for the hypothesis catalog and candidate preselection."""

from datetime import datetime, timedelta, timezone

from investigator.collectors.base import CollectContext
from investigator.collectors.deploys import DeploysCollector
from investigator.collectors.logs import LogsCollector
from investigator.collectors.traces import TracesCollector
from investigator.evidence.bundle import build_evidence_bundle
from investigator.evidence.models import TimeWindow
from investigator.hypothesis.catalog import CATALOG_BY_ID, HYPOTHESIS_CATALOG, UNKNOWN_ID, is_catalog_id
from investigator.hypothesis.models import Capabilities, SignalFlags
from investigator.hypothesis.preselector import (
    capabilities_from_bundle,
    flags_from_bundle,
    select_hypothesis_candidates,
    trigger_tags,
)
from investigator.policy.safe_mode import CollectorModeResolver
from investigator.schema import PrimarySignal, SourceType


class TestCatalog:
    def test_declaration_order(self):
        assert [h.id for h in HYPOTHESIS_CATALOG] == [
            "DB_QUERY_REGRESSION",
            "CONFIG_REGRESSION",
            "DEPLOY_BUG",
            "DOWNSTREAM_OUTAGE",
            "CAPACITY_SATURATION",
            "NETWORK_DNS_ISSUE",
            "CACHE_MISS_STORM",
            "RATE_LIMIT_THROTTLING",
            "AUTH_OIDC_ISSUE",
            "UNKNOWN",
        ]

    def test_lookup(self):
        assert is_catalog_id("DEPLOY_BUG")
        assert not is_catalog_id("MADE_UP")
        assert CATALOG_BY_ID[UNKNOWN_ID].triggers == ("low_completeness",)


class TestTriggerTags:
    def test_tags_from_signal_capabilities_and_flags(self):
        tags = trigger_tags(
            PrimarySignal.ERRORS, 30, Capabilities(google_status=True), SignalFlags(config_changed=True)
        )
        assert tags == {"error_spike", "errors_up", "google_cloud_incident", "config_changed", "low_completeness"}


class TestSelectCandidates:
    def test_latency_after_deploy_ranks_db_regression_first(self):
        candidates = select_hypothesis_candidates(
            PrimarySignal.LATENCY,
            80,
            Capabilities(metrics=True, traces=True, deploys=True),
            SignalFlags(recent_deploy=True, timeouts=True),
        )
        assert candidates[0] == "DB_QUERY_REGRESSION"
        assert candidates[-1] == UNKNOWN_ID
        assert len(candidates) <= 8

    def test_nothing_known_yields_only_unknown(self):
        assert select_hypothesis_candidates(PrimarySignal.UNKNOWN, 80, Capabilities(), SignalFlags()) == [UNKNOWN_ID]

    def test_unknown_not_duplicated_when_scored(self):
        candidates = select_hypothesis_candidates(PrimarySignal.UNKNOWN, 10, Capabilities(), SignalFlags())
        assert candidates == [UNKNOWN_ID]

    def test_ties_keep_catalog_order(self):
        candidates = select_hypothesis_candidates(
            PrimarySignal.UNKNOWN, 80, Capabilities(logs=True, traces=True), SignalFlags()
        )
        assert candidates == [
            "DEPLOY_BUG",
            "DOWNSTREAM_OUTAGE",
            "NETWORK_DNS_ISSUE",
            "DB_QUERY_REGRESSION",
            "CONFIG_REGRESSION",
            "CAPACITY_SATURATION",
            "CACHE_MISS_STORM",
            UNKNOWN_ID,
        ]

    def test_always_bounded_and_ends_with_unknown(self):
        everything = Capabilities(metrics=True, logs=True, traces=True, deploys=True, config=True, google_status=True)
        flags = SignalFlags(recent_deploy=True, config_changed=True, new_error_signature=True, timeouts=True)
        for signal in PrimarySignal:
            for score in (0, 39, 40, 100):
                candidates = select_hypothesis_candidates(signal, score, everything, flags)
                assert 1 <= len(candidates) <= 8
                assert UNKNOWN_ID in candidates
                assert len(set(candidates)) == len(candidates)


class TestFromBundle:
    def test_capabilities_and_flags_from_stub_evidence(self):
        start = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        ctx = CollectContext(incident_id="inc-1", window=TimeWindow(start=start, end=start + timedelta(minutes=30)))
        resolver = CollectorModeResolver(safe_mode=True)
        artifacts = [
            DeploysCollector(resolver)._to_artifact(ctx, DeploysCollector(resolver)._collect_stub(ctx)),
            LogsCollector(resolver)._to_artifact(ctx, LogsCollector(resolver)._collect_stub(ctx)),
            TracesCollector(resolver)._to_artifact(ctx, TracesCollector(resolver)._collect_stub(ctx)),
        ]
        bundle = build_evidence_bundle("inc-1", created_at=ctx.window.end, artifacts=artifacts)

        caps = capabilities_from_bundle(bundle, SourceType.SCENARIO)
        assert (caps.deploys, caps.logs, caps.traces, caps.metrics, caps.config) == (True, True, True, False, False)

        flags = flags_from_bundle(bundle)
        assert flags == SignalFlags(recent_deploy=True, config_changed=False, new_error_signature=True, timeouts=True)

    def test_no_bundle(self):
        assert capabilities_from_bundle(None, SourceType.GOOGLE_CLOUD) == Capabilities(google_status=True)
        assert flags_from_bundle(None) == SignalFlags()
