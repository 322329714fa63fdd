"""Prometheus metrics and logging setup for the investigator process."""

import logging
import sys

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

_JSON_FORMAT = (
    '{"timestamp":"%(asctime)s","level":"%(levelname)s",'
    '"logger":"%(name)s","message":"%(message)s"}'
)

investigations_started = Counter(
    "investigator_investigations_started_total",
    "Investigation sessions started",
)

sessions_finished = Counter(
    "investigator_sessions_finished_total",
    "Investigation sessions that reached a terminal state",
    labelnames=["status"],
)

iterations_total = Counter(
    "investigator_iterations_total",
    "Investigation loop iterations recorded",
)

iteration_duration = Histogram(
    "investigator_iteration_duration_seconds",
    "Duration of one investigation loop iteration",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

policy_rejections = Counter(
    "investigator_policy_rejections_total",
    "Evidence requests rejected by the policy gate",
    labelnames=["code"],
)

collector_runs = Counter(
    "investigator_collector_runs_total",
    "Collector invocations",
    labelnames=["kind", "mode", "outcome"],
)

reasoning_failures = Counter(
    "investigator_reasoning_failures_total",
    "Reasoning calls that failed or were rejected",
    labelnames=["code"],
)

audit_append_failures = Counter(
    "investigator_audit_append_failures_total",
    "Audit events that could not be appended",
)


def get_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    logging.basicConfig(level=level, format=_JSON_FORMAT, stream=sys.stdout)
    return logging.getLogger("investigator")
