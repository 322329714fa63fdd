"""Policy gate for evidence requests.

Every request is checked in order, stopping at the first failed rule:
schema, need allowlist, window bounds and ordering, window size, item cap.
Survivors are deduplicated by need (highest priority wins) and then capped per
iteration. Every rejection carries a code and a reason; nothing is dropped
silently.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable

from pydantic import ValidationError

from investigator.evidence.models import TimeWindow
from investigator.policy.models import (
    EvidenceRequest,
    PolicyLimits,
    PolicyResult,
    RejectedRequest,
    RejectionCode,
)
from investigator.schema import PRIORITY_RANK, EvidenceKind
from investigator.telemetry import policy_rejections

logger = logging.getLogger("investigator.policy")

ALLOWED_NEEDS = frozenset(k.value for k in EvidenceKind)


class _Rejected(Exception):
    def __init__(self, code: RejectionCode, reason: str) -> None:
        super().__init__(reason)
        self.code = code
        self.reason = reason


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


class EvidenceRequestPolicy:
    def __init__(self, limits: PolicyLimits) -> None:
        self.limits = limits

    def _parse(self, raw: Any) -> EvidenceRequest:
        if isinstance(raw, EvidenceRequest):
            return raw
        try:
            return EvidenceRequest.model_validate(raw)
        except ValidationError as exc:
            raise _Rejected(
                RejectionCode.INVALID_SCHEMA,
                f"Invalid schema: {exc.error_count()} error(s): {exc.errors()[0]['msg']}",
            ) from exc

    def _check(self, request: EvidenceRequest, window: TimeWindow) -> None:
        if request.need not in ALLOWED_NEEDS:
            raise _Rejected(RejectionCode.NEED_NOT_ALLOWED, f"Need '{request.need}' not in allowlist")

        scope = request.scope
        if scope and (scope.window_start or scope.window_end):
            start = _aware(scope.window_start) if scope.window_start else window.start
            end = _aware(scope.window_end) if scope.window_end else window.end

            if start < window.start or end > window.end:
                raise _Rejected(
                    RejectionCode.WINDOW_OUT_OF_BOUNDS,
                    f"Time window outside session bounds: {start.isoformat()} to {end.isoformat()}",
                )
            if start >= end:
                raise _Rejected(RejectionCode.INVALID_WINDOW, "Invalid time window: start must be before end")

            hours = (end - start).total_seconds() / 3600
            if hours > self.limits.max_window_hours:
                raise _Rejected(
                    RejectionCode.WINDOW_TOO_LARGE,
                    f"Time window of {hours:.2f}h exceeds maximum {self.limits.max_window_hours:g} hours",
                )

        if scope and scope.max_items is not None:
            if scope.max_items < 1 or scope.max_items > self.limits.max_items:
                raise _Rejected(
                    RejectionCode.MAX_ITEMS_TOO_HIGH,
                    f"maxItems must be between 1 and {self.limits.max_items}, got {scope.max_items}",
                )

    def evaluate(self, requests: Iterable[Any], session_window: TimeWindow) -> PolicyResult:
        rejected: list[RejectedRequest] = []
        by_need: dict[str, EvidenceRequest] = {}

        def reject(request: Any, code: RejectionCode, reason: str) -> None:
            payload = request.wire() if isinstance(request, EvidenceRequest) else request
            rejected.append(RejectedRequest(request=payload, reason=reason, code=code))
            logger.info("Evidence request rejected: code=%s reason=%s", code.value, reason)
            policy_rejections.labels(code=code.value).inc()

        for raw in requests:
            try:
                request = self._parse(raw)
                self._check(request, session_window)
            except _Rejected as rej:
                reject(raw, rej.code, rej.reason)
                continue

            held = by_need.get(request.need)
            if held is None:
                by_need[request.need] = request
            elif PRIORITY_RANK[request.priority] < PRIORITY_RANK[held.priority]:
                by_need[request.need] = request
                reject(held, RejectionCode.DUPLICATE_NEED,
                       f"Superseded by a {request.priority.value} request for {request.need}")
            else:
                reject(request, RejectionCode.DUPLICATE_NEED,
                       f"Duplicate request for {request.need}; {held.priority.value} request kept")

        candidates = sorted(by_need.values(), key=lambda r: PRIORITY_RANK[r.priority])
        cap = self.limits.max_needs_per_iteration
        approved = candidates[:cap]
        for request in candidates[cap:]:
            reject(request, RejectionCode.PER_ITERATION_LIMIT_EXCEEDED,
                   f"Per-iteration limit of {cap} evidence need(s) reached")

        return PolicyResult(approved=approved, rejected=rejected)
