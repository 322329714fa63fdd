"""Safe mode — one posture flag that tightens policy bounds and collector modes.

The flag is resolved once from settings and handed to the policy gate and the
collector mode resolver at construction time.
"""

from __future__ import annotations

import logging
from typing import Iterable

from investigator.policy.models import PolicyLimits
from investigator.schema import CollectorMode, EvidenceKind

logger = logging.getLogger("investigator.policy")

SAFE_LIMITS = PolicyLimits(max_window_hours=2, max_items=50, max_needs_per_iteration=1)
DEFAULT_LIMITS = PolicyLimits(max_window_hours=6, max_items=200, max_needs_per_iteration=2)


def limits_for(safe_mode: bool) -> PolicyLimits:
    return SAFE_LIMITS if safe_mode else DEFAULT_LIMITS


class CollectorModeResolver:
    """Decides whether a collector may talk to its real backend."""

    def __init__(self, safe_mode: bool, real_allowlist: Iterable[str] = ()) -> None:
        self.safe_mode = safe_mode
        self._real_allowlist = {k.upper() for k in real_allowlist}

    def is_real_allowlisted(self, kind: EvidenceKind) -> bool:
        return kind.value in self._real_allowlist

    def resolve(self, kind: EvidenceKind, configured: CollectorMode) -> CollectorMode:
        """Outside safe mode the collector's own configuration wins; in safe
        mode REAL is only kept for explicitly allowlisted kinds."""
        if configured == CollectorMode.STUB:
            return CollectorMode.STUB
        if self.safe_mode and not self.is_real_allowlisted(kind):
            logger.debug("Safe mode forces STUB for %s collector", kind.value)
            return CollectorMode.STUB
        return CollectorMode.REAL
