"""Key-based redaction of sensitive values in evidence payloads."""

from __future__ import annotations

import re
from typing import Any

from investigator.evidence.models import EvidenceBundle

REDACTED = "[REDACTED]"
MAX_DEPTH_MARKER = "[MAX_DEPTH_REACHED]"

_SENSITIVE_KEYS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"token",
        r"authorization",
        r"cookie",
        r"api[_-]?key",
        r"password",
        r"secret",
        r"credential",
        r"auth[_-]?header",
    )
]


def is_sensitive_key(key: str) -> bool:
    return any(p.search(key) for p in _SENSITIVE_KEYS)


def redact_sensitive_keys(value: Any, depth: int = 0, max_depth: int = 5) -> Any:
    if depth > max_depth:
        return MAX_DEPTH_MARKER
    if isinstance(value, list):
        return [redact_sensitive_keys(v, depth + 1, max_depth) for v in value]
    if isinstance(value, dict):
        out = {}
        for key, item in value.items():
            if is_sensitive_key(str(key)):
                out[key] = REDACTED
            elif isinstance(item, (dict, list)):
                out[key] = redact_sensitive_keys(item, depth + 1, max_depth)
            else:
                out[key] = item
        return out
    return value


def redact_bundle(bundle: EvidenceBundle) -> dict:
    """Wire form of a bundle with artifact payloads redacted.

    The bundle id still refers to the unredacted content.
    """
    data = bundle.wire()
    for artifact in data.get("artifacts", []):
        if isinstance(artifact.get("payload"), dict):
            artifact["payload"] = redact_sensitive_keys(artifact["payload"])
    return data
