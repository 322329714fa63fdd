"""Canonical hashing — stable identity for bundles, audit events and prompt traces."""

from __future__ import annotations

import hashlib
import json
from typing import Any

HASH_ALGO = "sha256"
HASH_INPUT_VERSION = "v1"


def canonicalize(value: Any) -> Any:
    """Recursively sort mapping keys; lists keep their order.

    Integral floats collapse to ints so ``1.0`` and ``1`` serialize the same
    way regardless of which runtime produced the value.
    """
    if isinstance(value, dict):
        return {str(k): canonicalize(value[k]) for k in sorted(value, key=str)}
    if isinstance(value, (list, tuple)):
        return [canonicalize(v) for v in value]
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def canonical_json(value: Any) -> str:
    return json.dumps(
        canonicalize(value),
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_object(value: Any) -> str:
    """SHA-256 hex digest of the canonical JSON form of ``value``."""
    return sha256_hex(canonical_json(value))
