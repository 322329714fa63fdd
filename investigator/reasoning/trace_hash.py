"""Hashes that make a reasoning call reproducible and comparable across runs."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from investigator.evidence.hashing import hash_object, sha256_hex


def hash_prompt_parts(system: str, user: str) -> str:
    return sha256_hex(system + "\n---\n" + user)


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    return value


def hash_request(request: Any) -> str:
    return hash_object(_plain(request))


def hash_response(response: Any) -> str:
    return hash_object(_plain(response))
