"""Reasoning failures, tagged with a machine-readable code."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ReasoningErrorCode(str, Enum):
    MODEL_CALL_FAILED = "MODEL_CALL_FAILED"
    MODEL_OUTPUT_INVALID = "MODEL_OUTPUT_INVALID"
    MODEL_OUTPUT_EMPTY = "MODEL_OUTPUT_EMPTY"
    PROMPT_BUILD_FAILED = "PROMPT_BUILD_FAILED"


class ReasoningError(Exception):
    def __init__(
        self,
        message: str,
        code: ReasoningErrorCode,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        return f"{self.code.value}: {self.args[0]}"
