"""Shared enums and the camelCase wire base model used by every record."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Snake_case in Python, camelCase on the wire and in hash inputs."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def wire(self, **kwargs) -> dict:
        return self.model_dump(mode="json", by_alias=True, **kwargs)


class SourceType(str, Enum):
    SCENARIO = "SCENARIO"
    GOOGLE_CLOUD = "GOOGLE_CLOUD"


class PrimarySignal(str, Enum):
    LATENCY = "LATENCY"
    ERRORS = "ERRORS"
    UNKNOWN = "UNKNOWN"


class EvidenceKind(str, Enum):
    METRICS = "METRICS"
    LOGS = "LOGS"
    TRACES = "TRACES"
    DEPLOYS = "DEPLOYS"
    CONFIG = "CONFIG"
    GOOGLE_STATUS = "GOOGLE_STATUS"


class Priority(str, Enum):
    P0 = "P0"
    P1 = "P1"
    P2 = "P2"


PRIORITY_RANK = {Priority.P0: 0, Priority.P1: 1, Priority.P2: 2}


class CollectorMode(str, Enum):
    REAL = "REAL"
    STUB = "STUB"
