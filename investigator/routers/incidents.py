"""Incident registration, investigation start and audit verification."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field, ValidationError

from investigator.errors import IncidentNotFound
from investigator.evidence.models import IncidentContext, TimeWindow
from investigator.routers.deps import get_runtime
from investigator.runtime import Runtime
from investigator.schema import PrimarySignal, SourceType, WireModel

logger = logging.getLogger("investigator.api")
router = APIRouter(prefix="/incidents", tags=["incidents"])


class IncidentCreate(WireModel):
    incident_id: str | None = None
    source_type: SourceType = SourceType.SCENARIO
    window_start: datetime | None = None
    window_end: datetime | None = None
    hints: list[str] = []
    primary_signal: PrimarySignal = PrimarySignal.UNKNOWN
    external_evidence: dict[str, Any] | None = None


class InvestigationStart(WireModel):
    max_iterations: int | None = Field(default=None, ge=1, le=10)
    confidence_target: float | None = Field(default=None, ge=0.5, le=0.99)
    created_by: str | None = None


@router.post("", status_code=201)
async def register_incident(body: IncidentCreate, runtime: Runtime = Depends(get_runtime)):
    """Register what is known about an incident. Without a window, the last
    ``default_window_minutes`` up to now are used."""
    end = body.window_end or datetime.now(timezone.utc)
    start = body.window_start or end - timedelta(minutes=runtime.settings.default_window_minutes)
    try:
        incident = IncidentContext(
            incident_id=body.incident_id or uuid.uuid4().hex,
            source_type=body.source_type,
            window=TimeWindow(start=start, end=end),
            hints=tuple(body.hints),
            primary_signal=body.primary_signal,
            external_evidence=body.external_evidence,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=[e["msg"] for e in exc.errors()])

    await runtime.store.save_incident(incident)
    logger.info("Incident registered: id=%s source=%s", incident.incident_id, incident.source_type.value)
    return incident.wire()


@router.post("/{incident_id}/investigations", status_code=202)
async def start_investigation(
    incident_id: str,
    body: InvestigationStart | None = None,
    runtime: Runtime = Depends(get_runtime),
):
    body = body or InvestigationStart()
    try:
        session = await runtime.service.start_investigation(
            incident_id,
            max_iterations=body.max_iterations or runtime.settings.max_iterations,
            confidence_target=body.confidence_target or runtime.settings.confidence_target,
            created_by=body.created_by,
        )
    except IncidentNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return {"sessionId": session.session_id, "status": session.status.value}


@router.get("/{incident_id}/audit/verify")
async def verify_audit_chain(incident_id: str, runtime: Runtime = Depends(get_runtime)):
    if await runtime.store.get_incident(incident_id) is None:
        raise HTTPException(status_code=404, detail=str(IncidentNotFound(incident_id)))
    result = await runtime.verifier.verify_incident_chain(incident_id)
    return result.wire()
