"""Postmortem, explainability graph and analysis compare read endpoints."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse

from investigator.errors import AnalysisNotFound, IncidentNotFound, SessionNotFound
from investigator.reporting.models import Postmortem
from investigator.reporting.postmortem import render_postmortem_markdown
from investigator.routers.deps import get_runtime
from investigator.runtime import Runtime

router = APIRouter(tags=["reports"])

NOT_FOUND = (IncidentNotFound, AnalysisNotFound, SessionNotFound)


def _render(postmortem: Postmortem, fmt: str):
    if fmt == "markdown":
        return PlainTextResponse(render_postmortem_markdown(postmortem), media_type="text/markdown")
    return postmortem.wire()


@router.get("/incidents/{incident_id}/analyses/{analysis_id}/postmortem")
async def get_postmortem(
    incident_id: str,
    analysis_id: str,
    format: Literal["json", "markdown"] = "json",
    runtime: Runtime = Depends(get_runtime),
):
    try:
        postmortem = await runtime.reporting.postmortem(incident_id, analysis_id)
    except NOT_FOUND as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return _render(postmortem, format)


@router.get("/investigations/{session_id}/postmortem")
async def get_session_postmortem(
    session_id: str,
    format: Literal["json", "markdown"] = "json",
    runtime: Runtime = Depends(get_runtime),
):
    """Postmortem of the most recent analysis the session produced."""
    try:
        postmortem = await runtime.reporting.session_postmortem(session_id)
    except NOT_FOUND as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return _render(postmortem, format)


@router.get("/incidents/{incident_id}/analyses/{analysis_id}/explainability-graph")
async def get_explainability_graph(incident_id: str, analysis_id: str, runtime: Runtime = Depends(get_runtime)):
    try:
        graph = await runtime.reporting.explainability_graph(incident_id, analysis_id)
    except NOT_FOUND as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return graph.wire()


@router.get("/incidents/{incident_id}/analyses/{analysis_a}/compare/{analysis_b}")
async def compare_analyses(
    incident_id: str, analysis_a: str, analysis_b: str, runtime: Runtime = Depends(get_runtime)
):
    try:
        result = await runtime.reporting.compare(incident_id, analysis_a, analysis_b)
    except NOT_FOUND as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return result.wire()
