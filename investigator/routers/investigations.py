"""Session status and bundle read endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from investigator.errors import SessionNotFound
from investigator.evidence.redaction import redact_bundle
from investigator.routers.deps import get_runtime
from investigator.runtime import Runtime

router = APIRouter(tags=["investigations"])


@router.get("/investigations/{session_id}")
async def get_investigation(session_id: str, runtime: Runtime = Depends(get_runtime)):
    try:
        view = await runtime.service.get_session_status(session_id)
    except SessionNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return view.wire()


@router.get("/bundles/{bundle_id}")
async def get_bundle(bundle_id: str, runtime: Runtime = Depends(get_runtime)):
    """Bundle contents with secrets masked in artifact payloads."""
    bundle = await runtime.store.get_bundle(bundle_id)
    if bundle is None:
        raise HTTPException(status_code=404, detail=f"Evidence bundle not found: {bundle_id}")
    return redact_bundle(bundle)
