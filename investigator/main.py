"""Incident Investigator — FastAPI service entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from investigator.config import settings
from investigator.routers import incidents, investigations, metrics, reports
from investigator.runtime import Runtime, build_runtime
from investigator.store.redis_store import RedisStore
from investigator.telemetry import setup_logging

logger = logging.getLogger("investigator")


def create_app(runtime: Runtime | None = None) -> FastAPI:
    """Build the app. A prebuilt runtime is used as-is and not closed on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = runtime is None
        logger.info("Initializing Incident Investigator...")

        rt = runtime or build_runtime(settings)
        if isinstance(rt.store, RedisStore):
            await rt.store.ping()
            logger.info("Redis connected: %s", rt.settings.redis_url)
        app.state.runtime = rt

        logger.info(
            "%s ready — listening on %s:%d (safe_mode=%s)",
            rt.settings.service_name, rt.settings.host, rt.settings.port, rt.settings.safe_mode,
        )

        yield

        if owned:
            await rt.close()
        logger.info("Incident Investigator shut down")

    app = FastAPI(
        title="Incident Investigator",
        description="Autonomous, auditable incident investigation",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.include_router(incidents.router)
    app.include_router(investigations.router)
    app.include_router(reports.router)
    app.include_router(metrics.router)

    @app.get("/health")
    async def health():
        rt: Runtime | None = getattr(app.state, "runtime", None)
        return {
            "status": "healthy",
            "service": rt.settings.service_name if rt else None,
            "store": rt.settings.store_backend if rt else None,
            "safe_mode": rt.settings.safe_mode if rt else None,
            "collectors": [k.value for k in rt.registry.kinds()] if rt else [],
        }

    return app


setup_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("investigator.main:app", host=settings.host, port=settings.port)
