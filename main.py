#!/usr/bin/env python3
"""
forge: FastAPI service running prompt-to-project pipelines and sandbox jobs.
Pipeline runs go through a durable queue drained by an in-process worker pool.
"""
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request

from app.api.metrics import router as metrics_router
from app.api.pipeline import router as pipeline_router
from app.api.sandbox import router as sandbox_router
from app.core.config import Settings, get_settings
from app.core.logging import setup_logging
from app.core.request_logging import RequestLoggingMiddleware
from app.core.services import Services, build_services
from app.llm.client import DisabledGenerator

logger = logging.getLogger(__name__)

LISTEN_HOST = os.environ.get("LISTEN_HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8000"))
VERSION = "1.0.0"


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """
    Build the application. Services are created when the app starts, unless
    prebuilt ones are passed in (tests).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal settings
        settings = settings or (services.settings if services else get_settings())
        setup_logging(settings.log_level)

        app.state.services = services or build_services(settings)
        queue = app.state.services.queue
        # Runs left active by a previous process get delivered again
        queue.requeue_stale()
        queue.cleanup_finished()
        app.state.services.workers.start()
        logger.info(f"service_started version={VERSION}")
        try:
            yield
        finally:
            await app.state.services.workers.stop()
            await app.state.services.sandbox.shutdown()
            logger.info("service_stopped")

    app = FastAPI(
        title="forge",
        description="Pipeline orchestration and sandboxed job execution",
        version=VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(pipeline_router)
    app.include_router(sandbox_router)
    app.include_router(metrics_router)

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok"}

    @app.get("/meta")
    def meta(request: Request):
        """Service metadata useful for diagnostics."""
        services: Services = request.app.state.services
        return {
            "version": VERSION,
            "listen_host": LISTEN_HOST,
            "port": PORT,
            "workers": services.settings.workers,
            "sandbox_engine": services.settings.sandbox_engine,
            "llm_enabled": not isinstance(services.generator, DisabledGenerator),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=LISTEN_HOST, port=PORT)
