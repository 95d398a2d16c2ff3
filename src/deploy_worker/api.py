"""HTTP control surface: liveness probe and manual poll trigger."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from deploy_worker import __version__
from deploy_worker.service import DeploymentWorker

logger = logging.getLogger(__name__)


def create_app(worker: DeploymentWorker, *, start_polling: bool = True) -> FastAPI:
    """Build the app; the scheduler follows the app lifespan."""

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if start_polling:
            worker.scheduler.start()
        try:
            yield
        finally:
            logger.info("Shutting down, draining in-flight work...")
            await run_in_threadpool(worker.shutdown)

    app = FastAPI(title="Deployment Worker", version=__version__, lifespan=lifespan)

    @app.get("/health")
    def health() -> dict[str, object]:
        return {"status": "healthy", "polling": worker.scheduler.is_running}

    @app.post("/trigger")
    def trigger() -> JSONResponse:
        try:
            result = worker.poller.poll_once()
        except Exception as error:
            logger.exception("Manual poll cycle failed")
            return JSONResponse(status_code=500, content={"error": str(error)})
        return JSONResponse(content={"success": True, "message": result.message})

    return app
