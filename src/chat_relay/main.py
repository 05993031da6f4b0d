"""Main entry point for the chat relay service."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from chat_relay.api.v1 import (
    conversations_router,
    messages_router,
    push_router,
    queue_router,
    system_router,
)
from chat_relay.core.errors import NotFoundError, ValidationError
from chat_relay.core.settings import settings
from chat_relay.db.session import create_tables
from chat_relay.services.delivery import get_delivery_channel
from chat_relay.services.pipeline import get_pipeline
from chat_relay.services.retry_worker import RetrySweepWorker, get_retry_worker

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Chat Relay API",
    description="Offline-first message delivery and retry pipeline",
    version=settings.app_version,
)

app.include_router(conversations_router, prefix="/api/v1")
app.include_router(messages_router, prefix="/api/v1")
app.include_router(push_router, prefix="/api/v1")
app.include_router(queue_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)}
    )


@app.on_event("startup")
async def on_startup() -> None:
    logging.basicConfig(level=settings.log_level.upper())
    create_tables()
    await get_pipeline().initialize(push_token=settings.push_token)

    if settings.retry_sweep_enabled:
        worker = get_retry_worker()
        await worker.start()
        app.state.retry_worker = worker
    else:
        app.state.retry_worker = None
    logger.info("Messaging service initialized")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    worker: RetrySweepWorker | None = getattr(app.state, "retry_worker", None)
    if worker:
        await worker.stop()
    await get_delivery_channel().close()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("chat_relay.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
