from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
import uvicorn

from playground.bridge.api import router as bridge_router
from playground.bridge.bridge import ComputeBridge
from playground.bridge.engine import engine_factory_from_settings
from playground.core.errors import (
    AuthorizationError,
    CancellationError,
    EngineInitError,
    ShareError,
    TransportError,
)
from playground.core.settings import Settings, load_settings
from playground.share.api import router as share_router
from playground.share.service import ShareService
from playground.share.store import InMemoryShareStore, RedisShareStore, ShareStore

logger = logging.getLogger(__name__)


def create_store(settings: Settings) -> ShareStore:
    if settings.redis_url:
        logger.info("Using Redis share store")
        return RedisShareStore.from_url(settings.redis_url, ttl_seconds=settings.redis_ttl_seconds)
    logger.info("Using in-memory share store (dev mode)")
    return InMemoryShareStore()


def create_app(share_service: ShareService, bridge: Optional[ComputeBridge] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        if app.state.bridge is not None:
            await app.state.bridge.close()

    app = FastAPI(title="Overlay Playground API", lifespan=lifespan)
    app.state.share_service = share_service
    app.state.bridge = bridge

    app.include_router(share_router)
    if bridge is not None:
        app.include_router(bridge_router)

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.exception_handler(ShareError)
    async def share_error_handler(request: Request, exc: ShareError) -> PlainTextResponse | JSONResponse:
        if isinstance(exc, AuthorizationError):
            # Same body whether or not anything exists behind the request.
            return PlainTextResponse("Unauthorized", status_code=HTTPStatus.FORBIDDEN)
        if exc.status >= HTTPStatus.INTERNAL_SERVER_ERROR:
            logger.error("Share failure on %s %s: %s", request.method, request.url.path, exc)
            return JSONResponse({"error": exc.detail}, status_code=exc.status)
        return JSONResponse({"error": exc.detail, "message": str(exc)}, status_code=exc.status)

    @app.exception_handler(CancellationError)
    async def cancellation_handler(request: Request, exc: CancellationError) -> JSONResponse:
        return JSONResponse({"error": "superseded", "message": str(exc)}, status_code=HTTPStatus.CONFLICT)

    @app.exception_handler(TransportError)
    async def transport_error_handler(request: Request, exc: TransportError) -> JSONResponse:
        if isinstance(exc, EngineInitError):
            return JSONResponse(
                {"error": "engine_unavailable", "message": exc.cause}, status_code=HTTPStatus.SERVICE_UNAVAILABLE
            )
        return JSONResponse({"error": "engine_error", "message": exc.cause}, status_code=HTTPStatus.BAD_GATEWAY)

    return app


def build_app(settings: Settings) -> FastAPI:
    service = ShareService.from_settings(settings, create_store(settings))
    bridge = None
    if settings.engine_handlers:
        bridge = ComputeBridge(engine_factory_from_settings(settings), call_timeout=settings.engine_call_timeout)
    return create_app(service, bridge)


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    settings = load_settings()
    logger.info("Starting overlay playground API (env=%s)", settings.env)
    logger.info("Allowed share origins: %s %s", settings.allowed_origin, list(settings.production_hosts))
    uvicorn.run(build_app(settings), host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
