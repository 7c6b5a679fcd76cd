"""FastAPI application for the H2N Forum signaling service."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, Response

from .core.config import settings
from .routers import rooms as rooms_router
from .routers import signaling as signaling_router
from .services.events import SignalingHub

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "%s starting (%s); allowed origins: %s",
        settings.service_name,
        settings.app_env,
        ", ".join(settings.cors_allow_origins) or "none",
    )
    try:
        yield
    finally:
        await app.state.hub.shutdown()


def create_app(hub: SignalingHub | None = None) -> FastAPI:
    """Build the application around one ``SignalingHub`` that lives as long as it does."""

    app = FastAPI(title="H2N Forum Signaling API", version="0.1.0", lifespan=lifespan)
    app.state.hub = hub if hub is not None else SignalingHub()

    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(signaling_router.router, tags=["signaling"])
    app.include_router(rooms_router.router, prefix="/api/rooms", tags=["rooms"])

    @app.get("/api/health", tags=["meta"])
    async def health(request: Request) -> dict[str, Any]:
        """Simple liveness probe."""

        current: SignalingHub = request.app.state.hub
        return {"status": "ok", "service": settings.service_name, "rooms": len(current.registry)}

    @app.head("/api/health", tags=["meta"])
    async def health_head() -> Response:
        """Allow HEAD for uptime monitors that only need the status code."""

        return Response(status_code=200)

    @app.get("/robots.txt", response_class=PlainTextResponse, include_in_schema=False)
    async def robots() -> PlainTextResponse:
        """Serve a minimal robots.txt to avoid 404 noise."""

        return PlainTextResponse("User-agent: *\nDisallow:")

    return app


app = create_app()
