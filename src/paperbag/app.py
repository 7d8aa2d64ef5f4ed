"""Paperbag HTTP API: app factory, lifespan and error rendering."""

import math
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from paperbag.api.routes import images, security
from paperbag.core.clock import now_ms
from paperbag.core.config import Settings, configure_logging
from paperbag.core.database import setup_db_session
from paperbag.services.container import build_services
from paperbag.services.exceptions import PaperbagError, RateLimited, UnknownError
from paperbag.uow import create_uow_factory
from paperbag.workers.cartoon_generation_worker import recover_orphaned_images

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire the database and services on startup, stop generation jobs on shutdown.

    Images left in 'processing' by a previous process are put back to
    'pending' before requests are served, since their jobs died with it.
    """
    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings)

    app.state.session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    app.state.uow_factory = create_uow_factory(app.state.session_factory)

    try:
        await recover_orphaned_images(app.state.uow_factory)
    except Exception as e:
        # Serve anyway; paperbag-recover-images can be run by hand
        logger.error("startup.recovery_failed", error=str(e), error_type=type(e).__name__)

    app.state.services = build_services(settings, app.state.uow_factory)
    logger.info("application.startup", database=settings.database_url.rsplit("@", 1)[-1])

    yield

    logger.info("application.shutdown")
    await app.state.services.scheduler.shutdown()


async def handle_paperbag_error(request: Request, exc: PaperbagError) -> JSONResponse:
    """Render service errors as `{"error": {...}}` with the error's HTTP status."""
    headers = None
    if isinstance(exc, RateLimited):
        # reset_time is epoch ms; Retry-After is whole seconds from now
        retry_after = max(0, math.ceil((exc.reset_time - now_ms()) / 1000))
        headers = {"Retry-After": str(retry_after)}
    return JSONResponse(
        status_code=exc.http_status,
        content={"error": exc.to_dict()},
        headers=headers,
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    """Hide internals of unexpected failures behind a generic error body."""
    logger.error(
        "request.unhandled_error",
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    error = UnknownError()
    return JSONResponse(status_code=error.http_status, content={"error": error.to_dict()})


async def health(request: Request, response: Response) -> dict:
    """Liveness plus a `SELECT 1` round trip; 503 when the database is unreachable."""
    try:
        async with request.app.state.session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("health.database_unreachable", error=str(e), error_type=type(e).__name__)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unhealthy", "error": {"type": type(e).__name__, "message": str(e)}}
    return {"status": "healthy"}


def create_app() -> FastAPI:
    settings = Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="Paperbag Backend API",
        description="Photo upload and cartoon transformation service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(PaperbagError, handle_paperbag_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, handle_unexpected_error)

    app.include_router(images.router)
    app.include_router(security.router)
    app.add_api_route("/health", health, methods=["GET"])
    return app


app = create_app()
