from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.tracker.api.routes import router
from backend.tracker.dependencies import (
    get_clock,
    get_database,
    get_registry,
    get_settings,
    get_stats_provider,
    get_telemetry,
)
from backend.tracker.logging_config import configure_application_logging
from backend.tracker.models.channel_contracts import HealthResponse
from backend.tracker.repositories.database import StoreUnavailableError
from backend.tracker.services.channel_registry import (
    ChannelAlreadyTrackedError,
    InvalidChannelUrlError,
)
from backend.tracker.services.scheduler_service import SnapshotScheduler
from backend.tracker.services.stats_provider import (
    ChannelNotFoundError,
    ProviderNotConfiguredError,
    ProviderUnavailableError,
)

LOGGER = logging.getLogger("channel_tracker.api")


def health_check() -> HealthResponse:
    try:
        database_connected = get_database().is_available()
    except StoreUnavailableError:
        database_connected = False
    return HealthResponse(
        status="ok",
        api_key_configured=get_stats_provider().configured,
        database_connected=database_connected,
    )


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_application_logging(settings)
    if not settings.youtube_api_key:
        LOGGER.warning("CHANNEL_TRACKER_YOUTUBE_API_KEY is not set; channel lookups will fail")

    scheduler: SnapshotScheduler | None = None
    if settings.scheduler_enabled:
        scheduler = SnapshotScheduler(
            registry=get_registry(),
            clock=get_clock(),
            poll_interval_seconds=settings.scheduler_poll_interval_seconds,
            telemetry=get_telemetry(),
            lock_path=settings.data_dir / "scheduler.lock",
        )
        scheduler.start()

    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.stop()


def _error_response(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


async def _handle_validation_error(_: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    messages: list[str] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = str(error.get("msg", "invalid value"))
        messages.append(f"{location}: {message}" if location else message)
    return _error_response(400, "; ".join(messages) or "Invalid request")


async def _handle_invalid_url(_: Request, exc: Exception) -> JSONResponse:
    return _error_response(400, str(exc))


async def _handle_channel_not_found(_: Request, exc: Exception) -> JSONResponse:
    LOGGER.info("channel lookup returned no match: %s", exc)
    return _error_response(404, "Channel not found")


async def _handle_already_tracked(_: Request, exc: Exception) -> JSONResponse:
    return _error_response(409, str(exc))


async def _handle_provider_not_configured(_: Request, exc: Exception) -> JSONResponse:
    LOGGER.error("stats provider is not configured: %s", exc)
    return _error_response(500, str(exc))


async def _handle_provider_unavailable(_: Request, exc: Exception) -> JSONResponse:
    LOGGER.error("stats provider request failed", exc_info=exc)
    return _error_response(502, "Failed to fetch channel data from YouTube API")


async def _handle_store_unavailable(_: Request, exc: Exception) -> JSONResponse:
    LOGGER.error("channel store unavailable", exc_info=exc)
    return _error_response(503, "Database not connected")


def create_app() -> FastAPI:
    app = FastAPI(title="Channel Tracker API", version="0.1.0", lifespan=app_lifespan)

    async def request_context_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        telemetry = get_telemetry()
        incoming_request_id = request.headers.get("X-Request-ID")
        request_id = (
            incoming_request_id.strip()
            if isinstance(incoming_request_id, str) and incoming_request_id.strip()
            else str(uuid4())
        )
        context_tokens = bind_contextvars(
            http_request_id=request_id,
            http_method=request.method,
            http_path=request.url.path,
        )
        started_at = perf_counter()
        telemetry.emit(
            "http.request.start",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        try:
            response = await call_next(request)
        except Exception as exc:
            telemetry.emit(
                "http.request.error",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                duration_ms=int((perf_counter() - started_at) * 1000),
                error_type=type(exc).__name__,
            )
            raise
        else:
            response.headers["X-Request-ID"] = request_id
            telemetry.emit(
                "http.request.finish",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                duration_ms=int((perf_counter() - started_at) * 1000),
                status_code=response.status_code,
            )
            return response
        finally:
            reset_contextvars(**context_tokens)

    app.middleware("http")(request_context_middleware)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(InvalidChannelUrlError, _handle_invalid_url)
    app.add_exception_handler(ChannelNotFoundError, _handle_channel_not_found)
    app.add_exception_handler(ChannelAlreadyTrackedError, _handle_already_tracked)
    app.add_exception_handler(ProviderNotConfiguredError, _handle_provider_not_configured)
    app.add_exception_handler(ProviderUnavailableError, _handle_provider_unavailable)
    app.add_exception_handler(StoreUnavailableError, _handle_store_unavailable)
    app.include_router(router)
    app.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        response_model=HealthResponse,
        tags=["system"],
        operation_id="health_check",
    )

    return app


app = create_app()
