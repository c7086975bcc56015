"""
Application factory and process wiring.

create_app() assembles the FastAPI app: exception handlers that turn every
failure into an ErrorResponse body, the request-id middleware, CORS, the
API router and the service/metrics endpoints. The lifespan owns the
long-lived services that routes reach through ``app.state``.
"""

import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from namegen.api.routes import router
from namegen.config import settings
from namegen.db.session import close_engine, get_engine
from namegen.models.domain import AppError
from namegen.observability import get_logger, metrics, setup_logging, setup_tracing
from namegen.observability.logging import log_context
from namegen.observability.tracing import instrument_fastapi, instrument_sqlalchemy
from namegen.services.cache import create_cache, shutdown_cache
from namegen.services.creem_provider import CreemProvider
from namegen.services.error_classifier import (
    classify,
    create_error,
    error_type_for_status,
    status_code_for,
    to_error_response,
    validation_error,
)
from namegen.services.pdf_renderer import create_renderer, shutdown_renderer
from namegen.services.product_catalog import build_catalog

REQUEST_ID_HEADER = "X-Request-ID"
UNMATCHED_ROUTE = "unmatched"

setup_logging()
logger = get_logger(__name__)


# ============================================================================
# Lifespan
# ============================================================================


def _start_services(app: FastAPI) -> None:
    state = app.state
    state.cache = create_cache(settings.cache_sweep_interval_seconds)
    state.renderer = create_renderer()
    state.catalog = build_catalog(settings)
    state.payment_provider = None
    if settings.creem_configured:
        state.payment_provider = CreemProvider(
            api_key=settings.creem_api_key,
            api_url=settings.creem_api_url,
            base_url=settings.base_url,
            timeout=settings.checkout_timeout_seconds,
        )
    if settings.database_url:
        instrument_sqlalchemy(get_engine())


async def _stop_services(app: FastAPI) -> None:
    state = app.state
    if state.payment_provider is not None:
        await state.payment_provider.close()
    await shutdown_renderer(state.renderer)
    await shutdown_cache(state.cache)
    await close_engine()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "namegen_api_starting",
        version=settings.api_version,
        environment=settings.environment,
        creem_configured=settings.creem_configured,
        tracing_enabled=settings.tracing_enabled,
    )
    for problem in settings.config_errors:
        logger.warning("config_incomplete", problem=problem)

    _start_services(app)
    try:
        yield
    finally:
        logger.info("namegen_api_stopping")
        await _stop_services(app)
        logger.info("namegen_api_stopped")


# ============================================================================
# Error responses
# ============================================================================


def _error_json(
    request: Request,
    app_error: AppError,
    status_code: int,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = to_error_response(
        app_error,
        getattr(request.state, "request_id", None),
        include_details=not settings.is_production,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, mode="json"),
        headers=headers,
    )


def _describe_validation_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Field locations and messages only; raw input values stay out of logs."""
    described = []
    for error in exc.errors():
        entry: dict[str, Any] = {key: error.get(key) for key in ("type", "loc", "msg")}
        if error.get("ctx"):
            entry["ctx"] = {name: str(value) for name, value in error["ctx"].items()}
        described.append(entry)
    return described


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = _describe_validation_errors(exc)
    logger.warning("request_rejected", path=request.url.path, errors=errors)
    app_error = validation_error("Please check your input and try again.", details=errors)
    return _error_json(request, app_error, 400)


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """401 from the auth dependencies, 404/405 from routing."""
    app_error = create_error(
        error_type_for_status(exc.status_code),
        str(exc.detail),
        code=f"HTTP_{exc.status_code}",
    )
    return _error_json(request, app_error, exc.status_code, getattr(exc, "headers", None))


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    app_error = classify(exc)
    metrics.record_error(app_error.type.value, request.url.path)
    logger.error(
        "unhandled_route_error",
        path=request.url.path,
        error_type=app_error.type.value,
        severity=app_error.severity.value,
        error=app_error.message,
        exc_info=True,
    )
    return _error_json(request, app_error, status_code_for(app_error.type))


# ============================================================================
# Request id and HTTP metrics
# ============================================================================


def _route_label(request: Request) -> str:
    """Matched route template, so ``/api/x/{id}`` is one series and probes are one more."""
    route = request.scope.get("route")
    return getattr(route, "path", UNMATCHED_ROUTE)


async def request_context_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    request.state.request_id = request_id
    method = request.method
    in_flight = metrics.http_requests_in_progress.labels(method=method)

    with log_context(request_id=request_id):
        started = time.perf_counter()
        in_flight.inc()
        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed = time.perf_counter() - started
            metrics.record_http_request(_route_label(request), method, 500, elapsed)
            logger.error("request_crashed", method=method, path=request.url.path, error=str(exc))
            raise
        finally:
            in_flight.dec()

        elapsed = time.perf_counter() - started
        route = _route_label(request)
        metrics.record_http_request(route, method, response.status_code, elapsed)
        logger.info(
            "request_served",
            method=method,
            route=route,
            status_code=response.status_code,
            duration_seconds=round(elapsed, 4),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


# ============================================================================
# Service endpoints
# ============================================================================


async def service_info(request: Request) -> dict[str, Any]:
    renderer = getattr(request.app.state, "renderer", None)
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "status": "running",
        "pdf_renderer": None if renderer is None else renderer.status(),
    }


async def prometheus_metrics() -> Response:
    return PlainTextResponse(generate_latest())


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description=settings.api_description,
        lifespan=lifespan,
    )

    application.add_exception_handler(RequestValidationError, handle_validation_error)
    application.add_exception_handler(StarletteHTTPException, handle_http_exception)
    application.add_exception_handler(Exception, handle_unexpected_error)

    setup_tracing()
    instrument_fastapi(application)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.base_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER, "Content-Disposition"],
    )
    application.middleware("http")(request_context_middleware)

    application.include_router(router)
    application.add_api_route("/", service_info, methods=["GET"])
    application.add_api_route("/metrics", prometheus_metrics, methods=["GET"])
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "namegen.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=not settings.is_production,
        log_level=settings.log_level.lower(),
    )
