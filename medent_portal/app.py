"""
Medent Finance Portal - Main FastAPI Application.

Server-rendered admin and intake portal for medical-equipment lease and
payment financing. Every page is a thin layer over the financing REST API;
this module wires logging, tracing, middleware, error pages and routers.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
from urllib.parse import urlparse

from fastapi import FastAPI, Request
from fastapi.responses import Response
from fastapi.staticfiles import StaticFiles

from . import __version__
from .api_client import api_client
from .config import settings
from .exceptions import (
    ApiError,
    FormValidationError,
    ServiceUnavailableException,
    SessionExpiredError,
)
from .logging_config import get_logger, setup_logging
from .metrics import track_request_metrics, track_session_expired
from .middleware import (
    AuthGuardMiddleware,
    PerformanceMonitoringMiddleware,
    PrometheusMiddleware,
    RequestLoggingMiddleware,
    StaticFileCacheMiddleware,
    delete_auth_cookie,
)
from .routers import ROUTERS
from .services.external_http import close_external_http_client
from .tracing import configure_opentelemetry, instrument_fastapi
from .web import BASE_PATH, redirect, render

# Setup logging with structured format
use_json_logging = not settings.DEBUG
setup_logging(
    log_level=settings.LOG_LEVEL,
    service_name="medent-portal",
    use_json=use_json_logging,
)
logger = get_logger(__name__)

# Configure OpenTelemetry tracing
configure_opentelemetry(
    service_name="medent-portal",
    service_version=__version__,
    enable_tracing=settings.ENABLE_REQUEST_TRACING and not settings.DEBUG,
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Checks the financing API on startup and closes the shared HTTP clients
    on shutdown.
    """
    logger.info("=" * 80)
    logger.info("Starting Medent Finance Portal")
    logger.info("=" * 80)

    logger.info(
        "Configuration loaded",
        extra={
            "extra_fields": {
                "service_name": settings.APP_NAME,
                "debug_mode": settings.DEBUG,
                "log_level": settings.LOG_LEVEL,
                "api_base_url": settings.API_BASE_URL,
                "public_base_url": settings.PUBLIC_BASE_URL,
                "request_timeout": settings.REQUEST_TIMEOUT,
                "host": settings.HOST,
                "port": settings.PORT,
            }
        },
    )

    logger.info("Verifying financing API connectivity...")
    if await api_client.health_check():
        logger.info(
            "Financing API connectivity verified",
            extra={"extra_fields": {"api_base_url": settings.API_BASE_URL}},
        )
    else:
        logger.error(
            "Financing API is not responding",
            extra={
                "extra_fields": {
                    "api_base_url": settings.API_BASE_URL,
                    "impact": "Pages backed by the API will show errors",
                }
            },
        )

    logger.info("Portal startup complete")

    yield

    logger.info("Shutting down Medent Finance Portal")
    await api_client.close()
    await close_external_http_client()
    logger.info("HTTP clients closed")


app = FastAPI(
    title="Medent Finance Portal",
    description="Lease and payment financing portal",
    version=__version__,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# Add middleware (order matters - first added is last executed)
app.add_middleware(AuthGuardMiddleware)
app.add_middleware(StaticFileCacheMiddleware)
app.add_middleware(PerformanceMonitoringMiddleware, slow_request_threshold_ms=1000.0)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(PrometheusMiddleware, track_func=track_request_metrics)

instrument_fastapi(app)

app.mount("/static", StaticFiles(directory=str(BASE_PATH / "static")), name="static")

for router in ROUTERS:
    app.include_router(router)


def _same_site_referer(request: Request) -> str:
    """Path of the referring portal page, or empty when there is none."""
    referer = request.headers.get("referer")
    if not referer:
        return ""
    parsed = urlparse(referer)
    if parsed.netloc and parsed.netloc != request.url.netloc:
        return ""
    return parsed.path + (f"?{parsed.query}" if parsed.query else "")


@app.exception_handler(SessionExpiredError)
async def session_expired_handler(request: Request, exc: SessionExpiredError) -> Response:
    track_session_expired()
    logger.info(
        "Redirecting to login after session expiry",
        extra={"extra_fields": {"path": request.url.path}},
    )
    response = redirect("/login", exc.message, "error")
    delete_auth_cookie(response)
    return response


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> Response:
    """Show the API's message: as a toast on the previous page, or as an error page."""
    logger.warning(
        "API error surfaced to user",
        extra={
            "extra_fields": {
                "path": request.url.path,
                "status_code": exc.status_code,
                "error_message": exc.message,
            }
        },
    )
    back = _same_site_referer(request)
    if request.method != "GET" and back:
        return redirect(back, exc.message, "error")

    status_code = exc.status_code if exc.status_code and exc.status_code >= 400 else 502
    return render(
        request,
        "error.html",
        {"error_title": "エラーが発生しました", "error_message": exc.message},
        status_code=status_code,
    )


@app.exception_handler(FormValidationError)
async def form_validation_handler(request: Request, exc: FormValidationError) -> Response:
    return render(
        request,
        "error.html",
        {
            "error_title": "入力エラー",
            "error_message": exc.message,
            "errors": exc.errors,
        },
        status_code=400,
    )


@app.exception_handler(ServiceUnavailableException)
async def service_unavailable_handler(
    request: Request, exc: ServiceUnavailableException
) -> Response:
    logger.error(
        "Service unavailable",
        extra={
            "extra_fields": {
                "path": request.url.path,
                "service_name": exc.service_name,
                "error_message": exc.message,
            }
        },
    )
    return render(
        request,
        "error.html",
        {
            "error_title": "サービスに接続できません",
            "error_message": "しばらくしてから再度お試しください",
        },
        status_code=503,
    )
