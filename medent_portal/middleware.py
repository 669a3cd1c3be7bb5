"""
Middleware components for request handling, logging and the auth guard.

Provides middleware for request tracing, logging, performance monitoring,
static asset caching, Prometheus request metrics and the route guard that
keeps signed-out users on the public pages.
"""

import time
from typing import Callable, Optional

from fastapi import Request, Response
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .config import settings
from .exceptions import InvalidSessionCookie
from .logging_config import clear_request_id, get_logger, set_request_id, set_user_id
from .services.auth_service import auth_service
from .session import (
    AuthBackend,
    AuthSession,
    bind_session,
    dump_auth_state,
    load_auth_state,
    session_manager,
    token_expires_within,
)

logger = get_logger(__name__)

PUBLIC_PATHS = (
    "/login/",
    "/applications/new/",
    "/applications/qr/",
    "/applications/lease-screening/",
    "/applications/complete/",
)

UNGUARDED_PREFIXES = ("/apply/", "/api/", "/static/", "/health", "/metrics")

LOGIN_PATH = "/login"
HOME_PATH = "/projects"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for comprehensive request and response logging.

    Logs all incoming requests and outgoing responses with timing, status
    codes and request IDs. The request ID is echoed in ``X-Request-ID``.
    """

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Process request and log details.

        Args:
            request: Incoming HTTP request
            call_next: Next middleware or route handler

        Returns:
            HTTP response
        """
        request_id = request.headers.get("X-Request-ID")
        if not request_id:
            request_id = set_request_id()
        else:
            set_request_id(request_id)

        start_time = time.perf_counter()

        logger.info(
            f"Request started: {request.method} {request.url.path}",
            extra={
                "extra_fields": {
                    "method": request.method,
                    "path": request.url.path,
                    "query_params": str(request.query_params),
                    "client_host": request.client.host if request.client else None,
                    "user_agent": request.headers.get("user-agent"),
                }
            },
        )

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            response.headers["X-Request-ID"] = request_id

            logger.info(
                f"Request completed: {request.method} {request.url.path} "
                f"[{response.status_code}] ({duration_ms:.2f}ms)",
                extra={
                    "extra_fields": {
                        "method": request.method,
                        "path": request.url.path,
                        "status_code": response.status_code,
                        "duration_ms": duration_ms,
                    }
                },
            )

            return response
        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.url.path} ({duration_ms:.2f}ms)",
                extra={"extra_fields": {"error": str(exc)}},
            )
            raise
        finally:
            clear_request_id()


class StaticFileCacheMiddleware(BaseHTTPMiddleware):
    """
    Middleware for adding cache-control headers to static files.
    """

    # Cache durations for different file types (in seconds)
    CACHE_DURATIONS = {
        ".css": 86400,
        ".js": 86400,
        ".png": 604800,
        ".svg": 604800,
        ".ico": 604800,
        ".woff2": 2592000,
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        path = request.url.path
        if path.startswith("/static/"):
            for ext, duration in self.CACHE_DURATIONS.items():
                if path.endswith(ext):
                    response.headers["Cache-Control"] = f"public, max-age={duration}"
                    response.headers["Vary"] = "Accept-Encoding"
                    break
            else:
                response.headers["Cache-Control"] = "public, max-age=3600"

        return response


class PerformanceMonitoringMiddleware(BaseHTTPMiddleware):
    """
    Middleware for monitoring request performance.

    Logs a warning for requests exceeding the slow-request threshold. Pages
    that call the financing API several times are the usual suspects.
    """

    def __init__(
        self,
        app: ASGIApp,
        slow_request_threshold_ms: float = 1000.0,
    ) -> None:
        """
        Initialize performance monitoring middleware.

        Args:
            app: ASGI application instance
            slow_request_threshold_ms: Threshold in milliseconds for slow requests
        """
        super().__init__(app)
        self.slow_request_threshold_ms = slow_request_threshold_ms

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000

        if duration_ms > self.slow_request_threshold_ms:
            logger.warning(
                f"Slow request detected: {request.method} {request.url.path} "
                f"took {duration_ms:.2f}ms (threshold: {self.slow_request_threshold_ms}ms)",
                extra={
                    "extra_fields": {
                        "method": request.method,
                        "path": request.url.path,
                        "duration_ms": duration_ms,
                        "threshold_ms": self.slow_request_threshold_ms,
                    }
                },
            )

        return response


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Record request count and latency per route.

    The route template (``/projects/{project_id}``) is used as the endpoint
    label so ids do not blow up label cardinality.
    """

    def __init__(self, app: ASGIApp, track_func: Callable) -> None:
        super().__init__(app)
        self.track_func = track_func

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            route = request.scope.get("route")
            endpoint = getattr(route, "path", None) or _endpoint_label(request.url.path)
            self.track_func(
                request.method, endpoint, status_code, time.perf_counter() - start_time
            )


def _endpoint_label(path: str) -> str:
    if path.startswith("/static/"):
        return "/static"
    return "unmatched"


def _normalize(path: str) -> str:
    return path if path.endswith("/") else f"{path}/"


def is_public_path(path: str) -> bool:
    """
    Pages anyone can open, including their sub-paths.

    Paths are compared with a trailing slash so ``/login`` and ``/login/``
    match alike and ``/loginx`` does not.
    """
    normalized = _normalize(path)
    return any(normalized.startswith(public) for public in PUBLIC_PATHS)


def is_unguarded_path(path: str) -> bool:
    return path.startswith(UNGUARDED_PREFIXES)


def _redirect(url: str, clear_cookie: bool = False) -> RedirectResponse:
    response = RedirectResponse(url=url, status_code=303)
    if clear_cookie:
        delete_auth_cookie(response)
    return response


def delete_auth_cookie(response: Response) -> None:
    response.delete_cookie(settings.AUTH_COOKIE_NAME, path="/")


def write_auth_cookie(response: Response, session: AuthSession) -> None:
    response.set_cookie(
        settings.AUTH_COOKIE_NAME,
        dump_auth_state(session.state),
        max_age=settings.AUTH_COOKIE_MAX_AGE_DAYS * 24 * 60 * 60,
        path="/",
        samesite="strict",
        secure=settings.AUTH_COOKIE_SECURE,
        httponly=True,
    )


class AuthGuardMiddleware(BaseHTTPMiddleware):
    """
    Route guard over the ``auth-storage`` cookie.

    Loads the session for every request, binds it for the API client and
    redirects signed-out users to the login page. After the route has run,
    the cookie is rewritten when the session changed (login, token refresh)
    and deleted when it was cleared (logout, expired session).
    """

    def __init__(self, app: ASGIApp, backend: Optional[AuthBackend] = None) -> None:
        super().__init__(app)
        self.backend = backend or auth_service

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path

        if path.startswith("/static/"):
            return await call_next(request)

        raw_cookie = request.cookies.get(settings.AUTH_COOKIE_NAME)
        session = AuthSession(backend=self.backend)
        broken_cookie = False

        if raw_cookie:
            try:
                session = AuthSession(load_auth_state(raw_cookie), backend=self.backend)
            except InvalidSessionCookie as error:
                logger.warning(
                    "Discarding unreadable auth cookie",
                    extra={"extra_fields": {"path": path, "reason": error.message}},
                )
                broken_cookie = True

        if broken_cookie and not is_unguarded_path(path):
            if _normalize(path) == "/login/":
                response = await call_next(request)
                delete_auth_cookie(response)
                return response
            return _redirect(LOGIN_PATH, clear_cookie=True)

        if path == "/":
            if session.token and session.is_authenticated:
                return _redirect(HOME_PATH)
            return _redirect(LOGIN_PATH)

        guarded = not (is_public_path(path) or is_unguarded_path(path))

        if guarded:
            if not session.token or not session.is_authenticated:
                return _redirect(LOGIN_PATH, clear_cookie=bool(raw_cookie))
            if not session.refresh_token:
                return _redirect(LOGIN_PATH, clear_cookie=True)

        request.state.session = session
        bind_session(session)
        if session.user is not None:
            set_user_id(session.user.id)

        if (
            guarded
            and session_manager.is_session_valid(session.state)
            and token_expires_within(session.token, settings.TOKEN_REFRESH_MARGIN_SECONDS)
        ):
            logger.info(
                "Access token close to expiry, refreshing",
                extra={"extra_fields": {"path": path}},
            )
            if not await session.refresh_auth_token():
                return _redirect(LOGIN_PATH, clear_cookie=True)

        try:
            response = await call_next(request)
        finally:
            bind_session(None)

        if session.cleared:
            delete_auth_cookie(response)
        elif session.dirty:
            write_auth_cookie(response, session)

        return response
