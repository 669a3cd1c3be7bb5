"""
HTTP client module for the financing REST API.

Provides an async client that signs every request with the API key and the
session's bearer token, renews expired access tokens with the refresh token,
and turns transport and HTTP failures into portal exceptions. Implements
logging, metrics, and request tracing for every call.
"""

import time
from typing import Any, Dict, Optional

import httpx

from .config import settings
from .exceptions import ApiError, ServiceUnavailableException
from .logging_config import get_logger, get_request_id
from .metrics import (
    track_api_error,
    track_api_request,
    track_session_expired,
    track_token_refresh,
)
from .session import AuthSession, get_current_session, session_manager

logger = get_logger(__name__)

LOGIN_PATH = "/v1/auth/login"
REFRESH_PATH = "/v1/auth/refresh-token"


def _is_auth_request(path: str) -> bool:
    return LOGIN_PATH in path or REFRESH_PATH in path


def error_message(response: httpx.Response) -> str:
    """
    Extract the backend's error message from a response.

    Understands ``{"message": ...}``, ``{"error": {"message": ...}}`` and
    ``{"error": "..."}`` bodies; falls back to the HTTP reason phrase.
    """
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, list):
            message = ", ".join(str(part) for part in message)
        if message:
            return str(message)
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error

    return response.reason_phrase or f"HTTP {response.status_code}"


class MedentApiClient:
    """
    Client for the financing REST API.

    Uses a persistent HTTP client with connection pooling. Requests run on
    behalf of an ``AuthSession``: the one passed explicitly, or the session
    bound to the request being handled.

    Attributes:
        base_url: Base URL of the API
        api_key: Value of the ``x-api-key`` header
        timeout: Request timeout in seconds
        max_refresh_attempts: Refresh attempts after a 401 before giving up
        _client: Persistent httpx.AsyncClient with connection pooling
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        max_refresh_attempts: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the API client.

        Args:
            base_url: Base URL of the API (defaults to settings)
            api_key: API key (defaults to settings)
            timeout: Request timeout in seconds (defaults to settings)
            max_refresh_attempts: Refresh attempts per 401 (defaults to settings)
            transport: Custom httpx transport
        """
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.api_key = settings.API_KEY if api_key is None else api_key
        self.timeout = timeout or settings.REQUEST_TIMEOUT
        self.max_refresh_attempts = max_refresh_attempts or settings.MAX_REFRESH_ATTEMPTS
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        logger.info(
            f"Initialized MedentApiClient: base_url={self.base_url}, "
            f"timeout={self.timeout}s"
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """
        Get or create the persistent HTTP client with connection pooling.

        Returns:
            Configured httpx.AsyncClient instance
        """
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                limits=httpx.Limits(
                    max_keepalive_connections=20,
                    max_connections=100,
                    keepalive_expiry=30.0,
                ),
                http2=True,
                transport=self._transport,
            )
            logger.debug("Created new HTTP client with connection pooling")
        return self._client

    async def close(self) -> None:
        """
        Close the HTTP client and release connections.

        Should be called during application shutdown.
        """
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
            logger.debug("Closed HTTP client")

    def _get_request_headers(
        self,
        session: Optional[AuthSession],
        authenticated: bool = True,
        multipart: bool = False,
    ) -> Dict[str, str]:
        """
        Get request headers including credentials and request ID.

        Returns:
            Dictionary of HTTP headers
        """
        headers = {
            "User-Agent": "Medent-Portal/1.0",
            "Accept": "application/json",
            "x-api-key": self.api_key,
        }
        if not multipart:
            headers["Content-Type"] = "application/json"

        if authenticated and session is not None and session.token:
            headers["Authorization"] = f"Bearer {session.token}"

        request_id = get_request_id()
        if request_id:
            headers["X-Request-ID"] = request_id

        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        data: Optional[Dict[str, Any]] = None,
        files: Any = None,
        session: Optional[AuthSession] = None,
        authenticated: bool = True,
        expect_bytes: bool = False,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Send a request to the API and return the decoded body.

        A 401 on any endpoint other than login and token refresh renews the
        access token (up to ``max_refresh_attempts`` tries, no delay) and
        retries the original request once.

        Args:
            method: HTTP method
            path: Path relative to the API base URL
            params: Query parameters (``None`` values are dropped)
            json: JSON body
            data: Form fields for multipart requests
            files: Files for multipart requests
            session: Session to act for (defaults to the request's session)
            authenticated: Send the bearer token
            expect_bytes: Return the raw body instead of decoded JSON
            timeout: Per-request timeout override

        Returns:
            Decoded JSON body, raw bytes, or None for empty responses

        Raises:
            ApiError: For non-success responses
            SessionExpiredError: When the session cannot be renewed
            ServiceUnavailableException: When the API cannot be reached
        """
        if session is None:
            session = get_current_session()

        send_kwargs = {
            "params": {k: v for k, v in (params or {}).items() if v is not None},
            "json": json,
            "data": data,
            "files": files,
            "authenticated": authenticated,
            "timeout": timeout,
        }

        response = await self._send(method, path, session, **send_kwargs)

        if response.is_success:
            return self._decode(response, expect_bytes)

        if response.status_code == 401 and not _is_auth_request(path):
            response = await self._renew_and_retry(
                method, path, session, response, send_kwargs
            )
            if response.is_success:
                return self._decode(response, expect_bytes)

        raise self._api_error(method, path, response)

    async def _send(
        self,
        method: str,
        path: str,
        session: Optional[AuthSession],
        *,
        params: Dict[str, Any],
        json: Any,
        data: Optional[Dict[str, Any]],
        files: Any,
        authenticated: bool,
        timeout: Optional[float],
    ) -> httpx.Response:
        start_time = time.perf_counter()
        headers = self._get_request_headers(
            session, authenticated=authenticated, multipart=files is not None
        )

        logger.debug(
            "Sending request to API",
            extra={"extra_fields": {"method": method, "path": path, "params": params}},
        )

        try:
            client = await self._get_client()
            response = await client.request(
                method,
                path,
                params=params or None,
                json=json,
                data=data,
                files=files,
                headers=headers,
                timeout=timeout or self.timeout,
            )

        except httpx.TimeoutException as error:
            duration_ms = (time.perf_counter() - start_time) * 1000
            track_api_error("timeout")
            logger.error(
                "API request timed out",
                extra={
                    "extra_fields": {
                        "method": method,
                        "path": path,
                        "timeout": self.timeout,
                        "duration_ms": duration_ms,
                        "backend_url": self.base_url,
                        "error_type": type(error).__name__,
                    }
                },
            )
            raise ServiceUnavailableException(
                "financing-api",
                f"API request timed out after {self.timeout}s",
                details={"path": path},
            ) from error

        except httpx.RequestError as error:
            duration_ms = (time.perf_counter() - start_time) * 1000
            track_api_error("connection_error")
            logger.error(
                "Network error - API is not reachable",
                extra={
                    "extra_fields": {
                        "method": method,
                        "path": path,
                        "backend_url": self.base_url,
                        "duration_ms": duration_ms,
                        "error_type": type(error).__name__,
                        "error_message": str(error),
                    }
                },
                exc_info=True,
            )
            raise ServiceUnavailableException(
                "financing-api",
                details={"path": path, "backend_url": self.base_url},
            ) from error

        duration = time.perf_counter() - start_time
        track_api_request(method, path, response.status_code, duration)
        logger.info(
            "Received response from API",
            extra={
                "extra_fields": {
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                    "duration_ms": duration * 1000,
                    "response_size": len(response.content),
                }
            },
        )
        return response

    async def _renew_and_retry(
        self,
        method: str,
        path: str,
        session: Optional[AuthSession],
        response: httpx.Response,
        send_kwargs: Dict[str, Any],
    ) -> httpx.Response:
        """
        Handle a 401 by renewing the session and replaying the request once.

        Returns:
            Response of the replayed request

        Raises:
            SessionExpiredError: When the session cannot be renewed
        """
        message = error_message(response)

        if session_manager.is_refresh_token_expired(response.status_code, message):
            logger.info(
                "Refresh token expired, handling session expiration",
                extra={"extra_fields": {"path": path, "message": message}},
            )
            self._expire(session)

        if session is None or not session.refresh_token:
            logger.info("No refresh token available, logging out")
            self._expire(session)

        for attempt in range(1, self.max_refresh_attempts + 1):
            logger.info(
                f"Attempting token refresh, try {attempt}/{self.max_refresh_attempts}"
            )
            refreshed = await session.refresh_auth_token()
            track_token_refresh(refreshed)

            if refreshed:
                logger.info(
                    "Token refreshed successfully, retrying request",
                    extra={"extra_fields": {"method": method, "path": path}},
                )
                return await self._send(method, path, session, **send_kwargs)

            logger.warning(f"Token refresh failed on attempt {attempt}")

        logger.warning("All refresh attempts failed, handling session expiration")
        self._expire(session)

    @staticmethod
    def _expire(session: Optional[AuthSession]) -> None:
        track_session_expired()
        session_manager.handle_session_expired(session)

    @staticmethod
    def _decode(response: httpx.Response, expect_bytes: bool) -> Any:
        if expect_bytes:
            return response.content
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    @staticmethod
    def _api_error(method: str, path: str, response: httpx.Response) -> ApiError:
        message = error_message(response)
        track_api_error(f"http_{response.status_code}")
        logger.error(
            "HTTP error from API",
            extra={
                "extra_fields": {
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                    "response_body": response.text[:500],
                }
            },
        )
        try:
            body = response.json()
        except ValueError:
            body = {"body": response.text[:500]}
        return ApiError(
            message,
            status_code=response.status_code,
            details=body if isinstance(body, dict) else {"body": body},
        )

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> Any:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> Any:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> Any:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)

    @staticmethod
    def unwrap(body: Any) -> Any:
        """
        Return the payload of an API envelope.

        Both ``{"success", "data", "error"}`` and ``{"statusCode", "message",
        "data"}`` envelopes carry the payload under ``data``; bodies without
        one are returned unchanged.
        """
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    async def health_check(self) -> bool:
        """
        Check if the API is reachable and healthy.

        Returns:
            True if the API answered its health endpoint with 200, False otherwise
        """
        try:
            client = await self._get_client()
            response = await client.get(
                "/health",
                headers=self._get_request_headers(None, authenticated=False),
                timeout=2.0,
            )
            is_healthy = response.status_code == 200

            if not is_healthy:
                logger.warning(
                    "API health check failed",
                    extra={
                        "extra_fields": {
                            "backend_url": self.base_url,
                            "status_code": response.status_code,
                        }
                    },
                )
            return is_healthy

        except httpx.HTTPError as error:
            logger.warning(
                "API health check failed with exception",
                extra={
                    "extra_fields": {
                        "backend_url": self.base_url,
                        "error_type": type(error).__name__,
                        "error_message": str(error),
                    }
                },
            )
            return False


# Singleton instance for application-wide use
api_client = MedentApiClient()
