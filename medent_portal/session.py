"""
Authentication state for a browser session.

The signed-in state lives in the ``auth-storage`` cookie as URL-encoded JSON
``{"state": {...}, "version": 0}``. Each request loads it into an
``AuthSession``; the API client refreshes tokens on it, and the auth guard
middleware writes it back (or deletes the cookie) once the response is ready.
"""

import asyncio
import json
import time
from contextvars import ContextVar
from functools import partial
from typing import Any, Dict, Optional, Protocol, Tuple
from urllib.parse import quote, unquote

import jwt
from pydantic import ValidationError

from .config import settings
from .exceptions import InvalidSessionCookie, SessionExpiredError
from .logging_config import get_logger, set_user_id
from .models import AuthState, TokenPair, User

logger = get_logger(__name__)

AUTH_STORAGE_VERSION = 0

REFRESH_TOKEN_EXPIRED_MESSAGES = (
    "refresh token has expired",
    "refresh token expired",
    "refresh token invalid",
    "token expired",
    "session expired",
)

SESSION_EXPIRED_MESSAGE = "セッションが期限切れです。再度ログインしてください。"


class AuthBackend(Protocol):
    """Remote operations an ``AuthSession`` needs."""

    async def login(self, email: str, password: str) -> Tuple[User, str, str]:
        ...

    async def refresh_token(self, refresh_token: str) -> TokenPair:
        ...


def load_auth_state(cookie_value: str) -> AuthState:
    """
    Decode the ``auth-storage`` cookie.

    Args:
        cookie_value: Raw (URL-encoded) cookie value

    Returns:
        The persisted auth state

    Raises:
        InvalidSessionCookie: If the value is not the expected JSON document
    """
    try:
        payload = json.loads(unquote(cookie_value))
    except (TypeError, ValueError) as error:
        raise InvalidSessionCookie(
            "Auth cookie is not valid JSON", details={"error": str(error)}
        ) from error

    if not isinstance(payload, dict):
        raise InvalidSessionCookie("Auth cookie must hold a JSON object")

    try:
        return AuthState.model_validate(payload.get("state") or {})
    except ValidationError as error:
        raise InvalidSessionCookie(
            "Auth cookie state is malformed", details={"errors": error.error_count()}
        ) from error


def dump_auth_state(state: AuthState) -> str:
    """Encode auth state the way ``load_auth_state`` expects it."""
    document = {
        "state": state.model_dump(mode="json", by_alias=True),
        "version": AUTH_STORAGE_VERSION,
    }
    return quote(json.dumps(document, ensure_ascii=False, separators=(",", ":")))


def token_expires_within(token: Optional[str], seconds: int) -> bool:
    """
    Tell whether a JWT access token expires within ``seconds``.

    The signature is not verified; only ``exp`` is read. Tokens that cannot be
    decoded or carry no ``exp`` are treated as not expiring.
    """
    if not token:
        return False
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return False
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return False
    return exp - time.time() <= seconds


class TokenRefresher:
    """
    Process-wide single flight for refresh-token exchanges.

    Requests that carry the same cookie hold the same refresh token, and the
    API rotates that token on every exchange. The first request exchanges it;
    requests arriving meanwhile await the same exchange, and requests arriving
    within ``reuse_seconds`` afterwards get the resulting pair.
    """

    def __init__(self, reuse_seconds: float = 30.0) -> None:
        self.reuse_seconds = reuse_seconds
        self._inflight: Dict[str, "asyncio.Future[TokenPair]"] = {}
        self._recent: Dict[str, Tuple[float, TokenPair]] = {}

    async def refresh(self, backend: AuthBackend, refresh_token: str) -> TokenPair:
        """
        Exchange ``refresh_token``, sharing the call with concurrent callers.

        Raises:
            Whatever the backend raises; every waiter sees the same error
        """
        recent = self._recent.get(refresh_token)
        if recent is not None and time.monotonic() - recent[0] < self.reuse_seconds:
            logger.debug("Reusing token pair from a recent refresh")
            return recent[1]

        task = self._inflight.get(refresh_token)
        if task is None:
            task = asyncio.ensure_future(backend.refresh_token(refresh_token))
            self._inflight[refresh_token] = task
            task.add_done_callback(partial(self._finish, refresh_token))
        else:
            logger.debug("Joining in-flight token refresh")
        return await asyncio.shield(task)

    def _finish(self, refresh_token: str, task: "asyncio.Future[TokenPair]") -> None:
        if self._inflight.get(refresh_token) is task:
            del self._inflight[refresh_token]
        if task.cancelled() or task.exception() is not None:
            return
        now = time.monotonic()
        self._recent = {
            token: entry
            for token, entry in self._recent.items()
            if now - entry[0] < self.reuse_seconds
        }
        self._recent[refresh_token] = (now, task.result())

    def clear(self) -> None:
        self._inflight.clear()
        self._recent.clear()


token_refresher = TokenRefresher(settings.TOKEN_REFRESH_REUSE_SECONDS)


class AuthSession:
    """
    Mutable auth state for one browser session.

    Attributes:
        state: Current auth state
        dirty: State changed and the cookie must be rewritten
        cleared: State was wiped and the cookie must be deleted
    """

    def __init__(
        self,
        state: Optional[AuthState] = None,
        backend: Optional[AuthBackend] = None,
    ) -> None:
        self.state = state or AuthState()
        self.backend = backend
        self.dirty = False
        self.cleared = False
        self._refresh_lock = asyncio.Lock()
        self._refresh_generation = 0

    @property
    def user(self) -> Optional[User]:
        return self.state.user

    @property
    def token(self) -> Optional[str]:
        return self.state.token

    @property
    def refresh_token(self) -> Optional[str]:
        return self.state.refresh_token

    @property
    def is_authenticated(self) -> bool:
        return self.state.is_authenticated

    def set_auth(
        self, user: Optional[User], token: str, refresh_token: Optional[str] = None
    ) -> None:
        """Store new credentials, keeping the current refresh token if none is given."""
        self.state = AuthState(
            user=user,
            token=token,
            refresh_token=refresh_token or self.state.refresh_token,
            is_authenticated=True,
        )
        self.dirty = True
        self.cleared = False
        set_user_id(user.id if user else None)

    def clear(self) -> None:
        self.state = AuthState()
        self.dirty = False
        self.cleared = True
        set_user_id(None)

    async def login(self, email: str, password: str) -> User:
        """
        Sign in with email and password.

        Raises:
            AuthenticationError: If the credentials are rejected
        """
        user, token, refresh_token = await self._require_backend().login(
            email, password
        )
        self.set_auth(user, token, refresh_token)
        logger.info(
            "User logged in",
            extra={"extra_fields": {"user_id": user.id, "email": user.email}},
        )
        return user

    def logout(self) -> None:
        logger.info(
            "Logging out user",
            extra={"extra_fields": {"user_id": self.user.id if self.user else None}},
        )
        self.clear()

    async def refresh_auth_token(self) -> bool:
        """
        Exchange the refresh token for a new token pair.

        Concurrent callers share one refresh: a caller that waited on the lock
        gets the outcome of the refresh that ran while it waited.

        Returns:
            True when the session holds a fresh access token, False when the
            refresh failed (the session is cleared in that case)
        """
        generation = self._refresh_generation
        async with self._refresh_lock:
            if self._refresh_generation != generation:
                return self.is_authenticated and bool(self.token)

            try:
                if not self.refresh_token:
                    logger.info("No refresh token available")
                    return False

                logger.info("Refreshing access token")
                pair = await token_refresher.refresh(
                    self._require_backend(), self.refresh_token
                )
                self.set_auth(self.user, pair.access_token, pair.refresh_token)
                logger.info("Token refreshed successfully")
                return True

            except Exception as error:
                logger.warning(
                    "Token refresh failed, clearing auth state",
                    extra={
                        "extra_fields": {
                            "error_type": type(error).__name__,
                            "error_message": str(error),
                        }
                    },
                )
                self.clear()
                return False

            finally:
                self._refresh_generation += 1

    def _require_backend(self) -> AuthBackend:
        if self.backend is None:
            raise RuntimeError("AuthSession has no auth backend configured")
        return self.backend


class SessionManager:
    """Decides when a session is over and ends it."""

    @staticmethod
    def is_refresh_token_expired(status_code: Optional[int], message: Any) -> bool:
        if status_code != 401 or not message:
            return False
        lowered = str(message).lower()
        return any(fragment in lowered for fragment in REFRESH_TOKEN_EXPIRED_MESSAGES)

    @staticmethod
    def is_session_valid(state: AuthState) -> bool:
        return bool(state.is_authenticated and state.token and state.refresh_token)

    @staticmethod
    def handle_session_expired(session: Optional[AuthSession]) -> None:
        """
        Log the session out and abort the request.

        Raises:
            SessionExpiredError: Always
        """
        logger.info("Session expired, logging out")
        if session is not None:
            session.logout()
        raise SessionExpiredError(SESSION_EXPIRED_MESSAGE)


session_manager = SessionManager()

current_session: ContextVar[Optional[AuthSession]] = ContextVar(
    "auth_session", default=None
)


def get_current_session() -> Optional[AuthSession]:
    """Session bound to the request being handled, if any."""
    return current_session.get()


def bind_session(session: Optional[AuthSession]) -> None:
    current_session.set(session)
