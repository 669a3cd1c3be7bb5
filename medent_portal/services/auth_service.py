"""
Authentication endpoints of the financing API.
"""

from typing import Any, Dict, Optional, Tuple

from ..api_client import MedentApiClient, api_client
from ..exceptions import ApiError, AuthenticationError
from ..logging_config import get_logger
from ..models import TokenPair, User

logger = get_logger(__name__)


def user_from_login(data: Dict[str, Any]) -> User:
    """Build the portal user from the ``user`` object of a login response."""
    backend_user = data.get("user") or {}
    profile = backend_user.get("profile") or {}
    return User(
        id=str(backend_user.get("uuid", "")),
        name=f"{profile.get('firstName', '')} {profile.get('lastName', '')}",
        email=profile.get("email", ""),
        role="admin",
    )


class AuthService:
    """Login, token refresh, and account endpoints."""

    def __init__(self, client: Optional[MedentApiClient] = None) -> None:
        self.client = client or api_client

    async def login(self, email: str, password: str) -> Tuple[User, str, str]:
        """
        Exchange credentials for a token pair.

        Returns:
            Tuple of (user, access token, refresh token)

        Raises:
            AuthenticationError: If the API rejects the credentials
        """
        try:
            body = await self.client.post(
                "/v1/auth/login",
                json={"email": email, "password": password},
                authenticated=False,
            )
        except ApiError as error:
            logger.warning(
                "Login rejected",
                extra={
                    "extra_fields": {"email": email, "status_code": error.status_code}
                },
            )
            raise AuthenticationError(details={"status_code": error.status_code}) from error

        data = self.client.unwrap(body) or {}
        return user_from_login(data), data["accessToken"], data["refreshToken"]

    async def me(self) -> Any:
        return self.client.unwrap(await self.client.get("/v1/auth/me"))

    async def refresh_token(self, refresh_token: str) -> TokenPair:
        """
        Rotate the token pair.

        Raises:
            ApiError: If the API refuses the refresh token
        """
        try:
            body = await self.client.post(
                "/v1/auth/refresh-token",
                json={"refreshToken": refresh_token},
                authenticated=False,
            )
        except ApiError as error:
            logger.warning(
                "Refresh token failed",
                extra={
                    "extra_fields": {
                        "status_code": error.status_code,
                        "message": error.message,
                    }
                },
            )
            raise
        return TokenPair.model_validate(self.client.unwrap(body))

    async def change_password(self, old_password: str, new_password: str) -> Any:
        return await self.client.post(
            "/auth/change-password",
            json={"old_password": old_password, "new_password": new_password},
        )


auth_service = AuthService()
