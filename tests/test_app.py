"""
Portal Tests - Application Tests.

Tests for the FastAPI application: health endpoints, the basic-auth check,
the auth guard's redirects and cookie handling, and login/logout.
"""

import asyncio
from unittest.mock import AsyncMock, patch
from urllib.parse import unquote

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from medent_portal.app import app
from medent_portal.config import settings
from medent_portal.exceptions import SessionExpiredError
from medent_portal.middleware import is_public_path, is_unguarded_path
from medent_portal.models import AuthState, TokenPair, User
from medent_portal.services.auth_service import auth_service
from medent_portal.services.project_service import project_service
from medent_portal.session import dump_auth_state

EMPTY_PROJECTS = {"projects": [], "pagination": {}}


def make_client(cookies=None) -> AsyncClient:
    return AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies=cookies,
    )


def set_cookie_headers(response: httpx.Response) -> str:
    return "\n".join(response.headers.get_list("set-cookie"))


@pytest.mark.asyncio
async def test_healthz() -> None:
    """Test that the liveness probe answers without touching the API."""
    async with make_client() as client:
        response = await client.get("/api/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_health_check_healthy() -> None:
    """
    Test health check endpoint when the financing API is healthy.

    Verifies that the endpoint reports a healthy service and dependency.
    """
    with patch(
        "medent_portal.api_client.api_client.health_check", new_callable=AsyncMock
    ) as mock_health:
        mock_health.return_value = True
        async with make_client() as client:
            response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "medent-portal"
    assert data["dependencies"]["financing_api"] == "healthy"


@pytest.mark.asyncio
async def test_health_check_degraded() -> None:
    """Test health check endpoint when the financing API is down."""
    with patch(
        "medent_portal.api_client.api_client.health_check", new_callable=AsyncMock
    ) as mock_health:
        mock_health.return_value = False
        async with make_client() as client:
            response = await client.get("/health")

    assert response.json()["status"] == "degraded"
    assert response.json()["dependencies"]["financing_api"] == "unhealthy"


@pytest.mark.asyncio
async def test_basic_auth_check_rejects_without_configured_user() -> None:
    """Test that the gate check fails while no gate user is configured."""
    with patch.object(settings, "BASIC_AUTH_USER", ""), patch.object(
        settings, "BASIC_AUTH_PASSWORD", ""
    ):
        async with make_client() as client:
            response = await client.post("/api/auth/check", json={})

    assert response.status_code == 401
    assert response.json() == {"success": False}


@pytest.mark.asyncio
async def test_basic_auth_check_accepts_configured_user() -> None:
    """Test that the configured username and password pass the gate check."""
    with patch.object(settings, "BASIC_AUTH_USER", "admin"), patch.object(
        settings, "BASIC_AUTH_PASSWORD", "s3cret"
    ):
        async with make_client() as client:
            ok = await client.post(
                "/api/auth/check", json={"username": "admin", "password": "s3cret"}
            )
            denied = await client.post(
                "/api/auth/check", json={"username": "admin", "password": "wrong"}
            )
            wrong_method = await client.get("/api/auth/check")

    assert ok.status_code == 200
    assert ok.json() == {"success": True}
    assert denied.status_code == 401
    assert denied.json() == {"success": False}
    assert wrong_method.status_code == 405


@pytest.mark.asyncio
async def test_root_redirects_to_login_when_signed_out() -> None:
    """Test that the root page sends signed-out users to the login page."""
    async with make_client() as client:
        response = await client.get("/")

    assert response.status_code == 303
    assert response.headers["location"] == "/login"


@pytest.mark.asyncio
async def test_root_redirects_to_projects_when_signed_in(auth_cookie) -> None:
    """Test that the root page sends signed-in users to the project list."""
    async with make_client(auth_cookie) as client:
        response = await client.get("/")

    assert response.status_code == 303
    assert response.headers["location"] == "/projects"


@pytest.mark.asyncio
async def test_guarded_page_redirects_to_login() -> None:
    """Test that protected pages require a session."""
    async with make_client() as client:
        response = await client.get("/projects")

    assert response.status_code == 303
    assert response.headers["location"] == "/login"


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/login", True),
        ("/login/", True),
        ("/loginx", False),
        ("/applications/new", True),
        ("/applications/qr/code.svg", True),
        ("/applications/qr/code.png", True),
        ("/applications/lease-screening", True),
        ("/applications/complete", True),
        ("/applications", False),
        ("/applications/abc-123", False),
        ("/projects", False),
    ],
)
def test_is_public_path(path: str, expected: bool) -> None:
    """Test which pages can be opened without signing in."""
    assert is_public_path(path) is expected


def test_is_unguarded_path() -> None:
    assert is_unguarded_path("/apply/link-1") is True
    assert is_unguarded_path("/api/healthz") is True
    assert is_unguarded_path("/health") is True
    assert is_unguarded_path("/payments") is False


@pytest.mark.asyncio
async def test_broken_cookie_is_deleted() -> None:
    """
    Test handling of an unreadable auth cookie.

    Verifies the user is sent to the login page and the cookie is removed.
    """
    async with make_client({"auth-storage": "%7Bbroken"}) as client:
        response = await client.get("/contracts")

    assert response.status_code == 303
    assert response.headers["location"] == "/login"
    assert "auth-storage=" in set_cookie_headers(response)


@pytest.mark.asyncio
async def test_concurrent_pages_share_one_refresh(user: User, token_factory) -> None:
    """
    Test two pages opened at once with an access token about to expire.

    Verifies that both pages render with the rotated token pair when the API
    refuses a refresh token that was already exchanged.
    """
    state = AuthState(
        user=user,
        token=token_factory(expires_in=30),
        refresh_token="refresh-1",
        is_authenticated=True,
    )
    used = set()

    async def rotate(refresh_token: str) -> TokenPair:
        await asyncio.sleep(0.01)
        if refresh_token in used:
            raise RuntimeError("Refresh token invalid")
        used.add(refresh_token)
        return TokenPair(accessToken=token_factory(subject="renewed"), refreshToken="refresh-2")

    with patch.object(
        auth_service, "refresh_token", new_callable=AsyncMock
    ) as mock_refresh, patch.object(
        project_service, "get_projects", new_callable=AsyncMock
    ) as mock_projects:
        mock_refresh.side_effect = rotate
        mock_projects.return_value = EMPTY_PROJECTS
        async with make_client({"auth-storage": dump_auth_state(state)}) as client:
            responses = await asyncio.gather(client.get("/projects"), client.get("/projects"))

    assert [response.status_code for response in responses] == [200, 200]
    assert mock_refresh.await_count == 1
    for response in responses:
        assert "refresh-2" in unquote(set_cookie_headers(response))


@pytest.mark.asyncio
async def test_session_without_refresh_token_is_rejected(user: User, token_factory) -> None:
    """Test that a session lacking a refresh token cannot open protected pages."""
    state = AuthState(user=user, token=token_factory(), is_authenticated=True)

    async with make_client({"auth-storage": dump_auth_state(state)}) as client:
        response = await client.get("/projects")

    assert response.status_code == 303
    assert response.headers["location"] == "/login"
    assert "auth-storage=" in set_cookie_headers(response)


@pytest.mark.asyncio
async def test_public_pages_need_no_session() -> None:
    """Test that the login page and the lease screening form are public."""
    async with make_client() as client:
        login = await client.get("/login")
        screening = await client.get("/applications/lease-screening?id=abc")

    assert login.status_code == 200
    assert "ログイン" in login.text
    assert screening.status_code == 200


@pytest.mark.asyncio
async def test_signed_in_user_skips_login_page(auth_cookie) -> None:
    """Test that opening the login page while signed in goes to the project list."""
    async with make_client(auth_cookie) as client:
        response = await client.get("/login")

    assert response.status_code == 303
    assert response.headers["location"] == "/projects"


@pytest.mark.asyncio
async def test_project_list_renders_for_signed_in_user(auth_cookie) -> None:
    """Test that a signed-in user sees the project list."""
    with patch.object(
        project_service, "get_projects", new_callable=AsyncMock
    ) as mock_projects:
        mock_projects.return_value = EMPTY_PROJECTS
        async with make_client(auth_cookie) as client:
            response = await client.get("/projects?clinic_name=山田")

    assert response.status_code == 200
    assert "案件一覧" in response.text
    filters = mock_projects.await_args.args[0]
    assert filters.clinic_name == "山田"
    assert filters.offset == 0


@pytest.mark.asyncio
async def test_expiring_token_is_refreshed_before_the_page(user: User, token_factory) -> None:
    """
    Test proactive token refresh.

    Verifies that an access token about to expire is renewed before the
    page runs and the renewed state is written back to the cookie.
    """
    state = AuthState(
        user=user,
        token=token_factory(expires_in=30),
        refresh_token="refresh-1",
        is_authenticated=True,
    )
    pair = TokenPair(accessToken=token_factory(subject="renewed"), refreshToken="refresh-2")

    with patch.object(
        auth_service, "refresh_token", new_callable=AsyncMock
    ) as mock_refresh, patch.object(
        project_service, "get_projects", new_callable=AsyncMock
    ) as mock_projects:
        mock_refresh.return_value = pair
        mock_projects.return_value = EMPTY_PROJECTS
        async with make_client({"auth-storage": dump_auth_state(state)}) as client:
            response = await client.get("/projects")

    assert response.status_code == 200
    mock_refresh.assert_awaited_once_with("refresh-1")
    assert "refresh-2" in unquote(set_cookie_headers(response))


@pytest.mark.asyncio
async def test_failed_proactive_refresh_goes_to_login(user: User, token_factory) -> None:
    """Test that a refused proactive refresh ends the session."""
    state = AuthState(
        user=user,
        token=token_factory(expires_in=30),
        refresh_token="refresh-1",
        is_authenticated=True,
    )

    with patch.object(auth_service, "refresh_token", new_callable=AsyncMock) as mock_refresh:
        mock_refresh.side_effect = RuntimeError("refused")
        async with make_client({"auth-storage": dump_auth_state(state)}) as client:
            response = await client.get("/projects")

    assert response.status_code == 303
    assert response.headers["location"] == "/login"
    assert "auth-storage=" in set_cookie_headers(response)


@pytest.mark.asyncio
async def test_session_expired_during_page_redirects_to_login(auth_cookie) -> None:
    """Test that SessionExpiredError from a page sends the user to the login page."""
    with patch.object(project_service, "get_projects", new_callable=AsyncMock) as mock_projects:
        mock_projects.side_effect = SessionExpiredError()
        async with make_client(auth_cookie) as client:
            response = await client.get("/projects")

    assert response.status_code == 303
    assert response.headers["location"] == "/login"
    cookies = set_cookie_headers(response)
    assert "auth-storage=" in cookies
    assert "flash=" in cookies


@pytest.mark.asyncio
async def test_login_sets_auth_cookie(token_factory) -> None:
    """
    Test successful login.

    Verifies the redirect to the project list and that the auth cookie
    holds the new session.
    """
    user = User(id="user-9", name="Hanako Sato", email="hanako@example.com")
    with patch.object(auth_service, "login", new_callable=AsyncMock) as mock_login:
        mock_login.return_value = (user, token_factory(), "refresh-9")
        async with make_client() as client:
            response = await client.post(
                "/login", data={"email": "hanako@example.com", "password": "pw"}
            )

    assert response.status_code == 303
    assert response.headers["location"] == "/projects"
    cookies = unquote(set_cookie_headers(response))
    assert "refresh-9" in cookies
    assert '"isAuthenticated":true' in cookies


@pytest.mark.asyncio
async def test_login_requires_both_fields() -> None:
    """Test that an empty login form is rejected without calling the API."""
    with patch.object(auth_service, "login", new_callable=AsyncMock) as mock_login:
        async with make_client() as client:
            response = await client.post("/login", data={"email": "", "password": ""})

    assert response.status_code == 400
    mock_login.assert_not_awaited()


@pytest.mark.asyncio
async def test_logout_deletes_auth_cookie(auth_cookie) -> None:
    """Test that logging out removes the auth cookie."""
    async with make_client(auth_cookie) as client:
        response = await client.post("/logout")

    assert response.status_code == 303
    assert response.headers["location"] == "/login"
    assert 'auth-storage=""' in set_cookie_headers(response)


@pytest.mark.asyncio
async def test_lease_screening_without_session_completes_locally(lease_screening_form) -> None:
    """
    Test the lease screening form submitted without a session.

    Verifies that nothing is sent to the API and the completion summary is
    handed to the completion page.
    """
    data = {**lease_screening_form, "signature": "data:image/png;base64,iVBORw0KGgo="}
    with patch(
        "medent_portal.domain.lease_screening.application_service"
    ) as mock_service:
        async with make_client() as client:
            response = await client.post("/applications/lease-screening", data=data)
            complete = await client.get("/applications/complete")

    assert response.status_code == 303
    assert response.headers["location"] == "/applications/complete"
    assert "application-data=" in set_cookie_headers(response)
    mock_service.update.assert_not_called()
    assert complete.status_code == 200
    assert "山田歯科クリニック" in complete.text
