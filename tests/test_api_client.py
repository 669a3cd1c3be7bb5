"""
Portal Tests - API Client Tests.

Tests for MedentApiClient: request signing, error mapping, and the
refresh-and-retry handling of expired access tokens.
"""

from typing import Callable, List
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from medent_portal.api_client import MedentApiClient, error_message
from medent_portal.exceptions import (
    ApiError,
    ServiceUnavailableException,
    SessionExpiredError,
)


def make_client(handler: Callable[[httpx.Request], httpx.Response]) -> MedentApiClient:
    return MedentApiClient(
        base_url="http://api.test",
        api_key="test-key",
        max_refresh_attempts=3,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_request_sends_api_key_and_bearer_token(signed_in_session) -> None:
    """
    Test that every request is signed.

    Verifies the API key header and the session's bearer token are sent and
    the JSON body is returned.
    """
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True, "data": [1, 2]})

    client = make_client(handler)
    body = await client.get("/v1/projects", session=signed_in_session)

    assert body == {"success": True, "data": [1, 2]}
    assert seen[0].headers["x-api-key"] == "test-key"
    assert seen[0].headers["Authorization"] == f"Bearer {signed_in_session.token}"
    await client.close()


@pytest.mark.asyncio
async def test_request_drops_none_params(signed_in_session) -> None:
    """Test that query parameters with None values are not sent."""
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    client = make_client(handler)
    await client.get(
        "/v1/contracts",
        params={"status": "pending", "page": None},
        session=signed_in_session,
    )

    assert dict(seen[0].url.params) == {"status": "pending"}
    await client.close()


@pytest.mark.asyncio
async def test_unauthenticated_request_has_no_bearer(signed_in_session) -> None:
    """Test that authenticated=False omits the Authorization header."""
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"data": {}})

    client = make_client(handler)
    await client.post("/v1/auth/login", json={}, session=signed_in_session, authenticated=False)

    assert "Authorization" not in seen[0].headers
    await client.close()


@pytest.mark.asyncio
async def test_401_refreshes_token_and_retries_once(signed_in_session, auth_backend) -> None:
    """
    Test the refresh-and-retry flow.

    Verifies that a 401 triggers one token refresh and that the replayed
    request carries the new access token.
    """
    old_token = signed_in_session.token
    seen: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers.get("Authorization", ""))
        if request.headers.get("Authorization") == f"Bearer {old_token}":
            return httpx.Response(401, json={"message": "Unauthorized"})
        return httpx.Response(200, json={"data": {"ok": True}})

    client = make_client(handler)
    body = await client.get("/v1/applications", session=signed_in_session)

    assert body == {"data": {"ok": True}}
    assert len(seen) == 2
    assert seen[1] != seen[0]
    auth_backend.refresh_token.assert_awaited_once_with("refresh-1")
    assert signed_in_session.refresh_token == "refresh-2"
    assert signed_in_session.dirty is True
    await client.close()


@pytest.mark.asyncio
async def test_retry_that_fails_again_raises_api_error(signed_in_session) -> None:
    """Test that a request is replayed only once after a refresh."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(401, json={"message": "Unauthorized"})

    client = make_client(handler)
    with pytest.raises(ApiError) as exc_info:
        await client.get("/v1/projects", session=signed_in_session)

    assert exc_info.value.status_code == 401
    assert len(calls) == 2
    await client.close()


@pytest.mark.asyncio
async def test_401_on_login_is_not_refreshed(signed_in_session, auth_backend) -> None:
    """Test that login failures surface as ApiError without a refresh."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "Invalid credentials"})

    client = make_client(handler)
    with pytest.raises(ApiError) as exc_info:
        await client.post("/v1/auth/login", json={}, session=signed_in_session)

    assert exc_info.value.message == "Invalid credentials"
    auth_backend.refresh_token.assert_not_awaited()
    await client.close()


@pytest.mark.asyncio
async def test_401_on_refresh_token_endpoint_is_not_refreshed(signed_in_session) -> None:
    """Test that a refused token refresh is not itself answered with a refresh."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "Invalid refresh token"})

    client = make_client(handler)
    with patch.object(
        signed_in_session, "refresh_auth_token", new_callable=AsyncMock
    ) as mock_refresh:
        with pytest.raises(ApiError) as exc_info:
            await client.post(
                "/v1/auth/refresh-token",
                json={"refreshToken": "refresh-1"},
                session=signed_in_session,
            )

    assert exc_info.value.status_code == 401
    assert mock_refresh.await_count == 0
    assert signed_in_session.cleared is False
    await client.close()


@pytest.mark.asyncio
async def test_refresh_attempts_are_bounded(signed_in_session) -> None:
    """
    Test the refresh attempt limit.

    Verifies that the client tries ``max_refresh_attempts`` refreshes and
    then ends the session without replaying the request.
    """
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(401, json={"message": "Unauthorized"})

    client = make_client(handler)
    with patch.object(
        signed_in_session, "refresh_auth_token", new_callable=AsyncMock
    ) as mock_refresh:
        mock_refresh.return_value = False
        with pytest.raises(SessionExpiredError):
            await client.get("/v1/projects", session=signed_in_session)

    assert mock_refresh.await_count == 3
    assert len(requests) == 1
    await client.close()


@pytest.mark.asyncio
async def test_refresh_stops_at_first_success(signed_in_session) -> None:
    """Test that a later successful attempt replays the request once."""
    statuses = iter([401, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(next(statuses), json={"data": []})

    client = make_client(handler)
    with patch.object(
        signed_in_session, "refresh_auth_token", new_callable=AsyncMock
    ) as mock_refresh:
        mock_refresh.side_effect = [False, True]
        body = await client.get("/v1/projects", session=signed_in_session)

    assert body == {"data": []}
    assert mock_refresh.await_count == 2
    await client.close()


@pytest.mark.asyncio
async def test_expired_refresh_token_message_ends_session(signed_in_session, auth_backend) -> None:
    """
    Test session expiry on a refresh-token-expired message.

    Verifies that no refresh is attempted and the session is cleared.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "Refresh token has expired"})

    client = make_client(handler)
    with pytest.raises(SessionExpiredError):
        await client.get("/v1/projects", session=signed_in_session)

    auth_backend.refresh_token.assert_not_awaited()
    assert signed_in_session.cleared is True
    assert signed_in_session.is_authenticated is False
    await client.close()


@pytest.mark.asyncio
async def test_missing_refresh_token_ends_session(session_factory) -> None:
    """Test that a 401 without a refresh token logs the user out."""
    session = session_factory(token="abc", is_authenticated=True)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "Unauthorized"})

    client = make_client(handler)
    with pytest.raises(SessionExpiredError):
        await client.get("/v1/projects", session=session)

    assert session.cleared is True
    await client.close()


@pytest.mark.asyncio
async def test_failed_refresh_ends_session(signed_in_session, auth_backend) -> None:
    """
    Test that the session ends when the refresh is refused.

    The refused refresh clears the session, so later attempts have no
    refresh token to send.
    """
    auth_backend.refresh_token.side_effect = ApiError("Invalid refresh token", status_code=401)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "Unauthorized"})

    client = make_client(handler)
    with pytest.raises(SessionExpiredError):
        await client.get("/v1/projects", session=signed_in_session)

    assert auth_backend.refresh_token.await_count == 1
    assert signed_in_session.cleared is True
    await client.close()


@pytest.mark.asyncio
async def test_http_error_carries_backend_message(signed_in_session) -> None:
    """Test that ApiError exposes the backend message, status and body."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"message": "金額が不正です"}})

    client = make_client(handler)
    with pytest.raises(ApiError) as exc_info:
        await client.post("/v1/payments", json={}, session=signed_in_session)

    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "金額が不正です"
    assert exc_info.value.details == {"error": {"message": "金額が不正です"}}
    await client.close()


@pytest.mark.asyncio
async def test_connection_error_raises_service_unavailable(signed_in_session) -> None:
    """Test that transport failures become ServiceUnavailableException."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    client = make_client(handler)
    with pytest.raises(ServiceUnavailableException) as exc_info:
        await client.get("/v1/projects", session=signed_in_session)

    assert exc_info.value.service_name == "financing-api"
    await client.close()


@pytest.mark.asyncio
async def test_timeout_raises_service_unavailable(signed_in_session) -> None:
    """Test that timeouts become ServiceUnavailableException."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = make_client(handler)
    with pytest.raises(ServiceUnavailableException) as exc_info:
        await client.get("/v1/projects", session=signed_in_session)

    assert "timed out" in exc_info.value.message
    await client.close()


@pytest.mark.asyncio
async def test_expect_bytes_returns_raw_body(signed_in_session) -> None:
    """Test that exports come back as raw bytes."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"id,name\n1,a\n")

    client = make_client(handler)
    body = await client.get("/v1/projects/export", session=signed_in_session, expect_bytes=True)

    assert body == b"id,name\n1,a\n"
    await client.close()


@pytest.mark.asyncio
async def test_empty_response_returns_none(signed_in_session) -> None:
    """Test that a 204 response decodes to None."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(204)

    client = make_client(handler)
    assert await client.delete("/v1/projects/1", session=signed_in_session) is None
    await client.close()


@pytest.mark.asyncio
async def test_health_check_true_on_200() -> None:
    """Test that the health check reports a healthy API."""
    client = make_client(lambda request: httpx.Response(200, json={"status": "ok"}))
    assert await client.health_check() is True
    await client.close()


@pytest.mark.asyncio
async def test_health_check_false_on_error() -> None:
    """Test that the health check reports an unreachable API as unhealthy."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    client = make_client(handler)
    assert await client.health_check() is False
    await client.close()


def test_error_message_variants() -> None:
    """Test extraction of the backend message from the supported body shapes."""
    assert error_message(httpx.Response(400, json={"message": "bad"})) == "bad"
    assert error_message(httpx.Response(400, json={"message": ["a", "b"]})) == "a, b"
    assert error_message(httpx.Response(400, json={"error": {"message": "nested"}})) == "nested"
    assert error_message(httpx.Response(400, json={"error": "plain"})) == "plain"
    assert error_message(httpx.Response(502, content=b"<html>")) == "Bad Gateway"


def test_unwrap_envelopes() -> None:
    """Test that both API envelopes yield their data payload."""
    assert MedentApiClient.unwrap({"success": True, "data": [1]}) == [1]
    assert MedentApiClient.unwrap({"statusCode": 200, "message": "ok", "data": {"a": 1}}) == {"a": 1}
    assert MedentApiClient.unwrap([1, 2]) == [1, 2]
