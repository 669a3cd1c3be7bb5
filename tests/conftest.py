"""
Portal Tests - Test Configuration.

Provides pytest fixtures for testing the portal: sample API payloads,
signed-in auth state and helpers to build the auth cookie.
"""

import os
import time
from typing import Any, Callable, Dict, List
from unittest.mock import AsyncMock

import jwt
import pytest

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("API_BASE_URL", "http://test-api.local/api")

from medent_portal.models import AuthState, TokenPair, User  # noqa: E402
from medent_portal.session import AuthSession, dump_auth_state, token_refresher  # noqa: E402


@pytest.fixture(autouse=True)
def reset_token_refresher():
    """Forget refresh results shared between requests."""
    token_refresher.clear()
    yield
    token_refresher.clear()


def make_token(expires_in: int = 3600, subject: str = "user-1") -> str:
    """JWT whose ``exp`` claim lies ``expires_in`` seconds from now."""
    return jwt.encode(
        {"sub": subject, "exp": int(time.time()) + expires_in},
        "test-secret",
        algorithm="HS256",
    )


@pytest.fixture
def token_factory() -> Callable[..., str]:
    return make_token


@pytest.fixture
def user() -> User:
    return User(id="user-1", name="Taro Yamada", email="taro@example.com")


@pytest.fixture
def auth_state(user: User) -> AuthState:
    """
    Signed-in auth state with a long-lived access token.

    Returns:
        AuthState as persisted in the auth cookie
    """
    return AuthState(
        user=user,
        token=make_token(),
        refresh_token="refresh-1",
        is_authenticated=True,
    )


@pytest.fixture
def auth_cookie(auth_state: AuthState) -> Dict[str, str]:
    """Cookie jar holding the signed-in auth state."""
    return {"auth-storage": dump_auth_state(auth_state)}


@pytest.fixture
def auth_backend() -> AsyncMock:
    """
    Auth backend double.

    ``refresh_token`` hands out a fresh token pair; ``login`` returns a user
    with a token pair.
    """
    backend = AsyncMock()
    backend.refresh_token.return_value = TokenPair(
        accessToken=make_token(subject="refreshed"), refreshToken="refresh-2"
    )
    backend.login.return_value = (
        User(id="user-1", name="Taro Yamada", email="taro@example.com"),
        make_token(),
        "refresh-1",
    )
    return backend


@pytest.fixture
def signed_in_session(auth_state: AuthState, auth_backend: AsyncMock) -> AuthSession:
    return AuthSession(auth_state, backend=auth_backend)


@pytest.fixture
def session_factory(auth_backend: AsyncMock) -> Callable[..., AuthSession]:
    def factory(**state: Any) -> AuthSession:
        return AuthSession(AuthState(**state), backend=auth_backend)

    return factory


@pytest.fixture
def mock_project_record() -> Dict[str, Any]:
    """
    Project record in the backend's shape.

    Returns:
        Dictionary as returned inside the ``data`` list of ``/v1/projects``
    """
    return {
        "id": 17,
        "projectNumber": "P-2024-0017",
        "customerId": "C-001",
        "clinicName": "山田歯科クリニック",
        "propertyName": "歯科用CT",
        "amount": 8800000,
        "selectedFinanceCompany": {"name": "リコーリース"},
        "status": {"name": "Screening OK", "nameJp": "審査OK"},
        "applicationRequestDate": "2024-05-01T09:00:00Z",
        "applicationDate": "2024-05-03T10:30:00Z",
        "contractRequestDate": None,
    }


@pytest.fixture
def lease_screening_form() -> Dict[str, str]:
    """Complete lease screening form (snake_case field names)."""
    return {
        "business_type": "医療法人",
        "company_name": "医療法人山田会",
        "hospital_name": "山田歯科クリニック",
        "hospital_postal_code": "150-0001",
        "hospital_address": "東京都渋谷区神宮前1-1-1",
        "hospital_tel": "03-1234-5678",
        "representative_last_name": "山田",
        "representative_first_name": "太郎",
        "representative_last_name_furigana": "やまだ",
        "representative_first_name_furigana": "たろう",
        "birth_date": "1975/04/01",
        "representative_postal_code": "1500002",
        "representative_address": "東京都渋谷区渋谷2-2-2",
        "representative_tel": "090-1234-5678",
        "property_name": "歯科用CT",
        "amount": "8,800,000",
    }


@pytest.fixture
def loan_companies_payload() -> List[Dict[str, Any]]:
    return [
        {"code": "B", "name": "Bローン", "minAmount": 10000, "maxAmount": 500000, "priority": 2},
        {"code": "A", "name": "Aローン", "minAmount": 10000, "maxAmount": 3000000, "priority": 1},
        {"code": "C", "name": "Cローン", "minAmount": 10000, "maxAmount": 3000000},
        {"code": "Z", "name": "Zローン", "minAmount": 10000, "maxAmount": 3000000, "priority": 0},
    ]
