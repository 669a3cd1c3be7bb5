"""
Health, metrics and basic-auth check endpoints.
"""

import secrets
from typing import Any, Dict

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..api_client import api_client
from ..config import settings
from ..metrics import metrics_endpoint
from ..models import CredentialCheck

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    summary="Health check",
    description="Check portal health and financing API reachability",
)
async def health_check() -> Dict[str, Any]:
    """
    Perform health check on the portal and the financing API.

    Returns:
        Dictionary with health status information:
        {
            "status": "healthy" | "degraded",
            "service": "medent-portal",
            "dependencies": {"financing_api": "healthy" | "unhealthy"}
        }
    """
    api_healthy = await api_client.health_check()
    return {
        "status": "healthy" if api_healthy else "degraded",
        "service": "medent-portal",
        "dependencies": {
            "financing_api": "healthy" if api_healthy else "unhealthy",
        },
    }


@router.get("/api/healthz", summary="Liveness probe")
async def healthz() -> Dict[str, str]:
    return {"status": "ok"}


@router.get("/metrics", include_in_schema=False)
async def metrics():
    """Prometheus metrics endpoint."""
    return await metrics_endpoint()


def _matches(given: str, expected: str) -> bool:
    return secrets.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


@router.post("/api/auth/check", summary="Basic-auth gate credential check")
async def basic_auth_check(credentials: CredentialCheck) -> JSONResponse:
    """Check a username and password against the configured gate user."""
    if (
        settings.BASIC_AUTH_USER
        and _matches(credentials.username, settings.BASIC_AUTH_USER)
        and _matches(credentials.password, settings.BASIC_AUTH_PASSWORD)
    ):
        return JSONResponse({"success": True})

    return JSONResponse(status_code=401, content={"success": False})
