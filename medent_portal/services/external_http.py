"""
Shared HTTP client for third-party services (SMS function, postal lookup).
"""

from typing import Optional

import httpx

from ..logging_config import get_logger

logger = get_logger(__name__)

_external_http_client: Optional[httpx.AsyncClient] = None


async def get_external_http_client() -> httpx.AsyncClient:
    """
    Get or create the shared HTTP client for third-party requests.

    Returns:
        Configured httpx.AsyncClient instance
    """
    global _external_http_client
    if _external_http_client is None or _external_http_client.is_closed:
        _external_http_client = httpx.AsyncClient(
            timeout=10.0,
            limits=httpx.Limits(
                max_keepalive_connections=5,
                max_connections=20,
                keepalive_expiry=30.0,
            ),
        )
        logger.debug("Created external HTTP client with connection pooling")
    return _external_http_client


async def close_external_http_client() -> None:
    global _external_http_client
    if _external_http_client is not None and not _external_http_client.is_closed:
        await _external_http_client.aclose()
    _external_http_client = None
