"""
Postal code to address lookup (zipcloud).
"""

import re
from dataclasses import dataclass
from typing import Optional

import httpx

from ..config import settings
from ..exceptions import ServiceUnavailableException
from ..logging_config import get_logger
from .external_http import get_external_http_client

logger = get_logger(__name__)


@dataclass(frozen=True)
class PostalAddress:
    prefecture: str
    city: str
    town: str

    @property
    def full(self) -> str:
        return f"{self.prefecture}{self.city}{self.town}"


async def lookup(postal_code: str, url: Optional[str] = None) -> Optional[PostalAddress]:
    """
    Resolve a Japanese postal code.

    Only complete 7-digit codes are queried; anything shorter returns None
    without a request.

    Returns:
        The first matching address, or None when nothing matched

    Raises:
        ServiceUnavailableException: If the lookup service cannot be reached
    """
    cleaned = re.sub(r"[^0-9]", "", postal_code or "")
    if len(cleaned) != 7:
        return None

    http = await get_external_http_client()
    try:
        response = await http.get(url or settings.POSTAL_LOOKUP_URL, params={"zipcode": cleaned})
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as error:
        logger.warning(
            "Address lookup failed",
            extra={
                "extra_fields": {
                    "postal_code": cleaned,
                    "error_type": type(error).__name__,
                }
            },
        )
        raise ServiceUnavailableException("postal-lookup", "住所の取得に失敗しました") from error

    results = data.get("results") or []
    if not results:
        return None

    first = results[0]
    return PostalAddress(
        prefecture=first.get("address1", ""),
        city=first.get("address2", ""),
        town=first.get("address3", ""),
    )
