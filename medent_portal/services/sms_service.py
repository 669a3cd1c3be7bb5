"""
SMS delivery of payment links.

Two routes reach a customer's phone: carrier email-to-SMS gateways (the
portal builds the gateway addresses, the backend or the staff's mail client
sends them) and the SMS cloud function, which takes an E.164 number.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import quote

import httpx

from ..api_client import MedentApiClient, api_client
from ..config import settings
from ..exceptions import ServiceUnavailableException, ValidationException
from ..logging_config import get_logger
from .external_http import get_external_http_client

logger = get_logger(__name__)

SMS_SUBJECT = "決済申込みのご案内"

_MOBILE_PATTERN = re.compile(r"^0[789]0\d{8}$")
_INTERNATIONAL_PATTERN = re.compile(r"^(\+)?81[789]0\d{8}$")


@dataclass(frozen=True)
class CarrierGateway:
    name: str
    domain: str
    pattern: re.Pattern


CARRIER_GATEWAYS = (
    CarrierGateway("docomo", "@docomo.ne.jp", re.compile(r"^0[789]0[1-9]\d{7}$")),
    CarrierGateway("au/UQ mobile", "@ezweb.ne.jp", re.compile(r"^0[789]0[1-9]\d{7}$")),
    CarrierGateway("softbank", "@softbank.ne.jp", re.compile(r"^0[789]0[1-9]\d{7}$")),
    CarrierGateway("rakuten", "@rakumail.jp", re.compile(r"^0[789]0\d{8}$")),
)


def _digits(value: str) -> str:
    return re.sub(r"\D", "", value)


def _encode_component(value: str) -> str:
    """Percent-encode like a URI component (keeps ``-_.!~*'()``)."""
    return quote(value, safe="-_.!~*'()")


def generate_sms_emails(phone_number: str, carrier: Optional[str] = None) -> List[str]:
    """
    Gateway addresses for a phone number.

    Args:
        phone_number: Phone number in any notation
        carrier: Carrier name; unknown or empty means every carrier

    Returns:
        One address for a known carrier, otherwise one per carrier
    """
    cleaned = _digits(phone_number)
    if carrier:
        for gateway in CARRIER_GATEWAYS:
            if gateway.name == carrier:
                return [f"{cleaned}{gateway.domain}"]
    return [f"{cleaned}{gateway.domain}" for gateway in CARRIER_GATEWAYS]


def generate_mailto_link(
    phone_number: str, message: str, carrier: Optional[str] = None
) -> str:
    """``mailto:`` link that BCCs the message to the gateway addresses."""
    emails = generate_sms_emails(phone_number, carrier)
    return (
        f"mailto:?bcc={','.join(emails)}"
        f"&subject={_encode_component(SMS_SUBJECT)}"
        f"&body={_encode_component(message)}"
    )


def get_carriers() -> List[Dict[str, str]]:
    return [
        {"value": "", "label": "不明（全キャリアに送信）"},
        {"value": "docomo", "label": "ドコモ"},
        {"value": "au/UQ mobile", "label": "au / UQ mobile"},
        {"value": "softbank", "label": "ソフトバンク / Y!mobile"},
        {"value": "rakuten", "label": "楽天モバイル"},
    ]


def format_phone_number(phone: str) -> str:
    """Convert a Japanese phone number to E.164 (``+81...``)."""
    cleaned = _digits(phone)
    if cleaned.startswith("0"):
        return f"+81{cleaned[1:]}"
    if cleaned.startswith("81"):
        return f"+{cleaned}"
    return f"+81{cleaned}"


def validate_phone_number(phone: str) -> bool:
    """True for Japanese mobile numbers, domestic or ``+81`` notation."""
    return bool(
        _MOBILE_PATTERN.match(_digits(phone)) or _INTERNATIONAL_PATTERN.match(phone)
    )


class SmsService:
    """Sends payment-link messages by SMS."""

    def __init__(
        self,
        client: Optional[MedentApiClient] = None,
        function_url: Optional[str] = None,
    ) -> None:
        self.client = client or api_client
        self.function_url = function_url or settings.SMS_FUNCTION_URL

    async def send_custom_sms(self, phone_number: str, message: str) -> Dict:
        """
        Send a message through the SMS cloud function.

        Raises:
            ValidationException: If the number is not a Japanese mobile number
            ServiceUnavailableException: If the function fails or is unreachable
        """
        if not validate_phone_number(phone_number):
            raise ValidationException("phone_number", phone_number, "無効な電話番号です")

        formatted = format_phone_number(phone_number)
        http = await get_external_http_client()
        try:
            response = await http.post(
                self.function_url,
                json={"phoneNumber": formatted, "message": message},
            )
            response.raise_for_status()
        except httpx.HTTPError as error:
            logger.error(
                "SMS function call failed",
                extra={
                    "extra_fields": {
                        "phone_number": formatted,
                        "error_type": type(error).__name__,
                        "error_message": str(error),
                    }
                },
            )
            raise ServiceUnavailableException("sms-function", "SMS送信に失敗しました") from error

        logger.info("SMS sent", extra={"extra_fields": {"phone_number": formatted}})
        return response.json() if response.content else {}

    async def send_via_api(self, phone_number: str, message: str) -> None:
        """Ask the backend to mail the message to every carrier gateway."""
        await self.client.post(
            "/v1/sms/email-gateway",
            json={
                "phoneNumber": phone_number,
                "message": message,
                "recipients": generate_sms_emails(phone_number),
            },
        )


sms_service = SmsService()
