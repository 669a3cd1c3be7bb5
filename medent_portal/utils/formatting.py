"""
Display formatting helpers (amounts, dates, addresses, card numbers).

All amounts are yen and grouped the way ``ja-JP`` number formatting does:
thousands separated by commas, at most three fraction digits.
"""

import math
import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Context, Decimal
from typing import Optional, Union

_FLOAT_PREFIX = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")

Number = Union[int, float, str, None]


def _parse_float(text: str) -> Optional[float]:
    """Leading-number parse: ``"12.5円"`` -> 12.5, ``"abc"`` -> None."""
    match = _FLOAT_PREFIX.match(text)
    if not match:
        return None
    return float(match.group(0))


def _group(value: float) -> str:
    quantized = Decimal(repr(value)).quantize(
        Decimal("0.001"), rounding=ROUND_HALF_UP, context=Context(prec=400)
    )
    text = format(quantized, ",f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_amount(amount: Number) -> str:
    """
    Format an amount with thousands separators.

    ``None``, NaN, and strings that do not start with a number give ``"0"``.
    Commas in string input are ignored.
    """
    if amount is None:
        return "0"

    if isinstance(amount, str):
        value = _parse_float(amount.replace(",", ""))
        if value is None:
            return "0"
    else:
        value = float(amount)

    if math.isnan(value):
        return "0"
    if math.isinf(value):
        return "∞" if value > 0 else "-∞"
    return _group(value)


def format_amount_input(value: str) -> str:
    """
    Normalize an amount being typed into an input field.

    Non-digits are dropped and leading zeros stripped (a lone ``0`` stays).
    Empty input stays empty.
    """
    digits = re.sub(r"[^\d]", "", value or "")
    digits = re.sub(r"^0+(?=\d)", "", digits)
    if not digits:
        return ""
    return f"{int(digits):,}"


def parse_formatted_amount(formatted_value: str) -> int:
    """``"1,234円"`` -> 1234; 0 when there are no digits."""
    digits = re.sub(r"[^\d]", "", formatted_value or "")
    return int(digits) if digits else 0


def format_japanese_address(postal_code: Optional[str], address: str) -> str:
    """Prefix the address with ``〒123-4567`` when the postal code is complete."""
    digits = re.sub(r"\D", "", postal_code or "")
    if len(digits) == 7:
        return f"〒{digits[:3]}-{digits[3:]} {address}"
    return address


def _as_date(value: Union[date, datetime, str, None]) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).replace("Z", "+00:00")
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10].replace("/", "-"))
    except ValueError:
        return None


def convert_date_to_iso(value: Union[date, datetime, str, None]) -> str:
    """``YYYY-MM-DD``; empty string for no date."""
    parsed = _as_date(value)
    return parsed.isoformat() if parsed else ""


def format_date_japanese(value: Union[date, datetime, str, None]) -> str:
    """``YYYY年MM月DD日``; empty string for no date."""
    parsed = _as_date(value)
    if parsed is None:
        return ""
    return f"{parsed.year}年{parsed.month:02d}月{parsed.day:02d}日"


def format_card_number(value: str) -> str:
    """Group card digits by four (``4111 1111 1111 1111``), at most 16 digits."""
    digits = re.sub(r"[^0-9]", "", value or "")[:16]
    return " ".join(digits[i : i + 4] for i in range(0, len(digits), 4))


def format_file_size(size: int) -> str:
    """Human-readable size with up to two decimals (``1.5 KB``)."""
    if size <= 0:
        return "0 Bytes"
    units = ("Bytes", "KB", "MB", "GB")
    index = min(int(math.floor(math.log(size) / math.log(1024))), len(units) - 1)
    scaled = math.floor(size / math.pow(1024, index) * 100 + 0.5) / 100
    text = f"{scaled:.2f}".rstrip("0").rstrip(".")
    return f"{text} {units[index]}"


_PROJECT_COLORS = {
    "審査OK": "success",
    "審査中": "warning",
    "審査NG": "error",
    "申込依頼済": "info",
}

_CONTRACT_COLORS = {
    "completed": "success",
    "pending": "warning",
    "rejected": "error",
    "approved": "info",
    "cancelled": "default",
}

_CONTRACT_PAYMENT_COLORS = {
    "paid": "success",
    "overdue": "error",
    "partially_paid": "warning",
}

_SCREENING_COLORS = {
    "approved": "success",
    "rejected": "error",
    "error": "error",
}

_STATUS_COLORS = {
    "project": _PROJECT_COLORS,
    "contract": _CONTRACT_COLORS,
    "contract_payment": _CONTRACT_PAYMENT_COLORS,
    "screening": _SCREENING_COLORS,
}


def status_color(kind: str, status: Optional[str]) -> str:
    """
    Badge colour for a status.

    Args:
        kind: ``project``, ``contract``, ``contract_payment`` or ``screening``
        status: Status value as shown or stored

    Returns:
        ``success``, ``warning``, ``error``, ``info`` or ``default``
    """
    return _STATUS_COLORS.get(kind, {}).get(status or "", "default")
