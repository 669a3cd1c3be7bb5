"""
Tests for display formatting helpers.
"""

from datetime import date, datetime

import pytest

from medent_portal.utils.formatting import (
    convert_date_to_iso,
    format_amount,
    format_amount_input,
    format_card_number,
    format_date_japanese,
    format_file_size,
    format_japanese_address,
    parse_formatted_amount,
    status_color,
)


@pytest.mark.parametrize(
    "value,expected",
    [
        (1234567, "1,234,567"),
        (0, "0"),
        (-1500, "-1,500"),
        (1234.5678, "1,234.568"),
        ("1,200", "1,200"),
        ("12.5円", "12.5"),
        ("abc", "0"),
        (None, "0"),
        (float("nan"), "0"),
    ],
)
def test_format_amount(value, expected: str) -> None:
    """Test thousands grouping and the fallbacks for unusable input."""
    assert format_amount(value) == expected


def test_format_amount_input() -> None:
    """Test normalization of an amount typed into a field."""
    assert format_amount_input("0012a34") == "1,234"
    assert format_amount_input("0") == "0"
    assert format_amount_input("") == ""


def test_parse_formatted_amount() -> None:
    assert parse_formatted_amount("1,234円") == 1234
    assert parse_formatted_amount("なし") == 0


def test_format_japanese_address() -> None:
    """Test the postal prefix, which needs all seven digits."""
    assert format_japanese_address("1500001", "東京都渋谷区") == "〒150-0001 東京都渋谷区"
    assert format_japanese_address("150-001", "東京都渋谷区") == "東京都渋谷区"
    assert format_japanese_address(None, "東京都渋谷区") == "東京都渋谷区"


def test_dates() -> None:
    """Test ISO and Japanese date formatting from the supported inputs."""
    assert convert_date_to_iso("2024/05/01") == "2024-05-01"
    assert convert_date_to_iso(datetime(2024, 5, 1, 9, 30)) == "2024-05-01"
    assert convert_date_to_iso("") == ""
    assert format_date_japanese("2024-05-01T09:00:00Z") == "2024年05月01日"
    assert format_date_japanese(date(2024, 12, 3)) == "2024年12月03日"
    assert format_date_japanese("not a date") == ""


def test_format_card_number() -> None:
    assert format_card_number("4111-1111-1111-1111") == "4111 1111 1111 1111"
    assert format_card_number("41111111111111119999") == "4111 1111 1111 1111"


@pytest.mark.parametrize(
    "size,expected",
    [(0, "0 Bytes"), (500, "500 Bytes"), (1536, "1.5 KB"), (1572864, "1.5 MB")],
)
def test_format_file_size(size: int, expected: str) -> None:
    assert format_file_size(size) == expected


def test_status_color() -> None:
    """Test badge colours per status kind, with a default for unknown values."""
    assert status_color("project", "審査OK") == "success"
    assert status_color("contract", "pending") == "warning"
    assert status_color("contract_payment", "overdue") == "error"
    assert status_color("contract", "unknown") == "default"
    assert status_color("nope", None) == "default"
