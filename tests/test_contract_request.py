"""
Tests for lease company selection and contract requests.
"""

import pytest

from medent_portal.domain.contract_request import (
    CONTRACT_LIMIT,
    LEASE_COMPANY_RESULTS,
    ContractItem,
    ContractRequest,
    ContractRequestError,
    LeaseCompanySelection,
)


def make_request(company: str = "リコーリース", **kwargs) -> ContractRequest:
    items = kwargs.pop(
        "items",
        [ContractItem("ユニット", 3000000, 2), ContractItem("スキャナー", 5000000, 1)],
    )
    return ContractRequest(company_name=company, items=items, **kwargs)


def test_contract_totals() -> None:
    """
    Test subtotal, tax and difference to the limit.

    Verifies 10 % tax and the remaining room under the contract limit.
    """
    request = make_request()

    assert request.subtotal == 11000000
    assert request.tax == 1100000
    assert request.total == 12100000
    assert request.difference == CONTRACT_LIMIT - 12100000
    assert request.is_over_limit is False


def test_tax_rounds_half_up() -> None:
    """Test that tax is rounded half up to whole yen."""
    assert make_request(items=[ContractItem("部品", 15)]).tax == 2
    assert make_request(items=[ContractItem("部品", 14)]).tax == 1


def test_difference_is_zero_without_limit() -> None:
    request = make_request(max_amount=0)

    assert request.difference == 0
    assert request.is_over_limit is False


@pytest.mark.parametrize(
    "kwargs",
    [
        {"items": []},
        {"items": [ContractItem("x", 1)] * 11},
        {"items": [ContractItem("x", 1, 0)]},
        {"lease_period": "4"},
    ],
)
def test_invalid_requests_are_rejected(kwargs) -> None:
    """Test item count, quantity and lease period validation."""
    with pytest.raises(ContractRequestError):
        make_request(**kwargs)


def test_to_dict_uses_camel_case() -> None:
    data = make_request(lease_period="7", uploaded_files=[{"name": "a.pdf", "size": 10}]).to_dict()

    assert data["companyName"] == "リコーリース"
    assert data["leasePeriod"] == "7"
    assert data["maxAmount"] == CONTRACT_LIMIT
    assert data["uploadedFiles"] == [{"name": "a.pdf", "size": 10}]
    assert data["items"][0] == {"name": "ユニット", "price": 3000000, "quantity": 2}


def test_only_ok_companies_can_be_selected() -> None:
    """Test that a company that failed screening cannot be chosen."""
    selection = LeaseCompanySelection(LEASE_COMPANY_RESULTS)

    with pytest.raises(ContractRequestError):
        selection.toggle("日医リース")
    with pytest.raises(ContractRequestError):
        selection.toggle("存在しない会社")


def test_select_confirm_and_deselect() -> None:
    """
    Test the selection flow.

    Choosing a company opens its request, confirming adds it with the
    request data, choosing it again drops it.
    """
    selection = LeaseCompanySelection(LEASE_COMPANY_RESULTS)

    assert selection.toggle("リコーリース") is True
    assert selection.active_company == "リコーリース"

    selection.confirm_request(make_request())
    assert selection.selected == ["リコーリース"]
    assert selection.active_company is None
    details = selection.contract_data["リコーリース"]["leaseCompanyDetails"]
    assert details["companyName"] == "リコーリース"
    assert details["rates"]["fiveYear"] == "1.8%"

    assert selection.toggle("リコーリース") is False
    assert selection.selected == []


def test_confirm_requires_open_request() -> None:
    selection = LeaseCompanySelection(LEASE_COMPANY_RESULTS)

    with pytest.raises(ContractRequestError):
        selection.confirm_request(make_request())


def test_confirm_rejects_total_over_limit() -> None:
    """Test that a request above the contract limit cannot be confirmed."""
    selection = LeaseCompanySelection(LEASE_COMPANY_RESULTS)
    selection.toggle("MedEnt")
    over = make_request("MedEnt", items=[ContractItem("CT", 50000000)])

    with pytest.raises(ContractRequestError):
        selection.confirm_request(over)
    assert selection.selected == []
    assert selection.active_company == "MedEnt"


def test_cancel_and_reset() -> None:
    selection = LeaseCompanySelection(LEASE_COMPANY_RESULTS)
    selection.toggle("MedEnt")
    selection.cancel_request()
    assert selection.active_company is None

    selection.toggle("MedEnt")
    selection.confirm_request()
    selection.reset()
    assert selection.selected == []
