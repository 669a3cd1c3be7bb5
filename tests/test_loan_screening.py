"""
Tests for sequential loan screening.
"""

from typing import List
from urllib.parse import parse_qs, urlparse

import pytest

from medent_portal.domain.loan_screening import (
    LoanScreeningRun,
    ScreeningResult,
    ScreeningStatus,
    completion_redirect,
    eligible_companies,
)
from medent_portal.models import LoanCompany


@pytest.fixture
def companies(loan_companies_payload) -> List[LoanCompany]:
    return [LoanCompany.model_validate(item) for item in loan_companies_payload]


def test_eligible_companies_filters_and_orders(companies: List[LoanCompany]) -> None:
    """
    Test eligibility and screening order.

    Verifies the amount range filter, priority order and that companies
    without a priority, or with priority 0, go last in input order.
    """
    assert [c.code for c in eligible_companies(companies, 100000)] == ["A", "B", "C", "Z"]
    assert [c.code for c in eligible_companies(companies, 1000000)] == ["A", "C", "Z"]
    assert eligible_companies(companies, 5000) == []


@pytest.mark.asyncio
async def test_run_stops_at_first_approval(companies: List[LoanCompany]) -> None:
    """Test that screening stops once a company approves."""
    screened = []

    async def screen(company: LoanCompany) -> ScreeningResult:
        screened.append(company.code)
        if company.code == "B":
            return ScreeningResult(company.code, ScreeningStatus.APPROVED, application_id="app-1")
        return ScreeningResult(company.code, ScreeningStatus.REJECTED)

    run = LoanScreeningRun(amount=100000, companies=eligible_companies(companies, 100000))
    approved = await run.run(screen)

    assert screened == ["A", "B"]
    assert approved is not None
    assert approved.company_code == "B"
    assert run.current_step == 2


@pytest.mark.asyncio
async def test_run_records_errors_and_continues(companies: List[LoanCompany]) -> None:
    """Test that a company that errors is recorded and the next one is tried."""

    async def screen(company: LoanCompany) -> ScreeningResult:
        if company.code == "A":
            raise RuntimeError("timeout")
        return ScreeningResult(company.code, ScreeningStatus.APPROVED, application_id="app-2")

    run = LoanScreeningRun(amount=100000, companies=eligible_companies(companies, 100000))
    approved = await run.run(screen)

    assert run.results[0].status is ScreeningStatus.ERROR
    assert run.results[0].message == "timeout"
    assert approved.company_code == "B"


@pytest.mark.asyncio
async def test_run_without_approval(companies: List[LoanCompany]) -> None:
    """Test that every company is tried when none approves."""

    async def screen(company: LoanCompany) -> ScreeningResult:
        return ScreeningResult(company.code, ScreeningStatus.REJECTED)

    run = LoanScreeningRun(amount=100000, companies=eligible_companies(companies, 100000))

    assert await run.run(screen) is None
    assert len(run.results) == 4
    assert run.completion_redirect() == "/apply/complete?amount=100000&status=rejected"
    assert run.current_step == 3


def test_completion_redirect_for_approval() -> None:
    """Test the completion page URL for an approved application."""
    url = completion_redirect(
        [
            ScreeningResult("Z", ScreeningStatus.REJECTED),
            ScreeningResult("A", ScreeningStatus.APPROVED, application_id="app-1"),
        ],
        250000,
    )
    parsed = urlparse(url)

    assert parsed.path == "/apply/complete"
    assert parse_qs(parsed.query) == {
        "amount": ["250000"],
        "status": ["approved"],
        "company": ["A"],
        "applicationId": ["app-1"],
    }


def test_company_name_falls_back_to_code(companies: List[LoanCompany]) -> None:
    run = LoanScreeningRun(amount=1, companies=companies)

    assert run.company_name("A") == "Aローン"
    assert run.company_name("unknown") == "unknown"
