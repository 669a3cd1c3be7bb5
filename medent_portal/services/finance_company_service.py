"""
Finance company, payment plan, and clinic settings endpoints.
"""

from typing import Any, Dict, List, Optional, Sequence

from ..api_client import MedentApiClient, api_client
from ..logging_config import get_logger
from ..models import ClinicSettings, FinanceCompany, LoanCompany, PaymentPlanSetting

logger = get_logger(__name__)


def extract_companies(body: Any) -> List[Dict[str, Any]]:
    """
    Find the company list in a ``/finance-companies/clinic`` response.

    The endpoint has answered with a bare list, ``{"data": [...]}``,
    ``{"companies": [...]}``, and ``{"success": true, "data": {"companies" |
    "financeCompanies": [...]}}``. Anything else yields an empty list.
    """
    if isinstance(body, list):
        return body
    if not isinstance(body, dict):
        return []

    data = body.get("data")
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ("companies", "financeCompanies"):
            if isinstance(data.get(key), list):
                return data[key]
    if isinstance(body.get("companies"), list):
        return body["companies"]

    logger.warning(
        "Companies data is not in expected format",
        extra={"extra_fields": {"keys": sorted(body)}},
    )
    return []


def priority_payload(companies: Sequence[FinanceCompany]) -> Dict[str, Any]:
    return {
        "priorities": [
            {"id": company.id, "priority": company.priority, "isActive": company.is_active}
            for company in companies
        ]
    }


class FinanceCompanyService:
    """Loan companies, clinic priorities, payment plans, and clinic settings."""

    def __init__(self, client: Optional[MedentApiClient] = None) -> None:
        self.client = client or api_client

    async def get_public_loan_companies(self) -> List[LoanCompany]:
        """Loan companies offered on public payment links."""
        body = await self.client.get("/public/loan-companies", authenticated=False)
        data = self.client.unwrap(body)
        if isinstance(data, dict):
            data = data.get("companies", [])
        return [LoanCompany.model_validate(item) for item in data or []]

    async def get_clinic_companies(self) -> List[FinanceCompany]:
        """Clinic's finance companies ordered by priority."""
        body = await self.client.get("/finance-companies/clinic")
        companies = [FinanceCompany.model_validate(item) for item in extract_companies(body)]
        return sorted(companies, key=lambda company: company.priority)

    async def update_priorities(self, companies: Sequence[FinanceCompany]) -> Any:
        logger.info(
            "Updating finance company priorities",
            extra={"extra_fields": {"count": len(companies)}},
        )
        return await self.client.put(
            "/finance-companies/clinic/priority", json=priority_payload(companies)
        )

    async def get_payment_plans(self) -> List[PaymentPlanSetting]:
        body = await self.client.get("/payment-plans")
        data = body if isinstance(body, list) else []
        return [PaymentPlanSetting.model_validate(item) for item in data]

    async def save_payment_plan(self, plan: PaymentPlanSetting) -> Any:
        """Create the plan, or update it when it already has an id."""
        payload = plan.model_dump(by_alias=True)
        if plan.id:
            return await self.client.put(f"/payment-plans/{plan.id}", json=payload)
        return await self.client.post("/payment-plans", json=payload)

    async def delete_payment_plan(self, plan_id: str) -> None:
        await self.client.delete(f"/payment-plans/{plan_id}")

    async def get_clinic_settings(self) -> ClinicSettings:
        body = await self.client.get("/clinic-settings")
        return ClinicSettings.model_validate(body if isinstance(body, dict) else {})

    async def save_clinic_settings(self, clinic_settings: ClinicSettings) -> Any:
        return await self.client.put(
            "/clinic-settings", json=clinic_settings.model_dump(by_alias=True)
        )


finance_company_service = FinanceCompanyService()
