"""
Lease company results and contract requests.

After screening, staff pick one or more approving lease companies for a
project; each pick carries a contract request listing the equipment.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Sequence

from ..models import LeaseCompanyResult, LeaseRates

CONTRACT_LIMIT = 50_000_000
TAX_RATE = Decimal("0.1")
MAX_ITEMS = 10
LEASE_PERIODS = ("5", "6", "7")

_NO_RATES = LeaseRates(fiveYear="-", sixYear="-", sevenYear="-")

LEASE_COMPANY_RESULTS = (
    LeaseCompanyResult(
        companyName="シャープファイナンス",
        screeningResult="OK",
        rates=LeaseRates(fiveYear="1.8%", sixYear="1.6%", sevenYear="1.3%"),
        maxAmount=1200,
        additionalConditions="動産保険有り\n再リース6ヶ月\n買取10%",
    ),
    LeaseCompanyResult(
        companyName="リコーリース",
        screeningResult="OK",
        rates=LeaseRates(fiveYear="1.8%", sixYear="1.6%", sevenYear="1.3%"),
        maxAmount=1500,
        additionalConditions="動産保険有り\n再リース3ヶ月\n買取5%",
    ),
    LeaseCompanyResult(
        companyName="日医リース",
        screeningResult="NG",
        rates=_NO_RATES,
        maxAmount=0,
        additionalConditions="-",
    ),
    LeaseCompanyResult(
        companyName="MedEnt",
        screeningResult="OK",
        rates=LeaseRates(fiveYear="1.8%", sixYear="1.6%", sevenYear="1.3%"),
        maxAmount=2000,
        additionalConditions="動産保険無し\n請求条件付き\n経営コンサル付き",
    ),
)


class ContractRequestError(ValueError):
    """Raised when a contract request cannot be built or confirmed."""


@dataclass
class ContractItem:
    name: str
    price: int
    quantity: int = 1

    @property
    def amount(self) -> int:
        return self.price * self.quantity


@dataclass
class ContractRequest:
    """
    Equipment list sent to a lease company.

    Attributes:
        company_name: Lease company the request goes to
        items: One to ten line items
        lease_period: Lease term in years ("5", "6" or "7")
        uploaded_files: ``{"name", "size"}`` of supporting documents
    """

    company_name: str
    items: List[ContractItem]
    lease_period: str = "5"
    uploaded_files: List[Dict[str, Any]] = field(default_factory=list)
    max_amount: int = CONTRACT_LIMIT

    def __post_init__(self) -> None:
        if not 1 <= len(self.items) <= MAX_ITEMS:
            raise ContractRequestError(f"A contract request needs 1 to {MAX_ITEMS} items")
        if any(item.quantity < 1 for item in self.items):
            raise ContractRequestError("Item quantity must be at least 1")
        if self.lease_period not in LEASE_PERIODS:
            raise ContractRequestError(f"Unsupported lease period: {self.lease_period}")

    @property
    def subtotal(self) -> int:
        return sum(item.amount for item in self.items)

    @property
    def tax(self) -> int:
        return int((self.subtotal * TAX_RATE).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    @property
    def total(self) -> int:
        return self.subtotal + self.tax

    @property
    def difference(self) -> int:
        return self.max_amount - self.total if self.max_amount > 0 else 0

    @property
    def is_over_limit(self) -> bool:
        return self.max_amount > 0 and self.total > self.max_amount

    def to_dict(self) -> Dict[str, Any]:
        return {
            "companyName": self.company_name,
            "items": [
                {"name": item.name, "price": item.price, "quantity": item.quantity}
                for item in self.items
            ],
            "subtotal": self.subtotal,
            "tax": self.tax,
            "total": self.total,
            "maxAmount": self.max_amount,
            "difference": self.difference,
            "leasePeriod": self.lease_period,
            "uploadedFiles": list(self.uploaded_files),
        }


class LeaseCompanySelection:
    """
    Which lease companies staff chose for a project, with their requests.

    Only companies whose screening result is OK can be chosen. Choosing a
    company goes through its contract request; choosing it again drops it.
    """

    def __init__(self, results: Sequence[LeaseCompanyResult]) -> None:
        self.results = list(results)
        self.selected: List[str] = []
        self.contract_data: Dict[str, Dict[str, Any]] = {}
        self.active_company: Optional[str] = None

    def reset(self) -> None:
        """Clear the selection (the results dialog was reopened)."""
        self.selected = []
        self.active_company = None

    def result_for(self, company_name: str) -> Optional[LeaseCompanyResult]:
        for result in self.results:
            if result.company_name == company_name:
                return result
        return None

    def toggle(self, company_name: str) -> bool:
        """
        Deselect a chosen company, or open a contract request for it.

        Returns:
            True when a contract request was opened

        Raises:
            ContractRequestError: If the company did not pass screening
        """
        if company_name in self.selected:
            self.selected.remove(company_name)
            self.active_company = None
            return False

        result = self.result_for(company_name)
        if result is None or result.screening_result != "OK":
            raise ContractRequestError(f"{company_name} cannot be selected")

        self.active_company = company_name
        return True

    def cancel_request(self) -> None:
        self.active_company = None

    def confirm_request(self, request: Optional[ContractRequest] = None) -> None:
        """
        Add the company with an open request to the selection.

        Raises:
            ContractRequestError: If no request is open or the total is over the limit
        """
        if self.active_company is None:
            raise ContractRequestError("No contract request is open")
        if request is not None and request.is_over_limit:
            raise ContractRequestError("Contract total exceeds the limit")

        company_name = self.active_company
        self.selected.append(company_name)

        if request is not None:
            result = self.result_for(company_name)
            data = request.to_dict()
            data["leaseCompanyDetails"] = (
                result.model_dump(by_alias=True) if result is not None else None
            )
            self.contract_data[company_name] = data

        self.active_company = None
