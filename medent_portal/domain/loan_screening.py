"""
Sequential multi-company loan screening.

Eligible loan companies are screened one at a time in priority order until
one approves. A company that errors is recorded and the next one is tried.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence
from urllib.parse import urlencode

from ..logging_config import get_logger
from ..metrics import track_screening_result
from ..models import LoanCompany

logger = get_logger(__name__)

DEFAULT_PRIORITY = 999

SCREENING_STEPS = ("審査会社選択", "自動審査実行", "審査結果確認", "申込完了")

FALLBACK_COMPANIES = (
    LoanCompany(
        code="CBS",
        name="シービーエス",
        description="審査スピード重視・即日対応可能",
        min_amount=10000,
        max_amount=1000000,
        priority=1,
    ),
)


class ScreeningStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ERROR = "error"


@dataclass
class ScreeningResult:
    company_code: str
    status: ScreeningStatus = ScreeningStatus.PENDING
    message: str = ""
    application_id: Optional[str] = None


Screener = Callable[[LoanCompany], Awaitable[ScreeningResult]]


def eligible_companies(companies: Sequence[LoanCompany], amount: int) -> List[LoanCompany]:
    """
    Companies that lend ``amount``, highest priority (lowest number) first.

    Companies without a priority, or with priority 0, sort last; ties keep
    their input order.
    """
    eligible = [c for c in companies if c.min_amount <= amount <= c.max_amount]
    return sorted(
        eligible,
        key=lambda c: c.priority or DEFAULT_PRIORITY,
    )


@dataclass
class LoanScreeningRun:
    """
    One screening pass over the eligible companies.

    Attributes:
        amount: Amount applied for
        companies: Companies to screen, already in priority order
        results: One result per company screened so far
        current_step: Index into ``SCREENING_STEPS``
    """

    amount: int
    companies: List[LoanCompany]
    results: List[ScreeningResult] = field(default_factory=list)
    current_step: int = 0

    @property
    def approved(self) -> Optional[ScreeningResult]:
        for result in self.results:
            if result.status is ScreeningStatus.APPROVED:
                return result
        return None

    def company_name(self, code: str) -> str:
        for company in self.companies:
            if company.code == code:
                return company.name
        return code

    async def run(self, screen: Screener) -> Optional[ScreeningResult]:
        """
        Screen companies in order, stopping at the first approval.

        Args:
            screen: Submits the application to one company

        Returns:
            The approving result, or None when no company approved
        """
        self.current_step = 1
        for company in self.companies:
            try:
                result = await screen(company)
            except Exception as error:
                logger.warning(
                    "Screening failed for company",
                    extra={
                        "extra_fields": {
                            "company": company.code,
                            "error_type": type(error).__name__,
                            "error_message": str(error),
                        }
                    },
                )
                result = ScreeningResult(
                    company_code=company.code,
                    status=ScreeningStatus.ERROR,
                    message=str(error) or "審査中にエラーが発生しました",
                )

            self.results.append(result)
            track_screening_result(company.code, result.status.value)

            if result.status is ScreeningStatus.APPROVED:
                break

        self.current_step = 2
        return self.approved

    def completion_redirect(self) -> str:
        self.current_step = 3
        return completion_redirect(self.results, self.amount)


def completion_redirect(results: Sequence[ScreeningResult], amount: int) -> str:
    """Completion page URL for the first approval, or the rejection page."""
    for result in results:
        if result.status is ScreeningStatus.APPROVED:
            query = urlencode(
                {
                    "amount": amount,
                    "status": "approved",
                    "company": result.company_code,
                    "applicationId": result.application_id or "",
                }
            )
            return f"/apply/complete?{query}"
    return f"/apply/complete?{urlencode({'amount': amount, 'status': 'rejected'})}"
