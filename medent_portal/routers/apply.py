"""
Public payment-link wizard for end customers.

Plan selection leads either to card payment or to loan company selection,
the six-step loan application and the sequential screening run.
"""

import re
from typing import Dict, List, Optional

from fastapi import APIRouter, Form, Query, Request
from fastapi.responses import HTMLResponse

from ..domain.loan_screening import (
    FALLBACK_COMPANIES,
    SCREENING_STEPS,
    LoanScreeningRun,
    ScreeningResult,
    ScreeningStatus,
    eligible_companies,
)
from ..domain.payment_plans import (
    PlanType,
    calculate_custom_plan,
    calculate_plans,
    plan_destination,
)
from ..exceptions import ApiError, ServiceUnavailableException
from ..logging_config import get_logger
from ..models import LoanCompany, PaymentLinkInfo
from ..services.finance_company_service import finance_company_service
from ..services.payment_service import payment_service
from ..utils.formatting import format_card_number
from ..utils.validators import LOAN_APPLICATION_STEPS, validate_loan_application_step
from ..web import redirect, render

logger = get_logger(__name__)

router = APIRouter(prefix="/apply", tags=["Apply"])

CUSTOM_MONTH_OPTIONS = (3, 6, 10, 12, 18, 24, 30, 36, 48, 60)

CARD_EXPIRY_PATTERN = re.compile(r"^(0[1-9]|1[0-2])/\d{2}$")


async def _link_info(link_id: str) -> PaymentLinkInfo:
    try:
        return await payment_service.get_payment_link(link_id)
    except ApiError as error:
        logger.warning(
            "Payment link lookup failed",
            extra={"extra_fields": {"link_id": link_id, "status_code": error.status_code}},
        )
        return PaymentLinkInfo()


async def _loan_companies() -> List[LoanCompany]:
    try:
        companies = await finance_company_service.get_public_loan_companies()
    except (ApiError, ServiceUnavailableException) as error:
        logger.warning(
            "Loan companies unavailable, using fallback list",
            extra={"extra_fields": {"error_message": error.message}},
        )
        return list(FALLBACK_COMPANIES)
    return companies or list(FALLBACK_COMPANIES)


@router.get("/complete", response_class=HTMLResponse)
async def complete_page(
    request: Request,
    status: str = "approved",
    amount: int = 0,
    company: Optional[str] = None,
    applicationId: Optional[str] = None,
):
    return render(
        request,
        "apply/complete.html",
        {
            "status": status,
            "amount": amount,
            "company": company,
            "application_id": applicationId,
        },
        page="apply-complete",
    )


@router.get("/{link_id}", response_class=HTMLResponse)
async def plan_selection(request: Request, link_id: str, amount: Optional[int] = None):
    """Show the payment plans for the link's amount."""
    info = await _link_info(link_id)
    total = info.amount or amount or 0
    return render(
        request,
        "apply/plans.html",
        {
            "link_id": link_id,
            "info": info,
            "amount": total,
            "plans": calculate_plans(total) if total > 0 else [],
        },
        page="apply-plans",
    )


@router.post("/{link_id}/plan")
async def choose_plan(
    link_id: str,
    amount: int = Form(..., gt=0),
    plan_type: PlanType = Form(...),
    months: int = Form(1, ge=1),
):
    if plan_type is PlanType.CUSTOM:
        return redirect(f"/apply/{link_id}/simulation?amount={amount}&months={months}")

    for plan in calculate_plans(amount):
        if plan.type is plan_type and plan.months == months:
            return redirect(plan_destination(link_id, plan, amount))
    return redirect(f"/apply/{link_id}?amount={amount}", "プランを選択してください", "error")


@router.get("/{link_id}/simulation", response_class=HTMLResponse)
async def custom_plan_simulation(
    request: Request,
    link_id: str,
    amount: int = Query(..., gt=0),
    months: int = Query(12, ge=1, le=120),
):
    plan = calculate_custom_plan(amount, months)
    return render(
        request,
        "apply/simulation.html",
        {
            "link_id": link_id,
            "amount": amount,
            "plan": plan,
            "month_options": CUSTOM_MONTH_OPTIONS,
            "next_url": plan_destination(link_id, plan, amount),
        },
        page="apply-simulation",
    )


@router.get("/{link_id}/loan-selection", response_class=HTMLResponse)
async def loan_selection(
    request: Request,
    link_id: str,
    amount: int = Query(..., gt=0),
    months: int = Query(12, ge=1),
):
    """Loan companies that will screen the application, in screening order."""
    companies = eligible_companies(await _loan_companies(), amount)
    return render(
        request,
        "apply/loan_selection.html",
        {
            "link_id": link_id,
            "amount": amount,
            "months": months,
            "companies": companies,
            "steps": SCREENING_STEPS,
            "current_step": 0,
        },
        page="apply-loan-selection",
    )


def _wizard_context(
    link_id: str,
    amount: int,
    months: int,
    step: int,
    form: Dict[str, str],
    errors: Optional[Dict[str, str]] = None,
) -> Dict:
    return {
        "link_id": link_id,
        "amount": amount,
        "months": months,
        "step": step,
        "steps": LOAN_APPLICATION_STEPS,
        "form": form,
        "errors": errors or {},
    }


@router.get("/{link_id}/application", response_class=HTMLResponse)
async def loan_application_page(
    request: Request,
    link_id: str,
    amount: int = Query(..., gt=0),
    months: int = Query(12, ge=1),
):
    form = {"loan_amount": str(amount)}
    return render(
        request,
        "apply/application.html",
        _wizard_context(link_id, amount, months, 0, form),
        page="apply-application",
    )


@router.post("/{link_id}/application", response_class=HTMLResponse)
async def loan_application_step(request: Request, link_id: str):
    """
    Advance the loan application wizard.

    Each step posts every field collected so far. After the last step the
    application is screened by the eligible companies one at a time.
    """
    data = await request.form()
    form = {key: str(value) for key, value in data.items()}
    amount = int(form.pop("amount", "0") or 0)
    months = int(form.pop("months", "12") or 12)
    step = int(form.pop("step", "0") or 0)
    action = form.pop("action", "next")

    if action == "back":
        return render(
            request,
            "apply/application.html",
            _wizard_context(link_id, amount, months, max(step - 1, 0), form),
        )

    errors = validate_loan_application_step(step, form)
    if errors:
        return render(
            request,
            "apply/application.html",
            _wizard_context(link_id, amount, months, step, form, errors),
            status_code=400,
        )

    if step < len(LOAN_APPLICATION_STEPS) - 1:
        return render(
            request,
            "apply/application.html",
            _wizard_context(link_id, amount, months, step + 1, form),
        )

    companies = eligible_companies(await _loan_companies(), amount)
    run = LoanScreeningRun(amount=amount, companies=companies)

    async def screen(company: LoanCompany) -> ScreeningResult:
        application_id = await payment_service.submit_loan_application(
            link_id,
            {
                **form,
                "amount": amount,
                "installments": months,
                "loan_company_code": company.code,
            },
        )
        if application_id:
            return ScreeningResult(
                company_code=company.code,
                status=ScreeningStatus.APPROVED,
                message="審査に通過しました",
                application_id=application_id,
            )
        return ScreeningResult(
            company_code=company.code,
            status=ScreeningStatus.REJECTED,
            message="審査に通過しませんでした",
        )

    approved = await run.run(screen)
    logger.info(
        "Loan screening finished",
        extra={
            "extra_fields": {
                "link_id": link_id,
                "companies_screened": len(run.results),
                "approved_by": approved.company_code if approved else None,
            }
        },
    )
    return redirect(run.completion_redirect())


@router.get("/{link_id}/card-payment", response_class=HTMLResponse)
async def card_payment_page(request: Request, link_id: str, amount: int = Query(..., gt=0)):
    return render(
        request,
        "apply/card_payment.html",
        {"link_id": link_id, "amount": amount, "form": {}},
        page="apply-card-payment",
    )


def validate_card(form: Dict[str, str]) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    digits = re.sub(r"\D", "", form.get("card_number", ""))
    if not 14 <= len(digits) <= 16:
        errors["card_number"] = "有効なカード番号を入力してください"
    if not CARD_EXPIRY_PATTERN.match(form.get("expiry", "").strip()):
        errors["expiry"] = "有効期限をMM/YY形式で入力してください"
    if not re.fullmatch(r"\d{3,4}", form.get("cvv", "").strip()):
        errors["cvv"] = "セキュリティコードを入力してください"
    if not form.get("card_holder", "").strip():
        errors["card_holder"] = "カード名義を入力してください"
    return errors


@router.post("/{link_id}/card-payment", response_class=HTMLResponse)
async def submit_card_payment(
    request: Request,
    link_id: str,
    amount: int = Form(..., gt=0),
    card_number: str = Form(""),
    expiry: str = Form(""),
    cvv: str = Form(""),
    card_holder: str = Form(""),
):
    form = {
        "card_number": format_card_number(card_number),
        "expiry": expiry,
        "cvv": cvv,
        "card_holder": card_holder,
    }
    errors = validate_card(form)
    if errors:
        form["cvv"] = ""
        return render(
            request,
            "apply/card_payment.html",
            {"link_id": link_id, "amount": amount, "form": form, "errors": errors},
            status_code=400,
        )

    succeeded = await payment_service.submit_card_payment(
        link_id,
        {
            "amount": amount,
            "cardNumber": re.sub(r"\D", "", card_number),
            "expiry": expiry.strip(),
            "cvv": cvv.strip(),
            "cardHolder": card_holder.strip(),
        },
    )
    if not succeeded:
        return render(
            request,
            "apply/card_payment.html",
            {
                "link_id": link_id,
                "amount": amount,
                "form": {**form, "cvv": ""},
                "error": "決済に失敗しました。カード情報をご確認ください",
            },
            status_code=402,
        )
    return redirect(f"/apply/complete?status=card&amount={amount}")
