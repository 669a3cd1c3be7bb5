"""
Clinic settings: finance company priorities, payment plans and basic
settings.
"""

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse

from ..domain.priorities import apply_priority_edit, reorder
from ..logging_config import get_logger
from ..models import ClinicSettings, PaymentPlanSetting
from ..services.finance_company_service import finance_company_service
from ..web import redirect, render

logger = get_logger(__name__)

router = APIRouter(prefix="/settings", tags=["Settings"])


@router.get("", response_class=HTMLResponse)
async def settings_page(request: Request):
    companies = await finance_company_service.get_clinic_companies()
    plans = await finance_company_service.get_payment_plans()
    clinic_settings = await finance_company_service.get_clinic_settings()
    return render(
        request,
        "settings/index.html",
        {"companies": companies, "plans": plans, "clinic_settings": clinic_settings},
        page="settings",
    )


@router.post("/priorities/move")
async def move_company(source: int = Form(..., ge=0), destination: int = Form(..., ge=0)):
    """Move a finance company up or down the priority list."""
    companies = await finance_company_service.get_clinic_companies()
    if source >= len(companies):
        return redirect("/settings", "対象の会社が見つかりません", "error")

    destination = min(destination, len(companies) - 1)
    await finance_company_service.update_priorities(reorder(companies, source, destination))
    return redirect("/settings", "優先順位を更新しました")


@router.post("/priorities/{company_id}")
async def edit_company(
    company_id: str,
    priority: int = Form(..., ge=1),
    is_active: bool = Form(False),
):
    companies = await finance_company_service.get_clinic_companies()
    current = next((company for company in companies if company.id == company_id), None)
    if current is None:
        return redirect("/settings", "対象の会社が見つかりません", "error")

    edited = current.model_copy(
        update={"priority": min(priority, len(companies)), "is_active": is_active}
    )
    await finance_company_service.update_priorities(apply_priority_edit(companies, edited))
    logger.info(
        "Finance company edited",
        extra={"extra_fields": {"company_id": company_id, "priority": edited.priority}},
    )
    return redirect("/settings", "設定を保存しました")


@router.post("/plans")
async def save_plan(
    plan_id: str = Form(""),
    name: str = Form(...),
    monthly_options: str = Form("3,6,12,24,36"),
    interest_rate: float = Form(0, ge=0),
    is_active: bool = Form(False),
):
    options = sorted(
        {int(part) for part in monthly_options.split(",") if part.strip().isdigit()}
    )
    plan = PaymentPlanSetting(
        id=plan_id,
        name=name,
        monthly_options=options or [3, 6, 12, 24, 36],
        interest_rate=interest_rate,
        is_active=is_active,
    )
    await finance_company_service.save_payment_plan(plan)
    return redirect("/settings", "支払いプランを保存しました")


@router.post("/plans/{plan_id}/delete")
async def delete_plan(plan_id: str):
    await finance_company_service.delete_payment_plan(plan_id)
    return redirect("/settings", "支払いプランを削除しました")


@router.post("/clinic")
async def save_clinic_settings(
    clinic_name: str = Form(""),
    default_landing_page: str = Form("new-payment"),
    auto_send_sms: bool = Form(False),
    auto_send_email: bool = Form(False),
):
    await finance_company_service.save_clinic_settings(
        ClinicSettings(
            clinic_name=clinic_name,
            default_landing_page=default_landing_page,
            auto_send_sms=auto_send_sms,
            auto_send_email=auto_send_email,
        )
    )
    return redirect("/settings", "基本設定を保存しました")
