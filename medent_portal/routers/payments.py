"""
Payment pages: list, payment link creation and sharing, detail, and the
status dashboard.
"""

from typing import Optional

from fastapi import APIRouter, Form, Query, Request
from fastapi.responses import HTMLResponse, Response
from pydantic import ValidationError

from ..config import settings
from ..domain.qr import payment_link_url, render_qr_svg
from ..exceptions import ServiceUnavailableException, ValidationException
from ..logging_config import get_logger
from ..models import PaymentCreateRequest, PaymentStatus
from ..services.payment_service import payment_service
from ..services.sms_service import generate_mailto_link, get_carriers, sms_service
from ..utils.formatting import format_amount, parse_formatted_amount
from ..web import redirect, render

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])

PAGE_SIZE = 20


def sms_message(link: str, amount: Optional[int]) -> str:
    lines = ["お支払いのご案内です。"]
    if amount:
        lines.append(f"金額: {format_amount(amount)}円")
    lines.append(f"こちらからお手続きください: {link}")
    return "\n".join(lines)


@router.get("", response_class=HTMLResponse)
async def payment_list(
    request: Request,
    page: int = Query(1, ge=1),
    status: Optional[str] = None,
    patient_name: Optional[str] = None,
    from_date: Optional[str] = None,
    to_date: Optional[str] = None,
):
    try:
        status_filter = PaymentStatus(status) if status else None
    except ValueError:
        status_filter = None

    result = await payment_service.get_payments(
        status=status_filter,
        from_date=from_date or None,
        to_date=to_date or None,
        patient_name=patient_name,
        page=page,
        limit=PAGE_SIZE,
    )
    return render(
        request,
        "payments/list.html",
        {
            "payments": result["payments"],
            "total": result["total"],
            "page": page,
            "page_size": PAGE_SIZE,
            "filters": dict(request.query_params),
            "statuses": list(PaymentStatus),
        },
        page="payments",
    )


@router.get("/new", response_class=HTMLResponse)
async def new_payment_page(request: Request):
    return render(request, "payments/new.html", {"form": {}}, page="payment-new")


@router.post("/new", response_class=HTMLResponse)
async def create_payment(request: Request):
    """Create a payment link and show it with its QR code and SMS options."""
    form = {key: str(value) for key, value in (await request.form()).items()}
    amount = parse_formatted_amount(form.get("amount", ""))
    try:
        body = PaymentCreateRequest(
            patient_id=form.get("patient_id") or None,
            patient_name=form.get("patient_name") or None,
            treatment_name=form.get("treatment_name") or None,
            amount=amount or None,
            memo=form.get("memo") or None,
        )
    except ValidationError:
        return render(
            request,
            "payments/new.html",
            {"form": form, "errors": {"amount": "有効な金額を入力してください"}},
            status_code=400,
        )

    created = await payment_service.create_payment(body)
    logger.info(
        "Payment link created",
        extra={"extra_fields": {"payment_id": created.payment_id, "amount": amount}},
    )
    return render(
        request,
        "payments/created.html",
        {
            "payment": created,
            "amount": amount,
            "message": sms_message(created.payment_link, amount),
            "carriers": get_carriers(),
        },
        page="payment-created",
    )


@router.get("/qr.svg")
async def payment_qr_code(link: str) -> Response:
    return Response(content=render_qr_svg(link), media_type="image/svg+xml")


@router.post("/sms", response_class=HTMLResponse)
async def send_sms(
    phone_number: str = Form(""),
    message: str = Form(""),
):
    try:
        await sms_service.send_custom_sms(phone_number, message)
    except ValidationException as error:
        return redirect("/payments", error.message, "error")
    except ServiceUnavailableException as error:
        return redirect("/payments", error.message, "error")
    return redirect("/payments", "SMSを送信しました")


@router.get("/sms/mailto")
async def sms_mailto(phone_number: str, message: str, carrier: Optional[str] = None):
    """Open the mail client with the carrier SMS gateway addresses."""
    return redirect(generate_mailto_link(phone_number, message, carrier))


@router.get("/dashboard", response_class=HTMLResponse)
async def status_dashboard(request: Request, clinic_id: Optional[str] = None):
    """Status dashboard; the page reloads itself every poll interval."""
    dashboard = await payment_service.get_status_dashboard(clinic_id)
    statistics = await payment_service.get_statistics(clinic_id)
    return render(
        request,
        "payments/dashboard.html",
        {
            "dashboard": dashboard,
            "statistics": statistics,
            "poll_seconds": settings.DASHBOARD_POLL_SECONDS,
            "clinic_id": clinic_id,
        },
        page="payment-dashboard",
    )


@router.get("/{payment_id}", response_class=HTMLResponse)
async def payment_detail(request: Request, payment_id: str):
    detail = await payment_service.get_payment_detail(payment_id)
    return render(
        request,
        "payments/detail.html",
        {
            "payment": detail,
            "statuses": list(PaymentStatus),
            "link_url": payment_link_url(payment_id, settings.PUBLIC_BASE_URL),
        },
        page="payment-detail",
    )


@router.post("/{payment_id}/status")
async def update_payment_status(
    payment_id: str,
    status: str = Form(...),
    note: str = Form(""),
):
    await payment_service.update_payment_status(payment_id, status, note or None)
    return redirect(f"/payments/{payment_id}", "ステータスを更新しました")


@router.post("/{payment_id}/cancel")
async def cancel_payment(payment_id: str, reason: str = Form("")):
    await payment_service.cancel_payment(payment_id, reason or None)
    logger.info("Payment canceled", extra={"extra_fields": {"payment_id": payment_id}})
    return redirect(f"/payments/{payment_id}", "決済をキャンセルしました")
