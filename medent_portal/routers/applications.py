"""
Application intake pages.

Staff create an application and share it with the clinic by QR code, link
or email. The clinic then fills in the lease screening form, which is
public.
"""

from typing import Optional, Tuple

from fastapi import APIRouter, Form, Query, Request
from fastapi.responses import HTMLResponse, Response

from ..config import settings
from ..domain.lease_screening import submit_lease_screening
from ..domain.qr import (
    application_share_url,
    qr_download_name,
    render_qr_png,
    render_qr_svg,
)
from ..exceptions import ApiError, FormValidationError
from ..logging_config import get_logger
from ..models import ApplicationFilters, ApplicationResponse, CreateApplicationRequest
from ..services.application_service import application_service
from ..utils.formatting import parse_formatted_amount
from ..utils.validators import is_valid_email, validate_new_application
from ..web import (
    get_session,
    load_application_data,
    redirect,
    render,
    store_application_data,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/applications", tags=["Applications"])

PAGE_SIZE = 10

BUSINESS_TYPES = ("法人", "個人")


@router.get("", response_class=HTMLResponse)
async def application_list(
    request: Request,
    page: int = Query(1, ge=1),
    application_number: Optional[str] = None,
    clinic_name: Optional[str] = None,
    status: Optional[str] = None,
):
    filters = ApplicationFilters(
        page=page,
        limit=PAGE_SIZE,
        application_number=application_number,
        clinic_name=clinic_name,
        status=status,
    )
    result = await application_service.get_all(filters)
    return render(
        request,
        "applications/list.html",
        {
            "applications": result["applications"],
            "pagination": result["pagination"],
            "page": page,
            "filters": dict(request.query_params),
        },
        page="applications",
    )


@router.get("/new", response_class=HTMLResponse)
async def new_application_page(request: Request):
    return render(request, "applications/new.html", {"form": {}}, page="application-new")


@router.post("/new", response_class=HTMLResponse)
async def create_application(request: Request):
    """Create an application and continue to its share page."""
    form = {key: str(value) for key, value in (await request.form()).items()}
    errors = validate_new_application(form)
    if errors:
        return render(
            request, "applications/new.html", {"form": form, "errors": errors}, status_code=400
        )

    amount = parse_formatted_amount(form.get("amount", ""))
    body = CreateApplicationRequest(
        customer_id=form.get("customer_id") or None,
        corporate_name=form.get("corporate_name") or None,
        clinic_name=form.get("clinic_name") or None,
        clinic_tel=form.get("clinic_tel") or None,
        property_name=form.get("property_name") or None,
        amount=amount or None,
        pic_name=form.get("pic_name") or None,
    )
    try:
        application = await application_service.create(body)
    except ApiError as error:
        return render(
            request,
            "applications/new.html",
            {"form": form, "error": error.message},
            status_code=error.status_code or 400,
        )

    email = form.get("sent_to_email", "").strip()
    if email:
        await application_service.send_to_clinic(application.uuid, email)

    logger.info(
        "Application created",
        extra={"extra_fields": {"application_uuid": application.uuid}},
    )
    return redirect(f"/applications/qr?id={application.uuid}", "申込を作成しました")


async def _share_target(
    request: Request, id: Optional[str]
) -> Tuple[Optional[ApplicationResponse], Optional[str]]:
    """Application behind a share page and the URL its QR code encodes."""
    application = None
    if id and get_session(request).is_authenticated:
        application = await application_service.get_by_id(id)

    share_url = application_share_url(application, settings.PUBLIC_BASE_URL)
    if share_url is None and id:
        share_url = f"{settings.PUBLIC_BASE_URL}/applications/lease-screening?id={id}"
    return application, share_url


@router.get("/qr", response_class=HTMLResponse)
async def share_page(request: Request, id: Optional[str] = None):
    """Share page: lease screening link, its QR code and the email form."""
    application, share_url = await _share_target(request, id)
    return render(
        request,
        "applications/qr.html",
        {"application": application, "application_id": id, "share_url": share_url},
        page="application-qr",
    )


@router.get("/qr/code.svg")
async def share_qr_code(request: Request, id: str) -> Response:
    _, share_url = await _share_target(request, id)
    return Response(content=render_qr_svg(share_url), media_type="image/svg+xml")


@router.get("/qr/code.png")
async def download_qr_code(request: Request, id: str) -> Response:
    """PNG of the share QR code, named after the application number."""
    application, share_url = await _share_target(request, id)
    filename = qr_download_name(application)
    return Response(
        content=render_qr_png(share_url),
        media_type="image/png",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/qr/send-email")
async def send_to_clinic(
    id: str = Form(...),
    email: str = Form(""),
    message: str = Form(""),
):
    if not is_valid_email(email):
        return redirect(
            f"/applications/qr?id={id}", "有効なメールアドレスを入力してください", "error"
        )
    await application_service.send_to_clinic(id, email, message or None)
    return redirect(f"/applications/qr?id={id}", f"{email} に送信しました")


@router.get("/lease-screening", response_class=HTMLResponse)
async def lease_screening_page(request: Request, id: Optional[str] = None):
    return render(
        request,
        "applications/lease_screening.html",
        {"application_id": id, "form": {}, "business_types": BUSINESS_TYPES},
        page="lease-screening",
    )


@router.post("/lease-screening", response_class=HTMLResponse)
async def submit_lease_screening_form(request: Request):
    """Submit the clinic's lease screening form with its documents and signature."""
    form_data = await request.form()
    form = {
        key: str(value) for key, value in form_data.items() if isinstance(value, str)
    }
    application_id = form.pop("application_id", "") or None
    signature = form.pop("signature", "") or None

    files = []
    for upload in form_data.getlist("files"):
        if isinstance(upload, str) or not upload.filename:
            continue
        files.append(
            (upload.filename, await upload.read(), upload.content_type or "application/octet-stream")
        )

    try:
        summary = await submit_lease_screening(
            get_session(request), application_id, form, files, signature
        )
    except FormValidationError as error:
        return render(
            request,
            "applications/lease_screening.html",
            {
                "application_id": application_id,
                "form": form,
                "errors": error.errors,
                "error": error.message,
                "business_types": BUSINESS_TYPES,
            },
            status_code=400,
        )

    response = redirect("/applications/complete")
    store_application_data(response, summary)
    return response


@router.get("/complete", response_class=HTMLResponse)
async def complete_page(request: Request):
    return render(
        request,
        "applications/complete.html",
        {"summary": load_application_data(request)},
        page="application-complete",
    )


@router.get("/{uuid}", response_class=HTMLResponse)
async def application_detail(request: Request, uuid: str):
    application = await application_service.get_by_id(uuid)
    attachments = await application_service.get_attachments(uuid)
    return render(
        request,
        "applications/detail.html",
        {
            "application": application,
            "attachments": attachments,
            "share_url": application_share_url(application, settings.PUBLIC_BASE_URL),
        },
        page="application-detail",
    )


@router.post("/{uuid}/attachments/{attachment_uuid}/delete")
async def delete_attachment(uuid: str, attachment_uuid: str):
    await application_service.delete_attachment(attachment_uuid)
    return redirect(f"/applications/{uuid}", "添付ファイルを削除しました")


@router.post("/{uuid}/delete")
async def delete_application(uuid: str):
    await application_service.delete(uuid)
    return redirect("/applications", "申込を削除しました")
