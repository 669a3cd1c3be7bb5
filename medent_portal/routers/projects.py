"""
Project pages: list with filters, CSV export, creation and status changes.
"""

from typing import Optional

from fastapi import APIRouter, Form, Query, Request
from fastapi.responses import HTMLResponse, Response

from ..exceptions import ApiError
from ..logging_config import get_logger
from ..models import CreateProjectRequest, ProjectFilters
from ..services.project_service import project_service
from ..utils.formatting import parse_formatted_amount
from ..web import redirect, render

logger = get_logger(__name__)

router = APIRouter(prefix="/projects", tags=["Projects"])

PAGE_SIZE = 10

PROJECT_STATUSES = ("申込依頼済", "審査中", "審査OK", "審査NG")


def _filters(
    page: int,
    project_number: Optional[str],
    clinic_name: Optional[str],
    customer_id: Optional[str],
    status_ids: Optional[str],
    created_date_from: Optional[str],
    created_date_to: Optional[str],
) -> ProjectFilters:
    return ProjectFilters(
        limit=PAGE_SIZE,
        offset=(max(page, 1) - 1) * PAGE_SIZE,
        project_number=project_number or None,
        clinic_name=clinic_name or None,
        customer_id=customer_id or None,
        status_ids=status_ids or None,
        created_date_from=created_date_from or None,
        created_date_to=created_date_to or None,
    )


@router.get("", response_class=HTMLResponse)
async def project_list(
    request: Request,
    page: int = Query(1, ge=1),
    project_number: Optional[str] = None,
    clinic_name: Optional[str] = None,
    customer_id: Optional[str] = None,
    status_ids: Optional[str] = None,
    created_date_from: Optional[str] = None,
    created_date_to: Optional[str] = None,
):
    """Render the project list with its search filters."""
    filters = _filters(
        page,
        project_number,
        clinic_name,
        customer_id,
        status_ids,
        created_date_from,
        created_date_to,
    )
    result = await project_service.get_projects(filters)
    return render(
        request,
        "projects/list.html",
        {
            "projects": result["projects"],
            "pagination": result["pagination"],
            "page": page,
            "filters": dict(request.query_params),
            "statuses": PROJECT_STATUSES,
        },
        page="projects",
    )


@router.get("/export")
async def export_projects(
    project_number: Optional[str] = None,
    clinic_name: Optional[str] = None,
    customer_id: Optional[str] = None,
    status_ids: Optional[str] = None,
    created_date_from: Optional[str] = None,
    created_date_to: Optional[str] = None,
) -> Response:
    filters = _filters(
        1,
        project_number,
        clinic_name,
        customer_id,
        status_ids,
        created_date_from,
        created_date_to,
    )
    content = await project_service.export(filters)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="projects.csv"'},
    )


@router.get("/new", response_class=HTMLResponse)
async def new_project_page(request: Request):
    return render(request, "projects/new.html", {"form": {}}, page="project-new")


@router.post("/new", response_class=HTMLResponse)
async def create_project(
    request: Request,
    patient_id: str = Form(""),
    patient_name: str = Form(""),
    treatment_name: str = Form(""),
    project_amount: str = Form(""),
    finance_company_name: str = Form(""),
):
    form = {
        "patient_id": patient_id,
        "patient_name": patient_name,
        "treatment_name": treatment_name,
        "project_amount": project_amount,
        "finance_company_name": finance_company_name,
    }
    errors = {}
    if not patient_name.strip():
        errors["patient_name"] = "顧客名を入力してください"
    if not treatment_name.strip():
        errors["treatment_name"] = "物件名を入力してください"
    amount = parse_formatted_amount(project_amount)
    if amount <= 0:
        errors["project_amount"] = "有効な金額を入力してください"
    if errors:
        return render(
            request, "projects/new.html", {"form": form, "errors": errors}, status_code=400
        )

    request_body = CreateProjectRequest(
        patient_id=patient_id,
        patient_name=patient_name,
        treatment_name=treatment_name,
        project_amount=amount,
        finance_company_name=finance_company_name,
    )
    try:
        await project_service.create(request_body)
    except ApiError as error:
        return render(
            request,
            "projects/new.html",
            {"form": form, "error": error.message},
            status_code=error.status_code or 400,
        )
    return redirect("/projects", "案件を登録しました")


@router.get("/{project_id}", response_class=HTMLResponse)
async def project_detail(request: Request, project_id: str):
    project = await project_service.get_by_id(project_id)
    return render(
        request,
        "projects/detail.html",
        {"project": project, "statuses": PROJECT_STATUSES},
        page="project-detail",
    )


@router.post("/{project_id}/status")
async def update_project_status(project_id: str, status: str = Form(...)):
    await project_service.update_status(project_id, status)
    logger.info(
        "Project status changed",
        extra={"extra_fields": {"project_id": project_id, "status": status}},
    )
    return redirect(f"/projects/{project_id}", "ステータスを更新しました")


@router.post("/{project_id}/approve")
async def approve_project(project_id: str):
    await project_service.approve(project_id)
    return redirect(f"/projects/{project_id}", "案件を承認しました")


@router.post("/{project_id}/complete")
async def complete_project(project_id: str):
    await project_service.complete(project_id)
    return redirect(f"/projects/{project_id}", "案件を完了にしました")


@router.post("/{project_id}/delete")
async def delete_project(project_id: str):
    await project_service.delete(project_id)
    return redirect("/projects", "案件を削除しました")
