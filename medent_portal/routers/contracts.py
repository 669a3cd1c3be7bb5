"""
Contract pages, plus the lease company results page where staff pick the
lease companies a project's contract request goes to.
"""

from typing import List, Optional

from fastapi import APIRouter, Form, Query, Request
from fastapi.responses import HTMLResponse, Response
from pydantic import ValidationError

from ..exceptions import ApiError
from ..logging_config import get_logger
from ..models import ContractFilters, CreateContractRequest, UpdateProjectRequest
from ..services.contract_service import contract_service
from ..services.project_service import project_service
from ..utils.formatting import format_file_size, parse_formatted_amount
from ..domain.contract_request import (
    LEASE_COMPANY_RESULTS,
    LEASE_PERIODS,
    MAX_ITEMS,
    ContractItem,
    ContractRequest,
    ContractRequestError,
    LeaseCompanySelection,
)
from ..web import redirect, render

logger = get_logger(__name__)

router = APIRouter(prefix="/contracts", tags=["Contracts"])

PAGE_SIZE = 10

CONTRACT_STATUSES = ("pending", "approved", "completed", "rejected", "cancelled")

DEFAULT_ITEMS = (
    ContractItem(name="ユニット", price=3_000_000, quantity=2),
    ContractItem(name="スキャナー", price=5_000_000, quantity=1),
)


def _filters(
    page: int,
    status: Optional[str],
    patient_name: Optional[str],
    contract_type: Optional[str],
    from_date: Optional[str],
    to_date: Optional[str],
) -> ContractFilters:
    return ContractFilters(
        page=page,
        limit=PAGE_SIZE,
        status=status or None,
        patient_name=patient_name or None,
        contract_type=contract_type if contract_type in ("normal", "special") else None,
        from_date=from_date or None,
        to_date=to_date or None,
    )


@router.get("", response_class=HTMLResponse)
async def contract_list(
    request: Request,
    page: int = Query(1, ge=1),
    status: Optional[str] = None,
    patient_name: Optional[str] = None,
    contract_type: Optional[str] = None,
    from_date: Optional[str] = None,
    to_date: Optional[str] = None,
):
    filters = _filters(page, status, patient_name, contract_type, from_date, to_date)
    result = await contract_service.get_contracts(filters)
    return render(
        request,
        "contracts/list.html",
        {
            "contracts": result["contracts"],
            "pagination": result["pagination"],
            "page": page,
            "filters": dict(request.query_params),
            "statuses": CONTRACT_STATUSES,
        },
        page="contracts",
    )


@router.get("/export")
async def export_contracts(
    status: Optional[str] = None,
    patient_name: Optional[str] = None,
    contract_type: Optional[str] = None,
    from_date: Optional[str] = None,
    to_date: Optional[str] = None,
) -> Response:
    filters = _filters(1, status, patient_name, contract_type, from_date, to_date)
    filters.page = None
    filters.limit = None
    content = await contract_service.export(filters)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="contracts.csv"'},
    )


@router.get("/new", response_class=HTMLResponse)
async def new_contract_page(request: Request):
    return render(request, "contracts/new.html", {"form": {}}, page="contract-new")


@router.post("/new", response_class=HTMLResponse)
async def create_contract(request: Request):
    form = dict(await request.form())
    try:
        body = CreateContractRequest(
            patient_id=form.get("patient_id", ""),
            patient_name=form.get("patient_name", ""),
            treatment_name=form.get("treatment_name", ""),
            contract_amount=parse_formatted_amount(str(form.get("contract_amount", ""))),
            loan_type=form.get("loan_type", ""),
            finance_company_name=form.get("finance_company_name", ""),
            contract_type=form.get("contract_type") or "normal",
        )
    except ValidationError as error:
        errors = {str(item["loc"][0]): item["msg"] for item in error.errors()}
        return render(
            request, "contracts/new.html", {"form": form, "errors": errors}, status_code=400
        )

    await contract_service.create(body)
    return redirect("/contracts", "契約を登録しました")


@router.get("/lease-results/{project_id}", response_class=HTMLResponse)
async def lease_results_page(request: Request, project_id: str):
    """Lease company screening results for a project, with the contract request form."""
    project = await project_service.get_by_id(project_id)
    return render(
        request,
        "contracts/lease_results.html",
        {
            "project": project,
            "results": LEASE_COMPANY_RESULTS,
            "items": DEFAULT_ITEMS,
            "lease_periods": LEASE_PERIODS,
            "max_items": MAX_ITEMS,
        },
        page="lease-results",
    )


def _items_from_form(form) -> List[ContractItem]:
    names = form.getlist("item_name")
    prices = form.getlist("item_price")
    quantities = form.getlist("item_quantity")
    items = []
    for name, price, quantity in zip(names, prices, quantities):
        if not str(name).strip():
            continue
        items.append(
            ContractItem(
                name=str(name).strip(),
                price=parse_formatted_amount(str(price)),
                quantity=parse_formatted_amount(str(quantity)),
            )
        )
    return items


@router.post("/lease-results/{project_id}", response_class=HTMLResponse)
async def confirm_lease_companies(request: Request, project_id: str):
    """
    Send contract requests to the chosen lease companies.

    Every chosen company gets a request over the same equipment list; the
    project then records the chosen companies.
    """
    form = await request.form()
    companies = form.getlist("companies")
    files = [
        {"name": upload.filename, "size": format_file_size(upload.size or 0)}
        for upload in form.getlist("files")
        if getattr(upload, "filename", None)
    ]

    items = _items_from_form(form)
    selection = LeaseCompanySelection(LEASE_COMPANY_RESULTS)
    selection.reset()
    try:
        for company in companies:
            selection.toggle(company)
            selection.confirm_request(
                ContractRequest(
                    company_name=company,
                    items=items,
                    lease_period=str(form.get("lease_period", "5")),
                    uploaded_files=files,
                )
            )
    except ContractRequestError as error:
        project = await project_service.get_by_id(project_id)
        return render(
            request,
            "contracts/lease_results.html",
            {
                "project": project,
                "results": LEASE_COMPANY_RESULTS,
                "items": items or DEFAULT_ITEMS,
                "lease_periods": LEASE_PERIODS,
                "max_items": MAX_ITEMS,
                "selected": companies,
                "error": str(error),
            },
            status_code=400,
        )

    if not selection.selected:
        return redirect(
            f"/contracts/lease-results/{project_id}", "リース会社を選択してください", "error"
        )

    await project_service.update(
        project_id,
        UpdateProjectRequest(finance_company_name=", ".join(selection.selected)),
    )
    logger.info(
        "Contract requests confirmed",
        extra={
            "extra_fields": {
                "project_id": project_id,
                "companies": selection.selected,
                "totals": {
                    name: data["total"] for name, data in selection.contract_data.items()
                },
            }
        },
    )
    return redirect("/projects", f"{len(selection.selected)}社に契約申込を送信しました")


@router.get("/{contract_id}", response_class=HTMLResponse)
async def contract_detail(request: Request, contract_id: str):
    contract = await contract_service.get_by_id(contract_id)
    return render(
        request,
        "contracts/detail.html",
        {"contract": contract, "statuses": CONTRACT_STATUSES},
        page="contract-detail",
    )


@router.post("/{contract_id}/status")
async def update_contract_status(contract_id: str, status: str = Form(...)):
    await contract_service.update_status(contract_id, status)
    return redirect(f"/contracts/{contract_id}", "ステータスを更新しました")


@router.post("/{contract_id}/progress")
async def update_contract_progress(contract_id: str, progress: float = Form(..., ge=0, le=100)):
    await contract_service.update_service_progress(contract_id, progress)
    return redirect(f"/contracts/{contract_id}", "進捗を更新しました")


@router.post("/{contract_id}/approve")
async def approve_contract(contract_id: str):
    await contract_service.approve(contract_id)
    return redirect(f"/contracts/{contract_id}", "契約を承認しました")


@router.post("/{contract_id}/complete")
async def complete_contract(contract_id: str):
    await contract_service.complete(contract_id)
    return redirect(f"/contracts/{contract_id}", "契約を完了にしました")


@router.post("/{contract_id}/delete")
async def delete_contract(contract_id: str):
    try:
        await contract_service.delete(contract_id)
    except ApiError as error:
        return redirect(f"/contracts/{contract_id}", error.message, "error")
    return redirect("/contracts", "契約を削除しました")

