"""
Project endpoints of the financing API.

Projects come back in the backend's own shape; ``normalize_project`` turns a
record into the row the project list displays.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from ..api_client import MedentApiClient, api_client
from ..logging_config import get_logger
from ..models import CreateProjectRequest, Project, ProjectFilters, UpdateProjectRequest

logger = get_logger(__name__)

SCREENING_OK = "審査OK"
UNKNOWN_STATUS = "不明"


def _slash_date(value: Optional[str]) -> str:
    """``2024-05-01T09:00:00Z`` -> ``2024/05/01``; empty for missing or bad input."""
    if not value:
        return ""
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return ""
    return parsed.strftime("%Y/%m/%d")


def normalize_project(raw: Dict[str, Any]) -> Project:
    """
    Map a backend project record to the portal's project row.

    The status label prefers the Japanese name. A project is contractable
    once screening passed and no contract has been requested for it.
    """
    status = raw.get("status") or {}
    if isinstance(status, dict):
        label = status.get("nameJp") or status.get("name") or UNKNOWN_STATUS
    else:
        label = str(status) or UNKNOWN_STATUS

    finance_company = raw.get("selectedFinanceCompany") or {}
    contract_request_date = _slash_date(raw.get("contractRequestDate")) or None

    return Project(
        id=str(raw.get("projectNumber") or raw.get("id") or ""),
        project_number=raw.get("projectNumber") or "",
        customer_id=raw.get("customerId") or "",
        clinic_name=raw.get("clinicName") or "",
        item_name=raw.get("propertyName") or "",
        amount=raw.get("amount") or 0,
        leasing_company=finance_company.get("name") or "-",
        status=label,
        application_request_date=_slash_date(raw.get("applicationRequestDate")),
        application_date=_slash_date(raw.get("applicationDate")),
        contract_request_date=contract_request_date,
        is_contractable=label == SCREENING_OK and not contract_request_date,
    )


class ProjectService:
    """Typed wrapper over ``/v1/projects``."""

    def __init__(self, client: Optional[MedentApiClient] = None) -> None:
        self.client = client or api_client

    async def get_projects(
        self, filters: Optional[Union[ProjectFilters, Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """
        List projects as display rows.

        Returns:
            ``{"projects": [Project, ...], "pagination": {...}}``
        """
        if isinstance(filters, ProjectFilters):
            filters = filters.model_dump(by_alias=True, exclude_none=True)
        body = await self.client.get("/v1/projects", params=filters or {})

        data = self.client.unwrap(body)
        if not isinstance(data, list):
            logger.info("No project data in response")
            data = []

        pagination = body.get("pagination", {}) if isinstance(body, dict) else {}
        projects: List[Project] = [normalize_project(item) for item in data]
        return {"projects": projects, "pagination": pagination}

    async def get_by_id(self, project_id: str) -> Project:
        body = await self.client.get(f"/v1/projects/{project_id}")
        return normalize_project(self.client.unwrap(body) or {})

    async def create(self, data: Union[CreateProjectRequest, Dict[str, Any]]) -> Any:
        if isinstance(data, CreateProjectRequest):
            data = data.model_dump(exclude_none=True)
        return self.client.unwrap(await self.client.post("/v1/projects", json=data))

    async def update(self, project_id: str, data: UpdateProjectRequest) -> Any:
        body = await self.client.put(
            f"/v1/projects/{project_id}", json=data.model_dump(exclude_none=True)
        )
        return self.client.unwrap(body)

    async def delete(self, project_id: str) -> None:
        await self.client.delete(f"/v1/projects/{project_id}")

    async def update_status(self, project_id: str, status: str) -> Any:
        body = await self.client.patch(
            f"/v1/projects/{project_id}/status", json={"status": status}
        )
        return self.client.unwrap(body)

    async def approve(self, project_id: str) -> Any:
        return self.client.unwrap(await self.client.post(f"/v1/projects/{project_id}/approve"))

    async def complete(self, project_id: str) -> Any:
        return self.client.unwrap(await self.client.post(f"/v1/projects/{project_id}/complete"))

    async def export(
        self, filters: Optional[Union[ProjectFilters, Dict[str, Any]]] = None
    ) -> bytes:
        if isinstance(filters, ProjectFilters):
            filters = filters.model_dump(by_alias=True, exclude_none=True)
        return await self.client.get(
            "/v1/projects/export", params=filters or {}, expect_bytes=True
        )


project_service = ProjectService()
