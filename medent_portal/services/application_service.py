"""
Lease application endpoints of the financing API.

Covers the application lifecycle (create, update, send to clinic, submit for
screening) and the attachments uploaded with it.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from ..api_client import MedentApiClient, api_client
from ..logging_config import get_logger
from ..models import (
    ApplicationFilters,
    ApplicationResponse,
    AttachmentResponse,
    CreateApplicationRequest,
)

logger = get_logger(__name__)

# (filename, content, content type)
UploadFile = Tuple[str, bytes, str]


def _payload(data: Union[CreateApplicationRequest, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(data, CreateApplicationRequest):
        return data.to_payload()
    return data


class ApplicationService:
    """Typed wrapper over ``/v1/applications`` and ``/v1/attachments``."""

    def __init__(self, client: Optional[MedentApiClient] = None) -> None:
        self.client = client or api_client

    async def create(
        self, data: Union[CreateApplicationRequest, Dict[str, Any]]
    ) -> ApplicationResponse:
        body = await self.client.post("/v1/applications", json=_payload(data))
        return ApplicationResponse.model_validate(self.client.unwrap(body))

    async def get_by_id(self, uuid: str) -> ApplicationResponse:
        body = await self.client.get(f"/v1/applications/{uuid}")
        return ApplicationResponse.model_validate(self.client.unwrap(body))

    async def update(
        self, uuid: str, data: Union[CreateApplicationRequest, Dict[str, Any]]
    ) -> Any:
        body = await self.client.patch(f"/v1/applications/{uuid}", json=_payload(data))
        return self.client.unwrap(body)

    async def delete(self, uuid: str) -> None:
        await self.client.delete(f"/v1/applications/{uuid}")

    async def send_to_clinic(self, uuid: str, email: str, message: Optional[str] = None) -> Any:
        payload: Dict[str, Any] = {"email": email}
        if message:
            payload["message"] = message
        return await self.client.post(f"/v1/applications/{uuid}/send-email", json=payload)

    async def get_all(
        self, filters: Optional[Union[ApplicationFilters, Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """
        List applications.

        Empty filter values are not sent.

        Returns:
            ``{"applications": [...], "pagination": {...}}``
        """
        if isinstance(filters, ApplicationFilters):
            filters = filters.model_dump(by_alias=True)
        params = {
            key: value
            for key, value in (filters or {}).items()
            if value is not None and value != ""
        }
        data = self.client.unwrap(await self.client.get("/v1/applications", params=params))

        if isinstance(data, list):
            items, pagination = data, {}
        else:
            data = data or {}
            items = data.get("applications") or data.get("items") or []
            pagination = data.get("pagination") or {}

        return {
            "applications": [ApplicationResponse.model_validate(item) for item in items],
            "pagination": pagination,
        }

    async def get_attachments(self, uuid: str) -> List[AttachmentResponse]:
        body = await self.client.get(f"/v1/applications/{uuid}/attachments")
        return [
            AttachmentResponse.model_validate(item)
            for item in self.client.unwrap(body) or []
        ]

    async def submit_for_screening(self, uuid: str) -> Any:
        return self.client.unwrap(await self.client.post(f"/v1/applications/{uuid}/submit"))

    async def mark_as_ready_to_submit(self, uuid: str) -> Any:
        body = await self.client.patch(f"/v1/applications/{uuid}/ready-to-submit")
        return self.client.unwrap(body)

    async def get_attachment(self, attachment_uuid: str) -> AttachmentResponse:
        body = await self.client.get(f"/v1/attachments/{attachment_uuid}")
        return AttachmentResponse.model_validate(self.client.unwrap(body))

    async def delete_attachment(self, attachment_uuid: str) -> None:
        await self.client.delete(f"/v1/attachments/{attachment_uuid}")

    async def upload_attachment(
        self,
        application_uuid: str,
        file: UploadFile,
        description: Optional[str] = None,
    ) -> Any:
        """
        Upload one file as an attachment of the application.

        Args:
            application_uuid: Application the file belongs to
            file: ``(filename, content, content_type)``
            description: Optional description stored with the file
        """
        data = {"entityType": "applications", "entityUuid": application_uuid}
        if description:
            data["description"] = description

        logger.info(
            "Uploading attachment",
            extra={
                "extra_fields": {
                    "application_uuid": application_uuid,
                    "filename": file[0],
                    "size": len(file[1]),
                }
            },
        )
        body = await self.client.post("/v1/attachments", data=data, files={"file": file})
        return self.client.unwrap(body)

    async def upload_attachments(
        self, application_uuid: str, files: Sequence[UploadFile]
    ) -> List[Any]:
        """Upload several files in parallel; fails if any upload fails."""
        return list(
            await asyncio.gather(
                *(self.upload_attachment(application_uuid, file) for file in files)
            )
        )


application_service = ApplicationService()
