"""
Contract endpoints of the financing API.
"""

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel

from ..api_client import MedentApiClient, api_client
from ..models import (
    Contract,
    ContractFilters,
    CreateContractRequest,
    UpdateContractRequest,
)


def _params(filters: Optional[Union[BaseModel, Dict[str, Any]]]) -> Dict[str, Any]:
    if isinstance(filters, BaseModel):
        return filters.model_dump(exclude_none=True)
    return dict(filters or {})


class ContractService:
    """Typed wrapper over ``/v1/contracts``."""

    def __init__(self, client: Optional[MedentApiClient] = None) -> None:
        self.client = client or api_client

    async def get_contracts(
        self, filters: Optional[Union[ContractFilters, Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """
        List contracts.

        Returns:
            ``{"contracts": [Contract, ...], "pagination": {...}}``
        """
        body = await self.client.get("/v1/contracts", params=_params(filters))
        data = self.client.unwrap(body)
        if isinstance(data, dict):
            items = data.get("contracts") or data.get("items") or []
            pagination = data.get("pagination") or body.get("pagination") or {}
        else:
            items = data or []
            pagination = body.get("pagination", {}) if isinstance(body, dict) else {}
        return {
            "contracts": [Contract.model_validate(item) for item in items],
            "pagination": pagination,
        }

    async def get_by_id(self, contract_id: str) -> Contract:
        body = await self.client.get(f"/v1/contracts/{contract_id}")
        return Contract.model_validate(self.client.unwrap(body))

    async def create(self, data: CreateContractRequest) -> Any:
        body = await self.client.post(
            "/v1/contracts", json=data.model_dump(exclude_none=True)
        )
        return self.client.unwrap(body)

    async def create_with_backend_dto(self, data: Dict[str, Any]) -> Any:
        """Create a contract from the backend's own DTO (camelCase, numeric ids)."""
        return self.client.unwrap(await self.client.post("/v1/contracts", json=data))

    async def update(self, contract_id: str, data: UpdateContractRequest) -> Any:
        body = await self.client.put(
            f"/v1/contracts/{contract_id}", json=data.model_dump(exclude_none=True)
        )
        return self.client.unwrap(body)

    async def delete(self, contract_id: str) -> None:
        await self.client.delete(f"/v1/contracts/{contract_id}")

    async def update_status(self, contract_id: str, status: str) -> Any:
        body = await self.client.patch(
            f"/v1/contracts/{contract_id}/status", json={"status": status}
        )
        return self.client.unwrap(body)

    async def update_service_progress(self, contract_id: str, progress: float) -> Any:
        body = await self.client.put(
            f"/v1/contracts/{contract_id}/service-progress",
            json={"service_completion_rate": progress},
        )
        return self.client.unwrap(body)

    async def approve(self, contract_id: str) -> Any:
        return self.client.unwrap(await self.client.post(f"/v1/contracts/{contract_id}/approve"))

    async def complete(self, contract_id: str) -> Any:
        return self.client.unwrap(
            await self.client.post(f"/v1/contracts/{contract_id}/complete")
        )

    async def export(
        self, filters: Optional[Union[ContractFilters, Dict[str, Any]]] = None
    ) -> bytes:
        """Download the filtered contract list as CSV."""
        return await self.client.get(
            "/v1/contracts/export", params=_params(filters), expect_bytes=True
        )


contract_service = ContractService()
