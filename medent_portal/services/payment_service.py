"""
Payment endpoints of the financing API.

Includes the staff-facing payment management endpoints and the public
payment-link endpoints used by end customers (plan lookup, card payment,
loan application).
"""

from typing import Any, Dict, List, Optional

from ..api_client import MedentApiClient, api_client
from ..logging_config import get_logger
from ..models import (
    Payment,
    PaymentCreateRequest,
    PaymentCreateResponse,
    PaymentDetail,
    PaymentLinkInfo,
    PaymentStatus,
)

logger = get_logger(__name__)


class PaymentService:
    """Typed wrapper over ``/v1/payments`` and the public payment-link endpoints."""

    def __init__(self, client: Optional[MedentApiClient] = None) -> None:
        self.client = client or api_client

    async def create_payment(self, data: PaymentCreateRequest) -> PaymentCreateResponse:
        body = await self.client.post(
            "/v1/payments", json=data.model_dump(exclude_none=True)
        )
        return PaymentCreateResponse.model_validate(self.client.unwrap(body))

    async def get_payments(
        self,
        status: Optional[PaymentStatus] = None,
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
        patient_name: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        List payments.

        Returns:
            ``{"payments": [Payment, ...], "total": int}``
        """
        params = {
            "status": status.value if status else None,
            "from_date": from_date,
            "to_date": to_date,
            "patient_name": patient_name or None,
            "page": page,
            "limit": limit,
        }
        data = self.client.unwrap(await self.client.get("/v1/payments", params=params))
        items = data.get("payments", []) if isinstance(data, dict) else data or []
        total = data.get("total", len(items)) if isinstance(data, dict) else len(items)
        return {
            "payments": [Payment.model_validate(item) for item in items],
            "total": total,
        }

    async def get_payment_detail(self, payment_id: str) -> PaymentDetail:
        data = self.client.unwrap(await self.client.get(f"/v1/payments/{payment_id}"))
        if isinstance(data, dict) and "payment" in data:
            data = data["payment"]
        return PaymentDetail.model_validate(data)

    async def update_payment_status(
        self, payment_id: str, status: str, note: Optional[str] = None
    ) -> Any:
        payload: Dict[str, Any] = {"status": status}
        if note:
            payload["note"] = note
        body = await self.client.put(f"/v1/payments/{payment_id}/status", json=payload)
        return self.client.unwrap(body)

    async def cancel_payment(self, payment_id: str, reason: Optional[str] = None) -> Any:
        payload = {"reason": reason} if reason else {}
        body = await self.client.post(f"/v1/payments/{payment_id}/cancel", json=payload)
        return self.client.unwrap(body)

    async def get_status_dashboard(self, clinic_id: Optional[str] = None) -> List[Dict[str, Any]]:
        body = await self.client.get(
            "/v1/payments/status-dashboard", params={"clinic_id": clinic_id}
        )
        return self.client.unwrap(body) or []

    async def get_statistics(self, clinic_id: Optional[str] = None) -> List[Dict[str, Any]]:
        body = await self.client.get(
            "/v1/payments/statistics", params={"clinic_id": clinic_id}
        )
        return self.client.unwrap(body) or []

    async def get_payment_link(self, link_id: str) -> PaymentLinkInfo:
        """Public details of a payment link (no login required)."""
        body = await self.client.get(
            f"/public/payments/link/{link_id}", authenticated=False
        )
        return PaymentLinkInfo.model_validate(self.client.unwrap(body) or {})

    async def submit_card_payment(self, link_id: str, payment: Dict[str, Any]) -> bool:
        """
        Charge a card for a payment link.

        Returns:
            True when the API reports success
        """
        logger.info(
            "Submitting card payment",
            extra={"extra_fields": {"link_id": link_id, "amount": payment.get("amount")}},
        )
        body = await self.client.post(
            f"/payments/link/{link_id}/card-payment",
            json=payment,
            authenticated=False,
        )
        return bool(isinstance(body, dict) and body.get("success"))

    async def submit_loan_application(
        self, payment_id: str, form: Dict[str, Any]
    ) -> Optional[str]:
        """
        Submit the customer's loan application for a payment link.

        Returns:
            The new application id, or None when the API did not report success
            or returned no id
        """
        body = await self.client.post(
            "/v1/loan-applications",
            json={"payment_id": payment_id, **form},
            authenticated=False,
        )
        if not (isinstance(body, dict) and body.get("success")):
            return None
        application_id = (body.get("data") or {}).get("id")
        return None if application_id is None else str(application_id)


payment_service = PaymentService()
