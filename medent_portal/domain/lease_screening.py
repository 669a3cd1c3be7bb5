"""
Lease screening form submission.

The clinic fills in the screening form for an application created by staff.
Submitting it updates the application, uploads the supporting documents and
the signature, then submits the application for screening.
"""

import base64
import binascii
import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Sequence

from ..exceptions import ApiError, FormValidationError
from ..logging_config import get_logger
from ..models import CreateApplicationRequest
from ..services.application_service import ApplicationService, UploadFile, application_service
from ..session import AuthSession
from ..utils.formatting import convert_date_to_iso, format_japanese_address
from ..utils.validators import SIGNATURE_REQUIRED_MESSAGE, validate_lease_screening_form

logger = get_logger(__name__)

SIGNATURE_FILENAME = "signature.png"
READY_TO_SUBMIT_MARKER = "Ready to Submit"

_DATA_URL = re.compile(r"^data:(?P<type>[\w/+.-]+)?(;base64)?,(?P<data>.*)$", re.DOTALL)


def _text(form: Mapping[str, Any], field: str) -> str:
    value = form.get(field)
    return str(value).strip() if value is not None else ""


def decode_signature(data_url: str) -> UploadFile:
    """
    Turn a canvas ``data:image/png;base64,...`` URL into an upload tuple.

    Raises:
        FormValidationError: If the value is not a base64 data URL
    """
    match = _DATA_URL.match(data_url or "")
    if match is None:
        raise FormValidationError({"signature": SIGNATURE_REQUIRED_MESSAGE})
    try:
        content = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError):
        raise FormValidationError({"signature": SIGNATURE_REQUIRED_MESSAGE})
    return (SIGNATURE_FILENAME, content, match.group("type") or "image/png")


def build_application_update(form: Mapping[str, Any]) -> CreateApplicationRequest:
    """Map the screening form onto the application update body."""
    last_name = _text(form, "representative_last_name")
    first_name = _text(form, "representative_first_name")
    digits = re.sub(r"[^0-9]", "", _text(form, "amount"))

    return CreateApplicationRequest(
        business_type=_text(form, "business_type") or None,
        corporate_name=_text(form, "company_name") or None,
        clinic_name=_text(form, "hospital_name") or None,
        clinic_address=format_japanese_address(
            _text(form, "hospital_postal_code"), _text(form, "hospital_address")
        ),
        clinic_tel=_text(form, "hospital_tel") or None,
        representative_last_name=last_name or None,
        representative_first_name=first_name or None,
        representative_last_name_furigana=_text(form, "representative_last_name_furigana") or None,
        representative_first_name_furigana=_text(form, "representative_first_name_furigana")
        or None,
        representative_address=format_japanese_address(
            _text(form, "representative_postal_code"), _text(form, "representative_address")
        ),
        representative_tel=_text(form, "representative_tel") or None,
        representative_birth_date=convert_date_to_iso(_text(form, "birth_date")) or None,
        property_name=_text(form, "property_name") or None,
        amount=int(digits) if digits else None,
        pic_name=f"{last_name} {first_name}".strip() or None,
    )


def _summary(
    application_id: str, form: Mapping[str, Any], uploaded: int, fake: bool
) -> Dict[str, Any]:
    digits = re.sub(r"[^0-9]", "", _text(form, "amount"))
    return {
        "id": application_id,
        "company_name": _text(form, "company_name"),
        "hospital_name": _text(form, "hospital_name"),
        "representative_name": (
            f"{_text(form, 'representative_last_name')} "
            f"{_text(form, 'representative_first_name')}"
        ).strip(),
        "property_name": _text(form, "property_name"),
        "amount": int(digits) if digits else 0,
        "attachment_count": uploaded,
        "submitted_at": datetime.now(timezone.utc).isoformat(),
        "is_fake_submission": fake,
    }


async def _submit(service: ApplicationService, application_uuid: str) -> Any:
    try:
        return await service.submit_for_screening(application_uuid)
    except ApiError as error:
        if error.status_code != 400 or READY_TO_SUBMIT_MARKER not in error.message:
            raise

    logger.info(
        "Application not ready to submit, marking it ready",
        extra={"extra_fields": {"application_uuid": application_uuid}},
    )
    try:
        await service.mark_as_ready_to_submit(application_uuid)
    except ApiError:
        await service.update(application_uuid, {"status": "READY_TO_SUBMIT"})
    return await service.submit_for_screening(application_uuid)


async def submit_lease_screening(
    session: AuthSession,
    application_uuid: Optional[str],
    form: Mapping[str, Any],
    files: Sequence[UploadFile] = (),
    signature: Optional[str] = None,
    service: Optional[ApplicationService] = None,
) -> Dict[str, Any]:
    """
    Validate and submit the lease screening form.

    Without a logged-in session nothing is sent; a local result is returned
    so the clinic still reaches the completion page.

    Args:
        session: Session of the current request
        application_uuid: Application the form belongs to
        form: Submitted fields (snake_case names)
        files: Supporting documents as ``(filename, content, content_type)``
        signature: Signature PNG as a data URL
        service: Application service (defaults to the shared one)

    Returns:
        Completion summary for the completion page

    Raises:
        FormValidationError: If any field is invalid
        ApiError: If the API rejects the update, an upload or the submit
    """
    values = dict(form)
    if signature is not None:
        values["signature"] = signature

    errors = validate_lease_screening_form(values)
    if not application_uuid and session.is_authenticated:
        errors["application"] = "申込IDが指定されていません"
    if errors:
        raise FormValidationError(errors)

    if not session.is_authenticated:
        fake_id = f"fake-{int(time.time() * 1000)}"
        logger.info(
            "Lease screening accepted without a session",
            extra={"extra_fields": {"application_id": fake_id}},
        )
        return _summary(fake_id, values, len(files), fake=True)

    service = service or application_service
    uploads = list(files) + [decode_signature(values["signature"])]

    await service.update(application_uuid, build_application_update(values))
    await service.upload_attachments(application_uuid, uploads)
    await _submit(service, application_uuid)

    logger.info(
        "Lease screening submitted",
        extra={
            "extra_fields": {
                "application_uuid": application_uuid,
                "attachments": len(uploads),
            }
        },
    )
    return _summary(application_uuid, values, len(uploads), fake=False)
