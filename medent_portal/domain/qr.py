"""
Share links and QR codes for applications and payment links.
"""

from io import BytesIO
from typing import Optional

import qrcode
import qrcode.image.pil
import qrcode.image.svg

from ..models import ApplicationResponse


def application_share_url(
    application: Optional[ApplicationResponse], public_base_url: str
) -> Optional[str]:
    """
    URL the clinic opens to fill in the lease screening form.

    The API's own ``qrCodeUrl`` wins when present.
    """
    if application is None:
        return None
    if application.qr_code_url:
        return application.qr_code_url
    if not application.uuid:
        return None
    return f"{public_base_url}/applications/lease-screening?id={application.uuid}"


def payment_link_url(link_id: str, public_base_url: str) -> str:
    return f"{public_base_url}/apply/{link_id}"


def render_qr_svg(data: str) -> bytes:
    """Encode ``data`` as an SVG QR code."""
    image = qrcode.make(data, image_factory=qrcode.image.svg.SvgPathImage, border=2)
    buffer = BytesIO()
    image.save(buffer)
    return buffer.getvalue()


def render_qr_png(data: str, box_size: int = 10) -> bytes:
    """Encode ``data`` as a black-on-white PNG QR code for download."""
    code = qrcode.QRCode(box_size=box_size, border=2)
    code.add_data(data)
    code.make(fit=True)
    image = code.make_image(
        image_factory=qrcode.image.pil.PilImage, fill_color="black", back_color="white"
    )
    buffer = BytesIO()
    image.save(buffer)
    return buffer.getvalue()


def qr_download_name(application: Optional[ApplicationResponse]) -> str:
    number = application.application_number if application else None
    return f"qr-code-{number or 'application'}.png"
