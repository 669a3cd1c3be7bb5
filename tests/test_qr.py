"""
Tests for share links and QR codes.
"""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from medent_portal.app import app
from medent_portal.config import settings
from medent_portal.domain.qr import (
    application_share_url,
    payment_link_url,
    qr_download_name,
    render_qr_png,
    render_qr_svg,
)
from medent_portal.models import ApplicationResponse
from medent_portal.services.application_service import application_service

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def test_share_url_prefers_api_qr_code_url() -> None:
    application = ApplicationResponse(uuid="u-1", qrCodeUrl="https://example.com/qr/u-1")

    assert application_share_url(application, "https://portal.test") == "https://example.com/qr/u-1"


def test_share_url_points_to_lease_screening() -> None:
    """Test the lease screening link built from the application uuid."""
    application = ApplicationResponse(uuid="u-1")

    assert (
        application_share_url(application, "https://portal.test")
        == "https://portal.test/applications/lease-screening?id=u-1"
    )


def test_share_url_without_application() -> None:
    assert application_share_url(None, "https://portal.test") is None
    assert application_share_url(ApplicationResponse(uuid=""), "https://portal.test") is None


def test_payment_link_url() -> None:
    assert payment_link_url("abc", "https://portal.test") == "https://portal.test/apply/abc"


def test_render_qr_svg() -> None:
    """Test that a QR code is rendered as an SVG document."""
    svg = render_qr_svg("https://portal.test/apply/abc")

    assert svg.lstrip().startswith(b"<?xml") or b"<svg" in svg[:200]
    assert b"</svg>" in svg


def test_render_qr_png() -> None:
    assert render_qr_png("https://portal.test/apply/abc").startswith(PNG_SIGNATURE)


def test_qr_download_name() -> None:
    """Test that downloads are named after the application number."""
    application = ApplicationResponse(uuid="u-1", applicationNumber="APP-2024-001")

    assert qr_download_name(application) == "qr-code-APP-2024-001.png"
    assert qr_download_name(ApplicationResponse(uuid="u-1")) == "qr-code-application.png"
    assert qr_download_name(None) == "qr-code-application.png"


@pytest.mark.asyncio
async def test_qr_images_encode_the_api_share_url(auth_cookie) -> None:
    """
    Test the QR image endpoints of the share page.

    Verifies that the image and the download encode the API's ``qrCodeUrl``,
    the same link the page shows, and that the PNG is offered as a download.
    """
    share_url = "https://portal.example.jp/s/abc"
    application = ApplicationResponse(
        uuid="A1", applicationNumber="APP-7", qrCodeUrl=share_url
    )

    with patch.object(application_service, "get_by_id", new_callable=AsyncMock) as mock_get:
        mock_get.return_value = application
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test", cookies=auth_cookie
        ) as client:
            page = await client.get("/applications/qr?id=A1")
            svg = await client.get("/applications/qr/code.svg?id=A1")
            png = await client.get("/applications/qr/code.png?id=A1")

    assert share_url in page.text
    assert svg.headers["content-type"].startswith("image/svg+xml")
    assert svg.content == render_qr_svg(share_url)
    assert png.headers["content-type"] == "image/png"
    assert png.headers["content-disposition"] == 'attachment; filename="qr-code-APP-7.png"'
    assert png.content == render_qr_png(share_url)


@pytest.mark.asyncio
async def test_qr_image_without_session_uses_lease_screening_link() -> None:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/applications/qr/code.svg?id=A1")

    assert response.status_code == 200
    assert response.content == render_qr_svg(
        f"{settings.PUBLIC_BASE_URL}/applications/lease-screening?id=A1"
    )
