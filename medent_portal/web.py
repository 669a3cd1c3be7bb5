"""
Shared pieces of the page layer: templates, the request session, flash
messages and redirects.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote, unquote

from fastapi import Request, Response
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from .config import settings
from .metrics import track_page_view
from .models import PAYMENT_STATUS_COLORS, PAYMENT_STATUS_LABELS
from .services.auth_service import auth_service
from .session import AuthSession
from .utils.formatting import (
    format_amount,
    format_date_japanese,
    format_file_size,
    status_color,
)

BASE_PATH = Path(__file__).resolve().parent
templates = Jinja2Templates(directory=str(BASE_PATH / "templates"))

templates.env.filters["amount"] = format_amount
templates.env.filters["date_ja"] = format_date_japanese
templates.env.filters["file_size"] = format_file_size
templates.env.globals["status_color"] = status_color
templates.env.globals["payment_status_labels"] = PAYMENT_STATUS_LABELS
templates.env.globals["payment_status_colors"] = PAYMENT_STATUS_COLORS

FLASH_COOKIE = "flash"
APPLICATION_DATA_COOKIE = "application-data"


def get_session(request: Request) -> AuthSession:
    """Session loaded by the auth guard; an empty one outside of it."""
    session = getattr(request.state, "session", None)
    if session is None:
        session = AuthSession(backend=auth_service)
        request.state.session = session
    return session


def read_flash(request: Request) -> List[Dict[str, str]]:
    raw = request.cookies.get(FLASH_COOKIE)
    if not raw:
        return []
    try:
        messages = json.loads(unquote(raw))
    except ValueError:
        return []
    return messages if isinstance(messages, list) else []


def set_flash(response: Response, message: str, kind: str = "success") -> None:
    """Queue a toast for the next rendered page."""
    payload = quote(json.dumps([{"type": kind, "message": message}], ensure_ascii=False))
    response.set_cookie(FLASH_COOKIE, payload, path="/", samesite="lax", httponly=True)


def redirect(url: str, message: Optional[str] = None, kind: str = "success") -> RedirectResponse:
    response = RedirectResponse(url=url, status_code=303)
    if message:
        set_flash(response, message, kind)
    return response


def render(
    request: Request,
    name: str,
    context: Optional[Dict[str, Any]] = None,
    status_code: int = 200,
    page: Optional[str] = None,
) -> HTMLResponse:
    """
    Render a page template.

    Every page gets the app name, the signed-in user and pending toasts.
    Toasts are shown once: the flash cookie is dropped after rendering.
    """
    session = get_session(request)
    flash = read_flash(request)
    page_context = {
        "app_name": settings.APP_NAME,
        "user": session.user,
        "is_authenticated": session.is_authenticated,
        "flash": flash,
    }
    page_context.update(context or {})

    if page:
        track_page_view(page)

    response = templates.TemplateResponse(
        request=request, name=name, context=page_context, status_code=status_code
    )
    if flash:
        response.delete_cookie(FLASH_COOKIE, path="/")
    return response


def store_application_data(response: Response, summary: Dict[str, Any]) -> None:
    """Keep the lease screening completion summary for the completion page."""
    data = {key: value for key, value in summary.items() if key != "signature"}
    response.set_cookie(
        APPLICATION_DATA_COOKIE,
        quote(json.dumps(data, ensure_ascii=False)),
        path="/applications",
        samesite="lax",
        httponly=True,
    )


def load_application_data(request: Request) -> Optional[Dict[str, Any]]:
    raw = request.cookies.get(APPLICATION_DATA_COOKIE)
    if not raw:
        return None
    try:
        data = json.loads(unquote(raw))
    except ValueError:
        return None
    return data if isinstance(data, dict) else None
