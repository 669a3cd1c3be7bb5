"""
Login, logout and password change pages.
"""

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse

from ..exceptions import ApiError, AuthenticationError
from ..logging_config import get_logger
from ..services.auth_service import auth_service
from ..web import get_session, redirect, render

logger = get_logger(__name__)

router = APIRouter(tags=["Auth"])

HOME_PATH = "/projects"


@router.get("/login", response_class=HTMLResponse)
async def login_page(request: Request):
    """Render login page; signed-in users go straight to the project list."""
    session = get_session(request)
    if session.is_authenticated and session.token:
        return redirect(HOME_PATH)
    return render(request, "login.html", page="login")


@router.post("/login", response_class=HTMLResponse)
async def login(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
):
    session = get_session(request)
    if not email or not password:
        return render(
            request,
            "login.html",
            {"email": email, "error": "メールアドレスとパスワードを入力してください"},
            status_code=400,
        )

    try:
        await session.login(email, password)
    except AuthenticationError as error:
        logger.info("Login rejected", extra={"extra_fields": {"email": email}})
        return render(
            request, "login.html", {"email": email, "error": error.message}, status_code=401
        )

    return redirect(HOME_PATH, "ログインしました")


@router.post("/logout")
async def logout(request: Request):
    get_session(request).logout()
    return redirect("/login", "ログアウトしました")


@router.get("/settings/password", response_class=HTMLResponse)
async def password_page(request: Request):
    return render(request, "settings/password.html", page="change-password")


@router.post("/settings/password", response_class=HTMLResponse)
async def change_password(
    request: Request,
    old_password: str = Form(""),
    new_password: str = Form(""),
    confirm_password: str = Form(""),
):
    errors = {}
    if not old_password:
        errors["old_password"] = "現在のパスワードを入力してください"
    if len(new_password) < 8:
        errors["new_password"] = "新しいパスワードは8文字以上で入力してください"
    if new_password != confirm_password:
        errors["confirm_password"] = "パスワードが一致しません"
    if errors:
        return render(request, "settings/password.html", {"errors": errors}, status_code=400)

    try:
        await auth_service.change_password(old_password, new_password)
    except ApiError as error:
        return render(
            request, "settings/password.html", {"error": error.message}, status_code=400
        )
    return redirect("/settings", "パスワードを変更しました")
