import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import NamedTuple, Optional

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from auth import CognitoIdentityProvider, IdentityProvider, login, register
from config import CognitoConfig
from database import get_db
from helpers import ChatStore, SqlChatStore
from schema import LoginActionState, LoginStatus, RegisterActionState, RegisterStatus

logger = logging.getLogger(__name__)

app = APIRouter()

CHAT_ID_PATTERN = re.compile(r"^[0-9a-fA-F-]{36}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
TOKEN_COOKIES = ("access_token", "id_token", "refresh_token")


# --- Dependencies ---
@lru_cache
def get_config() -> CognitoConfig:
    return CognitoConfig.from_env()


@lru_cache
def _cognito_provider(config: CognitoConfig) -> CognitoIdentityProvider:
    return CognitoIdentityProvider(config)


def get_identity_provider(config: CognitoConfig = Depends(get_config)) -> IdentityProvider:
    return _cognito_provider(config)


def get_chat_store(db: Session = Depends(get_db)) -> ChatStore:
    return SqlChatStore(db)


# --- Notifications ---
class Notification(NamedTuple):
    type: str  # "success" | "error"
    description: str


LOGIN_NOTIFICATIONS = {
    LoginStatus.FAILED: "Invalid credentials!",
    LoginStatus.INVALID_DATA: "Failed validating your submission!",
    LoginStatus.USER_NOT_FOUND: "User not found!",
    LoginStatus.NOT_AUTHORIZED: "Incorrect username or password!",
}

REGISTER_NOTIFICATIONS = {
    RegisterStatus.USER_EXISTS: "Account already exists!",
    RegisterStatus.FAILED: "Failed to create account!",
    RegisterStatus.INVALID_DATA: "Failed validating your submission!",
}


def is_valid_chat_id(chat_id: Optional[str]) -> bool:
    return bool(chat_id) and CHAT_ID_PATTERN.match(chat_id) is not None


def check_submission(email: str, password: str) -> Optional[Notification]:
    """Checks run before a form reaches the server action."""
    if not email or not password:
        return Notification("error", "Email and password are required!")
    if not EMAIL_PATTERN.match(email):
        return Notification("error", "Invalid email format!")
    return None


def login_notification(state: LoginActionState) -> Optional[Notification]:
    if state.status in (LoginStatus.IDLE, LoginStatus.IN_PROGRESS):
        return None
    if state.status == LoginStatus.SUCCESS:
        if is_valid_chat_id(state.chat_id):
            return None
        logger.error("Invalid chat ID: %s", state.chat_id)
        return Notification("error", "Invalid chat ID received!")
    return Notification("error", LOGIN_NOTIFICATIONS.get(state.status, "An unexpected error occurred!"))


def register_notification(state: RegisterActionState) -> Optional[Notification]:
    if state.status in (RegisterStatus.IDLE, RegisterStatus.IN_PROGRESS):
        return None
    if state.status == RegisterStatus.SUCCESS:
        return Notification("success", "Account created successfully!")
    return Notification("error", REGISTER_NOTIFICATIONS.get(state.status, "An unexpected error occurred!"))


# --- Pages ---
BASE_DIR = Path(__file__).resolve().parent
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))

LOGIN_PAGE = {
    "title": "Sign In",
    "subtitle": "Use your email and password to sign in",
    "action": "/login",
    "submit": "Sign in",
    "footer_text": "Don't have an account?",
    "footer_href": "/register",
    "footer_link": "Sign up",
    "footer_suffix": "for free.",
}

REGISTER_PAGE = {
    "title": "Sign Up",
    "subtitle": "Create an account with your email and password",
    "action": "/register",
    "submit": "Sign Up",
    "footer_text": "Already have an account?",
    "footer_href": "/login",
    "footer_link": "Sign in",
    "footer_suffix": "instead.",
}


def render_page(
    request: Request, page: dict, email: str = "", notification: Optional[Notification] = None
) -> HTMLResponse:
    context = dict(page, email=email, notification=notification)
    return templates.TemplateResponse(request, "auth.html", context)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/login", response_class=HTMLResponse)
def login_page(request: Request, registered: bool = False):
    notification = Notification("success", "Account created successfully!") if registered else None
    return render_page(request, LOGIN_PAGE, notification=notification)


@app.get("/register", response_class=HTMLResponse)
def register_page(request: Request):
    return render_page(request, REGISTER_PAGE)


@app.post("/login")
def login_form(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    provider: IdentityProvider = Depends(get_identity_provider),
    store: ChatStore = Depends(get_chat_store),
    config: CognitoConfig = Depends(get_config),
):
    problem = check_submission(email, password)
    if problem:
        return render_page(request, LOGIN_PAGE, email, problem)

    state = login({"email": email, "password": password}, provider, store, config)
    notification = login_notification(state)
    if state.status != LoginStatus.SUCCESS or notification:
        return render_page(request, LOGIN_PAGE, email, notification)

    response = RedirectResponse(f"/chat/{state.chat_id}", status_code=303)
    for name in TOKEN_COOKIES:
        response.set_cookie(name, getattr(state, name) or "", httponly=True, samesite="lax")
    return response


@app.post("/register")
def register_form(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    provider: IdentityProvider = Depends(get_identity_provider),
    config: CognitoConfig = Depends(get_config),
):
    problem = check_submission(email, password)
    if problem:
        return render_page(request, REGISTER_PAGE, email, problem)

    state = register({"email": email, "password": password}, provider, config)
    if state.status == RegisterStatus.SUCCESS:
        return RedirectResponse("/login?registered=1", status_code=303)
    return render_page(request, REGISTER_PAGE, email, register_notification(state))


# --- JSON actions ---
@app.post("/api/register", response_model=RegisterActionState)
def register_action(
    email: str = Form(""),
    password: str = Form(""),
    provider: IdentityProvider = Depends(get_identity_provider),
    config: CognitoConfig = Depends(get_config),
):
    return register({"email": email, "password": password}, provider, config)


@app.post("/api/login", response_model=LoginActionState)
def login_action(
    email: str = Form(""),
    password: str = Form(""),
    provider: IdentityProvider = Depends(get_identity_provider),
    store: ChatStore = Depends(get_chat_store),
    config: CognitoConfig = Depends(get_config),
):
    return login({"email": email, "password": password}, provider, store, config)
