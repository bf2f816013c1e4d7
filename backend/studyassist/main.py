"""FastAPI application entrypoint and HTTP controllers.

This module defines the pages and the small JSON API of the StudyAssist
web app. Controllers are intentionally thin: they read cookies and form
fields, delegate to the configured backend client, and render a template
or redirect.

Pages:
- GET  /                              landing
- GET  /auth/sign-in, POST /auth/sign-in
- GET  /auth/sign-up, POST /auth/sign-up
- POST /auth/oauth/{provider}, GET /auth/callback
- POST /auth/sign-out
- GET  /dashboard
- POST /dashboard/sessions            (modal create)
- POST /dashboard/sessions/{id}/delete
- GET  /dashboard/new-session, POST /dashboard/new-session
- GET  /dashboard/session/{id}        (chat view)

JSON:
- GET  /api/chat/{view_id}
- POST /api/chat/{view_id}/messages
- GET  /health
"""

import base64
import binascii
import json
import logging
import time
import uuid
from datetime import timezone
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, Form, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from .auth import (
    CurrentUser,
    SignInRequired,
    access_token_from,
    apply_refreshed_session,
    clear_auth_cookies,
    optional_user,
    require_api_user,
    require_user,
    store_code_verifier,
    store_session,
    VERIFIER_COOKIE,
)
from .backends import AuthError, BackendClient, BackendError, OperationError, get_backend
from .chat import ChatBusyError, ChatViewStore
from .config import settings
from .database import create_db_and_tables
from .forms import STUDY_LEVELS, TITLE_MAX_LENGTH, StudySessionForm
from .schemas import ChatMessageIn, ChatViewOut

app = FastAPI(title="StudyAssist")
logger = logging.getLogger("studyassist.web")
if not logging.getLogger().handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

_chat_views = ChatViewStore(
    delay_seconds=settings.CHAT_REPLY_DELAY_SECONDS,
    ttl_seconds=settings.CHAT_VIEW_TTL_SECONDS,
    max_views=settings.CHAT_MAX_VIEWS,
)

PACKAGE_DIR = Path(__file__).resolve().parent
templates = Jinja2Templates(directory=str(PACKAGE_DIR / "templates"))
app.mount("/static", StaticFiles(directory=PACKAGE_DIR / "static"), name="static")

FLASH_COOKIE = "sa-flash"
UNREACHABLE = "Could not reach the sign-in service. Please try again."

if settings.BACKEND == "local":
    create_db_and_tables()


def _iso_utc(value) -> str:
    """ISO 8601 for the browser to format in local time; naive values are UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


templates.env.filters["iso_utc"] = _iso_utc


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
        raise
    apply_refreshed_session(request, response)
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    if not request.url.path.startswith("/static"):
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                },
                ensure_ascii=True,
            ),
        )
    return response


@app.exception_handler(SignInRequired)
async def sign_in_required_handler(request: Request, exc: SignInRequired):
    response = RedirectResponse(url="/auth/sign-in", status_code=303)
    clear_auth_cookies(request, response)
    return response


@app.exception_handler(OperationError)
async def backend_unavailable_handler(request: Request, exc: OperationError):
    """Backend failures no route handled itself; the auth cookies stay in place."""
    logger.warning(
        "backend_unavailable %s",
        json.dumps({"path": request.url.path, "error": exc.message, "status": exc.status_code}, ensure_ascii=True),
    )
    if request.url.path.startswith("/api/"):
        return JSONResponse({"detail": "backend unavailable"}, status_code=503)
    return _render(request, "unavailable.html", {}, 503)


# ── Rendering helpers ────────────────────────────────────────────────────────

def _encode_flash(kind: str, message: str) -> str:
    raw = json.dumps({"kind": kind, "message": message}).encode("utf-8")
    # padding is stripped so the value needs no cookie quoting
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _read_flash(request: Request) -> Optional[dict]:
    raw = request.cookies.get(FLASH_COOKIE)
    if not raw:
        return None
    try:
        return json.loads(base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)))
    except (ValueError, binascii.Error):
        return None


def _redirect(url: str, message: Optional[str] = None, kind: str = "success") -> RedirectResponse:
    """303 redirect carrying an optional one-shot notice for the next page."""
    response = RedirectResponse(url=url, status_code=303)
    if message:
        response.set_cookie(FLASH_COOKIE, _encode_flash(kind, message), httponly=True, samesite="lax")
    return response


def _render(request: Request, name: str, context: dict, status_code: int = 200):
    ctx = dict(context)
    flash = _read_flash(request)
    if flash and not ctx.get("toast"):
        ctx["toast"] = flash
    response = templates.TemplateResponse(request, name, ctx, status_code=status_code)
    if FLASH_COOKIE in request.cookies:
        response.delete_cookie(FLASH_COOKIE, httponly=True, samesite="lax")
    return response


def _error(message: str) -> dict:
    return {"kind": "error", "message": message}


def _log_operation_error(action: str, user: CurrentUser, exc: OperationError) -> None:
    logger.warning(
        "%s_failed %s",
        action,
        json.dumps({"user_id": user.id, "error": exc.message, "status": exc.status_code}, ensure_ascii=True),
    )


def _guard_auth(fn, *args):
    """Call a backend method; an auth failure sends the browser to sign-in."""
    try:
        return fn(*args)
    except AuthError as exc:
        logger.info("backend rejected session: %s", exc.message)
        raise SignInRequired() from exc


def session_form(
    title: str = Form(""),
    description: str = Form(""),
    study_level: str = Form(""),
    learning_goals: str = Form(""),
    learning_style: str = Form(""),
    weaknesses: str = Form(""),
    additional_info: str = Form(""),
) -> StudySessionForm:
    return StudySessionForm(
        title=title,
        description=description,
        study_level=study_level,
        learning_goals=learning_goals,
        learning_style=learning_style,
        weaknesses=weaknesses,
        additional_info=additional_info,
    )


# ── Landing ──────────────────────────────────────────────────────────────────

@app.get("/")
def landing(request: Request, user: Optional[CurrentUser] = Depends(optional_user)):
    """Marketing page; the call to action depends on whether a session exists."""
    return _render(request, "landing.html", {"user": user})


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok", "backend": settings.BACKEND}


# ── Auth ─────────────────────────────────────────────────────────────────────

@app.get("/auth/sign-in")
def sign_in_page(request: Request):
    return _render(request, "sign_in.html", {"email": ""})


@app.post("/auth/sign-in")
def sign_in(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    backend: BackendClient = Depends(get_backend),
):
    """Password sign-in. Success stores the tokens and opens the dashboard."""
    email = email.strip()
    if not email or not password:
        return _render(request, "sign_in.html", {"email": email, "toast": _error("Email and password are required")}, 400)
    try:
        session = backend.sign_in_with_password(email, password)
    except AuthError as exc:
        logger.info("sign_in_failed %s", json.dumps({"email": email, "error": exc.message}, ensure_ascii=True))
        return _render(request, "sign_in.html", {"email": email, "toast": _error("Invalid email or password")}, 400)
    except OperationError:
        return _render(request, "sign_in.html", {"email": email, "toast": _error(UNREACHABLE)}, 503)
    response = _redirect("/dashboard")
    store_session(response, session)
    return response


@app.get("/auth/sign-up")
def sign_up_page(request: Request):
    return _render(request, "sign_up.html", {"email": ""})


@app.post("/auth/sign-up")
def sign_up(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    backend: BackendClient = Depends(get_backend),
):
    """Create an account; sign in right away unless email confirmation is pending."""
    email = email.strip()
    if not email or not password:
        return _render(request, "sign_up.html", {"email": email, "toast": _error("Email and password are required")}, 400)
    try:
        session = backend.sign_up(email, password)
    except AuthError as exc:
        return _render(request, "sign_up.html", {"email": email, "toast": _error(exc.message)}, 400)
    except OperationError:
        return _render(request, "sign_up.html", {"email": email, "toast": _error(UNREACHABLE)}, 503)
    if session is None:
        return _redirect("/auth/sign-in", "Check your email to confirm your account, then sign in.")
    response = _redirect("/dashboard", "Account created")
    store_session(response, session)
    return response


@app.post("/auth/oauth/{provider}")
def oauth_start(request: Request, provider: str, backend: BackendClient = Depends(get_backend)):
    """Send the browser to the provider's OAuth consent screen."""
    try:
        start = backend.sign_in_with_oauth(provider, redirect_to=f"{settings.SITE_URL}/auth/callback")
    except AuthError as exc:
        return _render(request, "sign_in.html", {"email": "", "toast": _error(exc.message)}, 400)
    response = RedirectResponse(url=start.url, status_code=303)
    if start.code_verifier:
        store_code_verifier(response, start.code_verifier)
    return response


@app.get("/auth/callback")
def oauth_callback(request: Request, code: str = "", backend: BackendClient = Depends(get_backend)):
    if not code:
        return _redirect("/auth/sign-in", "Sign-in was cancelled or failed", kind="error")
    try:
        session = backend.exchange_code_for_session(code, request.cookies.get(VERIFIER_COOKIE))
    except AuthError as exc:
        logger.info("oauth_exchange_failed %s", json.dumps({"error": exc.message}, ensure_ascii=True))
        return _redirect("/auth/sign-in", exc.message, kind="error")
    except OperationError:
        return _redirect("/auth/sign-in", UNREACHABLE, kind="error")
    response = _redirect("/dashboard")
    response.delete_cookie(VERIFIER_COOKIE, httponly=True, secure=settings.COOKIE_SECURE, samesite="lax")
    store_session(response, session)
    return response


@app.post("/auth/sign-out")
def sign_out(request: Request, backend: BackendClient = Depends(get_backend)):
    """Revoke the session everywhere and clear every local auth artifact."""
    token = access_token_from(request)
    if token:
        # the local artifacts are cleared regardless; the token may already be dead
        try:
            _chat_views.discard_for_user(backend.get_user(token).id)
            backend.sign_out(token)
        except BackendError as exc:
            logger.warning("sign_out_failed %s", json.dumps({"error": exc.message}, ensure_ascii=True))
    response = _redirect("/")
    clear_auth_cookies(request, response)
    return response


# ── Dashboard ────────────────────────────────────────────────────────────────

def _dashboard_context(user: CurrentUser, backend: BackendClient) -> dict:
    """Fetch the full session list; a data failure yields an empty list and a notice."""
    ctx = {"user": user, "sessions": [], "form": StudySessionForm(), "show_modal": False,
           "title_max_length": TITLE_MAX_LENGTH}
    try:
        ctx["sessions"] = _guard_auth(backend.list_study_sessions, user.access_token)
    except OperationError as exc:
        _log_operation_error("list_sessions", user, exc)
        ctx["toast"] = _error("Failed to load study sessions")
    return ctx


@app.get("/dashboard")
def dashboard(request: Request, user: CurrentUser = Depends(require_user), backend: BackendClient = Depends(get_backend)):
    return _render(request, "dashboard.html", _dashboard_context(user, backend))


@app.post("/dashboard/sessions")
def create_session_from_modal(
    request: Request,
    form: StudySessionForm = Depends(session_form),
    user: CurrentUser = Depends(require_user),
    backend: BackendClient = Depends(get_backend),
):
    """Create from the dashboard modal; errors reopen the modal with the typed values."""
    problem = form.validate_modal()
    if problem:
        ctx = _dashboard_context(user, backend)
        ctx.update(form=form, show_modal=True, toast=_error(problem))
        return _render(request, "dashboard.html", ctx, 400)
    try:
        _guard_auth(backend.create_study_session, user.access_token, form.to_create())
    except OperationError as exc:
        _log_operation_error("create_session", user, exc)
        ctx = _dashboard_context(user, backend)
        ctx.update(form=form, show_modal=True, toast=_error(exc.message or "Failed to create study session"))
        return _render(request, "dashboard.html", ctx, 502)
    return _redirect("/dashboard", "Study session created successfully!")


@app.post("/dashboard/sessions/{session_id}/delete")
def delete_session(
    session_id: str,
    user: CurrentUser = Depends(require_user),
    backend: BackendClient = Depends(get_backend),
):
    """Irreversible delete, confirmed in the dashboard's modal."""
    try:
        _guard_auth(backend.delete_study_session, user.access_token, session_id)
    except OperationError as exc:
        _log_operation_error("delete_session", user, exc)
        return _redirect("/dashboard", exc.message or "Failed to delete study session", kind="error")
    return _redirect("/dashboard", "Study session deleted successfully!")


@app.get("/dashboard/new-session")
def new_session_page(request: Request, user: CurrentUser = Depends(require_user)):
    return _render(request, "new_session.html", {"user": user, "form": StudySessionForm(), "levels": STUDY_LEVELS})


@app.post("/dashboard/new-session")
def create_session_standalone(
    request: Request,
    form: StudySessionForm = Depends(session_form),
    user: CurrentUser = Depends(require_user),
    backend: BackendClient = Depends(get_backend),
):
    ctx = {"user": user, "form": form, "levels": STUDY_LEVELS}
    problem = form.validate_standalone()
    if problem:
        return _render(request, "new_session.html", {**ctx, "toast": _error(problem)}, 400)
    try:
        _guard_auth(backend.create_study_session, user.access_token, form.to_create())
    except OperationError as exc:
        _log_operation_error("create_session", user, exc)
        return _render(request, "new_session.html", {**ctx, "toast": _error(exc.message or "Failed to create study session")}, 502)
    return _redirect("/dashboard", "Study session created successfully!")


# ── Session chat ─────────────────────────────────────────────────────────────

@app.get("/dashboard/session/{session_id}")
def session_chat(
    request: Request,
    session_id: str,
    user: CurrentUser = Depends(require_user),
    backend: BackendClient = Depends(get_backend),
):
    """Open a fresh chat view for one study session."""
    try:
        record = _guard_auth(backend.get_study_session, user.access_token, session_id)
    except OperationError as exc:
        _log_operation_error("load_session", user, exc)
        record = None
    if record is None:
        return _redirect("/dashboard", "Failed to load study session", kind="error")
    view = _chat_views.open(record.id, user.id, record.title)
    return _render(request, "session_chat.html", {"user": user, "session": record, "view": view.snapshot()})


@app.get("/api/chat/{view_id}", response_model=ChatViewOut)
def get_chat_view(view_id: str, user: CurrentUser = Depends(require_api_user)):
    """Poll the state and messages of a chat view."""
    view = _chat_views.get(view_id, user.id)
    if not view:
        raise HTTPException(status_code=404, detail="chat view not found")
    return view.snapshot()


@app.post("/api/chat/{view_id}/messages", response_model=ChatViewOut, status_code=202)
def post_chat_message(view_id: str, payload: ChatMessageIn, user: CurrentUser = Depends(require_api_user)):
    """Submit a message; the reply arrives after the configured delay."""
    view = _chat_views.get(view_id, user.id)
    if not view:
        raise HTTPException(status_code=404, detail="chat view not found")
    try:
        _chat_views.send(view, payload.content)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ChatBusyError:
        raise HTTPException(status_code=409, detail="a reply is still pending")
    return view.snapshot()
