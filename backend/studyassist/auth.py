"""Cookie-based auth helpers and FastAPI dependencies.

Tokens from the backend are kept in HTTP-only cookies. Pages depend on
`require_user`, which raises `SignInRequired` (turned into a redirect to
the sign-in page by the app). The JSON chat API depends on
`require_api_user`, which raises a plain 401 instead.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.responses import Response

from .backends import AuthError, BackendClient, get_backend
from .config import settings
from .schemas import AuthSession, AuthUser

logger = logging.getLogger("studyassist.web")

AUTH_COOKIE_PREFIX = "sa-auth-"
ACCESS_COOKIE = AUTH_COOKIE_PREFIX + "access-token"
REFRESH_COOKIE = AUTH_COOKIE_PREFIX + "refresh-token"
VERIFIER_COOKIE = AUTH_COOKIE_PREFIX + "code-verifier"


class SignInRequired(Exception):
    """Raised by page dependencies when no valid session exists."""


@dataclass
class CurrentUser:
    user: AuthUser
    access_token: str

    @property
    def id(self) -> str:
        return self.user.id


def _set_cookie(response: Response, key: str, value: str, max_age: Optional[int] = None) -> None:
    response.set_cookie(
        key,
        value,
        max_age=max_age,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
    )


def store_session(response: Response, session: AuthSession) -> None:
    """Persist a signed-in session on the browser."""
    _set_cookie(response, ACCESS_COOKIE, session.access_token)
    if session.refresh_token:
        _set_cookie(response, REFRESH_COOKIE, session.refresh_token)


def store_code_verifier(response: Response, verifier: str) -> None:
    _set_cookie(response, VERIFIER_COOKIE, verifier, max_age=600)


def clear_auth_cookies(request: Request, response: Response) -> None:
    """Delete every auth cookie the browser sent, plus the known ones."""
    names = {ACCESS_COOKIE, REFRESH_COOKIE, VERIFIER_COOKIE}
    names.update(k for k in request.cookies if k.startswith(AUTH_COOKIE_PREFIX))
    for name in names:
        response.delete_cookie(name, httponly=True, secure=settings.COOKIE_SECURE, samesite="lax")


def access_token_from(request: Request) -> str:
    return request.cookies.get(ACCESS_COOKIE, "")


def optional_user(request: Request, backend: BackendClient = Depends(get_backend)) -> Optional[CurrentUser]:
    """Return the signed-in user, or `None` for anonymous visitors.

    An expired access token is traded for a new session when a refresh
    token is present; the new tokens are written back by
    `apply_refreshed_session`. An unreachable backend raises
    `OperationError` and leaves the cookies alone.
    """
    token = access_token_from(request)
    refresh_token = request.cookies.get(REFRESH_COOKIE, "")
    if token:
        try:
            return CurrentUser(user=backend.get_user(token), access_token=token)
        except AuthError as exc:
            logger.info("auth lookup failed: %s", exc.message)
    if not refresh_token:
        return None
    try:
        session = backend.refresh_session(refresh_token)
    except AuthError as exc:
        logger.info("session refresh failed: %s", exc.message)
        return None
    logger.info("session refreshed user_id=%s", session.user.id)
    request.state.refreshed_session = session
    return CurrentUser(user=session.user, access_token=session.access_token)


def apply_refreshed_session(request: Request, response: Response) -> None:
    """Store tokens renewed during this request, unless the response already set or cleared them."""
    session = getattr(request.state, "refreshed_session", None)
    if session is None:
        return
    if any(v.startswith(ACCESS_COOKIE + "=") for v in response.headers.getlist("set-cookie")):
        return
    store_session(response, session)


def require_user(user: Optional[CurrentUser] = Depends(optional_user)) -> CurrentUser:
    if user is None:
        raise SignInRequired()
    return user


def require_api_user(user: Optional[CurrentUser] = Depends(optional_user)) -> CurrentUser:
    if user is None:
        raise HTTPException(status_code=401, detail="not authenticated")
    return user
