"""HTTP client for the hosted provider (Supabase auth + table API).

One `requests.Session` is shared for all calls. Every request carries the
project's anon key; user calls add the caller's bearer token so the
provider's row-level policy scopes the rows.
"""

import base64
import hashlib
import logging
import secrets
from typing import List, Optional
from urllib.parse import urlencode

import requests

from ..schemas import AuthSession, AuthUser, OAuthRedirect, StudySessionCreate, StudySessionRecord
from .base import AuthError, BackendClient, OperationError

logger = logging.getLogger("studyassist.backend")

TABLE = "study_sessions"


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        for key in ("error_description", "msg", "message", "error"):
            if body.get(key):
                return str(body[key])
    return resp.text or f"HTTP {resp.status_code}"


def _pkce_pair() -> tuple[str, str]:
    verifier = secrets.token_urlsafe(56)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return verifier, challenge


class SupabaseBackend(BackendClient):
    def __init__(self, url: str, anon_key: str, timeout: float = 10, http: Optional[requests.Session] = None):
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self.http = http or requests.Session()

    def _headers(self, access_token: Optional[str] = None) -> dict:
        h = {"apikey": self.anon_key, "Content-Type": "application/json"}
        h["Authorization"] = f"Bearer {access_token or self.anon_key}"
        return h

    # ── Auth ──────────────────────────────────────────────────────────────

    def _auth_call(self, method: str, path: str, *, params=None, json=None, access_token=None) -> requests.Response:
        try:
            resp = self.http.request(
                method,
                f"{self.url}/auth/v1/{path}",
                params=params,
                json=json,
                headers=self._headers(access_token),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("auth request failed path=%s error=%s", path, exc)
            raise OperationError(f"Auth service unreachable: {exc}") from exc
        # an outage says nothing about the caller's credentials
        if resp.status_code >= 500:
            raise OperationError(_error_message(resp), resp.status_code)
        if not resp.ok:
            raise AuthError(_error_message(resp), resp.status_code)
        return resp

    @staticmethod
    def _session_from(body: dict) -> AuthSession:
        user = body.get("user") or {}
        return AuthSession(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            user=AuthUser(id=user.get("id", ""), email=user.get("email")),
        )

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        resp = self._auth_call("POST", "token", params={"grant_type": "password"},
                               json={"email": email, "password": password})
        return self._session_from(resp.json())

    def sign_up(self, email: str, password: str) -> Optional[AuthSession]:
        resp = self._auth_call("POST", "signup", json={"email": email, "password": password})
        body = resp.json()
        # With email confirmation on, the provider returns the user but no tokens.
        if not body.get("access_token"):
            return None
        return self._session_from(body)

    def sign_in_with_oauth(self, provider: str, redirect_to: str) -> OAuthRedirect:
        verifier, challenge = _pkce_pair()
        query = urlencode({
            "provider": provider,
            "redirect_to": redirect_to,
            "code_challenge": challenge,
            "code_challenge_method": "s256",
        })
        return OAuthRedirect(url=f"{self.url}/auth/v1/authorize?{query}", code_verifier=verifier)

    def exchange_code_for_session(self, code: str, code_verifier: Optional[str]) -> AuthSession:
        if not code_verifier:
            raise AuthError("OAuth code verifier missing; start the sign-in again")
        resp = self._auth_call("POST", "token", params={"grant_type": "pkce"},
                               json={"auth_code": code, "code_verifier": code_verifier})
        return self._session_from(resp.json())

    def refresh_session(self, refresh_token: str) -> AuthSession:
        if not refresh_token:
            raise AuthError("Refresh token missing")
        resp = self._auth_call("POST", "token", params={"grant_type": "refresh_token"},
                               json={"refresh_token": refresh_token})
        return self._session_from(resp.json())

    def get_user(self, access_token: str) -> AuthUser:
        if not access_token:
            raise AuthError("Auth session missing")
        body = self._auth_call("GET", "user", access_token=access_token).json()
        return AuthUser(id=body["id"], email=body.get("email"))

    def sign_out(self, access_token: str) -> None:
        self._auth_call("POST", "logout", params={"scope": "global"}, access_token=access_token)

    # ── study_sessions table ──────────────────────────────────────────────

    def _rest_call(self, method: str, access_token: str, *, params=None, json=None, prefer=None) -> requests.Response:
        headers = self._headers(access_token)
        if prefer:
            headers["Prefer"] = prefer
        try:
            resp = self.http.request(
                method,
                f"{self.url}/rest/v1/{TABLE}",
                params=params,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("table request failed method=%s error=%s", method, exc)
            raise OperationError(f"Backend unreachable: {exc}") from exc
        if resp.status_code == 401:
            raise AuthError(_error_message(resp), resp.status_code)
        if not resp.ok:
            raise OperationError(_error_message(resp), resp.status_code)
        return resp

    def list_study_sessions(self, access_token: str) -> List[StudySessionRecord]:
        resp = self._rest_call("GET", access_token, params={"select": "*", "order": "created_at.desc"})
        return [StudySessionRecord.from_row(row) for row in resp.json()]

    def get_study_session(self, access_token: str, session_id: str) -> Optional[StudySessionRecord]:
        resp = self._rest_call("GET", access_token, params={"select": "*", "id": f"eq.{session_id}"})
        rows = resp.json()
        return StudySessionRecord.from_row(rows[0]) if rows else None

    def create_study_session(self, access_token: str, payload: StudySessionCreate) -> StudySessionRecord:
        user = self.get_user(access_token)
        row = {"user_id": user.id, **payload.model_dump()}
        resp = self._rest_call("POST", access_token, json=row, prefer="return=representation")
        rows = resp.json()
        if not rows:
            raise OperationError("Insert returned no row")
        return StudySessionRecord.from_row(rows[0])

    def delete_study_session(self, access_token: str, session_id: str) -> None:
        self._rest_call("DELETE", access_token, params={"id": f"eq.{session_id}"})
