"""Local stand-in for the hosted provider.

Each call opens its own database session, the way a remote client makes
one round trip per call. Rows are always filtered by the token's owner.
"""

import logging
from typing import List, Optional

from sqlmodel import Session

from ..database import engine as default_engine
from ..schemas import AuthSession, AuthUser, OAuthRedirect, StudySessionCreate, StudySessionRecord
from ..services import AuthService, StudySessionService
from .base import AuthError, BackendClient

logger = logging.getLogger("studyassist.backend")


def _to_user(user) -> AuthUser:
    return AuthUser(id=user.id, email=user.email)


def _to_record(row) -> StudySessionRecord:
    return StudySessionRecord.model_validate(row, from_attributes=True)


class LocalBackend(BackendClient):
    def __init__(self, engine=None):
        self.engine = engine or default_engine

    def _session(self) -> Session:
        return Session(self.engine)

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        with self._session() as db:
            auth = AuthService(db)
            user = auth.authenticate(email, password)
            return AuthSession(access_token=auth.issue_token(user), user=_to_user(user))

    def sign_up(self, email: str, password: str) -> Optional[AuthSession]:
        with self._session() as db:
            auth = AuthService(db)
            user = auth.register(email, password)
            logger.info("local user registered id=%s", user.id)
            return AuthSession(access_token=auth.issue_token(user), user=_to_user(user))

    def sign_in_with_oauth(self, provider: str, redirect_to: str) -> OAuthRedirect:
        raise AuthError(f"Sign-in with {provider} is not available on the local backend")

    def exchange_code_for_session(self, code: str, code_verifier: Optional[str]) -> AuthSession:
        raise AuthError("OAuth code exchange is not available on the local backend")

    def refresh_session(self, refresh_token: str) -> AuthSession:
        # local tokens carry no refresh token; they live for JWT_EXPIRE_HOURS
        raise AuthError("Session refresh is not available on the local backend")

    def get_user(self, access_token: str) -> AuthUser:
        with self._session() as db:
            return _to_user(AuthService(db).user_for_token(access_token))

    def sign_out(self, access_token: str) -> None:
        with self._session() as db:
            AuthService(db).sign_out(access_token)

    def list_study_sessions(self, access_token: str) -> List[StudySessionRecord]:
        with self._session() as db:
            user = AuthService(db).user_for_token(access_token)
            return [_to_record(r) for r in StudySessionService(db).list(user.id)]

    def get_study_session(self, access_token: str, session_id: str) -> Optional[StudySessionRecord]:
        with self._session() as db:
            user = AuthService(db).user_for_token(access_token)
            row = StudySessionService(db).get(user.id, session_id)
            return _to_record(row) if row else None

    def create_study_session(self, access_token: str, payload: StudySessionCreate) -> StudySessionRecord:
        with self._session() as db:
            user = AuthService(db).user_for_token(access_token)
            row = StudySessionService(db).create(user.id, payload.model_dump())
            return _to_record(row)

    def delete_study_session(self, access_token: str, session_id: str) -> None:
        with self._session() as db:
            user = AuthService(db).user_for_token(access_token)
            StudySessionService(db).delete(user.id, session_id)
