"""Backend client interface and its error types.

Every page talks to auth and storage through a `BackendClient`. Errors
collapse into two kinds: `AuthError` (the caller must sign in again) and
`OperationError` (a call failed or the backend is unreachable; show a
notice and keep the session).
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..schemas import (
    AuthSession,
    AuthUser,
    OAuthRedirect,
    StudySessionCreate,
    StudySessionRecord,
)


class BackendError(Exception):
    """Base class for failures reported by a backend client."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthError(BackendError):
    """Missing, invalid or revoked credentials."""


class OperationError(BackendError):
    """A call was rejected for reasons other than credentials, or never arrived."""


class BackendClient(ABC):
    """Auth plus the `study_sessions` table, as offered by the provider."""

    @abstractmethod
    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        ...

    @abstractmethod
    def sign_up(self, email: str, password: str) -> Optional[AuthSession]:
        """Create an account; returns `None` while email confirmation is pending."""

    @abstractmethod
    def sign_in_with_oauth(self, provider: str, redirect_to: str) -> OAuthRedirect:
        ...

    @abstractmethod
    def exchange_code_for_session(self, code: str, code_verifier: Optional[str]) -> AuthSession:
        ...

    @abstractmethod
    def get_user(self, access_token: str) -> AuthUser:
        ...

    @abstractmethod
    def refresh_session(self, refresh_token: str) -> AuthSession:
        """Trade a refresh token for a new session once the access token expires."""

    @abstractmethod
    def sign_out(self, access_token: str) -> None:
        """Terminate every session of the token's owner."""

    @abstractmethod
    def list_study_sessions(self, access_token: str) -> List[StudySessionRecord]:
        """Return the caller's sessions, newest first."""

    @abstractmethod
    def get_study_session(self, access_token: str, session_id: str) -> Optional[StudySessionRecord]:
        ...

    @abstractmethod
    def create_study_session(self, access_token: str, payload: StudySessionCreate) -> StudySessionRecord:
        ...

    @abstractmethod
    def delete_study_session(self, access_token: str, session_id: str) -> None:
        ...
