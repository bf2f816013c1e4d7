"""Business logic behind the local backend.

This module holds small service classes that coordinate repositories.
`AuthService` plays the hosted auth provider (password hashing, JWT
issue/verify, global sign-out) and `StudySessionService` plays the
provider's `study_sessions` table with its per-user row policy.
"""

from datetime import datetime, timedelta, timezone
from passlib.context import CryptContext
import jwt
from typing import List, Optional
from . import models, repositories
from sqlmodel import Session
from .backends.base import AuthError, OperationError
from .config import settings

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
MIN_PASSWORD_LENGTH = 6


class AuthService:
    """Authentication related operations (register, authenticate, verify, sign out)."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def register(self, email: str, password: str) -> models.User:
        """Create a new user with a hashed password.

        Raises `AuthError` for a taken email or a too-short password.
        """
        email = email.strip().lower()
        if not email or not password:
            raise AuthError("Email and password are required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthError(f"Password should be at least {MIN_PASSWORD_LENGTH} characters")
        if self.user_repo.get_by_email(email):
            raise AuthError("User already registered")
        hashed = PWD_CTX.hash(password)
        u = models.User(email=email, password_hash=hashed)
        return self.user_repo.create(u)

    def authenticate(self, email: str, password: str) -> models.User:
        """Verify credentials and return the user; raises `AuthError` on mismatch."""
        # One lookup by email then verify the supplied password hash.
        user = self.user_repo.get_by_email(email.strip().lower())
        if not user or not PWD_CTX.verify(password, user.password_hash):
            raise AuthError("Invalid login credentials")
        return user

    def issue_token(self, user: models.User) -> str:
        """Return a signed JWT bound to the user's current session epoch."""
        expire = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRE_HOURS)
        payload = {
            "sub": user.id,
            "email": user.email,
            "epoch": user.session_epoch,
            "exp": int(expire.timestamp()),
        }
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    def user_for_token(self, token: str) -> models.User:
        """Decode `token` and return its user, or raise `AuthError`."""
        if not token:
            raise AuthError("Auth session missing")
        try:
            payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise AuthError("Token expired")
        except jwt.InvalidTokenError:
            raise AuthError("Invalid token")
        user = self.user_repo.get(payload.get("sub") or "")
        if not user:
            raise AuthError("User not found")
        if payload.get("epoch") != user.session_epoch:
            raise AuthError("Session has been signed out")
        return user

    def sign_out(self, token: str) -> None:
        """Revoke every token issued to the token's owner (global scope)."""
        user = self.user_for_token(token)
        self.user_repo.bump_session_epoch(user)


class StudySessionService:
    """Owner-scoped study-session operations."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.StudySessionRepository(session)

    def list(self, user_id: str) -> List[models.StudySession]:
        return self.repo.list_for_user(user_id)

    def get(self, user_id: str, session_id: str) -> Optional[models.StudySession]:
        return self.repo.get_for_user(user_id, session_id)

    def create(self, user_id: str, fields: dict) -> models.StudySession:
        """Insert one study session for `user_id`.

        Only the description is required at this layer; the title length
        rule belongs to the forms.
        """
        if not (fields.get("description") or "").strip():
            raise OperationError('null value in column "description" violates not-null constraint')
        row = models.StudySession(user_id=user_id, **fields)
        return self.repo.create(row)

    def delete(self, user_id: str, session_id: str) -> None:
        # Like a row-policy filtered DELETE, an unmatched id is not an error.
        self.repo.delete_for_user(user_id, session_id)
