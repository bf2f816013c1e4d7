"""SQLModel data models for the local backend.

These tables mirror what the hosted provider keeps: an auth user and the
`study_sessions` table. Ids are uuid hex strings, like the provider's.
"""

import uuid
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime, timezone


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """A registered user.

    Fields:
    - `email`: unique login name, stored lowercased
    - `password_hash`: hashed password string (never store plaintext)
    - `session_epoch`: bumped on sign-out; tokens from older epochs are rejected
    """
    id: str = Field(default_factory=_new_id, primary_key=True)
    email: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    session_epoch: int = 0
    created_at: datetime = Field(default_factory=_utcnow)


class StudySession(SQLModel, table=True):
    """A study-session record owned by one user."""
    __tablename__ = "study_sessions"

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    title: Optional[str] = None
    description: str = ""
    study_level: str = ""
    learning_goals: str = ""
    learning_style: str = ""
    weaknesses: str = ""
    additional_info: str = ""
    created_at: datetime = Field(default_factory=_utcnow, index=True)
