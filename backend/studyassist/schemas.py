"""Pydantic schemas shared by the backend clients and the web layer.

Both backend clients return these shapes, so pages and the chat API
never see provider-specific payloads.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class AuthUser(BaseModel):
    """The authenticated caller as reported by the auth provider."""
    id: str
    email: Optional[str] = None


class AuthSession(BaseModel):
    """Tokens returned by a successful sign-in or code exchange."""
    access_token: str
    refresh_token: Optional[str] = None
    user: AuthUser


class OAuthRedirect(BaseModel):
    """Where to send the browser to start an OAuth sign-in."""
    url: str
    code_verifier: Optional[str] = None


class StudySessionCreate(BaseModel):
    """Insert payload for a study session; `user_id` comes from the token."""
    title: Optional[str] = None
    description: str
    study_level: str = ""
    learning_goals: str = ""
    learning_style: str = ""
    weaknesses: str = ""
    additional_info: str = ""


class StudySessionRecord(StudySessionCreate):
    """A stored study session row."""
    id: str
    user_id: str
    created_at: datetime

    # rows written by other clients may carry nulls in the text columns
    @classmethod
    def from_row(cls, row: dict) -> "StudySessionRecord":
        cleaned = {k: ("" if v is None and k not in ("title",) else v) for k, v in row.items()}
        return cls(**cleaned)


class ChatMessageIn(BaseModel):
    """Body of a chat submission."""
    content: str


class ChatMessageOut(BaseModel):
    role: str
    content: str
    timestamp: datetime


class ChatViewOut(BaseModel):
    """Snapshot of one chat view used for polling."""
    view_id: str
    session_id: str
    state: str
    messages: List[ChatMessageOut]
