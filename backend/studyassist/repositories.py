"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
study sessions). Study-session queries always take the owner's id so a
caller can never read or delete another user's rows.
"""

from typing import List, Optional
from sqlmodel import Session, select
from . import models


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by email or `None` if not found."""
        stmt = select(models.User).where(models.User.email == email)
        return self.session.exec(stmt).first()

    def get(self, user_id: str) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def bump_session_epoch(self, user: models.User) -> models.User:
        """Invalidate every token issued to `user` so far."""
        user.session_epoch += 1
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user


class StudySessionRepository:
    """Owner-scoped operations on the `study_sessions` table."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, study_session: models.StudySession) -> models.StudySession:
        self.session.add(study_session)
        self.session.commit()
        self.session.refresh(study_session)
        return study_session

    def list_for_user(self, user_id: str) -> List[models.StudySession]:
        """Return the user's sessions, newest first."""
        stmt = (
            select(models.StudySession)
            .where(models.StudySession.user_id == user_id)
            .order_by(models.StudySession.created_at.desc())
        )
        return self.session.exec(stmt).all()

    def get_for_user(self, user_id: str, session_id: str) -> Optional[models.StudySession]:
        """Fetch one session by id, or `None` when missing or owned by someone else."""
        stmt = select(models.StudySession).where(
            models.StudySession.id == session_id,
            models.StudySession.user_id == user_id,
        )
        return self.session.exec(stmt).first()

    def delete_for_user(self, user_id: str, session_id: str) -> bool:
        """Delete a session; returns False if nothing matched."""
        row = self.get_for_user(user_id, session_id)
        if not row:
            return False
        self.session.delete(row)
        self.session.commit()
        return True
