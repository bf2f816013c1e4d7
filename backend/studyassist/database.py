"""Database engine and helpers for the local backend.

The local backend stands in for the hosted provider during development
and tests. It keeps users and study sessions in a SQLite file at the
`backend/` root (`app.db`) unless `DATABASE_URL` points elsewhere.
"""

from sqlmodel import SQLModel, create_engine
from pathlib import Path

from .config import settings

BASE = Path(__file__).resolve().parent.parent
DB_URL = settings.DATABASE_URL or f"sqlite:///{BASE / 'app.db'}"
_connect_args = {"check_same_thread": False} if DB_URL.startswith("sqlite") else {}
engine = create_engine(DB_URL, echo=False, connect_args=_connect_args)


def create_db_and_tables():
    """Create database tables using SQLModel metadata.

    Table creation is idempotent, so this runs on every application start.
    """
    # models must be imported for their tables to register on the metadata
    from . import models  # noqa: F401
    SQLModel.metadata.create_all(engine)

