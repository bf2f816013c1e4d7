import json
import os
import tempfile
import uuid
from pathlib import Path

# Settings are read at import time, so the test database and backend are
# chosen before any test module imports the app.
_DB_DIR = Path(tempfile.mkdtemp(prefix="studyassist-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR / 'app.db'}"
os.environ["STUDYASSIST_BACKEND"] = "local"
os.environ["ENV"] = "dev"
os.environ["CHAT_REPLY_DELAY_SECONDS"] = "0"

import pytest
import requests
from fastapi.testclient import TestClient
from sqlmodel import SQLModel

from studyassist.database import engine, create_db_and_tables
from studyassist.main import app


@pytest.fixture(scope="session", autouse=True)
def reset_db():
    """Ensure a fresh SQLite database for tests."""
    SQLModel.metadata.drop_all(engine)
    create_db_and_tables()
    yield


@pytest.fixture(autouse=True)
def clear_overrides():
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    """A browser-like client with its own cookie jar."""
    return TestClient(app)


def sign_up(client: TestClient, email: str = None, password: str = "secret123") -> str:
    """Create an account through the sign-up page and return its email."""
    email = email or f"user-{uuid.uuid4().hex[:8]}@example.com"
    r = client.post("/auth/sign-up", data={"email": email, "password": password}, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/dashboard"
    return email


@pytest.fixture
def signed_in(client):
    sign_up(client)
    return client


def json_response(status: int, body) -> requests.Response:
    """A real `requests.Response` carrying a JSON body."""
    resp = requests.Response()
    resp.status_code = status
    resp._content = json.dumps(body).encode("utf-8")
    resp.headers["Content-Type"] = "application/json"
    return resp


class StubHTTP:
    """Stands in for `requests.Session`; replies from a queue and records calls.

    With an empty queue every call raises `default`, if one is given.
    """

    def __init__(self, *replies, default: Exception = None):
        self.replies = list(replies)
        self.default = default
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        reply = self.replies.pop(0) if self.replies or self.default is None else self.default
        if isinstance(reply, Exception):
            raise reply
        return reply
