import uuid

from fastapi.testclient import TestClient

from conftest import sign_up
from studyassist.auth import ACCESS_COOKIE
from studyassist.backends import get_backend
from studyassist.backends.local import LocalBackend
from studyassist.main import app
from studyassist.schemas import OAuthRedirect


def test_landing_routes_by_session(client):
    r = client.get("/")
    assert r.status_code == 200
    assert "Start a Study Session" in r.text
    assert 'href="/auth/sign-in"' in r.text
    sign_up(client)
    r = client.get("/")
    assert "Go to Dashboard" in r.text
    assert "Sign Out" in r.text


def test_sign_in_success_redirects_to_dashboard(client):
    email = sign_up(client)
    fresh = TestClient(app)
    r = fresh.post("/auth/sign-in", data={"email": email, "password": "secret123"}, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/dashboard"
    assert fresh.cookies.get(ACCESS_COOKIE)
    assert fresh.get("/dashboard").status_code == 200


def test_sign_in_wrong_password_keeps_form(client):
    email = sign_up(client)
    fresh = TestClient(app)
    r = fresh.post("/auth/sign-in", data={"email": email, "password": "nope-nope"})
    assert r.status_code == 400
    assert "Invalid email or password" in r.text
    assert f'value="{email}"' in r.text
    assert not fresh.cookies.get(ACCESS_COOKIE)


def test_sign_in_blank_fields_never_reach_backend(client):
    class Exploding(LocalBackend):
        def sign_in_with_password(self, email, password):
            raise AssertionError("backend should not be called")

    app.dependency_overrides[get_backend] = lambda: Exploding()
    r = client.post("/auth/sign-in", data={"email": "", "password": ""})
    assert r.status_code == 400
    assert "Email and password are required" in r.text


def test_sign_up_duplicate_email(client):
    email = sign_up(client)
    r = TestClient(app).post("/auth/sign-up", data={"email": email, "password": "secret123"})
    assert r.status_code == 400
    assert "User already registered" in r.text


def test_protected_pages_redirect_when_signed_out(client):
    for path in ("/dashboard", "/dashboard/new-session", f"/dashboard/session/{uuid.uuid4().hex}"):
        r = client.get(path, follow_redirects=False)
        assert r.status_code == 303, path
        assert r.headers["location"] == "/auth/sign-in"


def test_garbage_token_redirects_and_is_cleared(client):
    client.cookies.set(ACCESS_COOKIE, "not-a-jwt")
    r = client.get("/dashboard", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/auth/sign-in"
    assert ACCESS_COOKIE in " ".join(r.headers.get_list("set-cookie"))


def test_sign_out_clears_every_auth_cookie_and_revokes_token(signed_in):
    token = signed_in.cookies.get(ACCESS_COOKIE)
    signed_in.cookies.set("sa-auth-legacy", "stale")
    r = signed_in.post("/auth/sign-out", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/"
    cleared = " ".join(r.headers.get_list("set-cookie"))
    assert ACCESS_COOKIE in cleared
    assert "sa-auth-legacy" in cleared
    assert not signed_in.cookies.get(ACCESS_COOKIE)
    # the old token is dead everywhere, not just in this browser
    other = TestClient(app)
    other.cookies.set(ACCESS_COOKIE, token)
    assert other.get("/dashboard", follow_redirects=False).status_code == 303


def test_oauth_unavailable_on_local_backend(client):
    r = client.post("/auth/oauth/google")
    assert r.status_code == 400
    assert "not available" in r.text


def test_oauth_round_trip_uses_code_verifier(client):
    email = sign_up(TestClient(app))
    seen = {}

    class OAuthBackend(LocalBackend):
        def sign_in_with_oauth(self, provider, redirect_to):
            seen["redirect_to"] = redirect_to
            return OAuthRedirect(url=f"https://auth.example/authorize?provider={provider}", code_verifier="v-123")

        def exchange_code_for_session(self, code, code_verifier):
            seen["exchange"] = (code, code_verifier)
            return self.sign_in_with_password(email, "secret123")

    app.dependency_overrides[get_backend] = lambda: OAuthBackend()
    r = client.post("/auth/oauth/google", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"].startswith("https://auth.example/authorize")
    assert seen["redirect_to"].endswith("/auth/callback")

    r = client.get("/auth/callback", params={"code": "abc"}, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/dashboard"
    assert seen["exchange"] == ("abc", "v-123")
    assert client.cookies.get(ACCESS_COOKIE)


def test_callback_without_code_returns_to_sign_in(client):
    r = client.get("/auth/callback", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/auth/sign-in"
    page = client.get("/auth/sign-in")
    assert "Sign-in was cancelled or failed" in page.text


def test_request_id_header_exists(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert "X-Request-ID" in r.headers
