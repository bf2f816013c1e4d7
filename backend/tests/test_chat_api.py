import time

from fastapi.testclient import TestClient

from conftest import sign_up
from studyassist import main
from studyassist.chat import ChatViewStore
from studyassist.main import app


def _open_chat(client, title="Calculus"):
    r = client.post("/dashboard/sessions", data={"title": title, "description": "Finals"}, follow_redirects=False)
    assert r.status_code == 303
    page = client.get("/dashboard").text
    start = page.index('href="/dashboard/session/') + len('href="/dashboard/session/')
    session_id = page[start:page.index('"', start)]
    r = client.get(f"/dashboard/session/{session_id}")
    assert r.status_code == 200
    marker = 'data-view-id="'
    start = r.text.index(marker) + len(marker)
    return session_id, r.text[start:r.text.index('"', start)]


def test_chat_flow_with_timer(signed_in, monkeypatch):
    monkeypatch.setattr("studyassist.main._chat_views", ChatViewStore(delay_seconds=0.01))
    session_id, view_id = _open_chat(signed_in)
    r = signed_in.get(f"/api/chat/{view_id}")
    assert r.status_code == 200
    assert r.json()["session_id"] == session_id
    assert len(r.json()["messages"]) == 1

    r = signed_in.post(f"/api/chat/{view_id}/messages", json={"content": "limits"})
    assert r.status_code == 202

    deadline = time.time() + 5
    state = None
    while time.time() < deadline:
        poll = signed_in.get(f"/api/chat/{view_id}")
        assert poll.status_code == 200
        state = poll.json()["state"]
        if state == "ready":
            break
        time.sleep(0.02)

    assert state == "ready"
    messages = signed_in.get(f"/api/chat/{view_id}").json()["messages"]
    assert [m["role"] for m in messages] == ["assistant", "user", "assistant"]
    assert '"limits"' in messages[-1]["content"]


def test_second_submission_while_sending_is_rejected(signed_in, monkeypatch):
    pending = []
    monkeypatch.setattr(
        "studyassist.main._chat_views",
        ChatViewStore(scheduler=lambda delay, fn: pending.append(fn)),
    )
    _, view_id = _open_chat(signed_in)
    first = signed_in.post(f"/api/chat/{view_id}/messages", json={"content": "first"})
    assert first.status_code == 202
    assert first.json()["state"] == "sending"
    second = signed_in.post(f"/api/chat/{view_id}/messages", json={"content": "second"})
    assert second.status_code == 409
    pending.pop()()
    third = signed_in.post(f"/api/chat/{view_id}/messages", json={"content": "third"})
    assert third.status_code == 202
    assert [m["content"] for m in third.json()["messages"] if m["role"] == "user"] == ["first", "third"]


def test_blank_message_is_400(signed_in):
    _, view_id = _open_chat(signed_in)
    r = signed_in.post(f"/api/chat/{view_id}/messages", json={"content": "   "})
    assert r.status_code == 400


def test_reload_starts_a_new_log(signed_in):
    session_id, view_id = _open_chat(signed_in)
    r = signed_in.get(f"/dashboard/session/{session_id}")
    assert f'data-view-id="{view_id}"' not in r.text


def test_chat_api_requires_auth_and_ownership(signed_in):
    _, view_id = _open_chat(signed_in)
    anonymous = TestClient(app)
    assert anonymous.get(f"/api/chat/{view_id}").status_code == 401
    other = TestClient(app)
    sign_up(other)
    assert other.get(f"/api/chat/{view_id}").status_code == 404
    assert other.post(f"/api/chat/{view_id}/messages", json={"content": "hi"}).status_code == 404


def test_sign_out_discards_chat_views(signed_in):
    _, view_id = _open_chat(signed_in)
    signed_in.post("/auth/sign-out")
    assert all(v.view_id != view_id for v in main._chat_views._views.values())


def test_missing_session_redirects_to_dashboard(signed_in):
    r = signed_in.get("/dashboard/session/does-not-exist", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/dashboard"
    assert "Failed to load study session" in signed_in.get("/dashboard").text


def test_greeting_timestamp_is_utc_iso(signed_in):
    session_id = _open_chat(signed_in)[0]
    page = signed_in.get(f"/dashboard/session/{session_id}").text
    start = page.index('<time datetime="') + len('<time datetime="')
    assert page[start:page.index('"', start)].endswith("+00:00")
    assert 'data-format="time"' in page
