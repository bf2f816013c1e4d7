import pytest

from studyassist.chat import ChatBusyError, ChatState, ChatViewStore


class ManualScheduler:
    """Collects reply callbacks so tests decide when the timer fires."""

    def __init__(self):
        self.pending = []
        self.delays = []

    def __call__(self, delay, fn):
        self.delays.append(delay)
        self.pending.append(fn)

    def fire_all(self):
        pending, self.pending = self.pending, []
        for fn in pending:
            fn()


def _store(**kwargs):
    scheduler = ManualScheduler()
    return ChatViewStore(delay_seconds=1.0, scheduler=scheduler, **kwargs), scheduler


def test_open_seeds_greeting_with_title():
    store, _ = _store()
    view = store.open("s1", "u1", "Calculus Final Prep")
    snap = view.snapshot()
    assert snap["state"] == "ready"
    assert len(snap["messages"]) == 1
    greeting = snap["messages"][0]
    assert greeting["role"] == "assistant"
    assert '"Calculus Final Prep"' in greeting["content"]


def test_single_in_flight_reply():
    store, scheduler = _store()
    view = store.open("s1", "u1", "Calculus")
    store.send(view, "  what is a derivative?  ")
    assert view.state is ChatState.SENDING
    assert scheduler.delays == [1.0]
    with pytest.raises(ChatBusyError):
        store.send(view, "second question")
    # the rejected submission left no trace
    assert [m.role for m in view.messages] == ["assistant", "user"]
    assert view.messages[-1].content == "what is a derivative?"

    scheduler.fire_all()
    assert view.state is ChatState.READY
    assert [m.role for m in view.messages] == ["assistant", "user", "assistant"]
    assert view.messages[-1].content == (
        'I understand you\'re asking about "what is a derivative?". Let me help you with that...'
    )


def test_exactly_one_reply_per_accepted_message():
    store, scheduler = _store()
    view = store.open("s1", "u1", "Calculus")
    for text in ("one", "two", "three"):
        store.send(view, text)
        scheduler.fire_all()
        # a late duplicate fire does not add anything
        view.deliver("stray")
    roles = [m.role for m in view.messages]
    assert roles == ["assistant"] + ["user", "assistant"] * 3


def test_blank_input_is_rejected():
    store, scheduler = _store()
    view = store.open("s1", "u1", "Calculus")
    with pytest.raises(ValueError):
        store.send(view, "   ")
    assert view.state is ChatState.READY
    assert scheduler.pending == []


def test_responder_failure_still_returns_to_ready():
    class Broken:
        def reply(self, text):
            raise RuntimeError("model offline")

    store, scheduler = _store(responder=Broken())
    view = store.open("s1", "u1", "Calculus")
    store.send(view, "hello")
    scheduler.fire_all()
    assert view.state is ChatState.READY
    assert view.messages[-1].role == "assistant"


def test_views_are_scoped_to_their_user():
    store, _ = _store()
    view = store.open("s1", "u1", "Calculus")
    assert store.get(view.view_id, "u1") is view
    assert store.get(view.view_id, "u2") is None
    assert store.discard_for_user("u1") == 1
    assert store.get(view.view_id, "u1") is None


def test_store_evicts_oldest_views_past_capacity():
    store, _ = _store(max_views=2)
    first = store.open("s1", "u1", "A")
    store.open("s2", "u1", "B")
    store.open("s3", "u1", "C")
    assert store.get(first.view_id, "u1") is None
