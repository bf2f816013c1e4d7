"""In-memory chat views for the session chat page.

A chat view is one page load's message log for one study session. Views
live only in this process: a reload opens a new view and the old log is
gone. Replies are produced by a responder after a fixed delay; only one
reply may be in flight per view.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger("studyassist.chat")

Scheduler = Callable[[float, Callable[[], None]], None]


class ChatState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    SENDING = "sending"


class ChatBusyError(Exception):
    """A reply is still pending for this view."""


@dataclass
class Message:
    role: str
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> dict:
        return {"role": self.role, "content": self.content, "timestamp": self.timestamp}


def greeting_for(title: Optional[str]) -> str:
    return (
        f'Hello! I\'m here to help you with your study session on "{title or ""}". '
        "What would you like to focus on today?"
    )


class EchoResponder:
    """Placeholder reply that quotes the user's text back."""

    def reply(self, text: str) -> str:
        return f'I understand you\'re asking about "{text}". Let me help you with that...'


def _start_timer(delay: float, fn: Callable[[], None]) -> None:
    t = threading.Timer(delay, fn)
    t.daemon = True
    t.start()


class ChatView:
    def __init__(self, view_id: str, session_id: str, user_id: str):
        self.view_id = view_id
        self.session_id = session_id
        self.user_id = user_id
        self.state = ChatState.LOADING
        self.messages: list[Message] = []
        self.touched = time.monotonic()
        self._lock = threading.Lock()

    def open(self, title: Optional[str]) -> None:
        """Move from loading to ready and seed the greeting."""
        with self._lock:
            if self.state is not ChatState.LOADING:
                return
            self.messages.append(Message(role="assistant", content=greeting_for(title)))
            self.state = ChatState.READY

    def submit(self, text: str) -> str:
        """Append a user message and enter `sending`.

        Returns the trimmed text. Raises `ValueError` for blank input and
        `ChatBusyError` when a reply is already pending.
        """
        content = (text or "").strip()
        if not content:
            raise ValueError("message must not be empty")
        with self._lock:
            if self.state is not ChatState.READY:
                raise ChatBusyError(f"view is {self.state.value}")
            self.messages.append(Message(role="user", content=content))
            self.state = ChatState.SENDING
            self.touched = time.monotonic()
        return content

    def deliver(self, reply: str) -> None:
        """Append the assistant reply and return to ready."""
        with self._lock:
            if self.state is not ChatState.SENDING:
                return
            self.messages.append(Message(role="assistant", content=reply))
            self.state = ChatState.READY
            self.touched = time.monotonic()

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "view_id": self.view_id,
                "session_id": self.session_id,
                "state": self.state.value,
                "messages": [m.as_dict() for m in self.messages],
            }


class ChatViewStore:
    def __init__(
        self,
        delay_seconds: float = 1.0,
        ttl_seconds: int = 6 * 3600,
        max_views: int = 1000,
        responder=None,
        scheduler: Scheduler = _start_timer,
    ):
        self._views: dict[str, ChatView] = {}
        self._lock = threading.Lock()
        self.delay_seconds = delay_seconds
        self._ttl_seconds = ttl_seconds
        self._max_views = max_views
        self.responder = responder or EchoResponder()
        self._scheduler = scheduler

    def open(self, session_id: str, user_id: str, title: Optional[str]) -> ChatView:
        self._cleanup()
        view = ChatView(uuid.uuid4().hex, session_id, user_id)
        view.open(title)
        with self._lock:
            self._views[view.view_id] = view
            if len(self._views) > self._max_views:
                # evict least recently used views first
                oldest = sorted(self._views.values(), key=lambda v: v.touched)
                for old in oldest[: len(self._views) - self._max_views]:
                    self._views.pop(old.view_id, None)
        return view

    def get(self, view_id: str, user_id: str) -> Optional[ChatView]:
        """Return the view if it exists and belongs to `user_id`."""
        self._cleanup()
        with self._lock:
            view = self._views.get(view_id)
        if not view or view.user_id != user_id:
            return None
        return view

    def send(self, view: ChatView, text: str) -> None:
        """Accept a user message and schedule exactly one reply for it."""
        content = view.submit(text)
        logger.info("chat message accepted view_id=%s session_id=%s", view.view_id, view.session_id)

        def _reply():
            try:
                reply = self.responder.reply(content)
            except Exception:
                logger.exception("chat responder failed view_id=%s", view.view_id)
                reply = "Sorry, something went wrong. Please try again."
            view.deliver(reply)

        self._scheduler(self.delay_seconds, _reply)

    def discard_for_user(self, user_id: str) -> int:
        with self._lock:
            doomed = [vid for vid, v in self._views.items() if v.user_id == user_id]
            for vid in doomed:
                self._views.pop(vid, None)
        return len(doomed)

    def _cleanup(self) -> None:
        cutoff = time.monotonic() - self._ttl_seconds
        with self._lock:
            to_delete = [vid for vid, v in self._views.items() if v.touched < cutoff]
            for vid in to_delete:
                self._views.pop(vid, None)
