"""Storage-layer contract used by the UI to persist conversation history."""

from __future__ import annotations

import threading
from typing import Protocol, Sequence

from .message_model import ConversationMessage


class SessionStore(Protocol):
    """Durable, idempotent key-value store of message lists per session."""

    def load_history(self, session_id: str) -> list[ConversationMessage]:
        ...

    def save_history(self, session_id: str, messages: Sequence[ConversationMessage]) -> None:
        ...


class InMemorySessionStore:
    """Process-local :class:`SessionStore` used by tests and headless runs."""

    def __init__(self) -> None:
        self._sessions: dict[str, list[dict]] = {}
        self._lock = threading.Lock()

    def load_history(self, session_id: str) -> list[ConversationMessage]:
        with self._lock:
            rows = list(self._sessions.get(session_id, ()))
        return [ConversationMessage.from_dict(row) for row in rows]

    def save_history(self, session_id: str, messages: Sequence[ConversationMessage]) -> None:
        rows = [message.to_dict() for message in messages]
        with self._lock:
            self._sessions[session_id] = rows

    def session_ids(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._sessions)


__all__ = ["SessionStore", "InMemorySessionStore"]
