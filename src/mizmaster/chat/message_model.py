"""Conversation message data models."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

MessageRole = Literal["user", "model"]


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def new_message_id() -> str:
    return uuid.uuid4().hex


@dataclass(slots=True, frozen=True)
class TokenUsage:
    """Token counts reported by the model for a completed response."""

    prompt_tokens: int = 0
    response_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "response_tokens": self.response_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(slots=True, frozen=True)
class Source:
    """Grounding citation attached to a model response."""

    uri: str
    title: str


@dataclass(slots=True, frozen=True)
class ConversationMessage:
    """A single row of the conversation history.

    Messages are immutable; the engine publishes updated copies via
    :meth:`evolve` while a response streams in.
    """

    role: MessageRole
    text: str
    id: str = field(default_factory=new_message_id)
    created_at: datetime = field(default_factory=_utcnow)
    is_streaming: bool = False
    sources: tuple[Source, ...] = ()
    model_id: Optional[str] = None
    verified_model_id: Optional[str] = None
    token_usage: Optional[TokenUsage] = None
    elapsed_ms: Optional[int] = None
    tool_status_label: Optional[str] = None

    def evolve(self, **changes: Any) -> "ConversationMessage":
        """Return a copy of this message with ``changes`` applied."""

        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the message for persistence."""

        payload: Dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "text": self.text,
            "created_at": self.created_at.isoformat(),
            "is_streaming": self.is_streaming,
            "sources": [{"uri": source.uri, "title": source.title} for source in self.sources],
            "model_id": self.model_id,
            "verified_model_id": self.verified_model_id,
        }
        if self.token_usage is not None:
            payload["token_usage"] = self.token_usage.to_dict()
        if self.elapsed_ms is not None:
            payload["elapsed_ms"] = self.elapsed_ms
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ConversationMessage":
        usage_payload = payload.get("token_usage")
        usage = TokenUsage(**usage_payload) if isinstance(usage_payload, dict) else None
        created_raw = payload.get("created_at")
        created_at = datetime.fromisoformat(created_raw) if isinstance(created_raw, str) else _utcnow()
        return cls(
            role=payload.get("role", "user"),
            text=str(payload.get("text", "")),
            id=str(payload.get("id") or new_message_id()),
            created_at=created_at,
            is_streaming=bool(payload.get("is_streaming", False)),
            sources=tuple(
                Source(uri=str(item["uri"]), title=str(item.get("title", "")))
                for item in payload.get("sources") or ()
                if isinstance(item, dict) and item.get("uri")
            ),
            model_id=payload.get("model_id"),
            verified_model_id=payload.get("verified_model_id"),
            token_usage=usage,
            elapsed_ms=payload.get("elapsed_ms"),
        )


__all__ = ["ConversationMessage", "MessageRole", "Source", "TokenUsage", "new_message_id"]
