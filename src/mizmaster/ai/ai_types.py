"""Shared typing contracts for the model transport."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Mapping, Protocol, Sequence, Union

from ..chat.message_model import ConversationMessage, Source, TokenUsage


class TokenCounterProtocol(Protocol):
    """Protocol describing tokenizer implementations."""

    model_name: str | None

    def count(self, text: str) -> int:
        """Return the precise token count for *text*."""
        ...

    def estimate(self, text: str) -> int:
        """Return a deterministic fallback estimate when precise counts fail."""
        ...


@dataclass(slots=True, frozen=True)
class ToolCallRequest:
    """A tool invocation requested by the model inside a response chunk."""

    call_id: str
    name: str
    arguments: Mapping[str, Any] | str | None = None


@dataclass(slots=True, frozen=True)
class ToolResponse:
    """Result for one :class:`ToolCallRequest`, re-attached by ``call_id``."""

    call_id: str
    name: str
    result: str


@dataclass(slots=True, frozen=True)
class ResponseChunk:
    """One partial response from the streaming transport."""

    text: str = ""
    tool_calls: tuple[ToolCallRequest, ...] = ()
    usage: TokenUsage | None = None
    sources: tuple[Source, ...] = ()
    model_version: str | None = None


@dataclass(slots=True, frozen=True)
class SessionConfig:
    """Everything the transport needs to open a conversation."""

    model: str
    system_instruction: str
    history: Sequence[ConversationMessage] = ()
    temperature: float | None = None
    metadata: Mapping[str, str] = field(default_factory=dict)


TurnInput = Union[str, Sequence[ToolResponse]]


class ModelSession(Protocol):
    """Opaque handle for one model conversation."""

    config: SessionConfig


class ModelTransport(Protocol):
    """Bidirectional streaming channel to the language model."""

    def create_session(self, config: SessionConfig) -> ModelSession:
        ...

    def send_stream(self, session: ModelSession, turn_input: TurnInput) -> AsyncIterator[ResponseChunk]:
        ...


__all__ = [
    "TokenCounterProtocol",
    "ToolCallRequest",
    "ToolResponse",
    "ResponseChunk",
    "SessionConfig",
    "TurnInput",
    "ModelSession",
    "ModelTransport",
]
