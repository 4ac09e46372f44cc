"""Internal data classes for the turn-chain state machine."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from ...chat.message_model import Source, TokenUsage


class ChatPhase(str, Enum):
    """Named states of one ``send_message`` invocation."""

    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    TOOL_DISPATCH = "tool_dispatch"
    DONE = "done"
    ERROR = "error"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_PHASES


_TERMINAL_PHASES = frozenset({ChatPhase.DONE, ChatPhase.ERROR, ChatPhase.ABORTED})

_ALLOWED_TRANSITIONS: Mapping[ChatPhase, frozenset[ChatPhase]] = {
    ChatPhase.IDLE: frozenset({ChatPhase.CONNECTING, ChatPhase.ERROR, ChatPhase.ABORTED}),
    ChatPhase.CONNECTING: frozenset({ChatPhase.STREAMING, *_TERMINAL_PHASES}),
    ChatPhase.STREAMING: frozenset({ChatPhase.TOOL_DISPATCH, *_TERMINAL_PHASES}),
    ChatPhase.TOOL_DISPATCH: frozenset({ChatPhase.STREAMING, *_TERMINAL_PHASES}),
    ChatPhase.DONE: frozenset(),
    ChatPhase.ERROR: frozenset(),
    ChatPhase.ABORTED: frozenset(),
}


class InvalidTransitionError(RuntimeError):
    """Raised when the turn chain attempts an impossible phase change."""


class CancelReason(str, Enum):
    USER_ABORTED = "USER_ABORTED"
    CONNECTION_TIMEOUT = "CONNECTION_TIMEOUT"


class CancellationToken:
    """Cooperative cancellation signal shared by the engine and its watchdog.

    The first reason wins; later calls to :meth:`cancel` are ignored so a
    timeout firing after a user abort cannot relabel the outcome.
    """

    __slots__ = ("_reason", "_task")

    def __init__(self) -> None:
        self._reason: CancelReason | None = None
        self._task: asyncio.Task | None = None

    @property
    def reason(self) -> CancelReason | None:
        return self._reason

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    def bind(self, task: asyncio.Task) -> None:
        self._task = task
        if self._reason is not None:
            task.cancel()

    def cancel(self, reason: CancelReason = CancelReason.USER_ABORTED) -> bool:
        if self._reason is not None:
            return False
        self._reason = reason
        if self._task is not None and not self._task.done():
            self._task.cancel()
        return True


@dataclass(slots=True)
class TurnChainState:
    """Mutable progress of one turn chain.

    Lives outside the orchestrator coroutine so that partial output survives
    errors and cancellation.
    """

    phase: ChatPhase = ChatPhase.IDLE
    text: str = ""
    turn: int = 0
    usage: TokenUsage | None = None
    sources: list[Source] = field(default_factory=list)
    model_version: str | None = None
    tool_status_label: str | None = None
    dispatched: int = 0
    duplicates_blocked: int = 0
    first_byte: asyncio.Event = field(default_factory=asyncio.Event)
    started_at: float = field(default_factory=time.perf_counter)

    def transition(self, target: ChatPhase) -> None:
        if target is self.phase:
            return
        if target not in _ALLOWED_TRANSITIONS[self.phase]:
            raise InvalidTransitionError(f"Cannot move from {self.phase.value} to {target.value}")
        self.phase = target

    def mark_first_byte(self) -> None:
        if not self.first_byte.is_set():
            self.first_byte.set()

    def add_sources(self, sources: tuple[Source, ...]) -> None:
        known = {source.uri for source in self.sources}
        for source in sources:
            if source.uri not in known:
                known.add(source.uri)
                self.sources.append(source)

    @property
    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started_at) * 1000)


@dataclass(slots=True, frozen=True)
class TurnChainResult:
    """Summary returned by :meth:`ChatOrchestrator.run`."""

    turns: int
    hit_turn_cap: bool
    dispatched: int
    duplicates_blocked: int


__all__ = [
    "ChatPhase",
    "CancelReason",
    "CancellationToken",
    "InvalidTransitionError",
    "TurnChainState",
    "TurnChainResult",
]
