"""Main chat turn orchestration loop."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Callable

from ..ai_types import ModelSession, ModelTransport, ResponseChunk, ToolCallRequest, TurnInput
from ..tools.arguments import FrameworkDocsArgs, parse_tool_arguments
from ..tools.errors import ToolError
from .model_types import CancellationToken, ChatPhase, TurnChainResult, TurnChainState
from .tool_dispatcher import ToolDispatcher

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 5
# Text fragments at or below this length do not clear the tool status label.
_STATUS_CLEAR_MIN_CHARS = 5

ProgressCallback = Callable[[TurnChainState], None]


class ChatOrchestrator:
    """Runs one turn chain: stream, dispatch tools, resubmit, until an answer.

    The dedup set is created per :meth:`run` call and the turn count is capped,
    so a model that keeps asking for the same data cannot loop forever.
    Progress is written into the caller's :class:`TurnChainState` so partial
    output is still there when the chain is interrupted.
    """

    def __init__(
        self,
        transport: ModelTransport,
        dispatcher: ToolDispatcher,
        *,
        max_turns: int = DEFAULT_MAX_TURNS,
    ) -> None:
        self._transport = transport
        self._dispatcher = dispatcher
        self._max_turns = max(1, int(max_turns))

    @property
    def max_turns(self) -> int:
        return self._max_turns

    async def run(
        self,
        session: ModelSession,
        message: str,
        state: TurnChainState,
        *,
        on_progress: ProgressCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> TurnChainResult:
        seen: set[str] = set()
        turn_input: TurnInput = message
        hit_turn_cap = False
        if state.phase is ChatPhase.IDLE:
            state.transition(ChatPhase.CONNECTING)

        while True:
            state.turn += 1
            LOGGER.info("Starting turn %s/%s", state.turn, self._max_turns)
            tool_calls = await self._stream_turn(session, turn_input, state, on_progress, cancel)
            if not tool_calls:
                break
            if state.turn >= self._max_turns:
                LOGGER.warning(
                    "Turn cap of %s reached with %s tool call(s) still pending; ending chain",
                    self._max_turns,
                    len(tool_calls),
                )
                hit_turn_cap = True
                break

            state.transition(ChatPhase.TOOL_DISPATCH)
            outcomes = await self._dispatcher.dispatch_all(tool_calls, seen)
            state.dispatched += sum(1 for item in outcomes if item.fingerprint and not item.duplicate)
            state.duplicates_blocked += sum(1 for item in outcomes if item.duplicate)
            turn_input = [item.response for item in outcomes]
            self._check_cancelled(cancel)

        state.tool_status_label = None
        state.transition(ChatPhase.DONE)
        return TurnChainResult(
            turns=state.turn,
            hit_turn_cap=hit_turn_cap,
            dispatched=state.dispatched,
            duplicates_blocked=state.duplicates_blocked,
        )

    async def _stream_turn(
        self,
        session: ModelSession,
        turn_input: TurnInput,
        state: TurnChainState,
        on_progress: ProgressCallback | None,
        cancel: CancellationToken | None,
    ) -> list[ToolCallRequest]:
        calls: dict[str, ToolCallRequest] = {}
        stream = self._transport.send_stream(session, turn_input)
        try:
            async for chunk in stream:
                self._check_cancelled(cancel)
                state.mark_first_byte()
                state.transition(ChatPhase.STREAMING)
                self._apply_chunk(chunk, state, calls)
                if on_progress is not None:
                    on_progress(state)
        finally:
            await self._close_stream(stream)
        return list(calls.values())

    def _apply_chunk(self, chunk: ResponseChunk, state: TurnChainState, calls: dict[str, ToolCallRequest]) -> None:
        for index, call in enumerate(chunk.tool_calls):
            call_id = (call.call_id or "").strip() or f"{call.name or 'tool'}:{len(calls) + index}"
            if call_id not in calls:
                calls[call_id] = call if call.call_id == call_id else ToolCallRequest(call_id, call.name, call.arguments)
            state.tool_status_label = f"Librarian: Fetching {self._describe_call(call)}..."
        if chunk.text:
            state.text += chunk.text
            if state.tool_status_label and len(chunk.text) > _STATUS_CLEAR_MIN_CHARS:
                state.tool_status_label = None
        if chunk.usage is not None:
            state.usage = chunk.usage
        if chunk.sources:
            state.add_sources(chunk.sources)
        if chunk.model_version:
            state.model_version = chunk.model_version

    @staticmethod
    def _describe_call(call: ToolCallRequest) -> str:
        try:
            args = parse_tool_arguments(call.name, call.arguments)
        except ToolError:
            return call.name or "documentation"
        if isinstance(args, FrameworkDocsArgs):
            return args.module_name
        return args.category

    @staticmethod
    def _check_cancelled(cancel: CancellationToken | None) -> None:
        if cancel is not None and cancel.cancelled:
            raise asyncio.CancelledError(cancel.reason.value if cancel.reason else None)

    @staticmethod
    async def _close_stream(stream: object) -> None:
        aclose = getattr(stream, "aclose", None)
        if aclose is None:
            return
        result = aclose()
        if inspect.isawaitable(result):
            await result


__all__ = ["ChatOrchestrator", "DEFAULT_MAX_TURNS", "ProgressCallback"]
