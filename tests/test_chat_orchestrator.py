"""Tests for the turn-chain loop."""

from __future__ import annotations

import asyncio

import pytest

from mizmaster.ai.ai_types import ResponseChunk, SessionConfig, ToolResponse
from mizmaster.ai.orchestration.chat_orchestrator import ChatOrchestrator
from mizmaster.ai.orchestration.model_types import (
    CancelReason,
    CancellationToken,
    ChatPhase,
    InvalidTransitionError,
    TurnChainState,
)
from mizmaster.ai.orchestration.tool_dispatcher import DUPLICATE_MODULE_RESPONSE, ToolDispatcher
from mizmaster.chat.message_model import Source, TokenUsage
from tests.helpers import ScriptedTransport, StubResolver, framework_call, text_chunk, tool_chunk


def _run_chain(transport: ScriptedTransport, resolver: StubResolver | None = None, *, max_turns: int = 5, **kwargs):  # type: ignore[no-untyped-def]
    orchestrator = ChatOrchestrator(transport, ToolDispatcher(resolver or StubResolver()), max_turns=max_turns)
    session = transport.create_session(SessionConfig(model="test-model", system_instruction="sys"))
    state = TurnChainState()

    async def _run():  # type: ignore[no-untyped-def]
        return await orchestrator.run(session, "hello", state, **kwargs)

    result = asyncio.run(_run())
    return result, state


def test_plain_answer_finishes_in_one_turn() -> None:
    transport = ScriptedTransport([[text_chunk("Hello "), text_chunk("pilot.")]])

    result, state = _run_chain(transport)

    assert state.text == "Hello pilot."
    assert state.phase is ChatPhase.DONE
    assert result.turns == 1
    assert not result.hit_turn_cap
    assert transport.inputs == ["hello"]


def test_tool_results_are_resubmitted_as_next_turn_input() -> None:
    resolver = StubResolver()
    transport = ScriptedTransport(
        [
            [text_chunk("Checking. "), tool_chunk(framework_call("call-1", "SPAWN"))],
            [text_chunk("SPAWN:New is the constructor.")],
        ]
    )

    result, state = _run_chain(transport, resolver)

    assert result.turns == 2
    assert result.dispatched == 1
    assert transport.inputs[1] == [
        ToolResponse(call_id="call-1", name="get_framework_docs", result="SOURCE MOOSE/SPAWN")
    ]
    assert state.text == "Checking. SPAWN:New is the constructor."


def test_same_call_twice_in_one_chain_dispatches_once() -> None:
    resolver = StubResolver()
    transport = ScriptedTransport(
        [
            [tool_chunk(framework_call("call-1", "SPAWN"))],
            [tool_chunk(framework_call("call-2", "SPAWN"))],
            [text_chunk("Done.")],
        ]
    )

    result, _ = _run_chain(transport, resolver)

    assert len(resolver.calls) == 1
    assert result.duplicates_blocked == 1
    assert transport.inputs[2] == [
        ToolResponse(call_id="call-2", name="get_framework_docs", result=DUPLICATE_MODULE_RESPONSE)
    ]


def test_dedup_set_is_fresh_for_each_run() -> None:
    resolver = StubResolver()
    transport = ScriptedTransport(
        [
            [tool_chunk(framework_call("call-1", "SPAWN"))],
            [text_chunk("First.")],
            [tool_chunk(framework_call("call-2", "SPAWN"))],
            [text_chunk("Second.")],
        ]
    )
    orchestrator = ChatOrchestrator(transport, ToolDispatcher(resolver))
    session = transport.create_session(SessionConfig(model="m", system_instruction="sys"))

    async def _run() -> None:
        await orchestrator.run(session, "one", TurnChainState())
        await orchestrator.run(session, "two", TurnChainState())

    asyncio.run(_run())

    assert len(resolver.calls) == 2


def test_turn_cap_ends_loop_without_error() -> None:
    resolver = StubResolver()
    transport = ScriptedTransport(
        [[text_chunk("Still looking. "), tool_chunk(framework_call("call-1", "SPAWN"))]],
        repeat_last=True,
    )

    result, state = _run_chain(transport, resolver, max_turns=3)

    assert result.hit_turn_cap
    assert result.turns == 3
    assert len(transport.inputs) == 3
    assert len(resolver.calls) == 1
    assert state.phase is ChatPhase.DONE
    assert state.text == "Still looking. " * 3


def test_tool_calls_are_collected_across_chunks_and_deduplicated_by_id() -> None:
    resolver = StubResolver()
    transport = ScriptedTransport(
        [
            [
                tool_chunk(framework_call("call-1", "SPAWN")),
                tool_chunk(framework_call("call-1", "SPAWN"), framework_call("call-2", "ZONE")),
            ],
            [text_chunk("ok")],
        ]
    )

    _run_chain(transport, resolver)

    assert [response.call_id for response in transport.inputs[1]] == ["call-1", "call-2"]
    assert [call[1] for call in resolver.calls] == ["SPAWN", "ZONE"]


def test_status_label_set_on_tool_call_and_cleared_by_text() -> None:
    labels: list[str | None] = []
    transport = ScriptedTransport(
        [
            [tool_chunk(framework_call("call-1", "AIRBOSS"))],
            [text_chunk("ok"), text_chunk("The AIRBOSS class manages recoveries.")],
        ]
    )

    _, state = _run_chain(transport, on_progress=lambda current: labels.append(current.tool_status_label))

    assert labels == ["Librarian: Fetching AIRBOSS...", "Librarian: Fetching AIRBOSS...", None]
    assert state.tool_status_label is None


def test_usage_sources_and_model_version_are_tracked() -> None:
    usage = TokenUsage(prompt_tokens=10, response_tokens=5, total_tokens=15)
    source = Source(uri="https://example.test/doc", title="Doc")
    transport = ScriptedTransport(
        [
            [
                ResponseChunk(text="a", sources=(source,), model_version="model-001"),
                ResponseChunk(text="b", sources=(source,)),
                ResponseChunk(usage=usage),
            ]
        ]
    )

    _, state = _run_chain(transport)

    assert state.usage == usage
    assert state.sources == [source]
    assert state.model_version == "model-001"


def test_transport_error_propagates_and_keeps_partial_text() -> None:
    transport = ScriptedTransport([[text_chunk("Partial"), RuntimeError("stream broke")]])
    orchestrator = ChatOrchestrator(transport, ToolDispatcher(StubResolver()))
    session = transport.create_session(SessionConfig(model="m", system_instruction="sys"))
    state = TurnChainState()

    with pytest.raises(RuntimeError):
        asyncio.run(orchestrator.run(session, "hello", state))

    assert state.text == "Partial"
    assert state.phase is ChatPhase.STREAMING
    assert transport.closed_streams == 1


def test_cancelled_token_stops_at_chunk_boundary() -> None:
    token = CancellationToken()
    token.cancel(CancelReason.USER_ABORTED)
    transport = ScriptedTransport([[text_chunk("never shown")]])
    orchestrator = ChatOrchestrator(transport, ToolDispatcher(StubResolver()))
    session = transport.create_session(SessionConfig(model="m", system_instruction="sys"))
    state = TurnChainState()

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(orchestrator.run(session, "hello", state, cancel=token))

    assert state.text == ""


def test_invalid_phase_transition_is_rejected() -> None:
    state = TurnChainState()

    with pytest.raises(InvalidTransitionError):
        state.transition(ChatPhase.STREAMING)
