"""Shared test helpers and stub classes.

Import from here instead of duplicating these stubs in individual test files:

    from tests.helpers import ScriptedTransport, StubResolver
"""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from typing import Any, AsyncIterator, Callable, Iterable, Sequence, Union

from mizmaster.ai.ai_types import ResponseChunk, SessionConfig, ToolCallRequest, TurnInput
from mizmaster.ai.tools.declarations import FRAMEWORK_DOCS_TOOL, SSE_DOCS_TOOL

HANG = object()
"""Script item that blocks the stream until the consumer is cancelled."""

ScriptItem = Union[ResponseChunk, BaseException, object]


class ScriptedTransport:
    """Model transport stub that replays one scripted chunk batch per turn.

    Each turn script is a list of :class:`ResponseChunk` items, exceptions to
    raise mid-stream, or :data:`HANG`. With ``repeat_last`` the final script is
    replayed forever, which emulates a model stuck requesting tools.
    """

    def __init__(self, turns: Sequence[Sequence[ScriptItem]], *, repeat_last: bool = False) -> None:
        self._turns = [list(turn) for turn in turns]
        self._repeat_last = repeat_last
        self.sessions: list[SimpleNamespace] = []
        self.inputs: list[TurnInput] = []
        self.closed_streams = 0

    def create_session(self, config: SessionConfig) -> SimpleNamespace:
        session = SimpleNamespace(config=config)
        self.sessions.append(session)
        return session

    async def send_stream(self, session: Any, turn_input: TurnInput) -> AsyncIterator[ResponseChunk]:
        self.inputs.append(turn_input)
        script = self._next_script()
        try:
            for item in script:
                await asyncio.sleep(0)
                if item is HANG:
                    await asyncio.Event().wait()
                elif isinstance(item, BaseException):
                    raise item
                else:
                    yield item  # type: ignore[misc]
        finally:
            self.closed_streams += 1

    def _next_script(self) -> list[ScriptItem]:
        if len(self._turns) > 1 or (self._turns and not self._repeat_last):
            return self._turns.pop(0)
        return list(self._turns[0]) if self._turns else []


class StubResolver:
    """Documentation resolver stub that records every fetch."""

    def __init__(self, responder: Callable[[str, str, str | None], str] | None = None) -> None:
        self.calls: list[tuple[str, str, str | None, str | None]] = []
        self._responder = responder or (lambda framework, module, branch: f"SOURCE {framework}/{module}")

    async def resolve(
        self,
        source_name: str,
        module_query: str,
        branch: str | None = None,
        auth_token: str | None = None,
    ) -> str:
        self.calls.append((source_name, module_query, branch, auth_token))
        await asyncio.sleep(0)
        return self._responder(source_name, module_query, branch)


def framework_call(call_id: str, module: str, framework: str = "MOOSE", branch: str | None = None) -> ToolCallRequest:
    arguments: dict[str, Any] = {"framework": framework, "module_name": module}
    if branch is not None:
        arguments["branch"] = branch
    return ToolCallRequest(call_id=call_id, name=FRAMEWORK_DOCS_TOOL, arguments=json.dumps(arguments))


def sse_call(call_id: str, category: str) -> ToolCallRequest:
    return ToolCallRequest(call_id=call_id, name=SSE_DOCS_TOOL, arguments=json.dumps({"category": category}))


def tool_chunk(*calls: ToolCallRequest) -> ResponseChunk:
    return ResponseChunk(tool_calls=tuple(calls))


def text_chunk(text: str) -> ResponseChunk:
    return ResponseChunk(text=text)


async def wait_until(predicate: Callable[[], bool], *, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.005)
    raise AssertionError("condition not reached")


# -----------------------------------------------------------------------------
# Fake OpenAI chat-completions stream
# -----------------------------------------------------------------------------


def openai_chunk(
    *,
    content: str | None = None,
    tool_calls: list[SimpleNamespace] | None = None,
    finish_reason: str | None = None,
    usage: SimpleNamespace | None = None,
    model: str = "gemini-test-001",
    citations: list[Any] | None = None,
) -> SimpleNamespace:
    choices = []
    if content is not None or tool_calls is not None or finish_reason is not None:
        delta = SimpleNamespace(content=content, tool_calls=tool_calls)
        choices.append(SimpleNamespace(delta=delta, finish_reason=finish_reason))
    return SimpleNamespace(choices=choices, usage=usage, model=model, citations=citations)


def openai_call_delta(
    index: int,
    *,
    call_id: str | None = None,
    name: str | None = None,
    arguments: str | None = None,
) -> SimpleNamespace:
    return SimpleNamespace(index=index, id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


class FakeChatStream:
    def __init__(self, chunks: Iterable[Any]):
        self._iterator = iter(list(chunks))
        self.closed = False

    def __aiter__(self) -> "FakeChatStream":
        return self

    async def __anext__(self) -> Any:
        try:
            item = next(self._iterator)
        except StopIteration as exc:
            raise StopAsyncIteration from exc
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True


class FakeCompletions:
    """Stand-in for ``AsyncOpenAI.chat.completions`` that records payloads."""

    def __init__(self, *scripts: Iterable[Any], failures: Iterable[BaseException] = ()):
        self._scripts = [list(script) for script in scripts]
        self._failures = list(failures)
        self.calls: list[dict[str, Any]] = []
        self.streams: list[FakeChatStream] = []

    async def create(self, **kwargs: Any) -> FakeChatStream:
        self.calls.append(json.loads(json.dumps(kwargs)))
        if self._failures:
            raise self._failures.pop(0)
        stream = FakeChatStream(self._scripts.pop(0))
        self.streams.append(stream)
        return stream


def fake_openai_client(completions: FakeCompletions) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def assert_tool_calls_answered(messages: Sequence[dict[str, Any]]) -> None:
    """Fail when an assistant ``tool_calls`` entry lacks its ``tool`` replies."""

    for index, message in enumerate(messages):
        expected = {call["id"] for call in message.get("tool_calls") or ()}
        answered: set[str] = set()
        for follower in messages[index + 1 :]:
            if follower.get("role") != "tool":
                break
            answered.add(follower.get("tool_call_id"))
        assert expected <= answered, f"unanswered tool calls {sorted(expected - answered)} at message {index}"
