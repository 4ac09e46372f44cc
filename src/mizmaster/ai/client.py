"""Async model transport built around OpenAI-compatible endpoints."""

from __future__ import annotations

import inspect
import json
import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Mapping, Sequence, cast

import httpx
from openai import APIConnectionError, APITimeoutError, AsyncOpenAI, RateLimitError
from openai.types.chat import ChatCompletionMessageParam, ChatCompletionToolParam
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

try:  # pragma: no cover - optional dependency used when installed
    import tiktoken  # type: ignore
except Exception:  # pragma: no cover - optional fallback when package missing
    tiktoken = None

from ..chat.message_model import ConversationMessage, Source, TokenUsage
from ..services.settings import Settings
from .ai_types import ResponseChunk, SessionConfig, TokenCounterProtocol, ToolCallRequest, ToolResponse, TurnInput
from .tools.declarations import tool_specs

LOGGER = logging.getLogger(__name__)
_DEFAULT_CHARS_PER_TOKEN = 4


class ApproxCharCounter(TokenCounterProtocol):
    """Deterministic counter that estimates tokens from character length."""

    def __init__(self, *, model_name: str | None = None, chars_per_token: int = _DEFAULT_CHARS_PER_TOKEN) -> None:
        self.model_name = model_name
        self._chars_per_token = max(1, int(chars_per_token))

    def count(self, text: str) -> int:
        return self.estimate(text)

    def estimate(self, text: str) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self._chars_per_token)


class TiktokenCounter(TokenCounterProtocol):
    """Token counter backed by OpenAI's tiktoken package."""

    def __init__(self, model_name: str) -> None:
        if tiktoken is None:  # pragma: no cover - depends on optional dependency
            raise RuntimeError("tiktoken is not installed")
        self.model_name = model_name
        token_module = cast(Any, tiktoken)
        try:
            self._encoding = token_module.encoding_for_model(model_name)
        except KeyError:
            LOGGER.debug("Falling back to cl100k_base encoding for model %s", model_name)
            self._encoding = token_module.get_encoding("cl100k_base")
        self._fallback = ApproxCharCounter(model_name=model_name)

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self._encoding.encode(text))

    def estimate(self, text: str) -> int:
        return self._fallback.estimate(text)


def build_token_counter(model_name: str) -> TokenCounterProtocol:
    if tiktoken is None:
        return ApproxCharCounter(model_name=model_name)
    return TiktokenCounter(model_name)


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the AI client."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClientSettings":
        return cls(
            base_url=settings.base_url,
            api_key=settings.api_key,
            model=settings.model,
            organization=settings.organization,
            request_timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            retry_min_seconds=settings.retry_min_seconds,
            retry_max_seconds=settings.retry_max_seconds,
            default_headers=dict(settings.default_headers) or None,
            debug_logging=settings.debug_logging,
        )


@dataclass(slots=True)
class ChatSession:
    """Stateful conversation held client-side as a chat-completions message list."""

    config: SessionConfig
    messages: List[Dict[str, Any]] = field(default_factory=list)
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(slots=True)
class _PendingToolCall:
    call_id: str = ""
    name: str = ""
    arguments: str = ""


def history_to_messages(history: Sequence[ConversationMessage]) -> List[Dict[str, Any]]:
    """Map stored conversation rows onto chat-completions messages."""

    messages: List[Dict[str, Any]] = []
    for message in history:
        if message.is_streaming or not message.text.strip():
            continue
        role = "assistant" if message.role == "model" else "user"
        messages.append({"role": role, "content": message.text})
    return messages


class AIClient:
    """Streaming transport with retry semantics on stream start."""

    def __init__(
        self,
        settings: ClientSettings,
        *,
        client: AsyncOpenAI | None = None,
        tools: Sequence[ChatCompletionToolParam] | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)
        self._tools = list(tools) if tools is not None else tool_specs()
        self._token_counter = build_token_counter(settings.model)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    def create_session(self, config: SessionConfig) -> ChatSession:
        messages: List[Dict[str, Any]] = [{"role": "system", "content": config.system_instruction}]
        messages.extend(history_to_messages(config.history))
        LOGGER.debug("Created chat session for %s with %s history message(s)", config.model, len(messages) - 1)
        return ChatSession(config=config, messages=messages)

    async def send_stream(self, session: ChatSession, turn_input: TurnInput) -> AsyncIterator[ResponseChunk]:
        """Append ``turn_input`` to the session and stream the model's reply."""

        session.messages.extend(self._input_messages(turn_input))
        payload = self._build_chat_payload(session)
        LOGGER.debug(
            "Starting streamed chat completion via %s with %s message(s) (~%s tokens)",
            payload["model"],
            len(payload["messages"]),
            self.count_tokens(json.dumps(payload["messages"], ensure_ascii=False)),
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        stream = None
        async for attempt in self._retrying():
            with attempt:
                stream = await self._client.chat.completions.create(**payload)

        text_parts: list[str] = []
        pending: dict[int, _PendingToolCall] = {}
        emitted_calls: list[ToolCallRequest] = []
        completed = False
        try:
            async for chunk in cast(Any, stream):
                model_version = getattr(chunk, "model", None)
                usage = self._normalize_usage(getattr(chunk, "usage", None))
                if usage is not None:
                    yield ResponseChunk(usage=usage, model_version=model_version)
                for choice in getattr(chunk, "choices", None) or ():
                    delta = getattr(choice, "delta", None)
                    content = getattr(delta, "content", None) if delta is not None else None
                    for call_delta in getattr(delta, "tool_calls", None) or ():
                        self._accumulate_tool_call(pending, call_delta)
                    ready: tuple[ToolCallRequest, ...] = ()
                    if getattr(choice, "finish_reason", None) and pending:
                        ready = self._flush_tool_calls(pending)
                        emitted_calls.extend(ready)
                    sources = self._extract_sources(chunk)
                    if content or ready or sources:
                        if content:
                            text_parts.append(content)
                        yield ResponseChunk(
                            text=content or "",
                            tool_calls=ready,
                            sources=sources,
                            model_version=model_version,
                        )
            if pending:
                ready = self._flush_tool_calls(pending)
                emitted_calls.extend(ready)
                yield ResponseChunk(tool_calls=ready)
            completed = True
        finally:
            session.messages.append(self._assistant_message("".join(text_parts), emitted_calls if completed else []))
            close = getattr(stream, "close", None)
            if close is not None:
                result = close()
                if inspect.isawaitable(result):
                    await result

    def count_tokens(self, text: str) -> int:
        if not text:
            return 0
        try:
            return self._token_counter.count(text)
        except Exception:  # pragma: no cover - defensive guard
            LOGGER.debug("count_tokens failed; falling back to estimate", exc_info=True)
            return self._token_counter.estimate(text)

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=headers,
            max_retries=0,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(
                (
                    APIConnectionError,
                    APITimeoutError,
                    RateLimitError,
                    httpx.TimeoutException,
                )
            ),
        )

    def _input_messages(self, turn_input: TurnInput) -> List[Dict[str, Any]]:
        if isinstance(turn_input, str):
            return [{"role": "user", "content": turn_input}]
        messages: List[Dict[str, Any]] = []
        for response in turn_input:
            if not isinstance(response, ToolResponse):
                raise TypeError("Tool turns must contain ToolResponse items")
            messages.append({"role": "tool", "tool_call_id": response.call_id, "content": response.result})
        if not messages:
            raise ValueError("At least one tool response is required to continue a turn")
        return messages

    def _build_chat_payload(self, session: ChatSession) -> Dict[str, Any]:
        config = session.config
        payload: Dict[str, Any] = {
            "model": config.model or self._settings.model,
            "messages": [cast(ChatCompletionMessageParam, dict(message)) for message in session.messages],
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if self._tools:
            payload["tools"] = list(self._tools)
        if config.temperature is not None:
            payload["temperature"] = config.temperature
        if config.metadata:
            payload["metadata"] = dict(config.metadata)
        return payload

    @staticmethod
    def _accumulate_tool_call(pending: dict[int, _PendingToolCall], call_delta: Any) -> None:
        index = getattr(call_delta, "index", None)
        if index is None:
            index = len(pending)
        entry = pending.setdefault(int(index), _PendingToolCall())
        call_id = getattr(call_delta, "id", None)
        if call_id:
            entry.call_id = str(call_id)
        function = getattr(call_delta, "function", None)
        if function is not None:
            if getattr(function, "name", None):
                entry.name = str(function.name)
            if getattr(function, "arguments", None):
                entry.arguments += str(function.arguments)

    @staticmethod
    def _flush_tool_calls(pending: dict[int, _PendingToolCall]) -> tuple[ToolCallRequest, ...]:
        calls = tuple(
            ToolCallRequest(
                call_id=entry.call_id or f"{entry.name or 'tool'}:{index}",
                name=entry.name,
                arguments=entry.arguments or None,
            )
            for index, entry in sorted(pending.items())
        )
        pending.clear()
        return calls

    @staticmethod
    def _normalize_usage(usage: Any) -> TokenUsage | None:
        if usage is None:
            return None
        prompt = int(getattr(usage, "prompt_tokens", 0) or 0)
        completion = int(getattr(usage, "completion_tokens", 0) or 0)
        total = int(getattr(usage, "total_tokens", 0) or (prompt + completion))
        return TokenUsage(prompt_tokens=prompt, response_tokens=completion, total_tokens=total)

    @staticmethod
    def _extract_sources(chunk: Any) -> tuple[Source, ...]:
        # OpenAI-compatible gateways that ground answers expose citations as a
        # list of URLs or ``{"url", "title"}`` objects on the chunk.
        raw = getattr(chunk, "citations", None)
        if raw is None:
            extra = getattr(chunk, "model_extra", None) or {}
            raw = extra.get("citations") if isinstance(extra, Mapping) else None
        sources: list[Source] = []
        for item in raw or ():
            if isinstance(item, str):
                sources.append(Source(uri=item, title=item))
            elif isinstance(item, Mapping) and item.get("url"):
                sources.append(Source(uri=str(item["url"]), title=str(item.get("title") or item["url"])))
        return tuple(sources)

    @staticmethod
    def _assistant_message(text: str, tool_calls: Sequence[ToolCallRequest]) -> Dict[str, Any]:
        message: Dict[str, Any] = {"role": "assistant", "content": text or None}
        if tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.call_id,
                    "type": "function",
                    "function": {
                        "name": call.name,
                        "arguments": call.arguments if isinstance(call.arguments, str) else json.dumps(call.arguments or {}),
                    },
                }
                for call in tool_calls
            ]
        return message

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("AI prompt payload (unserializable): %s", payload)
        else:
            LOGGER.debug("AI prompt payload:\n%s", serialized)

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result


__all__ = [
    "AIClient",
    "ApproxCharCounter",
    "ChatSession",
    "ClientSettings",
    "TiktokenCounter",
    "build_token_counter",
    "history_to_messages",
]
