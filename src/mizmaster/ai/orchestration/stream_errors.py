"""Classification and rendering of stream-transport failures."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Literal

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError

from .model_types import CancelReason

ErrorKind = Literal["timeout", "network", "generic"]

ABORTED_MARKER = "\n\n**[GENERATION ABORTED]**"
DEFAULT_HINT = "Check your API connection."


class ChatBusyError(RuntimeError):
    """Raised when a send is attempted while another one is in flight."""


class SessionNotReadyError(RuntimeError):
    """Raised when no model session can be built (missing key, transport failure)."""


@dataclass(slots=True, frozen=True)
class StreamErrorInfo:
    kind: ErrorKind
    detail: str
    hint: str | None = None
    status_code: int | None = None


def _status_code(exc: BaseException) -> int | None:
    if isinstance(exc, APIStatusError):
        return exc.status_code
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    code = getattr(exc, "status_code", None)
    return code if isinstance(code, int) else None


def _detail(exc: BaseException) -> str:
    body: Any = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    message = str(exc) or exc.__class__.__name__
    # Some gateways put the JSON error document straight into the message.
    if message.startswith("{"):
        try:
            parsed = json.loads(message)
        except ValueError:
            return message
        if isinstance(parsed, dict) and isinstance(parsed.get("error"), dict):
            return str(parsed["error"].get("message") or message)
    return message


def _hint(text: str, status_code: int | None) -> str | None:
    if status_code == 400 or "400" in text or "INVALID_ARGUMENT" in text:
        return "The documentation might be too large (Payload Limit)."
    if status_code == 413 or "413" in text:
        return "The request payload was too large (413)."
    if status_code == 429 or "429" in text:
        return "You are sending requests too fast (Rate Limit)."
    if status_code == 503 or "503" in text:
        return "The AI model is currently overloaded."
    return None


def classify_stream_error(exc: BaseException, *, cancel_reason: CancelReason | None = None) -> StreamErrorInfo:
    """Sort a transport failure into timeout, network or generic."""

    if cancel_reason is CancelReason.CONNECTION_TIMEOUT:
        return StreamErrorInfo(kind="timeout", detail="Connection timed out before the first response chunk.")
    if isinstance(exc, (APITimeoutError, httpx.TimeoutException, asyncio.TimeoutError)):
        return StreamErrorInfo(kind="timeout", detail=_detail(exc))
    if isinstance(exc, (APIConnectionError, httpx.TransportError, ConnectionError)):
        return StreamErrorInfo(kind="network", detail=_detail(exc))

    status_code = _status_code(exc)
    detail = _detail(exc)
    return StreamErrorInfo(
        kind="generic",
        detail=detail,
        hint=_hint(f"{exc} {detail}", status_code),
        status_code=status_code,
    )


def format_error_block(info: StreamErrorInfo, *, timeout_seconds: float = 30.0) -> str:
    """Render ``info`` as the markdown block appended to partial output."""

    if info.kind == "timeout":
        return (
            "**CONNECTION TIMEOUT**\n\n"
            f"The model failed to respond within {timeout_seconds:g} seconds. This may be due to high "
            "server load or network congestion. Please try again."
        )
    if info.kind == "network":
        return "**NETWORK ERROR**\n\nConnection lost during transmission. Please check your internet."
    return f"**SYSTEM ERROR**\n\n{info.detail}\n**Hint:** {info.hint or DEFAULT_HINT}"


def append_block(partial_text: str, block: str) -> str:
    return f"{partial_text}\n\n{block}" if partial_text else block


__all__ = [
    "ABORTED_MARKER",
    "ChatBusyError",
    "ErrorKind",
    "SessionNotReadyError",
    "StreamErrorInfo",
    "append_block",
    "classify_stream_error",
    "format_error_block",
]
