"""Turn-chain orchestration for the mission-scripting chat."""

from .chat_engine import ApiStatus, ChatEngine
from .chat_orchestrator import ChatOrchestrator
from .model_types import CancelReason, CancellationToken, ChatPhase, TurnChainResult, TurnChainState
from .stream_errors import (
    ABORTED_MARKER,
    ChatBusyError,
    SessionNotReadyError,
    classify_stream_error,
    format_error_block,
)
from .suggestions import ModuleSuggestion, suggest_modules
from .tool_dispatcher import DUPLICATE_MODULE_RESPONSE, DUPLICATE_SSE_RESPONSE, ToolDispatcher

__all__ = [
    "ABORTED_MARKER",
    "ApiStatus",
    "CancelReason",
    "CancellationToken",
    "ChatBusyError",
    "ChatEngine",
    "ChatOrchestrator",
    "ChatPhase",
    "DUPLICATE_MODULE_RESPONSE",
    "DUPLICATE_SSE_RESPONSE",
    "ModuleSuggestion",
    "SessionNotReadyError",
    "ToolDispatcher",
    "TurnChainResult",
    "TurnChainState",
    "classify_stream_error",
    "format_error_block",
    "suggest_modules",
]
