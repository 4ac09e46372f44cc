"""Session glue between the conversation history and the turn-chain loop."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence

from ...chat.message_model import ConversationMessage
from ...chat.session_store import SessionStore
from ...services.settings import Settings
from ..ai_types import ModelSession, ModelTransport, SessionConfig
from ..prompts import build_system_instruction
from ..services.context_pruner import ContextPruner, PrunerConfig
from .chat_orchestrator import ChatOrchestrator
from .model_types import CancelReason, CancellationToken, ChatPhase, TurnChainState
from .stream_errors import (
    ABORTED_MARKER,
    ChatBusyError,
    SessionNotReadyError,
    append_block,
    classify_stream_error,
    format_error_block,
)
from .tool_dispatcher import ToolDispatcher

LOGGER = logging.getLogger(__name__)

UpdateCallback = Callable[[list[ConversationMessage]], None]
ActivityCallback = Callable[[], None]
InstructionBuilder = Callable[..., str]


class ApiStatus(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    ERROR = "error"
    OFFLINE = "offline"


@dataclass(slots=True, frozen=True)
class _SessionFingerprint:
    model: str
    desanitized: bool
    session_id: str | None
    message_count: int


@dataclass(slots=True)
class _ActiveSend:
    message_id: str
    state: TurnChainState
    token: CancellationToken
    task: asyncio.Task | None = None
    finalized: bool = False
    publish_pending: bool = False


class ChatEngine:
    """Owns one conversation and runs at most one turn chain at a time.

    The model session is rebuilt from the pruned history whenever the model,
    the sandbox mode or the session id changes, or when the history drifted
    away from the one the session was built from. It is also rebuilt after a
    chain that hit the turn cap, was aborted or failed.
    """

    def __init__(
        self,
        transport: ModelTransport,
        dispatcher: ToolDispatcher,
        *,
        settings: Settings | None = None,
        pruner: ContextPruner | None = None,
        store: SessionStore | None = None,
        on_update: UpdateCallback | None = None,
        on_activity: ActivityCallback | None = None,
        instruction_builder: InstructionBuilder = build_system_instruction,
    ) -> None:
        self._settings = settings or Settings()
        self._transport = transport
        self._dispatcher = dispatcher
        self._orchestrator = ChatOrchestrator(transport, dispatcher, max_turns=self._settings.max_turns)
        self._pruner = pruner or ContextPruner(PrunerConfig.from_settings(self._settings.context))
        self._store = store
        self._on_update = on_update
        self._on_activity = on_activity
        self._instruction_builder = instruction_builder

        self._model = self._settings.model
        self._desanitized = self._settings.desanitized
        self._session_id: str | None = None
        self._messages: list[ConversationMessage] = []
        self._session: ModelSession | None = None
        self._session_fingerprint: _SessionFingerprint | None = None
        self._active: _ActiveSend | None = None
        self._api_status = ApiStatus.IDLE

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------
    @property
    def messages(self) -> list[ConversationMessage]:
        return list(self._messages)

    @property
    def api_status(self) -> ApiStatus:
        return self._api_status

    @property
    def is_loading(self) -> bool:
        return self._active is not None

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def model(self) -> str:
        return self._model

    @property
    def desanitized(self) -> bool:
        return self._desanitized

    @property
    def orchestrator(self) -> ChatOrchestrator:
        return self._orchestrator

    @property
    def dispatcher(self) -> ToolDispatcher:
        return self._dispatcher

    def set_model(self, model: str) -> None:
        self._model = (model or "").strip() or self._settings.model

    def set_desanitized(self, enabled: bool) -> None:
        self._desanitized = bool(enabled)

    def load_session(self, session_id: str, history: Sequence[ConversationMessage] | None = None) -> None:
        """Switch to ``session_id``, reading its history from the store unless given."""

        self._ensure_idle()
        if history is None:
            history = self._store.load_history(session_id) if self._store is not None else ()
        self._session_id = session_id
        self._messages = list(history)
        LOGGER.debug("Loaded session %s with %s message(s)", session_id, len(self._messages))

    # ------------------------------------------------------------------
    # Model session lifecycle
    # ------------------------------------------------------------------
    def needs_refresh(self) -> bool:
        current = self._session_fingerprint
        if self._session is None or current is None:
            return True
        if (current.model, current.desanitized, current.session_id) != (
            self._model,
            self._desanitized,
            self._session_id,
        ):
            return True
        return abs(current.message_count - len(self._messages)) > self._settings.session_refresh_drift

    def refresh_session(self) -> ModelSession:
        """Rebuild the model session from the pruned history."""

        if not self._settings.api_key:
            raise SessionNotReadyError("An API key is required before sending messages.")
        history = self._pruner.prune(self._messages)
        LOGGER.debug("Pruned history from %s to %s message(s)", len(self._messages), len(history))
        config = SessionConfig(
            model=self._model,
            system_instruction=self._instruction_builder(self._model, desanitized=self._desanitized),
            history=tuple(history),
            temperature=self._settings.temperature,
        )
        try:
            session = self._transport.create_session(config)
        except Exception as exc:
            self._api_status = ApiStatus.ERROR
            raise SessionNotReadyError(f"Could not start a model session: {exc}") from exc
        self._session = session
        self._session_fingerprint = _SessionFingerprint(
            model=self._model,
            desanitized=self._desanitized,
            session_id=self._session_id,
            message_count=len(self._messages),
        )
        LOGGER.info("Started model session for %s (session=%s)", self._model, self._session_id)
        return session

    def _discard_session(self) -> None:
        # A capped, aborted or failed chain can leave tool calls without
        # matching tool responses in the transport session.
        if self._session is not None:
            LOGGER.debug("Discarding model session after an unfinished turn chain")
        self._session = None
        self._session_fingerprint = None

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------
    async def send_message(self, text: str) -> ConversationMessage | None:
        """Run one turn chain for ``text`` and return the finished model message.

        Transport failures do not raise: they are rendered into the model
        message after whatever text already streamed.

        Raises:
            ChatBusyError: another send is still in flight.
            SessionNotReadyError: no model session could be created.
        """

        if not text or not text.strip():
            return None
        self._ensure_idle()
        session = self.refresh_session() if self.needs_refresh() else self._session
        if session is None:
            raise SessionNotReadyError("No model session is available.")

        user_message = ConversationMessage(role="user", text=text)
        model_message = ConversationMessage(role="model", text="", is_streaming=True, model_id=self._model)
        self._messages.extend((user_message, model_message))

        state = TurnChainState()
        active = _ActiveSend(message_id=model_message.id, state=state, token=CancellationToken())
        self._active = active
        self._api_status = ApiStatus.CONNECTING
        self._publish()
        if self._on_activity is not None:
            self._on_activity()

        loop = asyncio.get_running_loop()
        active.task = loop.create_task(
            self._orchestrator.run(
                session,
                text,
                state,
                on_progress=lambda _state: self._schedule_progress(active),
                cancel=active.token,
            )
        )
        active.token.bind(active.task)
        watchdog = loop.create_task(self._watchdog(active))
        clean = False
        try:
            result = await active.task
        except asyncio.CancelledError:
            reason = active.token.reason
            if reason is None:
                self._finalize(active, text=state.text, phase=ChatPhase.ABORTED, status=ApiStatus.IDLE)
                raise
            if reason is CancelReason.USER_ABORTED:
                self._finalize(
                    active, text=f"{state.text}{ABORTED_MARKER}", phase=ChatPhase.ABORTED, status=ApiStatus.IDLE
                )
            else:
                info = classify_stream_error(asyncio.TimeoutError(), cancel_reason=reason)
                block = format_error_block(info, timeout_seconds=self._settings.connection_timeout)
                self._finalize(
                    active, text=append_block(state.text, block), phase=ChatPhase.ERROR, status=ApiStatus.ERROR
                )
        except Exception as exc:
            info = classify_stream_error(exc, cancel_reason=active.token.reason)
            LOGGER.error("Stream failed (%s): %s", info.kind, info.detail, exc_info=exc)
            block = format_error_block(info, timeout_seconds=self._settings.connection_timeout)
            status = ApiStatus.OFFLINE if info.kind == "network" else ApiStatus.ERROR
            self._finalize(active, text=append_block(state.text, block), phase=ChatPhase.ERROR, status=status)
        else:
            clean = not result.hit_turn_cap
            self._finalize(active, text=state.text, phase=ChatPhase.DONE, status=ApiStatus.IDLE)
        finally:
            watchdog.cancel()
            if not clean:
                self._discard_session()
            if self._active is active:
                self._active = None
            self._persist()
        return self._find(active.message_id)

    def stop(self) -> bool:
        """Abort the in-flight send; returns ``False`` when nothing was running."""

        active = self._active
        if active is None or active.finalized or (active.task is not None and active.task.done()):
            return False
        if not active.token.cancel(CancelReason.USER_ABORTED):
            return False
        LOGGER.info("Generation aborted by user")
        self._finalize(
            active,
            text=f"{active.state.text}{ABORTED_MARKER}",
            phase=ChatPhase.ABORTED,
            status=ApiStatus.IDLE,
        )
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _watchdog(self, active: _ActiveSend) -> None:
        timeout = self._settings.connection_timeout
        try:
            await asyncio.wait_for(active.state.first_byte.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            if active.token.cancel(CancelReason.CONNECTION_TIMEOUT):
                LOGGER.warning("No response from the model within %ss; aborting", timeout)

    def _schedule_progress(self, active: _ActiveSend) -> None:
        if active.finalized or active.token.cancelled:
            return
        self._api_status = ApiStatus.STREAMING
        if active.publish_pending:
            return
        active.publish_pending = True
        asyncio.get_running_loop().call_soon(self._flush_progress, active)

    def _flush_progress(self, active: _ActiveSend) -> None:
        active.publish_pending = False
        if active.finalized or active.token.cancelled:
            return
        state = active.state
        self._replace(
            active.message_id,
            text=state.text,
            token_usage=state.usage,
            sources=tuple(state.sources),
            tool_status_label=state.tool_status_label,
            verified_model_id=state.model_version,
        )
        self._publish()

    def _finalize(self, active: _ActiveSend, *, text: str, phase: ChatPhase, status: ApiStatus) -> None:
        if active.finalized:
            return
        active.finalized = True
        state = active.state
        if not state.phase.is_terminal:
            state.transition(phase)
        self._replace(
            active.message_id,
            text=text,
            is_streaming=False,
            token_usage=state.usage,
            sources=tuple(state.sources),
            tool_status_label=None,
            verified_model_id=state.model_version,
            elapsed_ms=state.elapsed_ms,
        )
        self._api_status = status
        self._publish()

    def _replace(self, message_id: str, **changes: object) -> None:
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                self._messages[index] = message.evolve(**changes)
                return

    def _find(self, message_id: str) -> ConversationMessage | None:
        return next((message for message in self._messages if message.id == message_id), None)

    def _publish(self) -> None:
        if self._on_update is not None:
            self._on_update(list(self._messages))

    def _persist(self) -> None:
        if self._store is None or self._session_id is None:
            return
        try:
            self._store.save_history(self._session_id, self._messages)
        except Exception:  # pragma: no cover - storage is best effort
            LOGGER.exception("Failed to persist session %s", self._session_id)

    def _ensure_idle(self) -> None:
        if self._active is not None:
            raise ChatBusyError("A response is still being generated for this conversation.")


__all__ = ["ApiStatus", "ChatEngine"]
