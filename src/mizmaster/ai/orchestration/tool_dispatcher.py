"""Routes model tool calls to the librarian with per-chain deduplication."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, MutableSet, Protocol, Sequence

from ..ai_types import ToolCallRequest, ToolResponse
from ..tools.arguments import FrameworkDocsArgs, SseDocsArgs, ToolArguments, parse_tool_arguments
from ..tools.errors import ErrorCode, ToolError
from ..tools.hard_deck import HardDeck

LOGGER = logging.getLogger(__name__)

DUPLICATE_MODULE_RESPONSE = (
    "SYSTEM ALERT: You have already fetched this module. Do not fetch it again. "
    "Use the data previously provided."
)
DUPLICATE_SSE_RESPONSE = "SYSTEM ALERT: SSE Definitions for this category are already in context."


class DocumentationSource(Protocol):
    """Anything that can turn a framework/module request into tool text."""

    def resolve(
        self,
        source_name: str,
        module_query: str,
        branch: str | None = None,
        auth_token: str | None = None,
    ) -> Awaitable[str]:
        ...


# -----------------------------------------------------------------------------
# Dispatch Result
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class DispatchOutcome:
    """One resolved call; ``duplicate`` marks a canned dedup answer."""

    response: ToolResponse
    fingerprint: str | None = None
    duplicate: bool = False
    failed: bool = False


# -----------------------------------------------------------------------------
# Tool Dispatcher
# -----------------------------------------------------------------------------


class ToolDispatcher:
    """Resolves every tool call of one turn and keeps results tied to call ids.

    Fingerprints are claimed in call order before anything is awaited, so two
    identical calls in the same turn yield one dispatch and one canned reply.
    First-seen calls then run concurrently.
    """

    def __init__(
        self,
        resolver: DocumentationSource,
        hard_deck: HardDeck | None = None,
        *,
        github_token: str | None = None,
    ) -> None:
        self._resolver = resolver
        self._hard_deck = hard_deck or HardDeck()
        self._github_token = github_token

    @property
    def github_token(self) -> str | None:
        return self._github_token

    @github_token.setter
    def github_token(self, value: str | None) -> None:
        self._github_token = value or None

    async def dispatch_all(
        self,
        calls: Sequence[ToolCallRequest],
        seen: MutableSet[str],
    ) -> list[DispatchOutcome]:
        """Resolve ``calls`` against the chain's ``seen`` fingerprints."""

        slots: list[DispatchOutcome | None] = []
        pending: list[tuple[int, ToolCallRequest, ToolArguments, str]] = []

        for call in calls:
            try:
                args = parse_tool_arguments(call.name, call.arguments)
            except ToolError as exc:
                LOGGER.warning("Rejected tool call %s (%s): %s", call.name, call.call_id, exc)
                slots.append(DispatchOutcome(response=self._respond(call, exc.as_tool_text()), failed=True))
                continue

            fingerprint = args.fingerprint()
            if fingerprint in seen:
                LOGGER.warning("Blocked duplicate tool call %s (%s)", fingerprint, call.call_id)
                canned = DUPLICATE_SSE_RESPONSE if isinstance(args, SseDocsArgs) else DUPLICATE_MODULE_RESPONSE
                slots.append(
                    DispatchOutcome(response=self._respond(call, canned), fingerprint=fingerprint, duplicate=True)
                )
                continue

            seen.add(fingerprint)
            pending.append((len(slots), call, args, fingerprint))
            slots.append(None)

        if pending:
            LOGGER.info("Dispatching %s tool call(s)", len(pending))
            results = await asyncio.gather(*(self._execute(call, args) for _, call, args, _ in pending))
            for (position, call, _, fingerprint), (text, failed) in zip(pending, results):
                slots[position] = DispatchOutcome(
                    response=self._respond(call, text),
                    fingerprint=fingerprint,
                    failed=failed,
                )

        return [outcome for outcome in slots if outcome is not None]

    async def _execute(self, call: ToolCallRequest, args: ToolArguments) -> tuple[str, bool]:
        try:
            if isinstance(args, FrameworkDocsArgs):
                LOGGER.info("Fetching %s module %s (%s)", args.framework, args.module_name, args.branch or "default")
                text = await self._resolver.resolve(
                    args.framework,
                    args.module_name,
                    args.branch,
                    self._github_token,
                )
                return text, text.startswith("ERROR:")
            LOGGER.info("Looking up SSE category %s", args.category)
            return self._hard_deck.lookup(args.category), False
        except ToolError as exc:
            return exc.as_tool_text(), True
        except Exception as exc:  # pragma: no cover - unexpected resolver failure
            LOGGER.exception("Tool %s failed (%s)", call.name, call.call_id)
            error = ToolError(error_code=ErrorCode.INTERNAL_ERROR, message=f"Librarian System Exception: {exc}")
            return error.as_tool_text(), True

    @staticmethod
    def _respond(call: ToolCallRequest, text: str) -> ToolResponse:
        return ToolResponse(call_id=call.call_id, name=call.name, result=text)


__all__ = [
    "DUPLICATE_MODULE_RESPONSE",
    "DUPLICATE_SSE_RESPONSE",
    "DispatchOutcome",
    "DocumentationSource",
    "ToolDispatcher",
]
