"""History pruning ahead of a model session rebuild."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Sequence

from ...chat.message_model import ConversationMessage
from ...services.settings import ContextLimitSettings

__all__ = ["PrunerConfig", "ContextPruner", "estimate_tokens"]

LOGGER = logging.getLogger(__name__)


def estimate_tokens(text: str) -> int:
    """Approximate tokens at four characters per token."""

    if not text:
        return 0
    return math.ceil(len(text) / 4)


@dataclass(slots=True, frozen=True)
class PrunerConfig:
    """Budget applied by :class:`ContextPruner`."""

    max_tokens: int = 30_000
    max_messages: int = 20
    protect_first: bool = True
    message_overhead_tokens: int = 5

    @classmethod
    def from_settings(cls, settings: ContextLimitSettings) -> "PrunerConfig":
        return cls(
            max_tokens=max(0, int(settings.max_tokens)),
            max_messages=max(0, int(settings.max_messages)),
            protect_first=bool(settings.protect_first),
            message_overhead_tokens=max(0, int(settings.message_overhead_tokens)),
        )


class ContextPruner:
    """Selects the slice of history that is replayed into a new model session.

    The result is ``[first?] + suffix``: the optional protected first message
    followed by the longest run of most-recent messages that fits both the
    token budget and the message-count budget. The middle is dropped wholesale.
    """

    def __init__(self, config: PrunerConfig | None = None) -> None:
        self._config = config or PrunerConfig()

    @property
    def config(self) -> PrunerConfig:
        return self._config

    def message_cost(self, message: ConversationMessage) -> int:
        return estimate_tokens(message.text) + self._config.message_overhead_tokens

    def prune(self, history: Sequence[ConversationMessage]) -> list[ConversationMessage]:
        config = self._config
        candidates = [message for message in history if not message.is_streaming]
        if not candidates:
            return []

        protected: ConversationMessage | None = None
        used_tokens = 0
        if config.protect_first:
            protected = candidates.pop(0)
            used_tokens = self.message_cost(protected)

        reserved_slots = 1 if protected is not None else 0
        kept: list[ConversationMessage] = []
        for message in reversed(candidates):
            cost = self.message_cost(message)
            if used_tokens + cost > config.max_tokens:
                LOGGER.debug("Pruning history at message %s (%s tokens): token budget exceeded", message.id, cost)
                break
            if len(kept) + reserved_slots >= config.max_messages:
                LOGGER.debug("Pruning history at message %s: message limit reached", message.id)
                break
            used_tokens += cost
            kept.append(message)
        kept.reverse()

        if protected is not None:
            return [protected, *kept]
        return kept
