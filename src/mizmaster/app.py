"""Wiring for embedding the MizMaster core in a host application."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from .ai.client import AIClient, ClientSettings
from .ai.orchestration.chat_engine import ActivityCallback, ChatEngine, UpdateCallback
from .ai.orchestration.tool_dispatcher import ToolDispatcher
from .ai.services.context_pruner import ContextPruner, PrunerConfig
from .ai.services.doc_resolver import DocumentationResolver
from .ai.services.repo_index_cache import RepoIndexCache
from .ai.tools.hard_deck import HardDeck
from .chat.session_store import SessionStore
from .services.settings import Settings, SettingsStore, redact_secret
from .utils import logging as logging_utils

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ChatRuntime:
    """Container returned by :func:`build_runtime`."""

    engine: ChatEngine
    client: AIClient
    resolver: DocumentationResolver

    async def aclose(self) -> None:
        """Release the model and GitHub HTTP clients."""

        for closer in (self.client.aclose, self.resolver.aclose):
            try:
                await closer()
            except Exception as exc:  # pragma: no cover - defensive logging
                _LOGGER.debug("Runtime shutdown step failed: %s", exc)


def configure_logging(debug: bool = False, *, force: bool = False) -> Path:
    """Configure structured logging for the application."""

    level = logging.DEBUG if debug else logging.INFO
    log_path = logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))
    return log_path


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except Exception as exc:  # pragma: no cover - defensive path
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def build_runtime(
    settings: Settings,
    *,
    store: SessionStore | None = None,
    client: AIClient | None = None,
    resolver: DocumentationResolver | None = None,
    on_update: UpdateCallback | None = None,
    on_activity: ActivityCallback | None = None,
) -> ChatRuntime:
    """Assemble settings -> transport -> resolver -> engine."""

    if settings.debug_logging:
        configure_logging(True, force=True)

    librarian = settings.librarian
    cache_dir = Path(librarian.cache_dir).expanduser() if librarian.cache_dir else None
    active_resolver = resolver or DocumentationResolver(
        RepoIndexCache(ttl_seconds=librarian.cache_ttl_seconds, cache_dir=cache_dir),
        settings=librarian,
    )
    active_client = client or AIClient(ClientSettings.from_settings(settings))
    dispatcher = ToolDispatcher(active_resolver, HardDeck(), github_token=settings.github_token or None)
    engine = ChatEngine(
        active_client,
        dispatcher,
        settings=settings,
        pruner=ContextPruner(PrunerConfig.from_settings(settings.context)),
        store=store,
        on_update=on_update,
        on_activity=on_activity,
    )
    _LOGGER.info(
        "Chat runtime ready (model=%s, base_url=%s, api_key=%s, github_token=%s)",
        settings.model,
        settings.base_url,
        redact_secret(settings.api_key),
        redact_secret(settings.github_token),
    )
    return ChatRuntime(engine=engine, client=active_client, resolver=active_resolver)


__all__ = ["ChatRuntime", "build_runtime", "configure_logging", "load_settings"]
