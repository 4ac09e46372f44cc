"""Tests covering the application bootstrap helpers."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from mizmaster import app
from mizmaster.chat.session_store import InMemorySessionStore
from mizmaster.services.settings import LibrarianSettings, SecretVault, Settings, SettingsStore


class _StubAIClient:
    def __init__(self, settings: Any):
        self.settings = settings
        self.closed = False

    def create_session(self, config: Any) -> Any:  # pragma: no cover - not used here
        raise NotImplementedError

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def _stub_ai_client(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app, "AIClient", _StubAIClient)


def test_build_runtime_wires_settings_through() -> None:
    settings = Settings(
        api_key="test-key",
        model="gemini-2.5-flash",
        github_token="ghp_token",
        max_turns=7,
        librarian=LibrarianSettings(cache_ttl_seconds=120),
    )
    store = InMemorySessionStore()

    runtime = app.build_runtime(settings, store=store)

    assert runtime.client.settings.model == "gemini-2.5-flash"
    assert runtime.client.settings.api_key == "test-key"
    assert runtime.engine.model == "gemini-2.5-flash"
    assert runtime.engine.orchestrator.max_turns == 7
    assert runtime.engine.dispatcher.github_token == "ghp_token"
    assert runtime.resolver.cache.ttl_seconds == 120
    assert runtime.resolver.cache.cache_dir is None

    asyncio.run(runtime.aclose())
    assert runtime.client.closed


def test_build_runtime_blank_github_token_is_none(tmp_path: Path) -> None:
    settings = Settings(api_key="k", librarian=LibrarianSettings(cache_dir=str(tmp_path / "cache")))

    runtime = app.build_runtime(settings)

    assert runtime.engine.dispatcher.github_token is None
    assert runtime.resolver.cache.cache_dir == tmp_path / "cache"


def test_load_settings_uses_store_and_overrides(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "settings.json", vault=SecretVault(key_path=tmp_path / "settings.key"))
    store.save(Settings(model="gemini-2.5-pro"))

    assert app.load_settings(store=store).model == "gemini-2.5-pro"
    assert app.load_settings(store=store, overrides={"model": "override"}).model == "override"


def test_configure_logging_writes_to_log_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("MIZMASTER_LOG_DIR", str(tmp_path))

    log_path = app.configure_logging(debug=True, force=True)

    assert log_path == tmp_path / "mizmaster.log"
    assert log_path.exists()
