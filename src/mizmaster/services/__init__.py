"""Service layer helpers (settings persistence)."""

from .settings import ContextLimitSettings, LibrarianSettings, SecretVault, Settings, SettingsStore

__all__ = [
    "ContextLimitSettings",
    "LibrarianSettings",
    "SecretVault",
    "Settings",
    "SettingsStore",
]
