"""Settings dataclasses and persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

__all__ = [
    "Settings",
    "SettingsStore",
    "SecretVault",
    "ContextLimitSettings",
    "LibrarianSettings",
    "DEFAULT_MODEL_ID",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL_ID = "gemini-3-pro-preview"

_SETTINGS_DIR = Path.home() / ".mizmaster"
_FORMAT_VERSION = 1
_SECRET_PREFIX = "fernet"
# Secret fields are stored encrypted under these column names.
_SECRET_COLUMNS: Mapping[str, str] = {
    "api_key": "api_key_ciphertext",
    "github_token": "github_token_ciphertext",
}
_TRUE_VALUES = frozenset({"1", "true", "yes", "on", "debug"})


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in _TRUE_VALUES


# env var -> (settings field, parser)
_ENV_OVERRIDES: Mapping[str, tuple[str, Callable[[str], Any]]] = {
    "MIZMASTER_API_KEY": ("api_key", str),
    "MIZMASTER_BASE_URL": ("base_url", str),
    "MIZMASTER_MODEL": ("model", str),
    "MIZMASTER_GITHUB_TOKEN": ("github_token", str),
    "MIZMASTER_DEBUG_LOGGING": ("debug_logging", _parse_bool),
    "MIZMASTER_DESANITIZED": ("desanitized", _parse_bool),
    "MIZMASTER_REQUEST_TIMEOUT": ("request_timeout", float),
    "MIZMASTER_TEMPERATURE": ("temperature", float),
    "MIZMASTER_MAX_TURNS": ("max_turns", int),
}


@dataclass(slots=True)
class ContextLimitSettings:
    """Budget used when replaying history into a fresh model session."""

    max_tokens: int = 30_000
    max_messages: int = 20
    protect_first: bool = True
    message_overhead_tokens: int = 5


@dataclass(slots=True)
class LibrarianSettings:
    """Remote documentation lookup configuration."""

    api_base_url: str = "https://api.github.com"
    raw_base_url: str = "https://raw.githubusercontent.com"
    cache_ttl_seconds: float = 24 * 60 * 60
    compression_threshold: int = 10_000
    cache_dir: str | None = None
    request_timeout: float = 20.0


@dataclass(slots=True)
class Settings:
    """User-configurable settings persisted between sessions."""

    base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    api_key: str = ""
    model: str = DEFAULT_MODEL_ID
    temperature: float = 0.1
    desanitized: bool = False
    github_token: str = ""
    organization: str | None = None
    request_timeout: float = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    max_turns: int = 5
    connection_timeout: float = 30.0
    session_refresh_drift: int = 5
    debug_logging: bool = False
    default_headers: dict[str, str] = field(default_factory=dict)
    context: ContextLimitSettings = field(default_factory=ContextLimitSettings)
    librarian: LibrarianSettings = field(default_factory=LibrarianSettings)


# -----------------------------------------------------------------------------
# Secrets
# -----------------------------------------------------------------------------


class SecretVault:
    """Fernet encryption for the API key and GitHub token.

    The key is generated on first use and kept next to the settings file with
    owner-only permissions. Stored tokens carry a ``fernet:`` prefix so a
    foreign or hand-edited value can be told apart from a corrupt one.
    """

    def __init__(self, *, key_path: Path | None = None) -> None:
        self._key_path = key_path or (_SETTINGS_DIR / "settings.key")
        self._fernet: Fernet | None = None

    @property
    def key_path(self) -> Path:
        return self._key_path

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        token = self._cipher().encrypt(secret.encode("utf-8")).decode("ascii")
        return f"{_SECRET_PREFIX}:{token}"

    def decrypt(self, token: str | None) -> str:
        """Return the plaintext for ``token``.

        Raises:
            ValueError: the token has the right prefix but cannot be decrypted
                with the local key.
        """

        if not token:
            return ""
        prefix, _, payload = token.partition(":")
        if prefix != _SECRET_PREFIX or not payload:
            LOGGER.warning("Ignoring stored secret with unknown prefix %r", prefix)
            return ""
        try:
            return self._cipher().decrypt(payload.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("Stored secret does not match the local key") from exc

    def _cipher(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._read_or_create_key())
        return self._fernet

    def _read_or_create_key(self) -> bytes:
        path = self._key_path
        if path.exists():
            return path.read_bytes().strip()
        path.parent.mkdir(parents=True, exist_ok=True)
        key = Fernet.generate_key()
        staging = path.with_suffix(".tmp")
        staging.write_bytes(key)
        if os.name != "nt":  # pragma: no cover - depends on OS
            os.chmod(staging, 0o600)
        staging.replace(path)
        LOGGER.info("Created settings key at %s", path)
        return key


# -----------------------------------------------------------------------------
# Store
# -----------------------------------------------------------------------------


class SettingsStore:
    """Reads and writes :class:`Settings` as JSON with encrypted secrets.

    Precedence on load, lowest first: defaults, the file, ``overrides`` passed
    by the host, then ``MIZMASTER_*`` environment variables.
    """

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or (_SETTINGS_DIR / "settings.json")
        self._vault = vault or SecretVault(key_path=self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        settings = self._from_payload(self._read_payload())
        if overrides:
            settings = _merge(settings, overrides, source="runtime")
        return _merge(settings, _environment_overrides(), source="environment")

    def save(self, settings: Settings) -> Path:
        """Write ``settings`` atomically and return the file path."""

        payload = asdict(settings)
        for name, column in _SECRET_COLUMNS.items():
            secret = payload.pop(name, "")
            if secret:
                payload[column] = self._vault.encrypt(secret)
        payload["version"] = _FORMAT_VERSION
        payload["secret_backend"] = _SECRET_PREFIX

        self._path.parent.mkdir(parents=True, exist_ok=True)
        staging = self._path.with_suffix(".tmp")
        staging.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        staging.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _from_payload(self, payload: Dict[str, Any]) -> Settings:
        if not payload:
            return Settings()
        secrets = {name: self._read_secret(payload.get(column), name) for name, column in _SECRET_COLUMNS.items()}
        data = {key: value for key, value in payload.items() if key in _plain_fields()}
        for name, cls in (("context", ContextLimitSettings), ("librarian", LibrarianSettings)):
            if isinstance(data.get(name), Mapping):
                data[name] = _build_nested(cls, data[name])
            else:
                data.pop(name, None)
        try:
            settings = Settings(**data)
        except TypeError as exc:
            LOGGER.warning("Settings file %s has unexpected data: %s", self._path, exc)
            settings = Settings()
        return replace(settings, **{name: value for name, value in secrets.items() if value})

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        return payload if isinstance(payload, dict) else {}

    def _read_secret(self, token: Any, name: str) -> str:
        if not isinstance(token, str) or not token:
            return ""
        try:
            return self._vault.decrypt(token)
        except ValueError as exc:
            LOGGER.warning("Dropping unreadable %s: %s", name, exc)
            return ""


def _plain_fields() -> set[str]:
    return {item.name for item in fields(Settings)} - set(_SECRET_COLUMNS)


def _build_nested(cls: type, payload: Mapping[str, Any]) -> Any:
    known = {item.name for item in fields(cls)}
    try:
        return cls(**{key: value for key, value in payload.items() if key in known})
    except TypeError:
        LOGGER.warning("Ignoring malformed %s block", cls.__name__)
        return cls()


def _merge(settings: Settings, overrides: Mapping[str, Any], *, source: str) -> Settings:
    known = {item.name for item in fields(Settings)}
    accepted = {key: value for key, value in overrides.items() if key in known and value is not None}
    if not accepted:
        return settings
    LOGGER.debug("Applying %s settings overrides: %s", source, sorted(accepted))
    return replace(settings, **accepted)


def _environment_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for env_name, (field_name, parse) in _ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is None:
            continue
        try:
            overrides[field_name] = parse(raw)
        except ValueError:
            LOGGER.warning("Ignoring %s=%r: expected %s", env_name, raw, getattr(parse, "__name__", "value"))
    return overrides


def redact_secret(value: str) -> str:
    """Mask all but the first and last two characters of ``value``."""

    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"
