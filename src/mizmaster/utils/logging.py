"""Logging setup for the MizMaster core."""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path
from typing import Iterable

__all__ = ["setup_logging", "get_logger", "get_log_path", "LOG_FILE_NAME"]

LOG_FILE_NAME = "mizmaster.log"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LOG_DIR_ENV = "MIZMASTER_LOG_DIR"
_DEFAULT_LOG_DIR = Path.home() / ".mizmaster" / "logs"
# Transport and event-loop chatter that drowns out turn-chain logs at DEBUG.
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_CONFIGURED = False
_LOG_PATH: Path | None = None


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Route root logging to ``mizmaster.log`` and, optionally, stderr.

    The file rotates at ``max_bytes`` keeping ``backup_count`` old copies.
    Calling again is a no-op that returns the active path unless ``force``
    is set, which lets the host switch to debug logging after settings load.
    """

    global _CONFIGURED, _LOG_PATH
    if _CONFIGURED and not force and _LOG_PATH is not None:
        return _LOG_PATH

    log_path = _resolve_log_dir(log_dir) / LOG_FILE_NAME
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handlers: list[logging.Handler] = [file_handler]
    if console:
        handlers.append(logging.StreamHandler())
    _apply_format(handlers, level)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    _quiet(_NOISY_LOGGERS, level)

    _CONFIGURED = True
    _LOG_PATH = log_path
    return log_path


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_log_path() -> Path | None:
    """Return the active log file, or ``None`` before :func:`setup_logging` ran."""

    return _LOG_PATH


def _apply_format(handlers: Iterable[logging.Handler], level: int) -> None:
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    return Path(log_dir or os.environ.get(_LOG_DIR_ENV) or _DEFAULT_LOG_DIR).expanduser()


def _quiet(names: Iterable[str], root_level: int) -> None:
    quiet_level = max(logging.WARNING, root_level)
    for name in names:
        logging.getLogger(name).setLevel(quiet_level)
