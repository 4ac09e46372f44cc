"""Pre-flight checks for Lua snippets shown in the chat transcript.

Two checks are authoritative: a restricted-library scan and a bracket nesting
check run after comments and string literals are stripped. Block keyword
balance is computed as well but only reported, never used to fail a snippet,
because the keyword tokenizer below cannot tell ``end`` inside expressions or
``do`` belonging to loops apart reliably.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

__all__ = ["ValidationResult", "RESTRICTED_LIBRARIES", "validate", "strip_comments_and_strings"]

LOGGER = logging.getLogger(__name__)

RESTRICTED_LIBRARIES: tuple[str, ...] = ("os.", "io.", "lfs.", "require", "package.", "debug.")

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {")": "(", "]": "[", "}": "{"}
_LONG_BRACKET_RE = re.compile(r"\[(=*)\[")
_BLOCK_OPEN_RE = re.compile(r"\b(function|if|for|while|repeat)\b")
_BLOCK_CLOSE_RE = re.compile(r"\b(end|until)\b")
# ``for``/``while`` own their ``do``; only a bare ``do`` opens a block.
_BARE_DO_RE = re.compile(r"(?:^|;)\s*do\b")


@dataclass(slots=True, frozen=True)
class ValidationResult:
    """Outcome of :func:`validate` for one snippet."""

    is_valid: bool
    error_message: str | None = None
    line_number: int | None = None
    token: str | None = None
    block_balance: int = 0

    @property
    def badge(self) -> str:
        return "DCS COMPLIANT" if self.is_valid else (self.error_message or "SYNTAX ERROR")


def _scan_restricted(code: str) -> ValidationResult | None:
    uncommented = strip_comments_and_strings(code, keep_strings=True)
    for index, line in enumerate(uncommented.split("\n"), start=1):
        lowered = line.strip().lower()
        for token in RESTRICTED_LIBRARIES:
            if token in lowered:
                return ValidationResult(
                    is_valid=False,
                    error_message=f"Restricted library '{token}' is blocked by the DCS sandbox",
                    line_number=index,
                    token=token,
                )
    return None


def strip_comments_and_strings(code: str, *, keep_strings: bool = False) -> str:
    """Blank out comments and string literals, keeping newlines for line tracking.

    With ``keep_strings`` only comments are blanked; string literals are still
    skipped so a ``--`` inside a string does not start a comment.
    """

    out: list[str] = []
    i = 0
    length = len(code)

    def _blank(segment: str) -> str:
        return "".join("\n" if ch == "\n" else " " for ch in segment)

    while i < length:
        ch = code[i]
        if code.startswith("--", i):
            long_match = _LONG_BRACKET_RE.match(code, i + 2)
            if long_match:
                closing = "]" + long_match.group(1) + "]"
                end = code.find(closing, long_match.end())
                end = length if end == -1 else end + len(closing)
            else:
                end = code.find("\n", i)
                end = length if end == -1 else end
            out.append(_blank(code[i:end]))
            i = end
            continue
        if ch == "[":
            long_match = _LONG_BRACKET_RE.match(code, i)
            if long_match:
                closing = "]" + long_match.group(1) + "]"
                end = code.find(closing, long_match.end())
                end = length if end == -1 else end + len(closing)
                out.append(code[i:end] if keep_strings else _blank(code[i:end]))
                i = end
                continue
        if ch in ("'", '"'):
            j = i + 1
            while j < length and code[j] != ch and code[j] != "\n":
                j += 2 if code[j] == "\\" else 1
            end = min(j + 1, length)
            out.append(code[i:end] if keep_strings else _blank(code[i:end]))
            i = end
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _check_brackets(stripped: str) -> ValidationResult | None:
    stack: list[tuple[str, int]] = []
    line = 1
    for ch in stripped:
        if ch == "\n":
            line += 1
        elif ch in _OPENERS:
            stack.append((ch, line))
        elif ch in _CLOSERS:
            if not stack:
                return ValidationResult(
                    is_valid=False,
                    error_message=f"Unexpected closing '{ch}'",
                    line_number=line,
                    token=ch,
                )
            opener, _ = stack.pop()
            if _CLOSERS[ch] != opener:
                return ValidationResult(
                    is_valid=False,
                    error_message=f"Mismatched '{ch}' (expected '{_OPENERS[opener]}')",
                    line_number=line,
                    token=ch,
                )
    if stack:
        opener, opened_at = stack[-1]
        return ValidationResult(
            is_valid=False,
            error_message=f"Unclosed '{opener}'",
            line_number=opened_at,
            token=opener,
        )
    return None


def _block_balance(stripped: str) -> int:
    opened = 0
    closed = 0
    for line in stripped.split("\n"):
        opened += len(_BLOCK_OPEN_RE.findall(line)) + len(_BARE_DO_RE.findall(line))
        closed += len(_BLOCK_CLOSE_RE.findall(line))
    return opened - closed


def validate(code: str) -> ValidationResult:
    """Run the restricted-library scan and the bracket check over ``code``."""

    if not code:
        return ValidationResult(is_valid=True)

    restricted = _scan_restricted(code)
    if restricted is not None:
        return restricted

    stripped = strip_comments_and_strings(code)
    structural = _check_brackets(stripped)
    if structural is not None:
        return structural

    balance = _block_balance(stripped)
    if balance:
        LOGGER.debug("Lua block keywords unbalanced by %s (advisory only)", balance)
    return ValidationResult(is_valid=True, block_balance=balance)
