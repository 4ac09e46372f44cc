"""Signature-only rendering of large Lua sources.

The compressor is a single-pass line filter rather than a parser: it keeps
documentation comments, upper-case class declarations, function signatures and
short assignments, and drops implementation bodies. Large framework files
typically shrink by 80% or more while keeping every public signature.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

__all__ = [
    "CompressionResult",
    "compress_source",
    "compress",
    "split_banner",
    "BODY_ELIDED_MARKER",
]

LOGGER = logging.getLogger(__name__)

BODY_ELIDED_MARKER = "-- [Implementation Hidden by Semantic Architect]"
_SHORT_ASSIGNMENT_LIMIT = 100
_BANNER_RULE = "-" * 80

_SEPARATOR_RE = re.compile(r"^(?:-{10,}|--\s*([^\w\s-])\1{9,})$")
_CLASS_DECLARATION_RE = re.compile(r"^[A-Z_0-9]+\s*=\s*[A-Z_0-9.:]+")
_CONSTANT_ASSIGNMENT_RE = re.compile(r"^[A-Z_]+\s*=")


@dataclass(slots=True, frozen=True)
class CompressionResult:
    """Outcome of a compression pass; ``ratio`` is always derived from the text."""

    compressed_text: str
    original_length: int

    @property
    def compressed_length(self) -> int:
        return len(self.compressed_text)

    @property
    def ratio(self) -> float:
        """Percentage reduction rounded to one decimal place."""

        if self.original_length <= 0:
            return 0.0
        return round((1 - self.compressed_length / self.original_length) * 100, 1)

    def banner(self) -> str:
        return "\n".join(
            (
                "--- [SEMANTIC COMPRESSION ACTIVE]",
                f"--- Original Size: {self.original_length} chars",
                f"--- Compressed Size: {self.compressed_length} chars",
                f"--- Compression Ratio: {self.ratio:.1f}%",
                "--- NOTE: Implementation logic has been stripped. Function signatures are accurate.",
                _BANNER_RULE,
            )
        )

    def render(self) -> str:
        if self.original_length == 0:
            return ""
        return f"{self.banner()}\n\n{self.compressed_text}"


def _filter_lines(raw: str) -> list[str]:
    output: list[str] = []
    for line in raw.split("\n"):
        trimmed = line.strip()

        if trimmed.startswith("--"):
            if _SEPARATOR_RE.match(trimmed):
                continue
            output.append(line)
            continue

        if _CLASS_DECLARATION_RE.match(trimmed):
            output.append(line)
            continue

        if trimmed.startswith("function"):
            if trimmed.endswith("end"):
                output.append(line)
            else:
                output.append(f"{line} {BODY_ELIDED_MARKER}")
                output.append("end")
            continue

        if trimmed.startswith("local") or _CONSTANT_ASSIGNMENT_RE.match(trimmed):
            if len(trimmed) < _SHORT_ASSIGNMENT_LIMIT:
                output.append(line)
            continue
    return output


def compress_source(raw: str | None) -> CompressionResult:
    """Filter ``raw`` down to documentation and declarations."""

    if not raw:
        return CompressionResult(compressed_text="", original_length=0)
    compressed = "\n".join(_filter_lines(raw))
    result = CompressionResult(compressed_text=compressed, original_length=len(raw))
    LOGGER.debug(
        "Compressed Lua source %s -> %s chars (%.1f%%)",
        result.original_length,
        result.compressed_length,
        result.ratio,
    )
    return result


def compress(raw: str | None) -> str:
    """Return the banner-prefixed compressed rendering of ``raw``."""

    return compress_source(raw).render()


def split_banner(rendered: str) -> tuple[str, str]:
    """Split a rendered compression into ``(banner, body)``."""

    marker = f"{_BANNER_RULE}\n\n"
    head, sep, body = rendered.partition(marker)
    if not sep:
        return "", rendered
    return head + _BANNER_RULE, body
