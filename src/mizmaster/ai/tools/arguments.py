"""Coercion of untrusted tool-call arguments into typed requests."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Literal, Mapping, Union

from jsonschema import Draft202012Validator

from .declarations import FRAMEWORK_DOCS_PARAMETERS, FRAMEWORK_DOCS_TOOL, SSE_DOCS_TOOL
from .errors import InvalidToolArgumentsError, UnknownToolError

__all__ = [
    "FrameworkDocsArgs",
    "SseDocsArgs",
    "ToolArguments",
    "parse_tool_arguments",
]

# Category membership is checked by the hard deck so the model gets the list
# of valid categories back instead of a schema error.
_SSE_VALIDATION_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "properties": {"category": {"type": "string", "minLength": 1}},
    "required": ["category"],
}

_VALIDATORS = {
    FRAMEWORK_DOCS_TOOL: Draft202012Validator(dict(FRAMEWORK_DOCS_PARAMETERS)),
    SSE_DOCS_TOOL: Draft202012Validator(dict(_SSE_VALIDATION_SCHEMA)),
}


@dataclass(slots=True, frozen=True)
class FrameworkDocsArgs:
    framework: str
    module_name: str
    branch: str | None = None
    kind: Literal["framework_docs"] = "framework_docs"

    def fingerprint(self) -> str:
        return f"{self.framework}:{self.module_name}:{self.branch or ''}".upper()


@dataclass(slots=True, frozen=True)
class SseDocsArgs:
    category: str
    kind: Literal["sse_docs"] = "sse_docs"

    def fingerprint(self) -> str:
        return f"SSE:{self.category}".upper()


ToolArguments = Union[FrameworkDocsArgs, SseDocsArgs]


def _decode(tool_name: str, raw: Mapping[str, Any] | str | None) -> dict[str, Any]:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise InvalidToolArgumentsError(tool_name=tool_name, reason=f"arguments are not valid JSON ({exc.msg})") from exc
    if not isinstance(raw, Mapping):
        raise InvalidToolArgumentsError(tool_name=tool_name, reason="arguments must be a JSON object")
    return {str(key): value for key, value in raw.items() if value is not None}


def _validate(tool_name: str, payload: Mapping[str, Any]) -> None:
    error = next(iter(_VALIDATORS[tool_name].iter_errors(payload)), None)
    if error is not None:
        location = ".".join(str(part) for part in error.absolute_path)
        reason = f"{location}: {error.message}" if location else error.message
        raise InvalidToolArgumentsError(tool_name=tool_name, reason=reason)


def parse_tool_arguments(tool_name: str, raw: Mapping[str, Any] | str | None) -> ToolArguments:
    """Validate ``raw`` for ``tool_name`` and return the matching argument type.

    Raises:
        UnknownToolError: ``tool_name`` is not a librarian tool.
        InvalidToolArgumentsError: the payload does not fit the declaration.
    """

    if tool_name not in _VALIDATORS:
        raise UnknownToolError(tool_name=tool_name or "<unnamed>")
    payload = _decode(tool_name, raw)

    if tool_name == FRAMEWORK_DOCS_TOOL:
        for key in ("framework", "branch"):
            if isinstance(payload.get(key), str):
                payload[key] = payload[key].strip().upper()
        if isinstance(payload.get("module_name"), str):
            payload["module_name"] = payload["module_name"].strip()
        _validate(tool_name, payload)
        return FrameworkDocsArgs(
            framework=payload["framework"],
            module_name=payload["module_name"],
            branch=payload.get("branch"),
        )

    if isinstance(payload.get("category"), str):
        payload["category"] = payload["category"].strip()
    _validate(tool_name, payload)
    return SseDocsArgs(category=payload["category"])
