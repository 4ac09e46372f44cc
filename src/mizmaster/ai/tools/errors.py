"""Standardized error types for model-facing tools.

Tool errors never escape the dispatcher: they are rendered with
:meth:`ToolError.as_tool_text` and returned to the model as the tool response.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


class ErrorCode:
    """Constants for error codes used in tool responses."""

    UNKNOWN_TOOL = "unknown_tool"
    INVALID_PARAMETER = "invalid_parameter"
    MISSING_PARAMETER = "missing_parameter"
    CATEGORY_NOT_FOUND = "category_not_found"
    INTERNAL_ERROR = "internal_error"


@dataclass
class ToolError(Exception):
    """Base exception class for all tool errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
        suggestion: Actionable guidance for recovery.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    severity: ClassVar[str] = "error"

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"error": self.error_code, "message": self.message}
        if self.details:
            result["details"] = dict(self.details)
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result

    def as_tool_text(self) -> str:
        text = f"ERROR: {self.message}"
        if self.suggestion:
            text = f"{text} {self.suggestion}"
        return text

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


@dataclass
class UnknownToolError(ToolError):
    error_code: str = field(default=ErrorCode.UNKNOWN_TOOL)
    message: str = field(default="Unknown tool")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Available tools: get_framework_docs, get_sse_docs.")

    tool_name: str = ""

    def __post_init__(self) -> None:
        if self.tool_name:
            self.message = f"Unknown tool '{self.tool_name}'."
            self.details.setdefault("tool_name", self.tool_name)
        super().__post_init__()


@dataclass
class InvalidToolArgumentsError(ToolError):
    error_code: str = field(default=ErrorCode.INVALID_PARAMETER)
    message: str = field(default="Invalid tool arguments")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Check the tool declaration and call it again with valid arguments.")

    tool_name: str = ""
    reason: str = ""

    def __post_init__(self) -> None:
        if self.tool_name:
            self.message = f"Invalid arguments for {self.tool_name}: {self.reason or 'shape mismatch'}."
            self.details.setdefault("tool_name", self.tool_name)
        super().__post_init__()


@dataclass
class CategoryNotFoundError(ToolError):
    error_code: str = field(default=ErrorCode.CATEGORY_NOT_FOUND)
    message: str = field(default="Category not found in Hard Deck.")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    available: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.available:
            self.suggestion = f"Available: {', '.join(self.available)}."
            self.details.setdefault("available", list(self.available))
        super().__post_init__()


__all__ = [
    "ErrorCode",
    "ToolError",
    "UnknownToolError",
    "InvalidToolArgumentsError",
    "CategoryNotFoundError",
]
