"""Librarian tools exposed to the model."""

from .arguments import FrameworkDocsArgs, SseDocsArgs, ToolArguments, parse_tool_arguments
from .declarations import FRAMEWORK_DOCS_TOOL, SSE_DOCS_TOOL, tool_specs
from .errors import ErrorCode, ToolError
from .hard_deck import HardDeck, SSE_DEFINITIONS

__all__ = [
    "FRAMEWORK_DOCS_TOOL",
    "SSE_DOCS_TOOL",
    "FrameworkDocsArgs",
    "SseDocsArgs",
    "ToolArguments",
    "parse_tool_arguments",
    "tool_specs",
    "ErrorCode",
    "ToolError",
    "HardDeck",
    "SSE_DEFINITIONS",
]
