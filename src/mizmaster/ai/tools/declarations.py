"""Tool declarations advertised to the model."""

from __future__ import annotations

from typing import Any, Mapping, cast

from openai.types.chat import ChatCompletionToolParam

from .hard_deck import SSE_CATEGORY_CHOICES

FRAMEWORK_DOCS_TOOL = "get_framework_docs"
SSE_DOCS_TOOL = "get_sse_docs"

FRAMEWORK_CHOICES: tuple[str, ...] = ("MOOSE", "DML")
BRANCH_CHOICES: tuple[str, ...] = ("STABLE", "DEVELOP")

FRAMEWORK_DOCS_PARAMETERS: Mapping[str, Any] = {
    "type": "object",
    "properties": {
        "framework": {
            "type": "string",
            "description": "Framework name ('MOOSE' or 'DML').",
            "enum": list(FRAMEWORK_CHOICES),
        },
        "module_name": {
            "type": "string",
            "minLength": 1,
            "description": (
                "Name of the module/class to search for (e.g., 'Airboss', 'cloneZones'). "
                "The system performs a fuzzy search on the file tree."
            ),
        },
        "branch": {
            "type": "string",
            "description": "Required for MOOSE. 'STABLE' (master) or 'DEVELOP'. Default is DEVELOP.",
            "enum": list(BRANCH_CHOICES),
        },
    },
    "required": ["framework", "module_name"],
}

SSE_DOCS_PARAMETERS: Mapping[str, Any] = {
    "type": "object",
    "properties": {
        "category": {
            "type": "string",
            "description": "The SSE class category to retrieve.",
            "enum": list(SSE_CATEGORY_CHOICES),
        },
    },
    "required": ["category"],
}

TOOL_DESCRIPTIONS: Mapping[str, str] = {
    FRAMEWORK_DOCS_TOOL: (
        "Fetches RAW LUA SOURCE CODE from the official GitHub repositories (MOOSE or DML). "
        "Use this to analyze function definitions and header comments directly. "
        "Semantic compression is applied to large files."
    ),
    SSE_DOCS_TOOL: (
        "Fetches the Simulator Scripting Engine (SSE) Hard Deck definitions. Use this when the user "
        "needs standard DCS classes like Group, Unit, timer or trigger. Do not rely on training data "
        "for these classes."
    ),
}

TOOL_PARAMETERS: Mapping[str, Mapping[str, Any]] = {
    FRAMEWORK_DOCS_TOOL: FRAMEWORK_DOCS_PARAMETERS,
    SSE_DOCS_TOOL: SSE_DOCS_PARAMETERS,
}


def tool_specs() -> list[ChatCompletionToolParam]:
    """Return the OpenAI function-calling specs for every librarian tool."""

    return [
        cast(
            ChatCompletionToolParam,
            {
                "type": "function",
                "function": {
                    "name": name,
                    "description": TOOL_DESCRIPTIONS[name],
                    "parameters": dict(parameters),
                },
            },
        )
        for name, parameters in TOOL_PARAMETERS.items()
    ]


__all__ = [
    "FRAMEWORK_DOCS_TOOL",
    "SSE_DOCS_TOOL",
    "FRAMEWORK_CHOICES",
    "BRANCH_CHOICES",
    "TOOL_PARAMETERS",
    "tool_specs",
]
