"""Tests for tool declarations, argument coercion and the hard deck."""

from __future__ import annotations

import json

import pytest

from mizmaster.ai.tools.arguments import FrameworkDocsArgs, SseDocsArgs, parse_tool_arguments
from mizmaster.ai.tools.declarations import FRAMEWORK_DOCS_TOOL, SSE_DOCS_TOOL, tool_specs
from mizmaster.ai.tools.errors import CategoryNotFoundError, ErrorCode, InvalidToolArgumentsError, UnknownToolError
from mizmaster.ai.tools.hard_deck import SSE_CATEGORY_CHOICES, HardDeck


def test_tool_specs_expose_both_tools() -> None:
    specs = tool_specs()
    names = [spec["function"]["name"] for spec in specs]

    assert names == [FRAMEWORK_DOCS_TOOL, SSE_DOCS_TOOL]
    sse_params = specs[1]["function"]["parameters"]
    assert sse_params["properties"]["category"]["enum"] == list(SSE_CATEGORY_CHOICES)
    assert "All" in SSE_CATEGORY_CHOICES


def test_framework_arguments_are_normalized() -> None:
    args = parse_tool_arguments(
        FRAMEWORK_DOCS_TOOL,
        json.dumps({"framework": "moose", "module_name": " SPAWN ", "branch": "stable"}),
    )

    assert args == FrameworkDocsArgs(framework="MOOSE", module_name="SPAWN", branch="STABLE")
    assert args.fingerprint() == "MOOSE:SPAWN:STABLE"


def test_framework_branch_is_optional_and_nulls_are_dropped() -> None:
    args = parse_tool_arguments(FRAMEWORK_DOCS_TOOL, {"framework": "DML", "module_name": "cfxZones", "branch": None})

    assert isinstance(args, FrameworkDocsArgs)
    assert args.branch is None
    assert args.fingerprint() == "DML:CFXZONES:"


def test_fingerprints_ignore_case_differences() -> None:
    first = parse_tool_arguments(FRAMEWORK_DOCS_TOOL, {"framework": "MOOSE", "module_name": "spawn"})
    second = parse_tool_arguments(FRAMEWORK_DOCS_TOOL, {"framework": "moose", "module_name": "SPAWN"})

    assert first.fingerprint() == second.fingerprint()


def test_sse_arguments() -> None:
    args = parse_tool_arguments(SSE_DOCS_TOOL, '{"category": "Group"}')

    assert args == SseDocsArgs(category="Group")
    assert args.fingerprint() == "SSE:GROUP"


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        "[1, 2]",
        {"framework": "CTLD", "module_name": "x"},
        {"framework": "MOOSE"},
        {"framework": "MOOSE", "module_name": ""},
        {"framework": "MOOSE", "module_name": 7},
    ],
)
def test_invalid_framework_arguments(raw: object) -> None:
    with pytest.raises(InvalidToolArgumentsError) as excinfo:
        parse_tool_arguments(FRAMEWORK_DOCS_TOOL, raw)  # type: ignore[arg-type]

    assert excinfo.value.error_code == ErrorCode.INVALID_PARAMETER
    assert excinfo.value.as_tool_text().startswith(f"ERROR: Invalid arguments for {FRAMEWORK_DOCS_TOOL}")


def test_missing_sse_category() -> None:
    with pytest.raises(InvalidToolArgumentsError):
        parse_tool_arguments(SSE_DOCS_TOOL, {})


def test_unknown_tool() -> None:
    with pytest.raises(UnknownToolError) as excinfo:
        parse_tool_arguments("delete_mission", {})

    assert "delete_mission" in excinfo.value.as_tool_text()


def test_hard_deck_lookup_category() -> None:
    payload = json.loads(HardDeck().lookup("Group"))

    names = [item["name"] for item in payload]
    assert "Group.getByName" in names
    assert payload[0]["signatures"]


def test_hard_deck_lookup_is_case_insensitive_fallback() -> None:
    assert json.loads(HardDeck().lookup("TIMER"))[0]["name"].startswith("timer.")


def test_hard_deck_all_returns_whole_table() -> None:
    deck = HardDeck()

    payload = json.loads(deck.lookup("All"))

    assert set(payload) == set(deck.categories)
    assert "coalition" in payload


def test_hard_deck_unknown_category_lists_valid_ones() -> None:
    with pytest.raises(CategoryNotFoundError) as excinfo:
        HardDeck().lookup("Airbase")

    text = excinfo.value.as_tool_text()
    assert text.startswith("ERROR: Category 'Airbase' not found in Hard Deck.")
    assert "Group, Unit, timer, trigger, coalition" in text
