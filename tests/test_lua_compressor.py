"""Tests for the Lua signature compressor."""

from __future__ import annotations

from mizmaster.ai.services.lua_compressor import (
    BODY_ELIDED_MARKER,
    compress,
    compress_source,
    split_banner,
)

_SPAWN_SOURCE = """--- **Core** - Spawn groups dynamically.
-- @module Core.Spawn
------------------------------------------------------------
SPAWN = {
  ClassName = "SPAWN",
}

--- Creates the main object to spawn a group.
-- @param #SPAWN self
function SPAWN:New( SpawnTemplatePrefix )
  local self = BASE:Inherit( self, BASE:New() )
  self:F( { SpawnTemplatePrefix } )
  return self
end

function SPAWN:GetPrefix() return self.SpawnTemplatePrefix end

local SPAWN_MAX = 100
"""


def test_multiline_function_collapses_to_signature_marker_and_end() -> None:
    result = compress_source(_SPAWN_SOURCE)
    lines = result.compressed_text.split("\n")

    index = lines.index(f"function SPAWN:New( SpawnTemplatePrefix ) {BODY_ELIDED_MARKER}")
    assert lines[index + 1] == "end"
    # Short locals from the body still pass the assignment filter and land after the synthetic end.
    assert lines[index + 2] == "  local self = BASE:Inherit( self, BASE:New() )"
    assert "self:F( { SpawnTemplatePrefix } )" not in result.compressed_text
    assert "  return self" not in lines


def test_single_line_function_is_kept_verbatim() -> None:
    result = compress_source(_SPAWN_SOURCE)

    assert "function SPAWN:GetPrefix() return self.SpawnTemplatePrefix end" in result.compressed_text.split("\n")


def test_separator_comment_removed_but_short_dash_comment_kept() -> None:
    source = "------------\n---\n-- keep me\nx = 1"
    lines = compress_source(source).compressed_text.split("\n")

    assert "------------" not in lines
    assert "---" in lines
    assert "-- keep me" in lines


def test_decorated_separator_is_removed() -> None:
    result = compress_source("-- ==========\n-- header")

    assert result.compressed_text == "-- header"


def test_documentation_and_short_assignments_survive() -> None:
    lines = compress_source(_SPAWN_SOURCE).compressed_text.split("\n")

    assert "--- Creates the main object to spawn a group." in lines
    assert "-- @param #SPAWN self" in lines
    assert "local SPAWN_MAX = 100" in lines


def test_long_assignment_is_dropped() -> None:
    long_value = "x" * 120
    result = compress_source(f'local big = "{long_value}"\nMAX = 5')

    assert result.compressed_text == "MAX = 5"


def test_ratio_matches_lengths() -> None:
    result = compress_source(_SPAWN_SOURCE)

    expected = round((1 - result.compressed_length / result.original_length) * 100, 1)
    assert result.original_length == len(_SPAWN_SOURCE)
    assert result.compressed_length == len(result.compressed_text)
    assert result.ratio == expected


def test_rendered_banner_reports_sizes_and_body_length() -> None:
    rendered = compress(_SPAWN_SOURCE)
    banner, body = split_banner(rendered)
    result = compress_source(_SPAWN_SOURCE)

    assert banner.startswith("--- [SEMANTIC COMPRESSION ACTIVE]")
    assert f"--- Original Size: {len(_SPAWN_SOURCE)} chars" in banner
    assert f"--- Compression Ratio: {result.ratio:.1f}%" in banner
    assert len(body) == result.compressed_length


def test_empty_input_renders_nothing() -> None:
    assert compress("") == ""
    assert compress(None) == ""
    assert compress_source("").ratio == 0.0
