"""Module suggestions for the chat input box."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal, Sequence

MAX_SUGGESTIONS = 3
_MIN_WORD_LENGTH = 2
_WORD_SPLIT_RE = re.compile(r"\s+")


@dataclass(slots=True, frozen=True)
class ModuleSuggestion:
    label: str
    description: str
    framework: Literal["MOOSE", "DML", "DCS"]


KNOWLEDGE_BASE: tuple[ModuleSuggestion, ...] = (
    # MOOSE core
    ModuleSuggestion("SPAWN", "Dynamic Spawning Engine", "MOOSE"),
    ModuleSuggestion("ZONE", "Zone Management & Polymorphism", "MOOSE"),
    ModuleSuggestion("GROUP", "Group Wrapper & Manipulation", "MOOSE"),
    ModuleSuggestion("UNIT", "Unit Wrapper & Manipulation", "MOOSE"),
    ModuleSuggestion("COORDINATE", "3D Space & Navigation", "MOOSE"),
    ModuleSuggestion("SCHEDULER", "Time-based Execution", "MOOSE"),
    # MOOSE functional
    ModuleSuggestion("AIRBOSS", "Carrier Air Wing Operations", "MOOSE"),
    ModuleSuggestion("RAT", "Random Air Traffic", "MOOSE"),
    ModuleSuggestion("WAREHOUSE", "Logistics & Supply Chain", "MOOSE"),
    ModuleSuggestion("RESCUEHELO", "CSAR Operations", "MOOSE"),
    ModuleSuggestion("MISSILETRAINER", "Evasion Training", "MOOSE"),
    ModuleSuggestion("DESIGNATE", "Laser/Smoke Designation", "MOOSE"),
    # DML
    ModuleSuggestion("cfxZones", "Zone Logic & Triggers", "DML"),
    ModuleSuggestion("cfxMX", "Mission Data Access", "DML"),
    ModuleSuggestion("pulse", "Heartbeat & Timing", "DML"),
    # DCS engine
    ModuleSuggestion("trigger.action", "Mission Editor Actions", "DCS"),
    ModuleSuggestion("env.mission", "Mission Environment Data", "DCS"),
    ModuleSuggestion("timer.scheduleFunction", "Low-level Scheduling", "DCS"),
)


def suggest_modules(
    text: str,
    *,
    knowledge_base: Sequence[ModuleSuggestion] = KNOWLEDGE_BASE,
    limit: int = MAX_SUGGESTIONS,
) -> list[ModuleSuggestion]:
    """Return known modules whose label contains the word being typed.

    Only the last whitespace-separated word counts, and it must have at least
    two characters; a trailing space therefore clears the suggestions.
    """

    if not text or len(text.strip()) < _MIN_WORD_LENGTH:
        return []
    last_word = _WORD_SPLIT_RE.split(text)[-1]
    if len(last_word) < _MIN_WORD_LENGTH:
        return []
    needle = last_word.lower()
    return [item for item in knowledge_base if needle in item.label.lower()][: max(0, limit)]


__all__ = ["KNOWLEDGE_BASE", "MAX_SUGGESTIONS", "ModuleSuggestion", "suggest_modules"]
