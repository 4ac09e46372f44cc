"""Static table of verified DCS Simulator Scripting Engine signatures.

The hard deck keeps the model from inventing methods on the engine's core
classes. Content is limited to functional signatures (input/output), with
knowledge derived from the community wiki at https://wiki.hoggitworld.com.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Mapping, Sequence

from .errors import CategoryNotFoundError

__all__ = ["SSEDefinition", "SSE_DEFINITIONS", "SSE_CATEGORY_CHOICES", "ALL_CATEGORIES", "HardDeck"]

LOGGER = logging.getLogger(__name__)

ALL_CATEGORIES = "All"


@dataclass(slots=True, frozen=True)
class SSEDefinition:
    name: str
    description: str
    signatures: tuple[str, ...]

    def to_payload(self) -> dict:
        payload = asdict(self)
        payload["signatures"] = list(self.signatures)
        return payload


def _define(name: str, description: str, *signatures: str) -> SSEDefinition:
    return SSEDefinition(name=name, description=description, signatures=tuple(signatures))


SSE_DEFINITIONS: Mapping[str, Sequence[SSEDefinition]] = {
    "Group": (
        _define(
            "Group.getByName",
            "Returns the Group object associated with the provided name string. Returns nil if not found.",
            "Group.getByName(name: string): Group | nil",
        ),
        _define("Group.getUnits", "Returns an array of Unit objects belonging to the group.", "Group:getUnits(): Unit[]"),
        _define("Group.destroy", "Destroys the group and all of its units from the mission.", "Group:destroy(): void"),
        _define(
            "Group.activate",
            "Activates a group that was set to 'Late Activation' in the Mission Editor.",
            "Group:activate(): void",
        ),
        _define("Group.getID", "Returns the unique numeric ID of the group.", "Group:getID(): number"),
        _define("Group.getName", "Returns the string name of the group.", "Group:getName(): string"),
        _define("Group.getSize", "Returns the number of units currently alive in the group.", "Group:getSize(): number"),
        _define(
            "Group.getUnit",
            "Returns the Unit object at the specified index (1-based).",
            "Group:getUnit(index: number): Unit | nil",
        ),
    ),
    "Unit": (
        _define(
            "Unit.getByName",
            "Returns the Unit object associated with the provided name string. Returns nil if not found.",
            "Unit.getByName(name: string): Unit | nil",
        ),
        _define("Unit.isActive", "Returns true if the unit is active (spawned and not destroyed).", "Unit:isActive(): boolean"),
        _define("Unit.getPoint", "Returns the current 3D position (Vec3) of the unit.", "Unit:getPoint(): Vec3"),
        _define("Unit.getGroup", "Returns the parent Group object of the unit.", "Unit:getGroup(): Group"),
        _define("Unit.getLife", "Returns the current health of the unit.", "Unit:getLife(): number"),
        _define("Unit.destroy", "Destroys the unit instance.", "Unit:destroy(): void"),
    ),
    "timer": (
        _define(
            "timer.scheduleFunction",
            "Schedules a function to run at a specific future time. Crucial for loops.",
            "timer.scheduleFunction(functionToCall, functionArg, time: number): number",
        ),
        _define(
            "timer.getTime",
            "Returns the current mission time in seconds relative to mission start.",
            "timer.getTime(): number",
        ),
        _define(
            "timer.getAbsTime",
            "Returns the absolute time in seconds (including day/month offsets).",
            "timer.getAbsTime(): number",
        ),
    ),
    "trigger": (
        _define(
            "trigger.action.outText",
            "Displays a text message on screen to all players.",
            "trigger.action.outText(text: string, delay: number, clearView?: boolean): void",
        ),
        _define("trigger.action.outSound", "Plays a sound file to all players.", "trigger.action.outSound(soundFile: string): void"),
        _define("trigger.misc.getUserFlag", "Returns the value of a user flag.", "trigger.misc.getUserFlag(flagName: string): number"),
        _define(
            "trigger.action.setUserFlag",
            "Sets the value of a user flag.",
            "trigger.action.setUserFlag(flagName: string, value: number | boolean): void",
        ),
    ),
    "coalition": (
        _define(
            "coalition.getGroups",
            "Returns the groups of a coalition, optionally filtered by group category.",
            "coalition.getGroups(coalitionId: number, groupCategory?: number): Group[]",
        ),
        _define(
            "coalition.getPlayers",
            "Returns the units controlled by players in a coalition.",
            "coalition.getPlayers(coalitionId: number): Unit[]",
        ),
        _define(
            "coalition.addGroup",
            "Spawns a new group from a group data table for the given country.",
            "coalition.addGroup(countryId: number, groupCategory: number, groupData: table): Group",
        ),
    ),
}

SSE_CATEGORY_CHOICES: tuple[str, ...] = (*SSE_DEFINITIONS.keys(), ALL_CATEGORIES)


class HardDeck:
    """Lookup over an SSE definition table."""

    def __init__(self, definitions: Mapping[str, Sequence[SSEDefinition]] | None = None) -> None:
        self._definitions = dict(definitions if definitions is not None else SSE_DEFINITIONS)

    @property
    def categories(self) -> tuple[str, ...]:
        return tuple(self._definitions)

    def resolve_category(self, category: str) -> str | None:
        """Return the canonical category name, matching case-insensitively as a fallback."""

        if category in self._definitions:
            return category
        lowered = category.strip().lower()
        for name in self._definitions:
            if name.lower() == lowered:
                return name
        return None

    def lookup(self, category: str) -> str:
        """Return the definitions for ``category`` (or the whole table) as JSON."""

        if category.strip().lower() == ALL_CATEGORIES.lower():
            payload = {name: [item.to_payload() for item in items] for name, items in self._definitions.items()}
            return json.dumps(payload, indent=2)
        canonical = self.resolve_category(category)
        if canonical is None:
            LOGGER.debug("Hard deck category %r not found", category)
            raise CategoryNotFoundError(
                message=f"Category '{category}' not found in Hard Deck.",
                available=self.categories,
            )
        return json.dumps([item.to_payload() for item in self._definitions[canonical]], indent=2)
