"""Portable world and chat-history import/export.

Ids are not portable across sessions, so both formats key things by name:
characters reference their location and their known characters by name,
and chat histories carry a locationId → name map used to re-key on import.

World format:
  {"locations": [{"name", "description", "exposition": [...]}],
   "characters": [{"name", "description", "pfp_base64"?, "location",
                   "quotes": [...], "notes": [...], "knownCharacters": [...]}]}

Chat history format:
  {"version": 1, "exportedAt": ISO timestamp,
   "messages": {locationId: [ChatMessage, ...]},
   "locationNames": {locationId: name}}

Import skips bad entries instead of failing the whole import.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from rp_sandbox.models import Character, ChatMessage, Location, generate_id
from rp_sandbox.world import World

logger = logging.getLogger(__name__)

DEFAULT_LOCATION_NAME = "Default Location"
UNKNOWN_LOCATION_NAME = "Unknown Location"


class ChatHistoryExport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    version: Literal[1] = 1
    exported_at: str = Field(alias="exportedAt")
    messages: dict[str, list[ChatMessage]]
    location_names: dict[str, str] = Field(alias="locationNames")


# ---------------------------------------------------------------------------
# World
# ---------------------------------------------------------------------------

def export_world(world: World) -> dict[str, Any]:
    names = {c.id: c.name for c in world.characters}
    fallback = world.locations[0].name if world.locations else UNKNOWN_LOCATION_NAME
    characters = []
    for char in world.characters:
        loc = world.get_location(char.group_chat_id)
        entry: dict[str, Any] = {
            "name": char.name,
            "description": char.description,
            "location": loc.name if loc else fallback,
            "quotes": list(char.quotes),
            "notes": list(char.notes),
            "knownCharacters": [names[kid] for kid in char.known_character_ids if kid in names],
        }
        if char.pfp_base64:
            entry["pfp_base64"] = char.pfp_base64
        characters.append(entry)
    return {
        "locations": [
            {"name": loc.name, "description": loc.description, "exposition": list(loc.exposition)}
            for loc in world.locations
        ],
        "characters": characters,
    }


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str) and v]


def import_world(data: dict[str, Any]) -> World:
    """Build a fresh World from the export format. Ids are regenerated."""
    world = World()
    raw_locations = data.get("locations") or []
    raw_characters = data.get("characters") or []

    for loc in raw_locations:
        if not isinstance(loc, dict) or not loc.get("name") or not loc.get("description"):
            logger.warning("Skipping location without name or description: %r", loc)
            continue
        if world.find_location_by_name(loc["name"]) is not None:
            logger.warning("Skipping duplicate location name %r", loc["name"])
            continue
        world.add_location(Location(
            name=loc["name"],
            description=loc["description"],
            exposition=_string_list(loc.get("exposition")),
        ))

    valid_characters = [
        c for c in raw_characters
        if isinstance(c, dict) and c.get("name") and c.get("description")
    ]
    if len(valid_characters) != len(raw_characters):
        logger.warning(
            "Skipping %d characters without name or description",
            len(raw_characters) - len(valid_characters),
        )

    if not world.locations and valid_characters:
        world.add_location(Location(
            name=DEFAULT_LOCATION_NAME,
            description="A starting place",
            exposition=["A plain, featureless area."],
        ))

    for c in valid_characters:
        loc = world.find_location_by_name(c.get("location") or "")
        if loc is None and world.locations:
            loc = world.locations[0]
        world.add_character(Character(
            name=c["name"],
            description=c["description"],
            pfp_base64=c.get("pfp_base64") or None,
            group_chat_id=loc.id if loc else "",
            notes=_string_list(c.get("notes")),
            quotes=_string_list(c.get("quotes")),
        ))

    # Relationships need every character to exist first
    by_name: dict[str, Character] = {}
    for char in world.characters:
        by_name.setdefault(char.name, char)
    for c in valid_characters:
        char = by_name.get(c["name"])
        known = [by_name[n].id for n in _string_list(c.get("knownCharacters")) if n in by_name]
        world.update_character(char.id, {"known_character_ids": known})

    logger.info(
        "Imported world: %d locations, %d characters",
        len(world.locations), len(world.characters),
    )
    return world


# ---------------------------------------------------------------------------
# Chat history
# ---------------------------------------------------------------------------

def export_chat_history(
    messages: dict[str, list[ChatMessage]], locations: list[Location]
) -> dict[str, Any]:
    filtered: dict[str, list[ChatMessage]] = {}
    for location_id, msgs in messages.items():
        kept = [m for m in msgs if m.type != "loading"]
        if kept:
            filtered[location_id] = kept
    export = ChatHistoryExport(
        exported_at=datetime.now(timezone.utc).isoformat(),
        messages=filtered,
        location_names={loc.id: loc.name for loc in locations},
    )
    return export.model_dump(by_alias=True, exclude_none=True)


def import_chat_history(
    data: dict[str, Any], locations: list[Location]
) -> dict[str, list[ChatMessage]]:
    """Re-key exported histories onto current locations by name, with fresh message ids."""
    export = ChatHistoryExport.model_validate(data)
    name_to_id = {loc.name: loc.id for loc in locations}
    imported: dict[str, list[ChatMessage]] = {}
    for old_id, msgs in export.messages.items():
        name = export.location_names.get(old_id)
        new_id = name_to_id.get(name) if name else None
        if new_id is None:
            logger.warning("No current location matches exported history %r (%s)", name, old_id)
            continue
        imported[new_id] = [
            m.model_copy(update={"id": generate_id()}) for m in msgs if m.type != "loading"
        ]
    return imported
