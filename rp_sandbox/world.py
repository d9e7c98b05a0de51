"""In-memory world model: characters, locations and their membership index.

`Character.group_chat_id` and `Location.character_ids` form a symmetric
bidirectional index. Every mutation below updates both sides together, so
for all locations:

    location.character_ids == {c.id for c in characters if c.group_chat_id == location.id}

Lookups by id return None for unknown ids; message `charId` back-references
may dangle after a delete and callers must tolerate that.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

from rp_sandbox.models import Character, Location

logger = logging.getLogger(__name__)

_CHARACTER_FIELDS = {"name", "description", "pfp_base64", "notes", "quotes"}
_LOCATION_FIELDS = {"name", "description", "exposition"}


class World(BaseModel):
    characters: list[Character] = Field(default_factory=list)
    locations: list[Location] = Field(default_factory=list)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_character(self, character_id: str | None) -> Character | None:
        for char in self.characters:
            if char.id == character_id:
                return char
        return None

    def get_location(self, location_id: str | None) -> Location | None:
        for loc in self.locations:
            if loc.id == location_id:
                return loc
        return None

    def find_location_by_name(self, name: str) -> Location | None:
        """Exact, case-sensitive name match."""
        for loc in self.locations:
            if loc.name == name:
                return loc
        return None

    def characters_in(self, location_id: str) -> list[Character]:
        return [c for c in self.characters if c.group_chat_id == location_id]

    # ------------------------------------------------------------------
    # Membership helpers (both sides of the index)
    # ------------------------------------------------------------------

    def _detach(self, char: Character) -> None:
        old = self.get_location(char.group_chat_id)
        if old is not None:
            old.character_ids = [cid for cid in old.character_ids if cid != char.id]
        char.group_chat_id = ""

    def _attach(self, char: Character, location: Location) -> None:
        if char.group_chat_id and char.group_chat_id != location.id:
            self._detach(char)
        char.group_chat_id = location.id
        if char.id not in location.character_ids:
            location.character_ids.append(char.id)

    def _clean_known_ids(self, char_id: str, known_ids: list[str]) -> list[str]:
        """Drop self-loops, duplicates and ids of characters that don't exist."""
        existing = {c.id for c in self.characters}
        cleaned: list[str] = []
        for kid in known_ids:
            if kid != char_id and kid in existing and kid not in cleaned:
                cleaned.append(kid)
        return cleaned

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    def add_location(self, location: Location) -> Location:
        """Add a location. Names must be unique within the world."""
        if self.find_location_by_name(location.name) is not None:
            raise ValueError(f"Location '{location.name}' already exists")
        members = list(location.character_ids)
        location.character_ids = []
        self.locations.append(location)
        for cid in members:
            char = self.get_character(cid)
            if char is not None:
                self._attach(char, location)
        return location

    def update_location(self, location_id: str, fields: dict[str, Any]) -> Location | None:
        """Patch name, description or exposition. Returns the updated location."""
        location = self.get_location(location_id)
        if location is None:
            return None
        new_name = fields.get("name")
        if new_name is not None and new_name != location.name:
            if self.find_location_by_name(new_name) is not None:
                raise ValueError(f"Location '{new_name}' already exists")
        for key, value in fields.items():
            if key in _LOCATION_FIELDS and value is not None:
                setattr(location, key, value)
        return location

    def set_location_members(self, location_id: str, character_ids: list[str]) -> Location | None:
        """Replace a location's member set, moving characters in or out as needed."""
        location = self.get_location(location_id)
        if location is None:
            return None
        wanted = [cid for cid in dict.fromkeys(character_ids) if self.get_character(cid)]
        for char in self.characters_in(location_id):
            if char.id not in wanted:
                self._detach(char)
        for cid in wanted:
            char = self.get_character(cid)
            self._attach(char, location)
        location.character_ids = [cid for cid in location.character_ids if cid in wanted]
        return location

    def delete_location(self, location_id: str) -> bool:
        """Delete a location and every character inside it."""
        location = self.get_location(location_id)
        if location is None:
            return False
        for char in self.characters_in(location_id):
            self.delete_character(char.id)
        self.locations = [loc for loc in self.locations if loc.id != location_id]
        return True

    # ------------------------------------------------------------------
    # Characters
    # ------------------------------------------------------------------

    def add_character(self, character: Character) -> Character:
        target = self.get_location(character.group_chat_id)
        character.group_chat_id = ""
        character.known_character_ids = self._clean_known_ids(
            character.id, character.known_character_ids
        )
        self.characters.append(character)
        if target is not None:
            self._attach(character, target)
        return character

    def update_character(self, character_id: str, fields: dict[str, Any]) -> Character | None:
        """Patch a character. Reassigning `group_chat_id` moves membership too."""
        char = self.get_character(character_id)
        if char is None:
            return None
        for key, value in fields.items():
            if key in _CHARACTER_FIELDS and value is not None:
                setattr(char, key, value)
        if fields.get("known_character_ids") is not None:
            char.known_character_ids = self._clean_known_ids(
                char.id, fields["known_character_ids"]
            )
        if "group_chat_id" in fields and fields["group_chat_id"] is not None:
            new_id = fields["group_chat_id"]
            if new_id == "":
                self._detach(char)
            elif new_id != char.group_chat_id:
                target = self.get_location(new_id)
                if target is None:
                    raise ValueError(f"Unknown location id '{new_id}'")
                self._attach(char, target)
        return char

    def remove_character_from_location(self, location_id: str, character_id: str) -> bool:
        char = self.get_character(character_id)
        if char is None or char.group_chat_id != location_id:
            return False
        self._detach(char)
        return True

    def delete_character(self, character_id: str) -> bool:
        """Delete a character, its membership and every known-character edge to it."""
        char = self.get_character(character_id)
        if char is None:
            return False
        self._detach(char)
        self.characters = [c for c in self.characters if c.id != character_id]
        for other in self.characters:
            if character_id in other.known_character_ids:
                other.known_character_ids = [
                    kid for kid in other.known_character_ids if kid != character_id
                ]
        logger.info("Deleted character %s (%s)", char.name, character_id)
        return True

    # ------------------------------------------------------------------
    # Invariant check
    # ------------------------------------------------------------------

    def index_violations(self) -> list[str]:
        """Describe every place the membership index is out of sync (empty = consistent)."""
        problems: list[str] = []
        for loc in self.locations:
            expected = {c.id for c in self.characters_in(loc.id)}
            actual = set(loc.character_ids)
            if expected != actual:
                problems.append(f"{loc.name}: members {sorted(actual)} != {sorted(expected)}")
            if len(loc.character_ids) != len(actual):
                problems.append(f"{loc.name}: duplicate members")
        for char in self.characters:
            if char.group_chat_id and self.get_location(char.group_chat_id) is None:
                problems.append(f"{char.name}: dangling location {char.group_chat_id}")
        return problems
