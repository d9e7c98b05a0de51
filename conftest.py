import os
from pathlib import Path

import pytest

from rp_sandbox.models import Character, Location, Settings
from rp_sandbox.world import World

TEST_DATA_DIR = Path("data-tests")

# backend.app builds a default app at import time; keep it out of ./data
os.environ.setdefault("DATA_DIR", str(TEST_DATA_DIR))


@pytest.fixture
def settings() -> Settings:
    return Settings(api_key="test-key", model="test-model")


@pytest.fixture
def world() -> World:
    """Two locations: Brunhild and Tomas (who know each other) in the tavern,
    Wren alone in the square."""
    w = World()
    tavern = w.add_location(Location(
        id="tavern", name="The Rusty Flagon",
        description="A crowded harbour tavern.",
        exposition=["Rain hammers the shutters."],
    ))
    square = w.add_location(Location(
        id="square", name="Market Square", description="The square below the clock tower.",
    ))
    w.add_character(Character(
        id="brunhild", name="Brunhild", description="Owner of the tavern.",
        group_chat_id=tavern.id, quotes=["You drink, you pay."],
    ))
    w.add_character(Character(
        id="tomas", name="Tomas", description="A nervous dockhand.",
        group_chat_id=tavern.id, known_character_ids=["brunhild"],
    ))
    w.update_character("brunhild", {"known_character_ids": ["tomas"]})
    w.add_character(Character(
        id="wren", name="Sister Wren", description="A travelling healer.",
        group_chat_id=square.id,
    ))
    return w
