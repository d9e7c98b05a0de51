"""Create a demo world for development/testing."""

from pathlib import Path

from rp_sandbox import world_io
from rp_sandbox.storage import Storage

DEMO_WORLD = {
    "locations": [
        {
            "name": "The Rusty Flagon",
            "description": "A crowded harbour tavern that smells of tar, ale and wet wool.",
            "exposition": [
                "Rain hammers the shutters.",
                "A bard in the corner has given up on being heard.",
            ],
        },
        {
            "name": "Market Square",
            "description": "The open square below the clock tower, busy from dawn until the bells ring curfew.",
            "exposition": ["Stalls sell fish, rope and rumours in equal measure."],
        },
    ],
    "characters": [
        {
            "name": "Brunhild",
            "description": "Owner of the Rusty Flagon. Blunt, fair, and impossible to lie to.",
            "location": "The Rusty Flagon",
            "quotes": ["You drink, you pay. You fight, you leave."],
            "notes": [],
            "knownCharacters": ["Tomas"],
        },
        {
            "name": "Tomas",
            "description": "A young dockhand who owes money to the wrong people.",
            "location": "The Rusty Flagon",
            "quotes": ["I'll have it by Friday, I swear."],
            "notes": ["Brunhild lets me sleep in the cellar when it storms."],
            "knownCharacters": ["Brunhild"],
        },
        {
            "name": "Sister Wren",
            "description": "A travelling healer who asks too many questions about the harbour master.",
            "location": "Market Square",
            "quotes": ["Every wound tells you who swung the blade."],
            "notes": [],
            "knownCharacters": [],
        },
    ],
}


def create_demo_data(data_dir: Path) -> None:
    """Overwrite the world in `data_dir` with the demo world and clear histories."""
    storage = Storage(data_dir)
    storage.save_world(world_io.import_world(DEMO_WORLD))
    storage.save_messages({})
    storage.save_token_usage({})
    storage.save_settings(storage.get_settings())
