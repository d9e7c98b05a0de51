"""Tools available to a character during its turn.

These let characters:
  makeNote        — record an observation they can review later (notes)
  moveToLocation  — travel to another location by exact name
  labelStranger   — remember the name the unidentified player introduced
                    themselves with (only mentioned in the prompt when the
                    player's profile is not shared)
"""

from rp_sandbox.llm import ToolSpec

MAKE_NOTE = "makeNote"
MOVE_TO_LOCATION = "moveToLocation"
LABEL_STRANGER = "labelStranger"

CHARACTER_TOOLS: list[ToolSpec] = [
    ToolSpec(
        name=MAKE_NOTE,
        description=(
            "Create a note about another character or situation. You can review "
            "notes later. You can still speak after making a note."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "note": {
                    "type": "string",
                    "description": (
                        "Significant observation about another person, written in your "
                        "unique voice. Do not mention making the note."
                    ),
                },
            },
            "required": ["note"],
        },
    ),
    ToolSpec(
        name=MOVE_TO_LOCATION,
        description=(
            "Physically travel to another location. Use this when someone asks you to "
            "go somewhere or you decide to leave. You can speak before or after moving."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "locationName": {
                    "type": "string",
                    "description": "Exact name of the destination location",
                },
            },
            "required": ["locationName"],
        },
    ),
    ToolSpec(
        name=LABEL_STRANGER,
        description=(
            "When the Stranger tells you their name, use this to remember it. "
            "Only use when they explicitly introduce themselves."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "name": {
                    "type": "string",
                    "description": "The name the Stranger introduced themselves as",
                },
            },
            "required": ["name"],
        },
    ),
]
