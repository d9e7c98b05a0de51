"""Character turn execution.

One turn for one character:
  1. Build the system instruction (persona, location, roster, notes, quotes,
     player description, house rules, formatting style).
  2. Build the catch-up block from the location's windowed history.
  3. Call the LLM with the three character tools.
  4. Reduce the result into new messages plus staged mutations. The reducer
     runs in a fixed order because earlier steps decide later ones:
       a. tool calls, in invocation order (notes, moves, stranger label)
       b. dialogue text, if any
       c. reasoning-only output → nothing extra
       d. nothing at all → "is thinking..." placeholder

Nothing here touches world state; the reconciler applies the TurnResult.
Any failure before the reducer becomes a single in-character error message
with no mutations and no usage.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from rp_sandbox.llm import LLM, GenerationRequest, GenerationResult, ToolCall
from rp_sandbox.models import Character, ChatMessage, Location, Settings, TokenUsage
from rp_sandbox.mutations import CharacterPatch, LabelPatch, LocationPatch, Mutation, NoOp
from rp_sandbox.pipeline.context import build_catchup_block
from rp_sandbox.prompts import (
    FORMATTING_INSTRUCTIONS,
    SYSTEM_INSTRUCTION_TEMPLATE,
    render_prompt,
)
from rp_sandbox.tools import CHARACTER_TOOLS, LABEL_STRANGER, MAKE_NOTE, MOVE_TO_LOCATION

logger = logging.getLogger(__name__)

NARRATOR = "Narrator"


class TurnResult(BaseModel):
    """Everything a character turn produced, ready for the reconciler."""

    messages: list[ChatMessage] = Field(default_factory=list)
    mutations: list[Mutation] = Field(default_factory=lambda: [NoOp()])
    error: str | None = None
    usage: TokenUsage | None = None


# ---------------------------------------------------------------------------
# System instruction
# ---------------------------------------------------------------------------

def build_system_instruction(
    character: Character,
    location: Location,
    characters: list[Character],
    locations: list[Location],
    settings: Settings,
) -> str:
    """Render the character's persona and house rules."""
    co_located = [
        c for c in characters
        if c.id != character.id and c.id in location.character_ids
    ]
    if settings.characters_know_all:
        known = co_located
    else:
        known = [c for c in co_located if c.id in character.known_character_ids]

    display_name = settings.user_profile.display_name.strip()
    shared = settings.share_user_profile and bool(display_name)
    player = {
        "shared": shared,
        "name": display_name if shared else (settings.stranger_label or "Stranger"),
        "bio": settings.user_profile.bio.strip() if shared else "",
    }

    return render_prompt(SYSTEM_INSTRUCTION_TEMPLATE, {
        "char": {
            "name": character.name,
            "description": character.description,
            "notes": list(character.notes),
            "quotes": list(character.quotes),
        },
        "location": {
            "name": location.name,
            "description": location.description,
            "exposition": list(location.exposition),
        },
        "other_locations": [loc.name for loc in locations if loc.id != location.id],
        "known_characters": [{"name": c.name, "description": c.description} for c in known],
        "characters_know_all": settings.characters_know_all,
        "player": player,
        "offer_label_tool": not settings.share_user_profile,
        "formatting": FORMATTING_INSTRUCTIONS.get(
            settings.message_style, FORMATTING_INSTRUCTIONS["descriptive"]
        ),
    })


# ---------------------------------------------------------------------------
# Result reducer
# ---------------------------------------------------------------------------

@dataclass
class _TurnState:
    """Accumulator threaded through the ordered reducer."""

    character: Character
    location: Location
    locations: list[Location]
    messages: list[ChatMessage] = field(default_factory=list)
    notes: list[str] | None = None
    new_location_id: str | None = None
    members: dict[str, list[str]] = field(default_factory=dict)
    stranger_label: str | None = None
    made_note: bool = False

    def say(self, text: str) -> None:
        self.messages.append(ChatMessage(
            type="character", sender=self.character.name, text=text, char_id=self.character.id,
        ))

    def narrate(self, text: str) -> None:
        self.messages.append(ChatMessage(type="narration", sender=NARRATOR, text=text))


def _make_note(state: _TurnState, payload: dict) -> None:
    note = payload.get("note")
    if not note:
        return
    base = state.notes if state.notes is not None else list(state.character.notes)
    state.notes = [*base, note]
    state.say(f"{state.character.name} noted: *{note}*")
    state.made_note = True
    logger.info("[%s] Made note: %s", state.character.name, note)


def _move_to_location(state: _TurnState, payload: dict) -> None:
    dest_name = payload.get("locationName")
    if not dest_name:
        return
    char = state.character
    current_id = state.new_location_id or char.group_chat_id
    dest = next((loc for loc in state.locations if loc.name == dest_name), None)

    if dest is None:
        state.narrate(f"*{char.name} tried to move to unknown location: {dest_name}.*")
        return
    if dest.id == current_id:
        state.narrate(f"*{char.name} is already at {dest_name}.*")
        return

    if current_id:
        old_members = state.members.get(current_id)
        if old_members is None:
            old = next((loc for loc in state.locations if loc.id == current_id), state.location)
            old_members = list(old.character_ids)
        state.members[current_id] = [cid for cid in old_members if cid != char.id]
    new_members = state.members.get(dest.id, list(dest.character_ids))
    state.members[dest.id] = [*(cid for cid in new_members if cid != char.id), char.id]
    state.new_location_id = dest.id
    state.narrate(f"*{char.name} moved to {dest.name}.*")
    logger.info("[%s] Moved to %s", char.name, dest.name)


def _label_stranger(state: _TurnState, payload: dict) -> None:
    name = payload.get("name")
    if isinstance(name, str) and name.strip():
        state.stranger_label = name.strip()
        logger.info("[%s] Labeled stranger as: %s", state.character.name, state.stranger_label)


_TOOL_HANDLERS = {
    MAKE_NOTE: _make_note,
    MOVE_TO_LOCATION: _move_to_location,
    LABEL_STRANGER: _label_stranger,
}


def _apply_tool_call(state: _TurnState, call: ToolCall) -> None:
    if not call.input:
        return  # malformed invocation
    handler = _TOOL_HANDLERS.get(call.name)
    if handler is None:
        logger.warning("[%s] Unknown tool %r, skipped", state.character.name, call.name)
        return
    handler(state, call.input)


def process_turn_result(
    result: GenerationResult,
    character: Character,
    location: Location,
    locations: list[Location],
) -> TurnResult:
    """Reduce one generation result into messages and staged mutations."""
    state = _TurnState(character=character, location=location, locations=locations)

    for call in result.tool_calls:
        _apply_tool_call(state, call)

    dialogue = result.text.strip()
    has_reasoning = bool(result.reasoning.strip())
    if dialogue:
        state.say(dialogue)
    elif has_reasoning:
        logger.info("[%s] Generated reasoning without text output", character.name)

    if not state.messages and not has_reasoning and not state.made_note:
        state.say(f"*{character.name} is thinking...*")

    mutations: list[Mutation] = []
    if state.notes is not None or state.new_location_id is not None:
        mutations.append(CharacterPatch(
            character_id=character.id,
            notes=state.notes,
            group_chat_id=state.new_location_id,
        ))
    for location_id, members in state.members.items():
        mutations.append(LocationPatch(location_id=location_id, character_ids=members))
    if state.stranger_label is not None:
        mutations.append(LabelPatch(label=state.stranger_label))

    return TurnResult(messages=state.messages, mutations=mutations or [NoOp()])


# ---------------------------------------------------------------------------
# Turn execution
# ---------------------------------------------------------------------------

async def execute_character_turn(
    character: Character,
    location: Location,
    characters: list[Character],
    locations: list[Location],
    messages: list[ChatMessage],
    settings: Settings,
    llm: LLM,
    director_nudge: str | None = None,
) -> TurnResult:
    """Run one character turn and return its messages, mutations and usage."""
    try:
        system = build_system_instruction(character, location, characters, locations, settings)
        catchup = build_catchup_block(messages, character.name, director_nudge)
        result = await llm("character", GenerationRequest(
            system=system,
            prompt=catchup,
            tools=CHARACTER_TOOLS,
            model=settings.model_for("character"),
            temperature=settings.temperature,
            top_k=settings.top_k,
            top_p=settings.top_p,
        ))
    except Exception as e:
        logger.error("Character turn error for %s: %s", character.name, e)
        error = str(e) or type(e).__name__
        return TurnResult(
            messages=[ChatMessage(
                type="character",
                sender=character.name,
                text=f"(An error occurred: {error})",
                char_id=character.id,
            )],
            error=error,
        )

    turn = process_turn_result(result, character, location, locations)
    turn.usage = result.usage
    return turn
