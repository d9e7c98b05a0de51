"""Tests for character turn execution and the result reducer."""

from rp_sandbox.llm import LLMError
from rp_sandbox.models import Settings
from rp_sandbox.mutations import CharacterPatch, LabelPatch, LocationPatch, NoOp
from rp_sandbox.pipeline.character_turn import execute_character_turn, process_turn_result
from rp_sandbox.world import World
from tests.helpers import StubLLM, msg, reply


def _process(world: World, result, char_id: str = "tomas"):
    char = world.get_character(char_id)
    return process_turn_result(result, char, world.get_location(char.group_chat_id), world.locations)


async def _run(world: World, settings: Settings, llm: StubLLM, char_id: str = "tomas", **kwargs):
    char = world.get_character(char_id)
    loc = world.get_location(char.group_chat_id)
    history = kwargs.pop("history", [msg("user", "Stranger", "Evening.")])
    return await execute_character_turn(
        char, loc, world.characters, world.locations, history, settings, llm, **kwargs
    )


# ---------------------------------------------------------------------------
# Reducer
# ---------------------------------------------------------------------------

class TestDialogue:
    def test_text_becomes_character_message(self, world: World) -> None:
        turn = _process(world, reply("  *nods* \"Evening.\"  "))
        assert len(turn.messages) == 1
        m = turn.messages[0]
        assert (m.type, m.sender, m.text, m.char_id) == ("character", "Tomas", '*nods* "Evening."', "tomas")
        assert turn.mutations == [NoOp()]

    def test_empty_output_thinking_fallback(self, world: World) -> None:
        turn = _process(world, reply(""))
        assert [m.text for m in turn.messages] == ["*Tomas is thinking...*"]

    def test_reasoning_only_produces_nothing(self, world: World) -> None:
        turn = _process(world, reply("", reasoning="He considers leaving."))
        assert turn.messages == []
        assert turn.mutations == [NoOp()]


class TestMakeNote:
    def test_note_appended_and_announced(self, world: World) -> None:
        world.update_character("tomas", {"notes": ["Old note."]})
        turn = _process(world, reply("", ("makeNote", {"note": "Brunhild waters the ale."})))
        assert [m.text for m in turn.messages] == ["Tomas noted: *Brunhild waters the ale.*"]
        assert turn.mutations == [CharacterPatch(
            character_id="tomas", notes=["Old note.", "Brunhild waters the ale."],
        )]

    def test_two_notes_accumulate(self, world: World) -> None:
        turn = _process(world, reply(
            "Right.", ("makeNote", {"note": "a"}), ("makeNote", {"note": "b"}),
        ))
        assert turn.mutations[0].notes == ["a", "b"]
        assert [m.text for m in turn.messages] == ["Tomas noted: *a*", "Tomas noted: *b*", "Right."]

    def test_note_does_not_touch_world(self, world: World) -> None:
        _process(world, reply("", ("makeNote", {"note": "a"})))
        assert world.get_character("tomas").notes == []


class TestMoveToLocation:
    def test_move(self, world: World) -> None:
        turn = _process(world, reply("Off I go.", ("moveToLocation", {"locationName": "Market Square"})))
        assert [(m.type, m.sender, m.text) for m in turn.messages] == [
            ("narration", "Narrator", "*Tomas moved to Market Square.*"),
            ("character", "Tomas", "Off I go."),
        ]
        assert CharacterPatch(character_id="tomas", group_chat_id="square") in turn.mutations
        assert LocationPatch(location_id="tavern", character_ids=["brunhild"]) in turn.mutations
        assert LocationPatch(location_id="square", character_ids=["wren", "tomas"]) in turn.mutations

    def test_unknown_destination(self, world: World) -> None:
        turn = _process(world, reply("", ("moveToLocation", {"locationName": "The Moon"})))
        assert [m.text for m in turn.messages] == ["*Tomas tried to move to unknown location: The Moon.*"]
        assert turn.mutations == [NoOp()]

    def test_already_there(self, world: World) -> None:
        turn = _process(world, reply("", ("moveToLocation", {"locationName": "The Rusty Flagon"})))
        assert [m.text for m in turn.messages] == ["*Tomas is already at The Rusty Flagon.*"]
        assert turn.mutations == [NoOp()]

    def test_name_match_is_case_sensitive(self, world: World) -> None:
        turn = _process(world, reply("", ("moveToLocation", {"locationName": "market square"})))
        assert "unknown location" in turn.messages[0].text

    def test_move_when_unassigned(self, world: World) -> None:
        world.update_character("tomas", {"group_chat_id": ""})
        tomas = world.get_character("tomas")
        turn = process_turn_result(
            reply("", ("moveToLocation", {"locationName": "Market Square"})),
            tomas, world.get_location("tavern"), world.locations,
        )
        patches = [m for m in turn.mutations if isinstance(m, LocationPatch)]
        assert patches == [LocationPatch(location_id="square", character_ids=["wren", "tomas"])]
        assert turn.mutations[0] == CharacterPatch(character_id="tomas", group_chat_id="square")

    def test_move_there_and_back(self, world: World) -> None:
        turn = _process(world, reply(
            "",
            ("moveToLocation", {"locationName": "Market Square"}),
            ("moveToLocation", {"locationName": "The Rusty Flagon"}),
        ))
        patches = {m.location_id: m.character_ids for m in turn.mutations if isinstance(m, LocationPatch)}
        assert patches == {"tavern": ["brunhild", "tomas"], "square": ["wren"]}
        assert turn.mutations[0].group_chat_id == "tavern"


class TestLabelStranger:
    def test_label_trimmed(self, world: World) -> None:
        turn = _process(world, reply("Ada, is it?", ("labelStranger", {"name": "  Ada  "})))
        assert LabelPatch(label="Ada") in turn.mutations
        assert [m.text for m in turn.messages] == ["Ada, is it?"]

    def test_blank_label_ignored(self, world: World) -> None:
        turn = _process(world, reply("Hm.", ("labelStranger", {"name": "   "})))
        assert not any(isinstance(m, LabelPatch) for m in turn.mutations)


class TestMalformedCalls:
    def test_missing_input_skipped(self, world: World) -> None:
        turn = _process(world, reply("Hm.", ("makeNote", None), ("moveToLocation", {})))
        assert [m.text for m in turn.messages] == ["Hm."]
        assert turn.mutations == [NoOp()]

    def test_unknown_tool_skipped(self, world: World) -> None:
        turn = _process(world, reply("", ("castSpell", {"spell": "fireball"})))
        assert [m.text for m in turn.messages] == ["*Tomas is thinking...*"]


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

class TestExecute:
    async def test_request_contents(self, world: World, settings: Settings) -> None:
        llm = StubLLM({"character": [reply("Evening.", input_tokens=200)]})
        turn = await _run(world, settings, llm, director_nudge="Be nervous")

        stage, request = llm.calls[0]
        assert stage == "character"
        assert request.model == "test-model"
        assert request.system.startswith('You are "Tomas"')
        assert request.prompt.startswith("(Director's Nudge: Be nervous.")
        assert "Stranger: Evening." in request.prompt
        assert [t.name for t in request.tools] == ["makeNote", "moveToLocation", "labelStranger"]
        assert (request.temperature, request.top_k, request.top_p) == (0.9, 40, 0.95)
        assert turn.usage.input_tokens == 200
        assert turn.error is None
        llm.assert_exhausted()

    async def test_failure_becomes_error_message(self, world: World, settings: Settings) -> None:
        llm = StubLLM({"character": [LLMError("LLM backend returned HTTP 500")]})
        turn = await _run(world, settings, llm)

        assert turn.error == "LLM backend returned HTTP 500"
        assert turn.usage is None
        assert turn.mutations == [NoOp()]
        assert len(turn.messages) == 1
        m = turn.messages[0]
        assert (m.type, m.sender, m.char_id) == ("character", "Tomas", "tomas")
        assert m.text == "(An error occurred: LLM backend returned HTTP 500)"
