"""Turn controller — owns per-location history and drives character turns.

Character turn sequence (one location, one character):
  1. Resolve character and location; unknown ids are a no-op.
  2. Stage the accompanying player message, if any (not appended yet).
  3. If the location's input-token counter has reached the threshold,
     summarize its history, reset the counter, mark it "just summarized".
  4. Append the staged player message, so it survives as context rather
     than becoming summary material.
  5. Append a loading placeholder for the acting character.
  6. Execute the character turn.
  7. Remove the placeholder.
  8. Append the turn's messages.
  9. Apply mutations: character patch, then location patches, then label.
 10. Add the turn's input tokens to the location's counter.

Retry truncates history at a character message and re-runs steps 5–10.

Only one turn may be in flight per location: a second request while the
location's lock is held raises TurnInProgressError instead of racing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Literal

from rp_sandbox import world_io
from rp_sandbox.llm import LLM, HttpLLM
from rp_sandbox.models import Character, ChatMessage, Location, Settings
from rp_sandbox.pipeline.character_turn import TurnResult, execute_character_turn
from rp_sandbox.pipeline.reconciler import apply_turn_result
from rp_sandbox.pipeline.summarize import needs_summarization, summarize_old_messages
from rp_sandbox.storage import Storage
from rp_sandbox.world import World

logger = logging.getLogger(__name__)

SummarizationStatus = Literal["idle", "summarizing", "success"]


class TurnInProgressError(RuntimeError):
    """Raised when a location already has a turn in flight."""


class TurnController:
    """Single writer for histories, token counters, world and settings.

    Args:
        world:       Characters and locations.
        settings:    Generation and play settings (stranger label is mutated).
        llm:         Generation capability. When None, an HttpLLM is built
                     from the current settings for every call.
        storage:     Optional JSON storage; every state change is persisted.
        histories:   Initial per-location message lists.
        token_usage: Initial per-location input-token counters.
    """

    def __init__(
        self,
        world: World | None = None,
        settings: Settings | None = None,
        llm: LLM | None = None,
        storage: Storage | None = None,
        histories: dict[str, list[ChatMessage]] | None = None,
        token_usage: dict[str, int] | None = None,
    ) -> None:
        self.world = world or World()
        self.settings = settings or Settings()
        self.llm = llm
        self.storage = storage
        self.histories: dict[str, list[ChatMessage]] = histories or {}
        self.token_usage: dict[str, int] = token_usage or {}
        self.summarization_status: dict[str, SummarizationStatus] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @classmethod
    def from_storage(cls, storage: Storage, llm: LLM | None = None) -> TurnController:
        return cls(
            world=storage.get_world(),
            settings=storage.get_settings(),
            llm=llm,
            storage=storage,
            histories=storage.get_messages(),
            token_usage=storage.get_token_usage(),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _generator(self) -> LLM:
        return self.llm or HttpLLM.from_settings(self.settings)

    def _lock(self, location_id: str) -> asyncio.Lock:
        lock = self._locks.get(location_id)
        if lock is None:
            lock = self._locks[location_id] = asyncio.Lock()
        return lock

    def _check_idle(self, location_id: str) -> None:
        if self.is_busy(location_id):
            raise TurnInProgressError(f"A turn is already running in location {location_id}")

    def _check_no_turns(self, action: str) -> None:
        if any(lock.locked() for lock in self._locks.values()):
            raise TurnInProgressError(f"Cannot {action} while a turn is running")

    def is_busy(self, location_id: str) -> bool:
        lock = self._locks.get(location_id)
        return lock is not None and lock.locked()

    def persist(self) -> None:
        if self.storage is None:
            return
        self.storage.save_world(self.world)
        self.storage.save_messages(self.histories)
        self.storage.save_token_usage(self.token_usage)
        self.storage.save_settings(self.settings)

    def messages(self, location_id: str) -> list[ChatMessage]:
        return self.histories.setdefault(location_id, [])

    # ------------------------------------------------------------------
    # Free-text turns (no generation)
    # ------------------------------------------------------------------

    def _post(self, location_id: str, message: ChatMessage) -> ChatMessage | None:
        if self.world.get_location(location_id) is None or not message.text.strip():
            return None
        self._check_idle(location_id)
        self.messages(location_id).append(message)
        self.persist()
        return message

    def post_user_message(self, location_id: str, text: str) -> ChatMessage | None:
        """Append a message from the player under their current display name."""
        return self._post(location_id, ChatMessage(
            type="user", sender=self.settings.player_name(), text=text,
        ))

    def post_director_message(self, location_id: str, text: str) -> ChatMessage | None:
        """Append a director instruction visible to every character's catch-up."""
        return self._post(location_id, ChatMessage(type="director", sender="Director", text=text))

    # ------------------------------------------------------------------
    # Character turns
    # ------------------------------------------------------------------

    async def run_character_turn(
        self,
        location_id: str,
        character_id: str,
        message: str | None = None,
        director_nudge: str | None = None,
    ) -> TurnResult | None:
        """Run one character turn. Returns None if character or location is unknown."""
        location = self.world.get_location(location_id)
        character = self.world.get_character(character_id)
        if location is None or character is None:
            return None
        self._check_idle(location_id)

        async with self._lock(location_id):
            staged = None
            if message and message.strip():
                staged = ChatMessage(type="user", sender=self.settings.player_name(), text=message)

            if needs_summarization(self.token_usage.get(location_id, 0)):
                await self._summarize(location_id)

            if staged is not None:
                self.messages(location_id).append(staged)

            return await self._execute(location, character, director_nudge)

    async def _summarize(self, location_id: str) -> None:
        logger.info(
            "Token threshold reached (%d tokens) in %s, summarizing older messages",
            self.token_usage.get(location_id, 0), location_id,
        )
        self.summarization_status[location_id] = "summarizing"
        self.histories[location_id] = await summarize_old_messages(
            self.messages(location_id), self.settings, self._generator()
        )
        self.token_usage[location_id] = 0
        self.summarization_status[location_id] = "success"

    async def _execute(
        self,
        location: Location,
        character: Character,
        director_nudge: str | None = None,
    ) -> TurnResult:
        """Steps 5–10: placeholder, generation, reconciliation, token accounting."""
        history = self.messages(location.id)
        context = list(history)
        placeholder = ChatMessage(
            type="loading", sender=character.name, text="", char_id=character.id,
        )
        history.append(placeholder)

        result = await execute_character_turn(
            character,
            location,
            self.world.characters,
            self.world.locations,
            context,
            self.settings,
            self._generator(),
            director_nudge,
        )

        history = self.messages(location.id)
        history[:] = [m for m in history if m.id != placeholder.id]
        history.extend(result.messages)

        apply_turn_result(self.world, self.settings, result)

        if result.usage is not None:
            total = self.token_usage.get(location.id, 0) + result.usage.input_tokens
            self.token_usage[location.id] = total
            logger.info(
                "Token usage: %d input, %d output (total for %s: %d)",
                result.usage.input_tokens, result.usage.output_tokens, location.name, total,
            )

        self.persist()
        return result

    # ------------------------------------------------------------------
    # Retry
    # ------------------------------------------------------------------

    def _retry_target(self, location_id: str, message_id: str) -> tuple[int, Character] | None:
        history = self.histories.get(location_id, [])
        index = next((i for i, m in enumerate(history) if m.id == message_id), None)
        if index is None:
            return None
        target = history[index]
        if target.type != "character" or not target.char_id:
            return None
        character = self.world.get_character(target.char_id)
        if character is None:
            return None
        return index, character

    def count_discarded(self, location_id: str, message_id: str) -> int | None:
        """How many messages a retry of this message would discard (None = not retryable)."""
        found = self._retry_target(location_id, message_id)
        if found is None:
            return None
        return len(self.histories[location_id]) - found[0]

    async def retry_message(self, location_id: str, message_id: str) -> TurnResult | None:
        """Discard a character message and everything after it, then re-run that character.

        Destructive: callers must confirm the count from count_discarded() first.
        """
        location = self.world.get_location(location_id)
        found = self._retry_target(location_id, message_id)
        if location is None or found is None:
            return None
        self._check_idle(location_id)

        index, character = found
        async with self._lock(location_id):
            discarded = len(self.histories[location_id]) - index
            self.histories[location_id] = self.histories[location_id][:index]
            logger.info("Retrying %s in %s, discarded %d messages", character.name, location.name, discarded)
            return await self._execute(location, character)

    # ------------------------------------------------------------------
    # World and settings edits
    # ------------------------------------------------------------------

    def update_settings(self, fields: dict[str, Any]) -> Settings:
        """Merge camelCase fields into settings. `userProfile` merges key-by-key."""
        current = self.settings.model_dump(by_alias=True)
        for key, value in fields.items():
            if key == "userProfile" and isinstance(value, dict):
                current["userProfile"].update(value)
            else:
                current[key] = value
        self.settings = Settings.model_validate(current)
        self.persist()
        return self.settings

    def delete_location(self, location_id: str) -> bool:
        """Delete a location, its characters and its history. Refused while any turn is running."""
        self._check_no_turns("delete a location")
        if not self.world.delete_location(location_id):
            return False
        self.histories.pop(location_id, None)
        self.token_usage.pop(location_id, None)
        self.summarization_status.pop(location_id, None)
        self.persist()
        return True

    def replace_world(self, world: World) -> None:
        """Swap in an imported world. Old histories are keyed by dead ids and are dropped."""
        self._check_no_turns("replace the world")
        self.world = world
        self.histories = {}
        self.token_usage = {}
        self.summarization_status = {}
        self.persist()

    def import_chat_history(self, data: dict[str, Any]) -> dict[str, int]:
        """Merge an exported chat history; returns message counts per location id."""
        imported = world_io.import_chat_history(data, self.world.locations)
        for location_id in imported:
            self._check_idle(location_id)
        self.histories.update(imported)
        self.persist()
        return {location_id: len(msgs) for location_id, msgs in imported.items()}

    def export_chat_history(self) -> dict[str, Any]:
        return world_io.export_chat_history(self.histories, self.world.locations)
