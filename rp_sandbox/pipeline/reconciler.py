"""Apply a character turn's staged mutations to the world and settings.

Order is fixed: character patch first (its location reassignment must be
settled before membership bookkeeping), then location patches, then the
stranger label.

A move whose destination disappeared while the turn was generating (for
example, deleted from another location's view) is dropped along with its
membership patches; the rest of the turn still applies.
"""

from __future__ import annotations

import logging

from rp_sandbox.models import Settings
from rp_sandbox.mutations import CharacterPatch, LabelPatch, LocationPatch
from rp_sandbox.pipeline.character_turn import TurnResult
from rp_sandbox.world import World

logger = logging.getLogger(__name__)


def apply_turn_result(world: World, settings: Settings, result: TurnResult) -> None:
    patches = [m for m in result.mutations if isinstance(m, CharacterPatch)]
    members = [m for m in result.mutations if isinstance(m, LocationPatch)]
    labels = [m for m in result.mutations if isinstance(m, LabelPatch)]

    for patch in patches:
        fields = patch.model_dump(exclude={"kind", "character_id"}, exclude_none=True)
        dest = fields.get("group_chat_id")
        if dest and world.get_location(dest) is None:
            logger.warning(
                "Location %s vanished before %s could move there, move dropped",
                dest, patch.character_id,
            )
            del fields["group_chat_id"]
            members = []
        if world.update_character(patch.character_id, fields) is None:
            logger.warning("Character %s vanished before its turn was applied", patch.character_id)

    for patch in members:
        if world.set_location_members(patch.location_id, patch.character_ids) is None:
            logger.warning("Location %s vanished before its turn was applied", patch.location_id)

    for patch in labels:
        settings.stranger_label = patch.label
