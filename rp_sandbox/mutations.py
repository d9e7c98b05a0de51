"""Tagged world mutations produced by a character turn.

A turn never touches world state directly. It stages a list of these
variants, and the reconciler applies them as one batch:

    noop       — nothing to change
    character  — partial patch of one character (notes, location)
    location   — replacement member set for one location
    label      — new stranger label for the player
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class NoOp(BaseModel):
    kind: Literal["noop"] = "noop"


class CharacterPatch(BaseModel):
    kind: Literal["character"] = "character"
    character_id: str
    notes: list[str] | None = None
    group_chat_id: str | None = None


class LocationPatch(BaseModel):
    kind: Literal["location"] = "location"
    location_id: str
    character_ids: list[str]


class LabelPatch(BaseModel):
    kind: Literal["label"] = "label"
    label: str


Mutation = Annotated[
    Union[NoOp, CharacterPatch, LocationPatch, LabelPatch],
    Field(discriminator="kind"),
]
