"""Pydantic request models for API endpoints."""

from typing import Literal

from pydantic import BaseModel


class CreateLocation(BaseModel):
    name: str
    description: str = ""
    exposition: list[str] = []


class UpdateLocation(BaseModel):
    name: str | None = None
    description: str | None = None
    exposition: list[str] | None = None


class CreateCharacter(BaseModel):
    name: str
    description: str = ""
    pfp_base64: str | None = None
    group_chat_id: str = ""
    quotes: list[str] = []
    notes: list[str] = []
    known_character_ids: list[str] = []


class UpdateCharacter(BaseModel):
    name: str | None = None
    description: str | None = None
    pfp_base64: str | None = None
    group_chat_id: str | None = None
    quotes: list[str] | None = None
    notes: list[str] | None = None
    known_character_ids: list[str] | None = None


class PostMessage(BaseModel):
    text: str
    mode: Literal["user", "director"] = "user"


class CharacterTurnBody(BaseModel):
    character_id: str
    message: str | None = None
    director_nudge: str | None = None


class RetryBody(BaseModel):
    confirm: int  # must equal the number of messages that will be discarded


class CheckConnectionBody(BaseModel):
    provider_url: str
    api_key: str = ""
