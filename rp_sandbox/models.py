"""Core domain models.

All pipeline stages, the world model and storage operate on these types.
Pydantic is used for validation and serialisation at every data boundary;
field aliases match the camelCase keys of the JSON export formats.
"""

from __future__ import annotations

import secrets
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

MessageType = Literal[
    "user",
    "character",
    "exposition",
    "narration",
    "director",
    "loading",
    "summary",
]

MessageStyle = Literal["dialogueOnly", "casualRoleplay", "descriptive"]

ModelPurpose = Literal["character", "summarization", "worldbuilder"]

Provider = Literal["openai", "anthropic", "google", "together", "openrouter", "xai"]


def generate_id() -> str:
    """Random opaque identifier for characters, locations and messages."""
    return secrets.token_hex(8)


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ChatMessage(_Model):
    """A single entry in a location's message history."""

    id: str = Field(default_factory=generate_id)
    type: MessageType
    sender: str  # display name, not an id
    text: str
    char_id: str | None = Field(default=None, alias="charId")  # weak back-reference


class Character(_Model):
    """An AI-driven persona."""

    id: str = Field(default_factory=generate_id)
    name: str
    description: str
    pfp_base64: str | None = None
    group_chat_id: str = Field(default="", alias="groupChatId")  # "" = unassigned
    notes: list[str] = Field(default_factory=list)
    quotes: list[str] = Field(default_factory=list)
    known_character_ids: list[str] = Field(default_factory=list, alias="knownCharacterIds")


class Location(_Model):
    """A group chat: a bounded conversational space holding characters."""

    id: str = Field(default_factory=generate_id)
    name: str
    description: str
    character_ids: list[str] = Field(default_factory=list, alias="characterIds")
    exposition: list[str] = Field(default_factory=list)


class UserProfile(_Model):
    display_name: str = Field(default="", alias="displayName")
    bio: str = ""


class Settings(_Model):
    """Generation parameters, model selection and play preferences.

    Read-only to the turn pipeline except for `stranger_label`, which the
    reconciler updates when a character learns the player's name.
    """

    provider: Provider = "openai"
    api_key: str = Field(default="", alias="apiKey")
    provider_url: str = Field(default="", alias="providerUrl")  # overrides the provider default
    model: str = ""
    summarization_model: str = Field(default="", alias="summarizationModel")
    worldbuilder_model: str = Field(default="", alias="worldbuilderModel")
    temperature: float = 0.9
    top_k: int = Field(default=40, alias="topK")
    top_p: float = Field(default=0.95, alias="topP")
    message_style: MessageStyle = Field(default="descriptive", alias="messageStyle")
    share_user_profile: bool = Field(default=False, alias="shareUserProfile")
    characters_know_all: bool = Field(default=False, alias="charactersKnowAll")
    user_profile: UserProfile = Field(default_factory=UserProfile, alias="userProfile")
    stranger_label: str = Field(default="Stranger", alias="strangerLabel")
    timeout: float = 120.0
    max_retries: int = Field(default=2, alias="maxRetries")

    def model_for(self, purpose: ModelPurpose) -> str:
        """Model name for a purpose; falls back to the character model when unset."""
        if purpose == "summarization":
            return self.summarization_model.strip() or self.model
        if purpose == "worldbuilder":
            return self.worldbuilder_model.strip() or self.model
        return self.model

    def player_name(self) -> str:
        """Name the player's messages are sent under."""
        display_name = self.user_profile.display_name.strip()
        if self.share_user_profile and display_name:
            return display_name
        return self.stranger_label or "Stranger"


class TokenUsage(_Model):
    input_tokens: int = Field(default=0, alias="inputTokens")
    output_tokens: int = Field(default=0, alias="outputTokens")
    total_tokens: int = Field(default=0, alias="totalTokens")
