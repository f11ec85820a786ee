"""
Persisted Document Models

Pydantic models for the history and settings documents written to disk.
Field order matches the on-disk JSON layout so serialization is stable.
"""

from datetime import UTC, datetime
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

HISTORY_VERSION = 2
LEGACY_HISTORY_VERSION = 1
SETTINGS_VERSION = 1

SUMMARY_MAX_CHARS = 50
SUMMARY_ELLIPSIS = "..."
UNTITLED_SUMMARY = "Untitled conversation"

Scope = Literal["global", "project"]
SCOPES: tuple[str, ...] = ("global", "project")
DEFAULT_SCOPE: Scope = "global"


def utc_timestamp() -> str:
    """Current UTC time as an ISO8601 string with second precision."""
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def new_conversation_id() -> str:
    return f"conv_{uuid4().hex[:12]}"


class Message(BaseModel):
    """Single chat message in a conversation."""

    role: Literal["user", "assistant"] = Field(..., description="Message role")
    content: str = Field(..., description="Message content")
    timestamp: str | None = Field(None, description="When the message was recorded")

    model_config = ConfigDict(extra="ignore")


class Conversation(BaseModel):
    """A chronological, append-only sequence of user/assistant pairs."""

    id: str = Field(..., description="Conversation identifier")
    created_at: str = Field(..., description="ISO8601 creation time")
    updated_at: str = Field(..., description="ISO8601 time of the last exchange")
    summary: str = Field(default="", description="First user message, truncated")
    messages: list[Message] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @property
    def turn_count(self) -> int:
        return sum(1 for message in self.messages if message.role == "user")


class HistoryDocument(BaseModel):
    """Current (v2) on-disk history layout, conversations newest-first."""

    version: int = Field(default=HISTORY_VERSION)
    conversations: list[Conversation] = Field(default_factory=list)


class LegacyEntry(BaseModel):
    """One prompt/response pair from the v1 history format."""

    timestamp: str | None = None
    prompt: str = ""
    response: str = ""

    model_config = ConfigDict(extra="ignore")


class LegacyHistoryDocument(BaseModel):
    """v1 history layout, read only during migration."""

    version: int = Field(default=LEGACY_HISTORY_VERSION)
    entries: list[LegacyEntry] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class ConfigDocument(BaseModel):
    """Per-scope settings document (global or project)."""

    version: int = Field(default=SETTINGS_VERSION)
    preprompt: str = Field(default="", description="Text prepended to the system prompt")
    selected_scope: Scope = Field(
        default=DEFAULT_SCOPE,
        description="Active scope; only meaningful in the global document",
    )
    api_key: str = Field(default="", description="OpenAI API key (stored in plain text)")
    debug: bool = Field(default=False, description="Enable debug logging")
    last_modified: str = Field(default_factory=utc_timestamp)

    # Unknown keys written by newer releases survive read-modify-write.
    model_config = ConfigDict(extra="allow", validate_assignment=True)


def summarize(messages: list[Message]) -> str:
    """First user message, truncated to 50 characters plus an ellipsis."""
    for message in messages:
        if message.role == "user":
            if len(message.content) > SUMMARY_MAX_CHARS:
                return message.content[:SUMMARY_MAX_CHARS] + SUMMARY_ELLIPSIS
            return message.content
    return UNTITLED_SUMMARY
