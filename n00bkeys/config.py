"""
Application Configuration

Pydantic-based settings management using environment variables.
Supports nested configuration, validation, and caching.

These are process-level defaults (model, limits, paths, logging). Per-user
preferences that the user edits at runtime (pre-prompt, API key, debug,
selected scope) live in the scoped settings documents handled by
``n00bkeys.settings_store`` and ``n00bkeys.settings_resolver``.

Usage:
    from n00bkeys.config import get_settings

    settings = get_settings()
    print(settings.llm.openai_model)
    print(settings.history.max_items)
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = Path.home() / ".n00bkeys"


class LLMSettings(BaseSettings):
    """OpenAI completion configuration."""

    openai_api_key: str | None = Field(
        None,
        description=(
            "Static OpenAI API key. Lowest precedence source; prefer OPENAI_API_KEY "
            "or the settings documents."
        ),
    )
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI chat model")
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Temperature for responses",
    )
    max_tokens: int = Field(
        default=500,
        gt=0,
        le=16000,
        description="Maximum tokens per response",
    )
    timeout: int = Field(
        default=30,
        gt=0,
        description="Request timeout in seconds",
    )
    prompt_template: str | None = Field(
        None,
        description="Custom system prompt template (Jinja2, {{ preprompt }} / {{ context }})",
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("openai_api_key", "prompt_template", mode="before")
    @classmethod
    def normalize_empty(cls, v: str | None) -> str | None:
        """Treat empty strings as missing."""
        if v == "":
            return None
        return v


class HistorySettings(BaseSettings):
    """Conversation history behaviour."""

    enabled: bool = Field(default=True, description="Persist completed exchanges")
    max_items: int = Field(
        default=100,
        gt=0,
        description="Maximum number of stored conversations (oldest evicted first)",
    )
    max_conversation_turns: int | None = Field(
        default=10,
        description="Turns sent with each query; unset or <= 0 sends the whole conversation",
    )
    restore_conversation: Literal["session", "always", "never"] = Field(
        default="session",
        description=(
            "session: resume within one process; always: resume across restarts; "
            "never: always start fresh"
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="HISTORY_",
        env_file=".env",
        extra="ignore",
    )


class StorageSettings(BaseSettings):
    """Filesystem locations for history and global settings."""

    data_dir: Path = Field(
        default=DEFAULT_DATA_DIR,
        description="Directory holding history.json and the last conversation marker",
    )
    config_dir: Path | None = Field(
        default=None,
        description="Directory holding the global settings.json (defaults to data_dir)",
    )

    model_config = SettingsConfigDict(
        env_prefix="N00BKEYS_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("data_dir", "config_dir")
    @classmethod
    def expand_user(cls, v: Path | None) -> Path | None:
        """Expand ~ without touching the filesystem."""
        if v is None:
            return v
        return v.expanduser()

    @property
    def history_path(self) -> Path:
        return self.data_dir / "history.json"

    @property
    def last_conversation_path(self) -> Path:
        return self.data_dir / "last_conversation.txt"

    @property
    def global_config_dir(self) -> Path:
        return self.config_dir or self.data_dir


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Application log level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format",
    )
    date_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        description="Log timestamp format",
    )
    file: Path | None = Field(
        default=None,
        description="Optional log file path (None = stderr only)",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore",
    )

    def configure(self, level: str | None = None) -> None:
        """Configure Python logging with these settings."""
        handlers: list[logging.Handler] = [logging.StreamHandler()]

        if self.file:
            self.file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(self.file))

        logging.basicConfig(
            level=getattr(logging, level or self.level),
            format=self.format,
            datefmt=self.date_format,
            handlers=handlers,
            force=True,  # Override any existing configuration
        )


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    Settings are nested by domain (llm, history, storage, logging).

    Environment Variables:
        APP_NAME: Application name for logging
        DEBUG: Enable debug logging regardless of the settings documents
        LLM_*: OpenAI configuration (see LLMSettings)
        HISTORY_*: Conversation history behaviour (see HistorySettings)
        N00BKEYS_*: Storage locations (see StorageSettings)
        LOG_*: Logging configuration (see LoggingSettings)

    Example:
        >>> settings = get_settings()
        >>> settings.llm.openai_model
        'gpt-4o-mini'
        >>> settings.history.max_items
        100
    """

    app_name: str = Field(default="n00bkeys", description="Application name")
    debug: bool = Field(default=False, description="Enable debug logging")

    llm: LLMSettings = Field(default_factory=LLMSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def configure_logging(self) -> "Settings":
        """Configure logging when settings are loaded."""
        self.logging.configure("DEBUG" if self.debug else None)
        return self

    def model_post_init(self, __context) -> None:
        """Log configuration on initialization."""
        logger = logging.getLogger(__name__)
        logger.debug(
            f"Settings loaded for {self.app_name}",
            extra={
                "debug": self.debug,
                "model": self.llm.openai_model,
                "history_max_items": self.history.max_items,
                "data_dir": str(self.storage.data_dir),
            },
        )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses functools.lru_cache to ensure settings are loaded only once.

    Returns:
        Settings: Singleton settings instance
    """
    return Settings()


def clear_settings_cache() -> None:
    """
    Clear the settings cache.

    Useful for testing when you need to reload settings with different
    environment variables.
    """
    get_settings.cache_clear()
