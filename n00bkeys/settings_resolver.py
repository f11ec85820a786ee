"""
Settings resolution across sources.

A logical setting is resolved by walking a fixed precedence chain and
returning the first non-empty value:

    1. runtime environment override (credentials only)
    2. the settings document of the currently selected scope
    3. ``.env`` fallbacks: project root first, then the user's home
    4. the static application setting (``LLM_OPENAI_API_KEY``)

The selected scope itself is stored in the global document so it survives
restarts and reads the same whichever scope is active.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import dotenv_values

from n00bkeys.errors import AbsentValueError, ValidationError
from n00bkeys.models import DEFAULT_SCOPE, ConfigDocument
from n00bkeys.settings_store import ConfigStore, validate_scope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettingSource:
    """Where a logical setting may come from besides the settings documents."""

    env_var: str | None = None
    dotenv_key: str | None = None
    static: Callable[[], Any] | None = None


def _static_api_key() -> str | None:
    from n00bkeys.config import get_settings

    return get_settings().llm.openai_api_key


SETTING_SOURCES: dict[str, SettingSource] = {
    "api_key": SettingSource(
        env_var="OPENAI_API_KEY",
        dotenv_key="OPENAI_API_KEY",
        static=_static_api_key,
    ),
    "preprompt": SettingSource(),
    "debug": SettingSource(),
}


@dataclass(frozen=True)
class ResolvedValue:
    value: Any
    source: str


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


class ConfigResolver:
    """Resolve settings through the precedence chain and write to the active scope."""

    def __init__(
        self,
        store: ConfigStore,
        environ: Mapping[str, str] | None = None,
        home_dir: Path | None = None,
        sources: dict[str, SettingSource] | None = None,
    ) -> None:
        self.store = store
        self._environ = environ
        self._home_dir = home_dir
        self.sources = sources if sources is not None else SETTING_SOURCES

    @property
    def environ(self) -> Mapping[str, str]:
        return self._environ if self._environ is not None else os.environ

    @property
    def home_dir(self) -> Path:
        return self._home_dir or Path.home()

    def _source_for(self, key: str) -> SettingSource:
        if key not in self.sources:
            raise ValidationError(
                "settings_resolver",
                f"Unknown setting: {key!r} (expected one of {', '.join(sorted(self.sources))})",
                context={"key": key},
            )
        return self.sources[key]

    def fallback_files(self) -> list[Path]:
        """External .env files consulted after the settings documents."""
        return [self.store.find_project_root() / ".env", self.home_dir / ".env"]

    # ------------------------------------------------------------------
    # Scope
    # ------------------------------------------------------------------

    def get_selected_scope(self) -> str:
        return self.store.load("global").selected_scope or DEFAULT_SCOPE

    def set_selected_scope(self, scope: str) -> None:
        validate_scope(scope)
        self.store.save("global", {"selected_scope": scope})
        logger.debug(f"Selected scope set to {scope}")

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def resolve(self, key: str) -> ResolvedValue | None:
        """Return the winning value and the name of the source it came from."""
        source = self._source_for(key)

        if source.env_var:
            value = self.environ.get(source.env_var)
            if not _is_empty(value):
                return ResolvedValue(value, f"env:{source.env_var}")

        scope = self.get_selected_scope()
        document: ConfigDocument = self.store.load(scope)
        value = getattr(document, key, None)
        if not _is_empty(value):
            return ResolvedValue(value, f"settings:{scope}")

        if source.dotenv_key:
            for path in self.fallback_files():
                value = self._read_dotenv(path, source.dotenv_key)
                if not _is_empty(value):
                    return ResolvedValue(value, f"dotenv:{path}")

        if source.static is not None:
            value = source.static()
            if not _is_empty(value):
                return ResolvedValue(value, "config")

        return None

    def get_current(self, key: str) -> Any | None:
        resolved = self.resolve(key)
        return resolved.value if resolved else None

    def require(self, key: str) -> Any:
        """Like get_current, but raise AbsentValueError when nothing yields a value."""
        resolved = self.resolve(key)
        if resolved is None:
            raise AbsentValueError(key, self.describe_sources(key))
        return resolved.value

    def set_current(self, key: str, value: Any) -> ConfigDocument:
        """Write through to the settings document of the selected scope."""
        self._source_for(key)
        scope = self.get_selected_scope()
        return self.store.save(scope, {key: value})

    def describe_sources(self, key: str) -> list[str]:
        source = self._source_for(key)
        names: list[str] = []
        if source.env_var:
            names.append(f"${source.env_var}")
        names.append(f"{self.get_selected_scope()} settings")
        if source.dotenv_key:
            names.extend(str(path) for path in self.fallback_files())
        if source.static is not None:
            names.append("application config")
        return names

    @staticmethod
    def _read_dotenv(path: Path, key: str) -> str | None:
        if not path.is_file():
            return None
        try:
            return dotenv_values(path).get(key)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read {path}: {e}")
            return None
