"""
Settings store utilities.

Persists per-scope settings documents: a global one under the user's
configuration directory and a project one under ``<project-root>/.n00bkeys``.
Each ConfigStore instance owns its cache; call ``clear_cache()`` after
anything else writes the files.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from n00bkeys.errors import StorageIOError, ValidationError
from n00bkeys.models import SCOPES, SETTINGS_VERSION, ConfigDocument, utc_timestamp

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.json"
PROJECT_DIRNAME = ".n00bkeys"
PROJECT_MARKER = ".git"
MAX_SEARCH_DEPTH = 25


def validate_scope(scope: str) -> str:
    if scope not in SCOPES:
        raise ValidationError(
            "settings_store",
            f"Invalid scope: {scope!r} (expected one of {', '.join(SCOPES)})",
            context={"scope": scope},
        )
    return scope


class ConfigStore:
    """Scoped JSON settings files with an instance-owned cache."""

    def __init__(
        self,
        global_dir: Path | None = None,
        cwd: Path | None = None,
        max_search_depth: int = MAX_SEARCH_DEPTH,
    ) -> None:
        if global_dir is None:
            from n00bkeys.config import get_settings

            global_dir = get_settings().storage.global_config_dir
        self.global_dir = Path(global_dir)
        self._cwd = Path(cwd) if cwd else None
        self.max_search_depth = max_search_depth
        self._documents: dict[str, ConfigDocument] = {}
        self._project_root: Path | None = None

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def get_global_path(self) -> Path:
        return self.global_dir / SETTINGS_FILENAME

    def get_project_path(self) -> Path:
        return self.find_project_root() / PROJECT_DIRNAME / SETTINGS_FILENAME

    def get_path(self, scope: str) -> Path:
        validate_scope(scope)
        if scope == "global":
            return self.get_global_path()
        return self.get_project_path()

    def find_project_root(self) -> Path:
        """Search upward for a .git marker, falling back to the working directory."""
        if self._project_root is not None:
            return self._project_root

        start = (self._cwd or Path.cwd()).resolve()
        path = start
        for _ in range(self.max_search_depth):
            if (path / PROJECT_MARKER).exists():
                self._project_root = path
                return path
            if path.parent == path:
                break
            path = path.parent

        logger.debug(f"No {PROJECT_MARKER} found above {start}, using it as project root")
        self._project_root = start
        return start

    def clear_cache(self) -> None:
        """Drop cached documents and the resolved project root."""
        self._documents.clear()
        self._project_root = None

    # ------------------------------------------------------------------
    # Load / save
    # ------------------------------------------------------------------

    def load(self, scope: str) -> ConfigDocument:
        """Load a scope's document; missing or corrupt files yield defaults."""
        validate_scope(scope)
        cached = self._documents.get(scope)
        if cached is not None:
            return cached

        path = self.get_path(scope)
        document = self._read(scope, path)
        self._documents[scope] = document
        return document

    def save(self, scope: str, values: dict[str, Any]) -> ConfigDocument:
        """
        Merge ``values`` over the loaded document and write the result.

        Raises:
            ValidationError: On an unknown scope or a value of the wrong type
            StorageIOError: When the file or its directory cannot be written
        """
        validate_scope(scope)
        current = self.load(scope)
        merged = {**current.model_dump(), **values, "last_modified": utc_timestamp()}
        try:
            updated = ConfigDocument.model_validate(merged)
        except PydanticValidationError as e:
            raise ValidationError(
                "settings_store",
                f"Invalid settings for {scope} scope: {e.errors()[0]['msg']}",
                context={"scope": scope, "keys": sorted(values)},
            ) from e

        path = self.get_path(scope)
        self._write(path, updated)
        self._documents[scope] = updated
        logger.debug(f"Saved {scope} settings to {path}", extra={"keys": sorted(values)})
        return updated

    def _read(self, scope: str, path: Path) -> ConfigDocument:
        if not path.exists():
            logger.debug(f"{scope} settings file not found: {path} (using defaults)")
            return ConfigDocument()

        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"Corrupt {scope} settings file: {path} (using defaults): {e}")
            return ConfigDocument()
        except OSError as e:
            logger.error(f"Unreadable {scope} settings file: {path} (using defaults): {e}")
            return ConfigDocument()

        if not isinstance(payload, dict):
            logger.error(f"Corrupt {scope} settings file: {path} is not an object (using defaults)")
            return ConfigDocument()

        document = self._validate_keeping_valid_fields(scope, path, payload)

        if document.version != SETTINGS_VERSION:
            logger.warning(
                f"Unsupported settings version: {document.version} "
                f"(expected {SETTINGS_VERSION}) in {path}"
            )
        return document

    @staticmethod
    def _validate_keeping_valid_fields(
        scope: str, path: Path, payload: dict[str, Any]
    ) -> ConfigDocument:
        """Validate ``payload``; fields that fail fall back to their defaults, the rest are kept."""
        try:
            return ConfigDocument.model_validate(payload)
        except PydanticValidationError as e:
            invalid = {str(error["loc"][0]) for error in e.errors() if error["loc"]}
            logger.error(
                f"Invalid {scope} settings file: {path} "
                f"(using defaults for {', '.join(sorted(invalid))}): {e}"
            )

        kept = {key: value for key, value in payload.items() if key not in invalid}
        try:
            return ConfigDocument.model_validate(kept)
        except PydanticValidationError as e:
            logger.error(f"Invalid {scope} settings file: {path} (using defaults): {e}")
            return ConfigDocument()

    @staticmethod
    def _write(path: Path, document: ConfigDocument) -> None:
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
            tmp_path.write_text(
                json.dumps(document.model_dump(mode="json"), indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
            try:
                os.chmod(tmp_path, 0o600)
            except OSError as e:
                logger.debug(f"Could not restrict permissions on {tmp_path}: {e}")
            tmp_path.replace(path)
        except OSError as e:
            raise StorageIOError(
                "settings_store",
                f"Failed to write settings file {path}: {e}",
                context={"path": str(path)},
            ) from e
