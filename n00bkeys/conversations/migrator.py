"""
History schema migration.

Turns whatever bytes sit at the history path into a current (v2)
HistoryDocument. Conversion is pure; the only file this module ever writes is
the ``.v1.backup`` copy, and the store must not rewrite the canonical path
until that copy exists.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from n00bkeys.errors import MigrationError, ParseError
from n00bkeys.models import (
    HISTORY_VERSION,
    LEGACY_HISTORY_VERSION,
    Conversation,
    HistoryDocument,
    LegacyHistoryDocument,
    Message,
    new_conversation_id,
    summarize,
    utc_timestamp,
)

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".v1.backup"


@dataclass
class MigrationResult:
    """Outcome of reading one history file."""

    document: HistoryDocument
    source_version: int | None = None
    needs_upgrade: bool = False
    degraded: bool = False


class SchemaMigrator:
    """Convert on-disk history bytes of any known version into a v2 document."""

    def migrate(self, raw: bytes | None) -> HistoryDocument:
        return self.inspect(raw).document

    def inspect(self, raw: bytes | None) -> MigrationResult:
        if raw is None or not raw.strip():
            return MigrationResult(HistoryDocument())

        try:
            payload = self._decode(raw)
            version = self._detect_version(payload)
            if version == HISTORY_VERSION:
                return MigrationResult(self._parse_current(payload), source_version=version)
            if version == LEGACY_HISTORY_VERSION:
                return MigrationResult(
                    self._upgrade_v1(payload),
                    source_version=version,
                    needs_upgrade=True,
                )
        except ParseError as e:
            logger.error(f"Corrupt history document (using defaults): {e.message}")
            return MigrationResult(HistoryDocument(), degraded=True)

        # A newer release wrote this file; leave it alone rather than guess.
        logger.warning(f"Unknown history version: {version!r} (using defaults, file left untouched)")
        return MigrationResult(HistoryDocument(), source_version=None, degraded=True)

    @staticmethod
    def backup_path(path: Path) -> Path:
        return path.with_name(path.name + BACKUP_SUFFIX)

    def write_backup(self, path: Path, raw: bytes) -> Path:
        """Write a byte-exact copy of the legacy file next to it."""
        backup = self.backup_path(path)
        try:
            backup.write_bytes(raw)
        except OSError as e:
            raise MigrationError(
                "schema_migrator",
                f"Failed to create v1 backup at {backup}: {e}",
                context={"path": str(path), "backup": str(backup)},
            ) from e
        logger.debug(f"Created v1 backup at: {backup}")
        return backup

    @staticmethod
    def _decode(raw: bytes) -> dict[str, Any]:
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ParseError("schema_migrator", f"Unparseable history JSON: {e}") from e
        if not isinstance(payload, dict):
            raise ParseError(
                "schema_migrator",
                f"History root must be an object, got {type(payload).__name__}",
            )
        return payload

    @staticmethod
    def _detect_version(payload: dict[str, Any]) -> Any:
        # Files written before versioning carry only an entries array.
        version = payload.get("version", LEGACY_HISTORY_VERSION)
        if isinstance(version, bool):
            return None
        return version

    @staticmethod
    def _parse_current(payload: dict[str, Any]) -> HistoryDocument:
        if not isinstance(payload.get("conversations"), list):
            raise ParseError("schema_migrator", "Invalid v2 structure (missing conversations array)")
        try:
            return HistoryDocument.model_validate(payload)
        except PydanticValidationError as e:
            raise ParseError("schema_migrator", f"Invalid v2 conversation: {e}") from e

    @staticmethod
    def _upgrade_v1(payload: dict[str, Any]) -> HistoryDocument:
        try:
            legacy = LegacyHistoryDocument.model_validate(payload)
        except PydanticValidationError as e:
            raise ParseError("schema_migrator", f"Invalid v1 entries: {e}") from e

        logger.debug(f"Migrating v1 history to v2 ({len(legacy.entries)} entries)")
        document = HistoryDocument()
        for entry in legacy.entries:
            timestamp = entry.timestamp or utc_timestamp()
            messages = [
                Message(role="user", content=entry.prompt, timestamp=timestamp),
                Message(role="assistant", content=entry.response, timestamp=timestamp),
            ]
            document.conversations.append(
                Conversation(
                    id=new_conversation_id(),
                    created_at=timestamp,
                    updated_at=timestamp,
                    summary=summarize(messages),
                    messages=messages,
                )
            )
        logger.debug(f"Migration complete: {len(document.conversations)} conversations")
        return document
