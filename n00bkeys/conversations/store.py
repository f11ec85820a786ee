"""Storage utilities for persisted conversation history."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from n00bkeys.conversations.migrator import SchemaMigrator
from n00bkeys.errors import MigrationError, StorageIOError
from n00bkeys.models import HISTORY_VERSION, HistoryDocument

logger = logging.getLogger(__name__)


class ConversationStore:
    """Persist the history document as a single JSON file with an instance cache."""

    def __init__(self, path: Path | None = None, migrator: SchemaMigrator | None = None) -> None:
        if path is None:
            from n00bkeys.config import get_settings

            path = get_settings().storage.history_path
        self._path = Path(path)
        self._migrator = migrator or SchemaMigrator()
        self._cache: HistoryDocument | None = None
        # Legacy bytes still sitting at the canonical path without a backup.
        self._pending_legacy: bytes | None = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> HistoryDocument:
        """Return the cached document, reading (and migrating) the file on a cold cache."""
        if self._cache is not None:
            return self._cache

        raw = self._read_raw()
        result = self._migrator.inspect(raw)
        document = result.document

        if result.needs_upgrade:
            self._pending_legacy = raw
            try:
                self._upgrade(document, result.source_version)
            except (MigrationError, StorageIOError) as e:
                logger.error(
                    f"History migration aborted, {self._path} left in legacy form: {e.message}",
                    extra={"error": e.to_dict()},
                )

        self._cache = document
        return document

    def save(self, document: HistoryDocument) -> None:
        """
        Overwrite the history file with ``document``.

        Raises:
            MigrationError: If the legacy file still has no backup and one cannot be written
            StorageIOError: If the file cannot be written
        """
        if self._pending_legacy is not None:
            self._migrator.write_backup(self._path, self._pending_legacy)
            self._pending_legacy = None
        self._write(document)
        self._cache = document

    def invalidate(self) -> None:
        """Forget the cached document so the next load() re-reads disk."""
        self._cache = None
        self._pending_legacy = None

    def _upgrade(self, document: HistoryDocument, source_version: int | None) -> None:
        self._migrator.write_backup(self._path, self._pending_legacy)
        self._pending_legacy = None
        self._write(document)
        logger.info(
            f"Migrated history v{source_version} -> v{HISTORY_VERSION} "
            f"({len(document.conversations)} conversations)",
            extra={"path": str(self._path)},
        )

    def _read_raw(self) -> bytes | None:
        if not self._path.exists():
            logger.debug(f"History file not found: {self._path} (using defaults)")
            return None
        try:
            return self._path.read_bytes()
        except OSError as e:
            logger.error(f"Unreadable history file: {self._path} (using defaults): {e}")
            return None

    def _write(self, document: HistoryDocument) -> None:
        payload = json.dumps(
            document.model_dump(mode="json", exclude_none=True),
            indent=2,
            ensure_ascii=False,
        )
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload, encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError as e:
            raise StorageIOError(
                "conversation_store",
                f"Failed to write history file {self._path}: {e}",
                context={"path": str(self._path)},
            ) from e
        logger.debug(
            f"Saved history to: {self._path} ({len(document.conversations)} conversations)"
        )
