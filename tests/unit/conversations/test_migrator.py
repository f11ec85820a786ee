"""Unit tests for history schema migration."""

from __future__ import annotations

import json
import re

import pytest

from n00bkeys.conversations.migrator import BACKUP_SUFFIX, SchemaMigrator
from n00bkeys.errors import MigrationError
from n00bkeys.models import HISTORY_VERSION


def _raw(payload) -> bytes:
    return json.dumps(payload).encode("utf-8")


@pytest.fixture
def migrator() -> SchemaMigrator:
    return SchemaMigrator()


class TestInspect:
    """Version detection and parse paths."""

    def test_missing_file_is_empty_current_document(self, migrator):
        result = migrator.inspect(None)
        assert result.document.version == HISTORY_VERSION
        assert result.document.conversations == []
        assert not result.needs_upgrade
        assert not result.degraded

    def test_blank_file_is_empty_current_document(self, migrator):
        result = migrator.inspect(b"  \n")
        assert result.document.conversations == []
        assert not result.degraded

    def test_current_document_parses_without_upgrade(self, migrator):
        raw = _raw(
            {
                "version": 2,
                "conversations": [
                    {
                        "id": "conv_abc",
                        "created_at": "2024-01-01T00:00:00Z",
                        "updated_at": "2024-01-01T00:00:00Z",
                        "summary": "hello",
                        "messages": [
                            {"role": "user", "content": "hello"},
                            {"role": "assistant", "content": "hi"},
                        ],
                    }
                ],
            }
        )
        result = migrator.inspect(raw)
        assert result.source_version == 2
        assert not result.needs_upgrade
        assert result.document.conversations[0].id == "conv_abc"
        assert result.document.conversations[0].messages[1].content == "hi"

    def test_legacy_document_needs_upgrade(self, migrator, legacy_history):
        result = migrator.inspect(_raw(legacy_history))
        assert result.source_version == 1
        assert result.needs_upgrade
        assert len(result.document.conversations) == 3

    def test_unversioned_document_is_legacy(self, migrator):
        raw = _raw({"entries": [{"timestamp": "2024-01-01T00:00:00Z", "prompt": "p", "response": "r"}]})
        result = migrator.inspect(raw)
        assert result.needs_upgrade
        assert result.document.conversations[0].messages[0].content == "p"

    @pytest.mark.parametrize(
        "raw",
        [
            b"{not json",
            b"\xff\xfe\x00",
            b"[1, 2, 3]",
            b'{"version": 2, "conversations": "nope"}',
            b'{"version": 2}',
            b'{"version": 2, "conversations": [{"id": "x"}]}',
            b'{"version": 1, "entries": "nope"}',
        ],
    )
    def test_corrupt_input_degrades_to_empty(self, migrator, raw):
        result = migrator.inspect(raw)
        assert result.degraded
        assert not result.needs_upgrade
        assert result.document.conversations == []

    def test_unknown_version_degrades_with_warning(self, migrator, caplog):
        result = migrator.inspect(_raw({"version": 7, "conversations": []}))
        assert result.degraded
        assert result.document.conversations == []
        assert "Unknown history version" in caplog.text

    def test_boolean_version_is_unknown(self, migrator):
        result = migrator.inspect(_raw({"version": True, "entries": []}))
        assert result.degraded


class TestUpgradeV1:
    """v1 entries become one single-turn conversation each."""

    def test_order_is_preserved(self, migrator, legacy_history):
        document = migrator.migrate(_raw(legacy_history))
        assert [c.messages[0].content for c in document.conversations] == ["p1", "p2", "p3"]
        assert document.conversations[0].messages[0].content == "p1"
        assert document.conversations[0].messages[1].content == "r1"

    def test_each_entry_becomes_one_turn(self, migrator, legacy_history):
        document = migrator.migrate(_raw(legacy_history))
        for conversation in document.conversations:
            assert [m.role for m in conversation.messages] == ["user", "assistant"]
            assert conversation.turn_count == 1

    def test_timestamps_and_ids(self, migrator, legacy_history):
        document = migrator.migrate(_raw(legacy_history))
        first = document.conversations[0]
        assert first.created_at == "2024-01-03T10:00:00Z"
        assert first.updated_at == "2024-01-03T10:00:00Z"
        assert first.messages[0].timestamp == "2024-01-03T10:00:00Z"
        assert re.fullmatch(r"conv_[0-9a-f]{12}", first.id)
        assert len({c.id for c in document.conversations}) == 3

    def test_summary_is_truncated_prompt(self, migrator):
        prompt = "x" * 60
        document = migrator.migrate(
            _raw({"version": 1, "entries": [{"timestamp": "t", "prompt": prompt, "response": "r"}]})
        )
        assert document.conversations[0].summary == "x" * 50 + "..."

    def test_empty_prompt_keeps_empty_summary(self, migrator):
        document = migrator.migrate(
            _raw({"version": 1, "entries": [{"timestamp": "t", "prompt": "", "response": "r"}]})
        )
        assert document.conversations[0].summary == ""

    def test_missing_timestamp_is_filled(self, migrator):
        document = migrator.migrate(_raw({"version": 1, "entries": [{"prompt": "p", "response": "r"}]}))
        assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\dZ", document.conversations[0].created_at)


class TestBackup:
    """Byte-exact copy of the legacy file."""

    def test_backup_path(self, migrator, tmp_path):
        path = tmp_path / "history.json"
        assert migrator.backup_path(path) == tmp_path / f"history.json{BACKUP_SUFFIX}"

    def test_write_backup_is_byte_exact(self, migrator, tmp_path):
        path = tmp_path / "history.json"
        raw = b'{"version": 1, "entries": []}  \n'
        backup = migrator.write_backup(path, raw)
        assert backup.read_bytes() == raw

    def test_write_backup_failure_raises_migration_error(self, migrator, tmp_path):
        path = tmp_path / "missing-dir" / "history.json"
        with pytest.raises(MigrationError) as exc_info:
            migrator.write_backup(path, b"{}")
        assert exc_info.value.context["backup"].endswith(BACKUP_SUFFIX)
