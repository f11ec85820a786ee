"""Unit tests for conversation persistence store behavior."""

from __future__ import annotations

import json

import pytest

from n00bkeys.conversations.migrator import BACKUP_SUFFIX
from n00bkeys.conversations.store import ConversationStore
from n00bkeys.errors import MigrationError, StorageIOError
from n00bkeys.models import Conversation, HistoryDocument, Message


def _conversation(conv_id: str = "conv_000000000001", prompt: str = "hello") -> Conversation:
    return Conversation(
        id=conv_id,
        created_at="2024-01-01T00:00:00Z",
        updated_at="2024-01-01T00:00:00Z",
        summary=prompt,
        messages=[
            Message(role="user", content=prompt),
            Message(role="assistant", content="answer", timestamp="2024-01-01T00:00:00Z"),
        ],
    )


@pytest.fixture
def history_path(tmp_path):
    return tmp_path / "data" / "history.json"


def test_default_path_comes_from_settings(isolated_home):
    store = ConversationStore()
    assert store.path == isolated_home / ".n00bkeys" / "history.json"


def test_missing_file_loads_empty_without_writing(history_path):
    store = ConversationStore(history_path)
    document = store.load()
    assert document.version == 2
    assert document.conversations == []
    assert not history_path.exists()


def test_save_then_fresh_load_round_trips(history_path):
    document = HistoryDocument(conversations=[_conversation("conv_a"), _conversation("conv_b", "second")])
    ConversationStore(history_path).save(document)

    reloaded = ConversationStore(history_path).load()
    assert reloaded == document
    assert [c.id for c in reloaded.conversations] == ["conv_a", "conv_b"]


def test_resaving_loaded_document_leaves_bytes_unchanged(history_path, write_json, legacy_history):
    legacy_history["entries"][1]["response"] = ""
    legacy_history["entries"][2]["extra_field"] = "dropped"
    write_json(history_path, legacy_history)
    store = ConversationStore(history_path)
    migrated = store.load()
    migrated.conversations.append(_conversation("conv_untimed"))
    store.save(migrated)
    saved = history_path.read_bytes()

    store.invalidate()
    store.save(store.load())

    assert history_path.read_bytes() == saved
    fresh = ConversationStore(history_path)
    fresh.save(fresh.load())
    assert history_path.read_bytes() == saved


def test_saved_json_layout(history_path):
    ConversationStore(history_path).save(HistoryDocument(conversations=[_conversation()]))

    payload = json.loads(history_path.read_text(encoding="utf-8"))
    assert payload["version"] == 2
    conversation = payload["conversations"][0]
    assert list(conversation) == ["id", "created_at", "updated_at", "summary", "messages"]
    assert conversation["messages"][0] == {"role": "user", "content": "hello"}
    assert conversation["messages"][1]["timestamp"] == "2024-01-01T00:00:00Z"
    assert not history_path.with_name("history.json.tmp").exists()


def test_load_is_cached_until_invalidated(history_path, write_json):
    store = ConversationStore(history_path)
    first = store.load()
    assert store.load() is first

    write_json(history_path, {"version": 2, "conversations": [_conversation().model_dump()]})
    assert store.load().conversations == []

    store.invalidate()
    assert len(store.load().conversations) == 1


def test_corrupt_file_loads_empty_and_is_left_untouched(history_path, caplog):
    history_path.parent.mkdir(parents=True)
    history_path.write_text("{broken", encoding="utf-8")

    document = ConversationStore(history_path).load()

    assert document.conversations == []
    assert history_path.read_text(encoding="utf-8") == "{broken"
    assert "Corrupt history document" in caplog.text


def test_corrupt_file_is_replaced_on_next_save(history_path):
    history_path.parent.mkdir(parents=True)
    history_path.write_text("{broken", encoding="utf-8")

    store = ConversationStore(history_path)
    document = store.load()
    document.conversations.append(_conversation())
    store.save(document)

    assert json.loads(history_path.read_text(encoding="utf-8"))["version"] == 2


def test_unknown_version_file_is_left_untouched(history_path, write_json):
    write_json(history_path, {"version": 9, "conversations": []})
    before = history_path.read_bytes()

    document = ConversationStore(history_path).load()

    assert document.conversations == []
    assert history_path.read_bytes() == before


def test_write_failure_raises_storage_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    store = ConversationStore(blocker / "history.json")

    with pytest.raises(StorageIOError) as exc_info:
        store.save(HistoryDocument())
    assert exc_info.value.recoverable
    assert exc_info.value.context["path"].endswith("history.json")


class TestLegacyMigration:
    """v1 files are backed up and rewritten on first load."""

    def test_migrates_and_backs_up(self, history_path, write_json, legacy_history, caplog):
        write_json(history_path, legacy_history)
        original = history_path.read_bytes()

        document = ConversationStore(history_path).load()

        assert "Migrated history v1 -> v2 (3 conversations)" in caplog.text
        backup = history_path.with_name("history.json" + BACKUP_SUFFIX)
        assert backup.read_bytes() == original
        payload = json.loads(history_path.read_text(encoding="utf-8"))
        assert payload["version"] == 2
        assert len(payload["conversations"]) == 3
        assert document.conversations[0].messages[0].content == "p1"
        assert document.conversations[0].messages[1].content == "r1"

    def test_second_load_does_not_migrate_again(self, history_path, write_json, legacy_history):
        write_json(history_path, legacy_history)
        ConversationStore(history_path).load()
        backup = history_path.with_name("history.json" + BACKUP_SUFFIX)
        backup.unlink()

        ConversationStore(history_path).load()

        assert not backup.exists()

    def test_failed_backup_never_overwrites_legacy_file(
        self, history_path, write_json, legacy_history, caplog
    ):
        write_json(history_path, legacy_history)
        original = history_path.read_bytes()
        # A directory where the backup file should go makes the backup write fail.
        history_path.with_name("history.json" + BACKUP_SUFFIX).mkdir()

        store = ConversationStore(history_path)
        document = store.load()

        assert len(document.conversations) == 3
        assert history_path.read_bytes() == original
        assert "History migration aborted" in caplog.text

        with pytest.raises(MigrationError):
            store.save(document)
        assert history_path.read_bytes() == original

    def test_save_retries_backup_once_possible(self, history_path, write_json, legacy_history):
        write_json(history_path, legacy_history)
        original = history_path.read_bytes()
        backup = history_path.with_name("history.json" + BACKUP_SUFFIX)
        backup.mkdir()

        store = ConversationStore(history_path)
        document = store.load()
        backup.rmdir()
        store.save(document)

        assert backup.read_bytes() == original
        assert json.loads(history_path.read_text(encoding="utf-8"))["version"] == 2
