"""
Conversation Service

Business operations over the history document: the active conversation,
appending completed exchanges, listing/restoring/deleting past conversations
and the retention limit.

Indexes exposed to callers are 1-based positions in the newest-first list,
matching what the history view shows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from n00bkeys.conversations.store import ConversationStore
from n00bkeys.errors import StateError, ValidationError
from n00bkeys.models import (
    Conversation,
    HistoryDocument,
    Message,
    new_conversation_id,
    summarize,
    utc_timestamp,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONVERSATIONS = 100
RESTORE_MODES = ("session", "always", "never")


@dataclass
class ExchangeResult:
    """Outcome of recording one exchange; ``persisted`` is False when the write failed."""

    conversation: Conversation
    persisted: bool
    error: StateError | None = None


class ConversationService:
    """Own the active conversation and mediate all history mutations."""

    def __init__(
        self,
        store: ConversationStore,
        max_conversations: int = DEFAULT_MAX_CONVERSATIONS,
        history_enabled: bool = True,
        restore_mode: str = "session",
        last_conversation_path: Path | None = None,
    ) -> None:
        if max_conversations < 1:
            raise ValidationError(
                "conversation_service",
                f"max_conversations must be at least 1, got {max_conversations}",
            )
        self.store = store
        self.max_conversations = max_conversations
        self.history_enabled = history_enabled
        self.restore_mode = self._check_mode(restore_mode)
        self.last_conversation_path = last_conversation_path

        self._active_id: str | None = None
        self._active: Conversation | None = None
        self._last_id: str | None = None

    # ------------------------------------------------------------------
    # Active conversation
    # ------------------------------------------------------------------

    def start_new(self) -> str:
        """Begin a fresh active conversation; nothing is written until an exchange completes."""
        self._active_id = new_conversation_id()
        self._active = None
        self._last_id = None
        logger.debug(f"New conversation started: {self._active_id}")
        return self._active_id

    def get_active(self) -> str | None:
        return self._active_id

    def get_active_conversation(self) -> Conversation | None:
        if self._active is None:
            return None
        return self._active.model_copy(deep=True)

    def active_messages(self) -> list[Message]:
        return list(self._active.messages) if self._active else []

    def append_exchange(self, user_text: str, assistant_text: str) -> ExchangeResult:
        """
        Record a completed user/assistant exchange in the active conversation.

        The exchange stays recorded in memory even when the write fails; the
        failure is reported on the result rather than rolled back.

        Raises:
            ValidationError: If either side of the exchange is empty
        """
        if not user_text or not assistant_text:
            raise ValidationError(
                "conversation_service",
                "An exchange needs both a user message and an assistant response",
            )

        if self._active_id is None:
            self.start_new()

        now = utc_timestamp()
        if self._active is None:
            self._active = Conversation(id=self._active_id, created_at=now, updated_at=now)

        conversation = self._active
        conversation.messages.append(Message(role="user", content=user_text, timestamp=now))
        conversation.messages.append(
            Message(role="assistant", content=assistant_text, timestamp=now)
        )
        conversation.updated_at = now
        if not conversation.summary:
            conversation.summary = summarize(conversation.messages)
        self._last_id = conversation.id

        if not self.history_enabled:
            logger.debug("History disabled, not saving conversation")
            return ExchangeResult(conversation.model_copy(deep=True), persisted=False)

        try:
            document = self.store.load()
            self._upsert(document, conversation)
            self._apply_retention(document)
            self.store.save(document)
            self._write_marker(conversation.id)
        except StateError as e:
            logger.error(
                f"Failed to persist conversation {conversation.id}: {e.message}",
                extra={"error": e.to_dict()},
            )
            return ExchangeResult(conversation.model_copy(deep=True), persisted=False, error=e)

        logger.debug(
            f"Saved conversation: {conversation.id}",
            extra={"turns": conversation.turn_count},
        )
        return ExchangeResult(conversation.model_copy(deep=True), persisted=True)

    # ------------------------------------------------------------------
    # Stored conversations
    # ------------------------------------------------------------------

    def list(self) -> list[Conversation]:
        """Stored conversations, newest first, exactly as persisted."""
        return [c.model_copy(deep=True) for c in self.store.load().conversations]

    def get(self, index: int) -> Conversation:
        document = self.store.load()
        self._check_index(index, document)
        return document.conversations[index - 1].model_copy(deep=True)

    def restore(self, index: int) -> Conversation:
        """Make the conversation at ``index`` the active one and return it."""
        conversation = self.get(index)
        self._activate(conversation)
        return conversation.model_copy(deep=True)

    def restore_by_id(self, conversation_id: str) -> Conversation | None:
        for conversation in self.store.load().conversations:
            if conversation.id == conversation_id:
                self._activate(conversation.model_copy(deep=True))
                return conversation.model_copy(deep=True)
        logger.debug(f"Conversation not found: {conversation_id}")
        return None

    def restore_last(self, mode: str | None = None) -> str:
        """
        Pick the active conversation when a session opens.

        never:   always start a new conversation
        session: keep this process's conversation, else start new
        always:  like session, then fall back to the last conversation id
                 written to disk by a previous process
        """
        mode = self._check_mode(mode or self.restore_mode)
        if mode == "never":
            return self.start_new()

        if self._active_id is not None:
            return self._active_id

        last_id = self._last_id
        if last_id is None and mode == "always":
            last_id = self._read_marker()
        if last_id and self.restore_by_id(last_id) is not None:
            logger.info(f"Conversation restored: {last_id}")
            return last_id
        return self.start_new()

    def delete(self, index: int) -> Conversation:
        """
        Remove the conversation at ``index`` and persist.

        Raises:
            ValidationError: If ``index`` is out of range (nothing is changed)
            StorageIOError: If the history file cannot be written (nothing is changed)
        """
        document = self.store.load()
        self._check_index(index, document)

        updated = document.model_copy(deep=True)
        removed = updated.conversations.pop(index - 1)
        self.store.save(updated)

        if removed.id == self._active_id:
            self._drop_active()
        logger.debug(f"Deleted conversation {removed.id} (index {index})")
        return removed

    def clear_all(self) -> None:
        """Remove every stored conversation and persist."""
        self.store.save(HistoryDocument())
        self._drop_active()
        logger.debug("Cleared conversation history")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _activate(self, conversation: Conversation) -> None:
        self._active_id = conversation.id
        self._active = conversation
        self._last_id = conversation.id
        self._write_marker(conversation.id)

    def _drop_active(self) -> None:
        self._active_id = None
        self._active = None
        self._last_id = None

    @staticmethod
    def _upsert(document: HistoryDocument, conversation: Conversation) -> None:
        stored = conversation.model_copy(deep=True)
        for position, existing in enumerate(document.conversations):
            if existing.id == conversation.id:
                document.conversations[position] = stored
                return
        document.conversations.insert(0, stored)

    def _apply_retention(self, document: HistoryDocument) -> None:
        excess = len(document.conversations) - self.max_conversations
        if excess > 0:
            del document.conversations[self.max_conversations :]
            logger.debug(f"Retention dropped {excess} oldest conversation(s)")

    @staticmethod
    def _check_index(index: int, document: HistoryDocument) -> None:
        count = len(document.conversations)
        if not isinstance(index, int) or index < 1 or index > count:
            raise ValidationError(
                "conversation_service",
                f"Invalid conversation index: {index} (have {count})",
                context={"index": index, "count": count},
            )

    @staticmethod
    def _check_mode(mode: str) -> str:
        if mode not in RESTORE_MODES:
            raise ValidationError(
                "conversation_service",
                f"Invalid restore mode: {mode!r} (expected one of {', '.join(RESTORE_MODES)})",
            )
        return mode

    def _write_marker(self, conversation_id: str) -> None:
        if self.restore_mode != "always" or self.last_conversation_path is None:
            return
        try:
            self.last_conversation_path.parent.mkdir(parents=True, exist_ok=True)
            self.last_conversation_path.write_text(conversation_id + "\n", encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not persist last conversation id: {e}")

    def _read_marker(self) -> str | None:
        if self.last_conversation_path is None or not self.last_conversation_path.is_file():
            return None
        try:
            value = self.last_conversation_path.read_text(encoding="utf-8").strip()
        except OSError as e:
            logger.warning(f"Could not read last conversation id: {e}")
            return None
        return value or None
