"""
Chat Session

Wires one question through the prompt builder, the context window and the
query service, then records the completed exchange in history.
"""

import logging
from dataclasses import dataclass

from n00bkeys.conversations.service import ConversationService, ExchangeResult
from n00bkeys.conversations.window import ContextWindowBuilder
from n00bkeys.errors import ValidationError
from n00bkeys.llm.base import BaseQueryService
from n00bkeys.models import Message
from n00bkeys.prompt import PromptBuilder

logger = logging.getLogger(__name__)


@dataclass
class ChatSession:
    """
    One interactive session over the active conversation.

    A query that fails never reaches history: ``submit`` only appends the
    exchange after the query service returned an answer.
    """

    conversations: ConversationService
    prompts: PromptBuilder
    query_service: BaseQueryService
    window: ContextWindowBuilder

    def build_messages(self, text: str) -> list[dict[str, str]]:
        """System prompt followed by the pruned conversation ending with ``text``."""
        pending = self.conversations.active_messages() + [Message(role="user", content=text)]
        return [
            {"role": "system", "content": self.prompts.system_prompt(text)},
            *self.window.build(pending),
        ]

    def submit(self, text: str) -> ExchangeResult:
        """
        Ask ``text`` in the active conversation and record the answer.

        Raises:
            ValidationError: If ``text`` is blank
            QueryError: If the query service fails (history is untouched)
        """
        text = text.strip()
        if not text:
            raise ValidationError("chat_session", "Question must not be empty")

        if self.conversations.get_active() is None:
            self.conversations.restore_last()

        messages = self.build_messages(text)
        logger.debug(
            f"Submitting question in {self.conversations.get_active()}",
            extra={"message_count": len(messages)},
        )

        answer = self.query_service.send(messages)
        result = self.conversations.append_exchange(text, answer)
        if not result.persisted and result.error is not None:
            logger.warning(f"Answer received but history not saved: {result.error.message}")
        return result
