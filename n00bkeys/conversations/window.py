"""
Context Window

Selects the most recent turns of a conversation for an outbound query.
The system preamble is not included; the prompt builder prepends it.
"""

from collections.abc import Sequence

from n00bkeys.models import Conversation, Message


def build_context_window(
    conversation: Conversation | Sequence[Message],
    max_turns: int | None = None,
) -> list[dict[str, str]]:
    """
    Return the last ``max_turns`` user+assistant turns, oldest first.

    Walks backwards counting user messages and stops at the ``max_turns``-th
    one. ``max_turns`` unset or <= 0 keeps the whole conversation.

    Example:
        >>> build_context_window(conversation_with_5_turns, max_turns=2)  # 4 messages
    """
    messages = conversation.messages if isinstance(conversation, Conversation) else conversation

    if not max_turns or max_turns <= 0:
        kept = list(messages)
    else:
        kept = []
        user_count = 0
        for message in reversed(messages):
            kept.append(message)
            if message.role == "user":
                user_count += 1
                if user_count >= max_turns:
                    break
        kept.reverse()

    # Migrated history may hold empty prompts or responses; the API rejects them.
    return [
        {"role": message.role, "content": message.content} for message in kept if message.content
    ]


class ContextWindowBuilder:
    """Binds a default turn limit, typically ``HistorySettings.max_conversation_turns``."""

    def __init__(self, max_turns: int | None = None) -> None:
        self.max_turns = max_turns

    def build(
        self,
        conversation: Conversation | Sequence[Message],
        max_turns: int | None = None,
    ) -> list[dict[str, str]]:
        return build_context_window(
            conversation,
            self.max_turns if max_turns is None else max_turns,
        )
