"""
Conversation history: persistence, migration, business operations and the
context window sent with each query.

Usage:
    from n00bkeys.conversations import ConversationService, ConversationStore

    service = ConversationService(ConversationStore())
    service.append_exchange("how do I undo a commit?", "git reset --soft HEAD~1")
"""

from .migrator import MigrationResult, SchemaMigrator
from .service import ConversationService, ExchangeResult
from .store import ConversationStore
from .window import ContextWindowBuilder, build_context_window

__all__ = [
    "ContextWindowBuilder",
    "ConversationService",
    "ConversationStore",
    "ExchangeResult",
    "MigrationResult",
    "SchemaMigrator",
    "build_context_window",
]
