"""
Pipeline Module

Request flow for a single question: prompt, context window, query, history.

Usage:
    from n00bkeys.pipeline import ChatSession

    session = ChatSession(conversations, prompts, query_service, window)
    result = session.submit("how do I split the window?")
    print(result.conversation.messages[-1].content)
"""

from n00bkeys.pipeline.session import ChatSession

__all__ = ["ChatSession"]
