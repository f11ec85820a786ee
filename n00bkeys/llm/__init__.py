"""
Query Service Module

Blocking OpenAI chat completion client behind a small abstract interface.

Usage:
    from n00bkeys.llm import create_query_service
    from n00bkeys.settings_resolver import ConfigResolver
    from n00bkeys.settings_store import ConfigStore

    service = create_query_service(ConfigResolver(ConfigStore()))
    answer = service.send([{"role": "user", "content": "Hello!"}])
"""

from n00bkeys.llm.base import BaseQueryService
from n00bkeys.llm.factory import create_query_service
from n00bkeys.llm.models import LLMMessage, LLMResponse, LLMUsage
from n00bkeys.llm.openai import OpenAIQueryService

__all__ = [
    "BaseQueryService",
    "LLMMessage",
    "LLMResponse",
    "LLMUsage",
    "OpenAIQueryService",
    "create_query_service",
]
