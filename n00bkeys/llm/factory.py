"""
Query Service Factory

Builds the completion service from application settings and the resolved
API key.
"""

import logging

from n00bkeys.config import Settings, get_settings
from n00bkeys.llm.base import BaseQueryService
from n00bkeys.llm.openai import OpenAIQueryService
from n00bkeys.settings_resolver import ConfigResolver

logger = logging.getLogger(__name__)


def create_query_service(
    resolver: ConfigResolver,
    settings: Settings | None = None,
) -> BaseQueryService:
    """
    Create the OpenAI query service.

    Raises:
        AbsentValueError: If no source yields an API key
    """
    settings = settings or get_settings()
    api_key = resolver.require("api_key")

    logger.debug(
        f"Creating openai query service with model {settings.llm.openai_model}",
        extra={"model": settings.llm.openai_model},
    )
    return OpenAIQueryService(
        api_key=api_key,
        model=settings.llm.openai_model,
        temperature=settings.llm.temperature,
        max_tokens=settings.llm.max_tokens,
        timeout=settings.llm.timeout,
    )
