"""
Base Query Service

Abstract interface for the remote completion collaborator. The chat session
only depends on ``send``; ``complete`` exposes usage metadata for callers
that want it.
"""

import logging
from abc import ABC, abstractmethod

from pydantic import ValidationError as PydanticValidationError

from n00bkeys.errors import QueryError
from n00bkeys.llm.models import LLMMessage, LLMResponse, MessageInput

logger = logging.getLogger(__name__)


class BaseQueryService(ABC):
    """
    Abstract base class for completion services.

    Attributes:
        provider_name: Unique identifier for this service
        temperature: Sampling temperature
        max_tokens: Maximum tokens to generate
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        provider_name: str,
        temperature: float = 0.7,
        max_tokens: int = 500,
        timeout: int = 30,
    ):
        self.provider_name = provider_name
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

        logger.debug(
            f"Initialized {provider_name} query service",
            extra={
                "provider": provider_name,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )

    @abstractmethod
    def complete(self, messages: list[LLMMessage]) -> LLMResponse:
        """
        Run one blocking completion.

        Raises:
            QueryError: On transport or API failure
        """
        pass  # pragma: no cover - abstract method

    def send(self, messages: MessageInput) -> str:
        """Send ``messages`` and return the answer text."""
        return self.complete(self._coerce(messages)).content

    def _coerce(self, messages: MessageInput) -> list[LLMMessage]:
        try:
            return [
                message if isinstance(message, LLMMessage) else LLMMessage(**message)
                for message in messages
            ]
        except PydanticValidationError as e:
            raise QueryError(
                self.provider_name,
                f"Invalid outbound message: {e.errors()[0]['msg']}",
                recoverable=False,
            ) from e

    def _log_request(self, messages: list[LLMMessage]) -> None:
        """Log request details for debugging."""
        logger.debug(
            f"{self.provider_name} request",
            extra={
                "provider": self.provider_name,
                "message_count": len(messages),
                "temperature": self.temperature,
                "max_tokens": self.max_tokens,
            },
        )

    def _log_response(self, response: LLMResponse) -> None:
        """Log response details for debugging."""
        logger.debug(
            f"{self.provider_name} response",
            extra={
                "provider": self.provider_name,
                "model": response.model,
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
                "finish_reason": response.finish_reason,
            },
        )
