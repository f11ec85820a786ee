"""
OpenAI Query Service

BaseQueryService implementation over the OpenAI chat completions API.
"""

import logging

import openai
from openai import OpenAI

from n00bkeys.errors import QueryError
from n00bkeys.llm.base import BaseQueryService
from n00bkeys.llm.models import LLMMessage, LLMResponse, LLMUsage

logger = logging.getLogger(__name__)


class OpenAIQueryService(BaseQueryService):
    """
    Blocking OpenAI chat completion client.

    Uses the official openai Python SDK. Transport and API failures surface
    as QueryError; no retries are attempted.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        max_tokens: int = 500,
        timeout: int = 30,
        client: OpenAI | None = None,
    ):
        """
        Initialize OpenAI query service.

        Args:
            api_key: OpenAI API key
            model: Chat model to use
            temperature: Sampling temperature
            max_tokens: Max tokens per answer
            timeout: Request timeout in seconds
            client: Preconfigured client (tests)
        """
        super().__init__(
            provider_name="openai",
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )

        self.model = model
        self.client = client or OpenAI(
            api_key=api_key,
            timeout=float(timeout),
            max_retries=0,
        )

        logger.debug(f"OpenAI query service initialized with model: {model}", extra={"model": model})

    def complete(self, messages: list[LLMMessage]) -> LLMResponse:
        """
        Run one completion.

        Raises:
            QueryError: On timeout, API error, or an empty answer
        """
        self._log_request(messages)

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": msg.role, "content": msg.content} for msg in messages],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except openai.APITimeoutError as e:
            logger.error(f"OpenAI API timeout: {e}")
            raise QueryError(
                "openai",
                f"Request timed out after {self.timeout}s",
                context={"model": self.model},
            ) from e
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise QueryError(
                "openai",
                f"OpenAI API error: {e}",
                context={"model": self.model},
            ) from e

        if not response.choices or not response.choices[0].message.content:
            raise QueryError("openai", "Empty response from API", context={"model": self.model})

        usage = response.usage
        llm_response = LLMResponse(
            content=response.choices[0].message.content.strip(),
            model=response.model or self.model,
            usage=LLMUsage(
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                total_tokens=usage.total_tokens,
            )
            if usage
            else LLMUsage(),
            finish_reason=response.choices[0].finish_reason,
            metadata={"id": response.id, "created": response.created},
        )

        self._log_response(llm_response)
        return llm_response
