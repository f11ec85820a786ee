"""
Query Request and Response Models

Pydantic models for the completion service round-trip.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class LLMMessage(BaseModel):
    """Single message in an outbound query."""

    role: Literal["system", "user", "assistant"] = Field(
        ...,
        description="Message role"
    )
    content: str = Field(
        ...,
        description="Message content",
        min_length=1
    )


class LLMUsage(BaseModel):
    """Token usage information."""

    prompt_tokens: int = Field(
        0,
        ge=0,
        description="Number of tokens in the prompt"
    )
    completion_tokens: int = Field(
        0,
        ge=0,
        description="Number of tokens in the completion"
    )
    total_tokens: int = Field(
        0,
        ge=0,
        description="Total tokens used"
    )


class LLMResponse(BaseModel):
    """Answer returned by the completion service."""

    content: str = Field(
        ...,
        description="Generated text content"
    )
    model: str = Field(
        ...,
        description="Model that generated the response"
    )
    usage: LLMUsage = Field(
        default_factory=LLMUsage,
        description="Token usage information"
    )
    finish_reason: Optional[str] = Field(
        None,
        description="Reason the generation stopped"
    )
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional response data (id, created)"
    )


MessageInput = List[LLMMessage] | List[Dict[str, str]]
