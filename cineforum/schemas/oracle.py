"""Oracle call schemas.

Defines the reply envelope returned by model providers (ModelReply) and
its token accounting (TokenUsage).
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class TokenUsage(BaseModel):
    """Token consumption and cost tracking for a single model call."""

    prompt_tokens: int = Field(ge=0, description="Number of input tokens consumed")
    completion_tokens: int = Field(ge=0, description="Number of output tokens generated")
    cost: float = Field(ge=0.0, description="Estimated cost in USD for this call")


class ModelReply(BaseModel):
    """Text returned by a model provider, plus usage accounting."""

    content: str = Field(default="", description="Raw text content of the reply")
    model: str = Field(default="", description="Model identifier that produced the reply")
    token_usage: TokenUsage | None = Field(
        default=None, description="Token consumption and cost for this call",
    )
