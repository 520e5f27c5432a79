"""LiteLLM adapter implementing the ModelProvider interface.

Every oracle call (slot consensus, host lines, pitches) goes through
litellm.acompletion() here. Transient provider failures are retried with
exponential backoff; anything else surfaces as RuntimeError so the oracles
can fall back or report ResolutionFailed.
"""

from __future__ import annotations

import asyncio
import logging
import os

import litellm

# Suppress LiteLLM's "Give Feedback / Get Help" and "Provider List" banners
litellm.suppress_debug_info = True

from cineforum.providers.base import ModelProvider
from cineforum.schemas.config import ModelConfig
from cineforum.schemas.oracle import ModelReply, TokenUsage

logger = logging.getLogger(__name__)

_MAX_ATTEMPTS = 3
_BASE_BACKOFF = 1.0  # seconds

_RETRYABLE = (
    litellm.RateLimitError,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
    litellm.APIConnectionError,
)

# First matching marker wins
_REASONS: list[tuple[tuple[str, ...], str]] = [
    (("rate", "429"), "rate limit"),
    (("overloaded", "529"), "overloaded"),
    (("timeout", "timed out"), "timeout"),
    (("503", "unavailable"), "service unavailable"),
    (("500", "internal"), "server error"),
    (("connection",), "connection error"),
]


def _short_error_reason(error: Exception) -> str:
    """One or two words describing a provider error, for retry logs."""
    if isinstance(error, TimeoutError):
        return "timeout"
    text = str(error).lower()
    for markers, reason in _REASONS:
        if any(marker in text for marker in markers):
            return reason
    return str(error)[:80]


class LiteLLMProvider(ModelProvider):
    """Oracle model reached through LiteLLM (Gemini, OpenAI, Anthropic, ...)."""

    def __init__(self, config: ModelConfig) -> None:
        super().__init__(config)
        self._api_key = os.environ.get(config.api_key_env, "")

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str,
        *,
        json_mode: bool = False,
        timeout: int = 60,
    ) -> ModelReply:
        """Send one oracle prompt and return the reply text.

        Raises:
            TimeoutError: If every attempt timed out.
            RuntimeError: If the request was rejected or kept failing.
        """
        request = {
            "model": self._config.model,
            "messages": [{"role": "system", "content": system}, *messages],
            "timeout": float(timeout),
        }
        if self._api_key:
            request["api_key"] = self._api_key
        if self._config.api_base:
            request["api_base"] = self._config.api_base
        if json_mode and self._config.supports_structured:
            request["response_format"] = {"type": "json_object"}

        response = await self._acompletion(request)

        usage = getattr(response, "usage", None)
        prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
        completion_tokens = getattr(usage, "completion_tokens", 0) or 0
        return ModelReply(
            content=_reply_text(response),
            model=self._config.model,
            token_usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                cost=self.calculate_cost(prompt_tokens, completion_tokens),
            ),
        )

    async def _acompletion(self, request: dict) -> litellm.ModelResponse:
        """litellm.acompletion with backoff on transient failures."""
        last_error: Exception | None = None

        for attempt in range(1, _MAX_ATTEMPTS + 1):
            try:
                return await litellm.acompletion(**request)
            except (TimeoutError, litellm.Timeout):
                last_error = TimeoutError(
                    f"{self._config.display_name} timed out after "
                    f"{request['timeout']:.0f}s (attempt {attempt}/{_MAX_ATTEMPTS})"
                )
            except litellm.AuthenticationError:
                raise RuntimeError(
                    f"Authentication failed for {self._config.model}. "
                    f"Check that {self._config.api_key_env} is set correctly."
                ) from None
            except litellm.BadRequestError as e:
                raise RuntimeError(f"{self._config.model} rejected the prompt: {e}") from e
            except _RETRYABLE as e:
                last_error = e
            except Exception as e:
                # NotFoundError, PermissionDeniedError, ContentPolicyViolationError, ...
                raise RuntimeError(f"{self._config.model} call failed: {e}") from e

            if attempt < _MAX_ATTEMPTS:
                backoff = _BASE_BACKOFF * 2 ** (attempt - 1)
                logger.warning(
                    "%s attempt %d/%d failed (%s), retrying in %.1fs",
                    self._config.display_name, attempt, _MAX_ATTEMPTS,
                    _short_error_reason(last_error), backoff,
                )
                await asyncio.sleep(backoff)

        if isinstance(last_error, TimeoutError):
            raise last_error
        raise RuntimeError(
            f"{self._config.model} failed after {_MAX_ATTEMPTS} attempts: {last_error}"
        ) from last_error


def _reply_text(response: litellm.ModelResponse) -> str:
    if not response.choices:
        return ""
    message = response.choices[0].message
    return (message.content or "") if message else ""
