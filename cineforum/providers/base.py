"""Abstract base class for model providers.

Defines the ModelProvider interface every LLM adapter implements. The
oracles interact exclusively through this interface and never call
provider SDKs directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from cineforum.schemas.config import ModelConfig
from cineforum.schemas.oracle import ModelReply


class ModelProvider(ABC):
    """Abstract interface for any LLM backing an oracle.

    Initialized from a ModelConfig loaded from the TOML registry. Exposes
    identity, cost info, and a single async complete() method.
    """

    def __init__(self, config: ModelConfig) -> None:
        self._config = config

    # ── Identity ──────────────────────────────────────────────

    @property
    def provider_id(self) -> str:
        """Provider identifier (e.g. 'google', 'openai')."""
        return self._config.provider

    @property
    def model_id(self) -> str:
        """LiteLLM model identifier used for routing."""
        return self._config.model

    @property
    def display_name(self) -> str:
        return self._config.display_name

    @property
    def config(self) -> ModelConfig:
        return self._config

    # ── Core interface ────────────────────────────────────────

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str,
        *,
        json_mode: bool = False,
        timeout: int = 60,
    ) -> ModelReply:
        """Send a completion request and return the reply text.

        Args:
            messages: Conversation messages in OpenAI format
                      (list of {"role": ..., "content": ...} dicts).
            system: System prompt for this call.
            json_mode: Ask for a JSON object reply when the model supports it.
            timeout: Timeout in seconds for the model call.

        Raises:
            TimeoutError: If the model call exceeds the timeout.
            RuntimeError: If the model call fails after all retries.
        """

    def calculate_cost(self, prompt_tokens: int, completion_tokens: int) -> float:
        """Estimated USD cost for a given token count."""
        input_cost = (prompt_tokens / 1_000_000) * self._config.cost_input
        output_cost = (completion_tokens / 1_000_000) * self._config.cost_output
        return input_cost + output_cost
