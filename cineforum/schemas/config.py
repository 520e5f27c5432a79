"""Configuration schemas.

Defines the model registry entry (ModelConfig), the offered debate slot
catalogue (SlotCategory), and the top-level ForumConfig loaded from
defaults.toml.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ModelConfig(BaseModel):
    """Configuration for a single LLM model in the registry.

    Loaded from models.toml. Each entry provides the LiteLLM routing
    information and cost data.
    """

    provider: str = Field(description="Provider identifier (e.g. 'google', 'openai')")
    model: str = Field(description="LiteLLM model identifier (e.g. 'gemini/gemini-2.5-flash')")
    display_name: str = Field(description="Human-friendly model name for CLI output")
    api_key_env: str = Field(description="Environment variable name holding the API key")
    api_base: str = Field(default="", description="Custom API base URL (empty = provider default)")
    context_window: int = Field(gt=0, description="Maximum context window size in tokens")
    supports_structured: bool = Field(
        default=False, description="Whether the model supports structured output"
    )
    cost_input: float = Field(ge=0.0, description="Cost per 1M input tokens in USD")
    cost_output: float = Field(ge=0.0, description="Cost per 1M output tokens in USD")


class SlotCategory(BaseModel):
    """A block of candidate debate hours (e.g. Saturday afternoon)."""

    id: str = Field(description="Stable category identifier")
    label: str = Field(description="Human-friendly label, used as the slot key prefix")
    hours: list[str] = Field(default_factory=list, description="Offered start hours (HH:MM)")

    def slot_keys(self) -> list[str]:
        return [f"{self.label} {hour}" for hour in self.hours]


class ForumConfig(BaseModel):
    """Top-level configuration for the cineforum engine.

    Loaded from defaults.toml. Controls storage, oracle timeouts and models,
    phase windows, moderator behaviour and concurrency retries.
    """

    session_db_path: str = Field(
        default="~/.cineforum/sessions.db",
        description="Path to the session database file",
    )
    oracle_timeout: int = Field(
        default=60, gt=0, description="Timeout in seconds for an oracle call",
    )
    consensus_model: str = Field(
        default="", description="Model key for the consensus oracle (empty = first)",
    )
    host_model: str = Field(
        default="", description="Model key for the moderator/host oracle (empty = first)",
    )
    voting_days: int = Field(
        default=7, ge=0, description="Days from creation to the voting deadline",
    )
    viewing_days: int = Field(
        default=14, ge=0, description="Days from creation to the viewing deadline",
    )
    moderator_window: int = Field(
        default=10, ge=1, description="Recent messages handed to the moderator oracle",
    )
    spontaneous_probability: float = Field(
        default=0.20, ge=0.0, le=1.0,
        description="Chance the moderator chimes in without being mentioned",
    )
    max_cas_retries: int = Field(
        default=8, ge=1, description="Compare-and-swap attempts before giving up",
    )
    slot_categories: list[SlotCategory] = Field(
        default_factory=list, description="Offered debate slot catalogue",
    )

    def slot_catalogue(self) -> list[str]:
        """All offered slot keys, in category order."""
        return [key for cat in self.slot_categories for key in cat.slot_keys()]
