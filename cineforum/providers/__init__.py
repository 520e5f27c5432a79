"""Model providers backing the cineforum oracles."""

from cineforum.providers.base import ModelProvider
from cineforum.providers.litellm_provider import LiteLLMProvider
from cineforum.providers.registry import load_forum_config, load_models, select_model

__all__ = [
    "LiteLLMProvider",
    "ModelProvider",
    "load_forum_config",
    "load_models",
    "select_model",
]
