"""Model registry and TOML configuration loader.

Loads model definitions from models.toml and forum defaults (including
the debate slot catalogue) from defaults.toml.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

from cineforum.schemas.config import ForumConfig, ModelConfig, SlotCategory

# Default config directory inside the cineforum package
_CONFIG_DIR = Path(__file__).parent.parent / "config"


def load_models(config_path: Path | None = None) -> dict[str, ModelConfig]:
    """Load the model registry from a TOML file.

    Args:
        config_path: Path to models.toml. Defaults to cineforum/config/models.toml.

    Returns:
        Dictionary mapping model keys to ModelConfig instances, in file order.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the TOML structure is invalid.
    """
    path = config_path or _CONFIG_DIR / "models.toml"
    if not path.exists():
        raise FileNotFoundError(f"Model registry not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    models_section = raw.get("models")
    if not models_section or not isinstance(models_section, dict):
        raise ValueError(f"No [models] section found in {path}")

    registry: dict[str, ModelConfig] = {}
    for key, entry in models_section.items():
        if not isinstance(entry, dict):
            continue
        registry[key] = ModelConfig(**entry)

    return registry


def load_forum_config(config_path: Path | None = None) -> ForumConfig:
    """Load forum defaults from a TOML file.

    Args:
        config_path: Path to defaults.toml. Defaults to cineforum/config/defaults.toml.

    Returns:
        ForumConfig with values from the [forum] table and the
        [[slots.categories]] catalogue.

    Raises:
        FileNotFoundError: If the config file does not exist.
    """
    path = config_path or _CONFIG_DIR / "defaults.toml"
    if not path.exists():
        raise FileNotFoundError(f"Forum config not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    forum_section = raw.get("forum", {})
    categories = [
        SlotCategory(**entry)
        for entry in raw.get("slots", {}).get("categories", [])
    ]

    return ForumConfig(**forum_section, slot_categories=categories)


def select_model(registry: dict[str, ModelConfig], key: str = "") -> ModelConfig:
    """Pick a model by key, or the first registry entry when ``key`` is empty.

    Raises:
        KeyError: If ``key`` names a model that is not in the registry.
        RuntimeError: If the registry is empty.
    """
    if key:
        if key not in registry:
            raise KeyError(f"Unknown model key: {key}")
        return registry[key]
    if not registry:
        raise RuntimeError("No models available in the registry")
    return next(iter(registry.values()))
