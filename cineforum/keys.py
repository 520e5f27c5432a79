"""API key loading for the oracle models.

Keys are read into the environment with this priority:
  1. Environment variables (highest, already set in shell)
  2. ~/.cineforum/keys.env (user-level keys)
  3. .env in current directory (project-level)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from cineforum.schemas.config import ModelConfig

logger = logging.getLogger(__name__)

CINEFORUM_HOME = Path.home() / ".cineforum"
KEYS_FILE = CINEFORUM_HOME / "keys.env"

# Provider definitions: (env_var, display_name)
PROVIDERS = [
    ("GEMINI_API_KEY", "Google (Gemini)"),
    ("OPENAI_API_KEY", "OpenAI (GPT-4o)"),
    ("ANTHROPIC_API_KEY", "Anthropic (Claude)"),
]


def load_keys_env(home_file: Path | None = None) -> None:
    """Load API keys from keys.env and ./.env into os.environ.

    Existing env vars are NOT overwritten, and a later file never
    overwrites an earlier one.
    """
    files = [home_file or KEYS_FILE, Path.cwd() / ".env"]
    for env_file in files:
        if env_file.is_file():
            _load_env_file(env_file)


def _load_env_file(path: Path) -> None:
    """Parse a simple KEY=VALUE .env file and set vars that aren't already set."""
    try:
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("'\"")
            if key and not os.environ.get(key):
                os.environ[key] = value
                logger.debug("Loaded %s from %s", key, path)
    except OSError:
        logger.debug("Could not read %s", path)


def has_key(model: ModelConfig) -> bool:
    """Whether the API key the model needs is present in the environment."""
    return bool(os.environ.get(model.api_key_env))


def has_any_key() -> bool:
    """Check if at least one provider API key is configured anywhere."""
    load_keys_env()
    return any(os.environ.get(env_var) for env_var, _ in PROVIDERS)
