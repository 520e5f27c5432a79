"""Tests for cineforum.providers.registry — TOML config loading and model registry."""

from pathlib import Path

import pytest

from cineforum.providers.registry import load_forum_config, load_models, select_model
from cineforum.schemas.config import ForumConfig, ModelConfig

# Path to the real config files shipped with the package
_CONFIG_DIR = Path(__file__).parent.parent / "cineforum" / "config"


class TestLoadModels:
    def test_loads_real_config(self):
        registry = load_models(_CONFIG_DIR / "models.toml")
        assert list(registry) == ["gemini-flash", "gpt-4o-mini", "claude-haiku"]

    def test_default_path(self):
        assert "gemini-flash" in load_models()

    def test_model_config_types(self):
        registry = load_models(_CONFIG_DIR / "models.toml")
        for key, model in registry.items():
            assert isinstance(model, ModelConfig), f"{key} is not ModelConfig"
            assert model.api_key_env.endswith("_API_KEY")
            assert model.context_window > 0

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_models(tmp_path / "nope.toml")

    def test_no_models_section(self, tmp_path):
        path = tmp_path / "models.toml"
        path.write_text('[other]\nkey = "value"\n')
        with pytest.raises(ValueError, match="No \\[models\\]"):
            load_models(path)

    def test_skips_non_table_entries(self, tmp_path):
        path = tmp_path / "models.toml"
        path.write_text(
            'stray = 1\n'
            '[models]\n'
            'note = "not a model"\n'
            '[models.local]\n'
            'provider = "ollama"\n'
            'model = "ollama/llama3"\n'
            'display_name = "Llama 3"\n'
            'api_key_env = "OLLAMA_API_KEY"\n'
            'api_base = "http://localhost:11434"\n'
            'context_window = 8192\n'
            'cost_input = 0.0\n'
            'cost_output = 0.0\n',
        )
        registry = load_models(path)
        assert list(registry) == ["local"]
        assert registry["local"].api_base == "http://localhost:11434"


class TestLoadForumConfig:
    def test_loads_real_config(self):
        config = load_forum_config(_CONFIG_DIR / "defaults.toml")
        assert isinstance(config, ForumConfig)
        assert config.consensus_model == "gemini-flash"
        assert config.moderator_window == 10
        assert config.spontaneous_probability == pytest.approx(0.20)
        assert len(config.slot_categories) == 7

    def test_slot_catalogue(self):
        catalogue = load_forum_config().slot_catalogue()
        assert catalogue[0] == "Fri Night 20:00"
        assert "Sun Night 23:00" in catalogue
        assert len(catalogue) == len(set(catalogue))

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "defaults.toml"
        path.write_text("")
        config = load_forum_config(path)
        assert config == ForumConfig()
        assert config.slot_catalogue() == []

    def test_invalid_value_rejected(self, tmp_path):
        path = tmp_path / "defaults.toml"
        path.write_text("[forum]\nspontaneous_probability = 1.5\n")
        with pytest.raises(ValueError):
            load_forum_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_forum_config(tmp_path / "nope.toml")


class TestSelectModel:
    def test_by_key(self):
        registry = load_models()
        assert select_model(registry, "claude-haiku").provider == "anthropic"

    def test_empty_key_picks_first(self):
        registry = load_models()
        assert select_model(registry).model == "gemini/gemini-2.5-flash"

    def test_unknown_key(self):
        with pytest.raises(KeyError):
            select_model(load_models(), "gpt-99")

    def test_empty_registry(self):
        with pytest.raises(RuntimeError):
            select_model({})
