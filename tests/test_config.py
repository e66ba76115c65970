"""Tests for config/config_loader.py."""

from pathlib import Path

import pytest
import yaml

from config.config_loader import (
    AppConfig,
    ModelConfig,
    PromptsConfig,
    RetryConfig,
    SummarizationConfig,
    load_config,
)
from writers_room.personas import build_personas


@pytest.fixture
def settings_dict() -> dict:
    return {
        "defaults": {
            "provider": "claude",
            "max_rounds": 4,
            "time_limit_sec": 900,
            "auto_stop": True,
            "output_dir": "./output",
        },
        "models": {
            "claude": {
                "sdk": "anthropic",
                "model": "claude-sonnet-4-20250514",
                "api_key_env": "TEST_CLAUDE_KEY",
                "timeout_sec": 120,
                "max_tokens": 2048,
            },
            "grok": {
                "sdk": "openai",
                "model": "grok-3-mini",
                "api_key_env": "TEST_XAI_KEY",
                "base_url": "https://api.x.ai/v1",
                "timeout_sec": 60,
                "max_tokens": 1024,
            },
        },
        "prompts": {
            "turn": "Topic: {topic}\n{transcript}\nYou are {name}.",
            "summary": "Summarize {topic}:\n{transcript}",
        },
        "personas": [
            {"id": "writer", "role": "writer", "name": "Mara", "system_prompt": "You write."},
        ],
    }


@pytest.fixture
def write_settings(tmp_path: Path):
    def _write(settings: dict) -> Path:
        path = tmp_path / "settings.yaml"
        path.write_text(yaml.dump(settings), encoding="utf-8")
        return path

    return _write


def test_load_config_returns_app_config(settings_dict, write_settings):
    assert isinstance(load_config(write_settings(settings_dict)), AppConfig)


def test_load_config_defaults(settings_dict, write_settings):
    defaults = load_config(write_settings(settings_dict)).defaults
    assert defaults.provider == "claude"
    assert defaults.max_rounds == 4
    assert defaults.time_limit_sec == 900.0
    assert defaults.auto_stop is True
    assert isinstance(defaults.output_dir, Path)
    assert defaults.token_limit is None
    assert defaults.save_to_database is False
    assert defaults.context_messages == 12


def test_load_config_optional_sections_fall_back(settings_dict, write_settings):
    config = load_config(write_settings(settings_dict))
    assert config.summarization == SummarizationConfig()
    assert config.retry == RetryConfig()
    assert config.quality.min_round == 2


def test_load_config_models(settings_dict, write_settings):
    config = load_config(write_settings(settings_dict))
    assert isinstance(config.models["claude"], ModelConfig)
    assert config.models["claude"].base_url is None
    assert config.models["grok"].base_url == "https://api.x.ai/v1"
    assert config.models["grok"].sdk == "openai"


def test_load_config_prompts_and_personas(settings_dict, write_settings):
    config = load_config(write_settings(settings_dict))
    assert isinstance(config.prompts, PromptsConfig)
    assert "{transcript}" in config.prompts.summary
    assert config.personas[0]["name"] == "Mara"


def test_available_providers_follow_env(settings_dict, write_settings, monkeypatch):
    monkeypatch.setenv("TEST_CLAUDE_KEY", "sk-test")
    monkeypatch.setenv("TEST_XAI_KEY", "   ")
    config = load_config(write_settings(settings_dict))
    assert config.available_providers == {"claude"}


def test_summarization_section_is_read(settings_dict, write_settings):
    settings_dict["summarization"] = {"threshold": 8000, "threshold_mode": "tokens", "preserve_recent": 5}
    config = load_config(write_settings(settings_dict))
    assert config.summarization.threshold == 8000
    assert config.summarization.threshold_mode == "tokens"
    assert config.summarization.preserve_recent == 5


def test_bad_threshold_mode_raises(settings_dict, write_settings):
    settings_dict["summarization"] = {"threshold_mode": "paragraphs"}
    with pytest.raises(ValueError, match="threshold_mode"):
        load_config(write_settings(settings_dict))


def test_missing_settings_file_raises(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_shipped_settings_are_valid():
    config = load_config()
    assert config.defaults.provider in config.models
    personas = build_personas(config.personas)
    assert sum(p.is_mediator for p in personas) == 1
    config.prompts.turn.format(topic="t", round=1, summaries="", transcript="", name="n", role="writer")
    config.prompts.summary.format(topic="t", target_length=100, transcript="")
