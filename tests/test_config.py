"""Tests for environment-derived configuration."""

import pytest

from autonomy import config
from autonomy.config import ProviderConfig, ReflectionConfig, SessionConfig

_KEY_VARS = [
    "AUTONOMY_PROVIDER",
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "OPENROUTER_API_KEY",
    "GROQ_API_KEY",
    "DEEPSEEK_API_KEY",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in _KEY_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestProviderDetection:
    def test_defaults_to_ollama(self, clean_env):
        assert config.detect_primary_provider() == "ollama"

    def test_explicit_provider_wins(self, clean_env):
        clean_env.setenv("ANTHROPIC_API_KEY", "sk-ant")
        clean_env.setenv("AUTONOMY_PROVIDER", "Groq")
        assert config.detect_primary_provider() == "groq"

    def test_first_configured_key_wins(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-oai")
        clean_env.setenv("DEEPSEEK_API_KEY", "sk-ds")
        assert config.detect_primary_provider() == "openai"


class TestProviderConfig:
    def test_backend_defaults_are_filled_in(self):
        cfg = ProviderConfig(provider="groq")
        assert cfg.base_url == "https://api.groq.com/openai/v1"
        assert cfg.model == "llama-3.3-70b-versatile"
        assert cfg.requires_api_key

    def test_trailing_slash_is_stripped(self):
        assert ProviderConfig(provider="ollama", base_url="http://gpu:11434/").base_url == "http://gpu:11434"

    def test_unknown_provider_requires_key(self):
        assert ProviderConfig(provider="custom").requires_api_key

    @pytest.mark.parametrize("value, expected", [(None, 0.0), (-1.0, 0.0), (0.3, 0.3)])
    def test_effective_temperature(self, value, expected):
        assert ProviderConfig(temperature=value).effective_temperature == expected

    def test_from_env(self, clean_env):
        clean_env.setenv("ANTHROPIC_API_KEY", "sk-ant")
        clean_env.setenv("ANTHROPIC_MODEL", "claude-3-5-haiku-20241022")
        clean_env.setenv("AUTONOMY_MAX_TOKENS", "2048")
        clean_env.setenv("AUTONOMY_MAX_RETRIES", "not a number")

        cfg = ProviderConfig.from_env("anthropic")

        assert cfg.api_key == "sk-ant"
        assert cfg.model == "claude-3-5-haiku-20241022"
        assert cfg.max_tokens == 2048
        assert cfg.max_retries == 5

    def test_overrides_skip_empty_values(self):
        cfg = ProviderConfig(provider="openai", api_key="k", model="gpt-4o")
        updated = cfg.with_overrides(model=None, base_url="", max_tokens=100)

        assert updated.model == "gpt-4o"
        assert updated.max_tokens == 100
        assert cfg.max_tokens == 0

    def test_switching_provider_resets_backend_values(self, clean_env):
        clean_env.setenv("GROQ_API_KEY", "gsk")
        cfg = ProviderConfig(provider="openai", api_key="k", model="gpt-4o")

        updated = cfg.with_overrides(provider="groq")

        assert updated.api_key == "gsk"
        assert updated.model == "llama-3.3-70b-versatile"
        assert updated.base_url == "https://api.groq.com/openai/v1"


class TestSessionConfig:
    def test_defaults(self):
        cfg = SessionConfig()
        assert cfg.max_turns == 50
        assert cfg.max_attempts == 3
        assert cfg.max_no_tool_attempts == 3
        assert cfg.tool_output_lines == 200

    @pytest.mark.parametrize("field", ["max_turns", "max_attempts", "max_no_tool_attempts"])
    def test_budgets_must_be_positive(self, field):
        with pytest.raises(ValueError):
            SessionConfig(**{field: 0})

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("AUTONOMY_MAX_TURNS", "7")
        monkeypatch.setenv("AUTONOMY_AI_CALL_TIMEOUT", "12.5")
        cfg = SessionConfig.from_env()
        assert cfg.max_turns == 7
        assert cfg.ai_call_timeout == 12.5


def test_reflection_config_from_env(monkeypatch):
    monkeypatch.setenv("AUTONOMY_COMPLETE_THRESHOLD", "0.9")
    cfg = ReflectionConfig.from_env()
    assert cfg.complete_threshold == 0.9
    assert cfg.retry_threshold == 0.5
