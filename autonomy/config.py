#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Configuration constants and settings for autonomy.

Everything here is derived from environment variables. The orchestration core
never reads secrets or files itself: the CLI (or an embedding application)
builds a :class:`ProviderConfig`, :class:`SessionConfig` and
:class:`ReflectionConfig` once at startup and hands them down explicitly.
"""

import os
import pathlib
from dataclasses import dataclass, replace
from typing import Dict, Optional


ROOT = pathlib.Path(os.getcwd()).resolve()
AUTONOMY_DIR = ROOT / ".autonomy"
LOGS_DIR = AUTONOMY_DIR / "logs"


def _env_str(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


# ============================================================================
# Provider defaults
# ============================================================================
# Each backend: default base URL, default model, the env var holding its key,
# and whether a key is mandatory. OpenAI-compatible backends share one adapter.
PROVIDER_DEFAULTS: Dict[str, Dict[str, object]] = {
    "anthropic": {
        "base_url": "https://api.anthropic.com",
        "model": "claude-3-5-sonnet-20241022",
        "key_env": "ANTHROPIC_API_KEY",
        "requires_key": True,
    },
    "openai": {
        "base_url": "https://api.openai.com/v1",
        "model": "gpt-4o",
        "key_env": "OPENAI_API_KEY",
        "requires_key": True,
    },
    "openrouter": {
        "base_url": "https://openrouter.ai/api/v1",
        "model": "anthropic/claude-3.5-sonnet",
        "key_env": "OPENROUTER_API_KEY",
        "requires_key": True,
    },
    "groq": {
        "base_url": "https://api.groq.com/openai/v1",
        "model": "llama-3.3-70b-versatile",
        "key_env": "GROQ_API_KEY",
        "requires_key": True,
    },
    "deepseek": {
        "base_url": "https://api.deepseek.com",
        "model": "deepseek-chat",
        "key_env": "DEEPSEEK_API_KEY",
        "requires_key": True,
    },
    "local": {
        "base_url": "http://localhost:11434/v1",
        "model": "llama3.1",
        "key_env": "LOCAL_API_KEY",
        "requires_key": False,
    },
    "ollama": {
        "base_url": "http://localhost:11434",
        "model": "llama3.1",
        "key_env": "OLLAMA_API_KEY",
        "requires_key": False,
    },
}

# Detection order when AUTONOMY_PROVIDER is not set explicitly.
# Priority: explicit AUTONOMY_PROVIDER > Anthropic > OpenAI > OpenRouter > Groq > DeepSeek > Ollama
_DETECTION_ORDER = ("anthropic", "openai", "openrouter", "groq", "deepseek")


def detect_primary_provider() -> str:
    """Pick the provider to use based on the configured credentials.

    Priority order:
    1. AUTONOMY_PROVIDER (explicit override)
    2. The first backend in ``_DETECTION_ORDER`` whose API key is set
    3. Ollama (default, no key needed)
    """
    explicit = _env_str("AUTONOMY_PROVIDER").lower()
    if explicit:
        return explicit

    for name in _DETECTION_ORDER:
        key_env = str(PROVIDER_DEFAULTS[name]["key_env"])
        if _env_str(key_env):
            return name

    return "ollama"


LLM_PROVIDER = detect_primary_provider()
DEBUG_ENABLED = _env_bool("AUTONOMY_DEBUG")
LOG_RETENTION_LIMIT = _env_int("AUTONOMY_LOG_RETENTION", 7)


@dataclass
class ProviderConfig:
    """Construction-time settings for one provider adapter.

    ``max_tokens`` of 0 and a ``temperature`` of ``None`` (or negative) mean
    "use the backend default" which is resolved by the adapter.
    """

    provider: str = "ollama"
    api_key: str = ""
    base_url: str = ""
    model: str = ""
    max_tokens: int = 0
    temperature: Optional[float] = None
    timeout: float = 120.0
    max_retries: int = 5
    base_backoff: float = 1.0
    max_backoff: float = 60.0

    def __post_init__(self):
        self.provider = (self.provider or "ollama").lower().strip()
        defaults = PROVIDER_DEFAULTS.get(self.provider, {})
        if not self.base_url:
            self.base_url = str(defaults.get("base_url", ""))
        self.base_url = self.base_url.rstrip("/")
        if not self.model:
            self.model = str(defaults.get("model", ""))

    @property
    def requires_api_key(self) -> bool:
        defaults = PROVIDER_DEFAULTS.get(self.provider)
        if defaults is None:
            return True
        return bool(defaults["requires_key"])

    @property
    def effective_temperature(self) -> float:
        """Temperature actually sent: 0 unless explicitly configured >= 0."""
        if self.temperature is None or self.temperature < 0:
            return 0.0
        return float(self.temperature)

    def with_overrides(self, **overrides) -> "ProviderConfig":
        """Return a copy with non-empty overrides applied."""
        values = {k: v for k, v in overrides.items() if v is not None and v != ""}
        if "provider" in values and values["provider"] != self.provider:
            # Switching backend: drop backend-specific values that were not overridden.
            for key in ("base_url", "model", "api_key"):
                values.setdefault(key, "")
            if not values["api_key"]:
                key_env = str(PROVIDER_DEFAULTS.get(values["provider"], {}).get("key_env", ""))
                values["api_key"] = _env_str(key_env) if key_env else ""
        return replace(self, **values)

    @classmethod
    def from_env(cls, provider: Optional[str] = None) -> "ProviderConfig":
        """Build a provider configuration from environment variables."""
        name = (provider or detect_primary_provider()).lower().strip()
        defaults = PROVIDER_DEFAULTS.get(name, {})
        key_env = str(defaults.get("key_env", ""))
        prefix = name.upper()

        return cls(
            provider=name,
            api_key=_env_str(key_env) if key_env else "",
            base_url=_env_str(f"{prefix}_BASE_URL") or _env_str("AUTONOMY_BASE_URL"),
            model=_env_str(f"{prefix}_MODEL") or _env_str("AUTONOMY_MODEL"),
            max_tokens=_env_int("AUTONOMY_MAX_TOKENS", 0),
            temperature=_env_float("AUTONOMY_TEMPERATURE", None),
            timeout=_env_float("AUTONOMY_REQUEST_TIMEOUT", 120.0),
            max_retries=_env_int("AUTONOMY_MAX_RETRIES", 5),
            base_backoff=_env_float("AUTONOMY_BASE_BACKOFF", 1.0),
            max_backoff=_env_float("AUTONOMY_MAX_BACKOFF", 60.0),
        )


DEFAULT_CONTINUATION_MESSAGE = (
    "The previous attempt did not finish the task.\n"
    "Reviewer notes: {reason}\n"
    "Continue working on the original task. Use tools to inspect the current state, "
    "fix what is missing and call attempt_completion once everything is done."
)


@dataclass
class SessionConfig:
    """Turn budget and pacing for a task session."""

    max_turns: int = 50
    max_attempts: int = 3
    max_no_tool_attempts: int = 3
    max_history_size: int = 40
    ai_call_timeout: Optional[float] = 100.0
    tool_timeout: Optional[float] = 30.0
    min_api_interval: float = 1.0
    tool_output_lines: int = 200
    continuation_message: str = DEFAULT_CONTINUATION_MESSAGE

    def __post_init__(self):
        if self.max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.max_no_tool_attempts < 1:
            raise ValueError("max_no_tool_attempts must be at least 1")
        if self.max_history_size < 2:
            raise ValueError("max_history_size must be at least 2")

    @classmethod
    def from_env(cls) -> "SessionConfig":
        return cls(
            max_turns=_env_int("AUTONOMY_MAX_TURNS", 50),
            max_attempts=_env_int("AUTONOMY_MAX_ATTEMPTS", 3),
            max_no_tool_attempts=_env_int("AUTONOMY_MAX_NO_TOOL_ATTEMPTS", 3),
            max_history_size=_env_int("AUTONOMY_MAX_HISTORY", 40),
            ai_call_timeout=_env_float("AUTONOMY_AI_CALL_TIMEOUT", 100.0),
            tool_timeout=_env_float("AUTONOMY_TOOL_TIMEOUT", 30.0),
            min_api_interval=_env_float("AUTONOMY_MIN_API_INTERVAL", 1.0),
            tool_output_lines=_env_int("AUTONOMY_TOOL_OUTPUT_LINES", 200),
        )


@dataclass
class ReflectionConfig:
    """Thresholds for the rule-based completion fallback."""

    complete_threshold: float = 0.75
    retry_threshold: float = 0.5
    timeout: Optional[float] = 60.0
    completion_tool: str = "attempt_completion"

    def __post_init__(self):
        if not 0.0 <= self.retry_threshold <= self.complete_threshold <= 1.0:
            raise ValueError(
                "thresholds must satisfy 0 <= retry_threshold <= complete_threshold <= 1"
            )

    @classmethod
    def from_env(cls) -> "ReflectionConfig":
        return cls(
            complete_threshold=_env_float("AUTONOMY_COMPLETE_THRESHOLD", 0.75),
            retry_threshold=_env_float("AUTONOMY_RETRY_THRESHOLD", 0.5),
            timeout=_env_float("AUTONOMY_REFLECTION_TIMEOUT", 60.0),
        )
