"""LLM provider abstraction layer for multiple LLM backends."""

from .base import (
    ConfigurationError,
    ErrorClass,
    LLMProvider,
    ModelInfo,
    ProviderCapabilities,
    ProviderError,
    RetryConfig,
)
from .anthropic_provider import AnthropicProvider
from .ollama import OllamaProvider
from .openai_provider import OpenAIProvider

__all__ = [
    "AnthropicProvider",
    "ConfigurationError",
    "ErrorClass",
    "LLMProvider",
    "ModelInfo",
    "OllamaProvider",
    "OpenAIProvider",
    "ProviderCapabilities",
    "ProviderError",
    "RetryConfig",
]
