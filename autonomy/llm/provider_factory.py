"""Provider registry for creating LLM provider instances.

Backends are added by registering a constructor under a provider id; there is
no module-level cache, so every :class:`AgentContext` owns its own registry.
"""

from typing import Callable, Dict, List, Optional

from autonomy.config import ProviderConfig
from autonomy.llm.providers.anthropic_provider import AnthropicProvider
from autonomy.llm.providers.base import ConfigurationError, LLMProvider
from autonomy.llm.providers.ollama import OllamaProvider
from autonomy.llm.providers.openai_provider import OpenAIProvider
from autonomy.llm.tool_choice import ToolChoiceClassifier

ProviderConstructor = Callable[..., LLMProvider]


class ProviderRegistry:
    """Maps provider ids to adapter constructors."""

    def __init__(self):
        self._constructors: Dict[str, ProviderConstructor] = {}

    def register(self, name: str, constructor: ProviderConstructor, replace: bool = False) -> None:
        """Register ``constructor(config, classifier=None)`` under ``name``."""
        key = name.lower().strip()
        if not key:
            raise ValueError("Provider name must not be empty")
        if key in self._constructors and not replace:
            raise ValueError(f"Provider '{key}' is already registered")
        self._constructors[key] = constructor

    def names(self) -> List[str]:
        return sorted(self._constructors)

    def __contains__(self, name: str) -> bool:
        return name.lower().strip() in self._constructors

    def create(self, config: ProviderConfig, classifier: Optional[ToolChoiceClassifier] = None,
               validate: bool = True) -> LLMProvider:
        """Build the adapter for ``config.provider``.

        Raises:
            ConfigurationError: unknown provider id or (with ``validate``) a
                missing key/model, before any network call is made.
        """
        constructor = self._constructors.get(config.provider)
        if constructor is None:
            raise ConfigurationError(
                f"Unknown provider '{config.provider}'. Available: {', '.join(self.names())}"
            )
        provider = constructor(config, classifier=classifier)
        if validate:
            provider.validate_config()
        return provider


def default_registry() -> ProviderRegistry:
    """Registry with every bundled backend."""
    registry = ProviderRegistry()
    registry.register("anthropic", AnthropicProvider)
    for name in ("openai", "openrouter", "groq", "deepseek", "local"):
        registry.register(name, OpenAIProvider)
    registry.register("ollama", OllamaProvider)
    return registry


def detect_provider_from_model(model_str: str) -> Optional[str]:
    """Guess the provider from a model name; None when it is ambiguous."""
    model_str = model_str.lower().strip()

    if model_str.startswith("claude-"):
        return "anthropic"
    if model_str.startswith("gpt-oss"):
        # Open-weight GPT models are served by Ollama, not OpenAI.
        return "ollama"
    if model_str.startswith(("gpt-", "o1", "o3", "chatgpt-")):
        return "openai"
    if model_str.startswith("deepseek-"):
        return "deepseek"
    if "/" in model_str:
        return "openrouter"
    return None
