#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Application context.

Built once at startup and passed by reference to whatever needs configuration
or a provider. Nothing in the orchestration core reaches for a
module-level singleton to find these.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional

from autonomy.config import ProviderConfig, ReflectionConfig, SessionConfig
from autonomy.execution.reflection import ReflectionEngine
from autonomy.execution.session import TaskSession
from autonomy.llm.provider_factory import ProviderRegistry, default_registry
from autonomy.llm.providers.base import LLMProvider
from autonomy.llm.tool_choice import ToolChoiceClassifier, default_classifier
from autonomy.models.conversation import ToolDefinition


@dataclass
class AgentContext:
    provider_config: ProviderConfig
    session_config: SessionConfig = field(default_factory=SessionConfig)
    reflection_config: ReflectionConfig = field(default_factory=ReflectionConfig)
    registry: ProviderRegistry = field(default_factory=default_registry)
    classifier: ToolChoiceClassifier = field(default_factory=default_classifier)
    # Source-index blob appended to the system prompt; computed lazily per session.
    context_provider: Optional[Callable[[], str]] = None

    @classmethod
    def from_env(cls, provider: Optional[str] = None, **overrides) -> "AgentContext":
        provider_config = ProviderConfig.from_env(provider).with_overrides(**overrides)
        return cls(
            provider_config=provider_config,
            session_config=SessionConfig.from_env(),
            reflection_config=ReflectionConfig.from_env(),
        )

    def create_provider(self, validate: bool = True) -> LLMProvider:
        return self.registry.create(self.provider_config, classifier=self.classifier, validate=validate)

    def create_session(self, executor, tools: Optional[List[ToolDefinition]] = None,
                       provider: Optional[LLMProvider] = None) -> TaskSession:
        """Build a TaskSession with its own provider handle and reflection engine."""
        provider = provider or self.create_provider()
        return TaskSession(
            provider,
            executor,
            tools=tools,
            config=self.session_config,
            reflection=ReflectionEngine(provider, self.reflection_config),
            context_provider=self.context_provider,
        )
