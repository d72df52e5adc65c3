#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""autonomy - terminal coding agent with pluggable LLM backends."""

from autonomy.versioning import get_version

__version__ = get_version()

# Configuration
from autonomy.config import ProviderConfig, ReflectionConfig, SessionConfig
from autonomy.core.context import AgentContext

# Cancellation
from autonomy.core.cancellation import CancelContext, CancelledError, run_interruptible

# Core models
from autonomy.models import (
    AIResponse,
    ExecutionPlan,
    ExecutionStep,
    Message,
    PromptData,
    StepStatus,
    ToolCall,
    ToolDefinition,
)

# Providers
from autonomy.llm.provider_factory import ProviderRegistry, default_registry
from autonomy.llm.providers import (
    ConfigurationError,
    ErrorClass,
    LLMProvider,
    ProviderError,
)
from autonomy.llm.tool_choice import ToolChoiceClassifier, ToolChoiceMode

# Execution
from autonomy.execution import (
    ReflectionEngine,
    ReflectionResult,
    TaskFailedError,
    TaskOutcome,
    TaskSession,
)

# Tools
from autonomy.tools import ToolExecutionError, ToolExecutor, ToolNotFoundError, ToolRegistry

__all__ = [
    "__version__",
    "AIResponse",
    "AgentContext",
    "CancelContext",
    "CancelledError",
    "ConfigurationError",
    "ErrorClass",
    "ExecutionPlan",
    "ExecutionStep",
    "LLMProvider",
    "Message",
    "PromptData",
    "ProviderConfig",
    "ProviderError",
    "ProviderRegistry",
    "ReflectionConfig",
    "ReflectionEngine",
    "ReflectionResult",
    "SessionConfig",
    "StepStatus",
    "TaskFailedError",
    "TaskOutcome",
    "TaskSession",
    "ToolCall",
    "ToolChoiceClassifier",
    "ToolChoiceMode",
    "ToolDefinition",
    "ToolExecutionError",
    "ToolExecutor",
    "ToolNotFoundError",
    "ToolRegistry",
    "default_registry",
    "run_interruptible",
]
