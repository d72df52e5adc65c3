"""Shared fixtures for the autonomy test suite."""

from typing import Iterator, List, Optional

import pytest

from autonomy.config import ProviderConfig, SessionConfig
from autonomy.debug_logger import DebugLogger
from autonomy.llm.providers.base import LLMProvider, ProviderError, error_from_message
from autonomy.llm.tool_choice import ToolChoiceMode
from autonomy.models.conversation import AIResponse, PromptData, ToolCall


@pytest.fixture(autouse=True)
def reset_debug_logger():
    """Reset the singleton logger before and after each test."""
    DebugLogger._instance = None
    DebugLogger._loggers = {}
    yield
    instance = DebugLogger._instance
    if instance and instance.enabled:
        instance.close()
    DebugLogger._instance = None
    DebugLogger._loggers = {}


def make_config(**overrides) -> ProviderConfig:
    values = dict(
        provider="scripted",
        api_key="test-key",
        model="test-model",
        base_backoff=0.0,
        max_backoff=0.0,
        max_retries=2,
    )
    values.update(overrides)
    return ProviderConfig(**values)


class ScriptedProvider(LLMProvider):
    """Provider that replays a list of responses or exceptions.

    Each item may be an AIResponse, an exception to raise, or a callable
    taking the PromptData and returning either of those.
    """

    name = "scripted"

    def __init__(self, responses=None, config=None, stream_chunks=None, native_tools=True):
        super().__init__(config or make_config())
        self.responses = list(responses or [])
        self.stream_chunks = list(stream_chunks or [])
        self.native_tools = native_tools
        self.prompts: List[PromptData] = []
        self.tool_choices: List[Optional[ToolChoiceMode]] = []

    def supports_native_tools(self, model: str) -> bool:
        return self.native_tools

    def _chat(self, prompt, tool_choice, ctx) -> AIResponse:
        self.prompts.append(prompt)
        self.tool_choices.append(tool_choice)
        if not self.responses:
            return AIResponse(content="")
        item = self.responses.pop(0)
        if callable(item) and not isinstance(item, BaseException):
            item = item(prompt)
        if isinstance(item, BaseException):
            raise item
        return item

    def _stream(self, prompt, tool_choice, ctx) -> Iterator[str]:
        self.prompts.append(prompt)
        for chunk in self.stream_chunks:
            if isinstance(chunk, BaseException):
                raise chunk
            yield chunk

    def classify_error(self, error: BaseException) -> ProviderError:
        if isinstance(error, ProviderError):
            return error
        return error_from_message(error)


def tool_turn(name: str, content: str = "", **args) -> AIResponse:
    return AIResponse(content=content, tool_calls=[ToolCall(name=name, arguments=args)])


def text_turn(content: str) -> AIResponse:
    return AIResponse(content=content)


@pytest.fixture
def scripted_provider():
    return ScriptedProvider


@pytest.fixture
def fast_session_config():
    return SessionConfig(min_api_interval=0.0, ai_call_timeout=5.0, tool_timeout=5.0)
