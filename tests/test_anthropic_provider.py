#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tests for the Anthropic adapter (client mocked)."""

from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from autonomy.llm.providers.anthropic_provider import AnthropicProvider
from autonomy.llm.providers.base import ErrorClass, ProviderError
from autonomy.llm.tool_choice import ToolChoiceMode
from autonomy.models.conversation import Message, PromptData, ToolCall, ToolDefinition
from conftest import make_config


READ_FILE = ToolDefinition(name="read_file", description="Read a file")


class FakeAPIError(Exception):
    def __init__(self, status_code, body, headers=None):
        super().__init__(f"Error code: {status_code}")
        self.status_code = status_code
        self.body = body
        self.response = SimpleNamespace(headers=headers or {})


def reply(*blocks, input_tokens=10, output_tokens=5):
    return SimpleNamespace(
        content=list(blocks),
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
    )


@pytest.fixture
def provider():
    provider = AnthropicProvider(make_config(provider="anthropic", model="claude-3-5-sonnet-20241022"))
    provider._client = Mock()
    return provider


class TestMessageConversion:
    def test_tool_results_become_user_blocks_and_turns_merge(self, provider):
        """Consecutive tool results collapse into one user turn."""
        messages = [
            Message.user("fix it"),
            Message.assistant("looking", [
                ToolCall(name="read_file", arguments={"path": "a.go"}, id="tu_1"),
                ToolCall(name="read_file", arguments={"path": "b.go"}, id="tu_2"),
            ]),
            Message.tool_result("tu_1", "Result of read_file: a"),
            Message.tool_result("tu_2", ""),
            Message.assistant("   "),
        ]

        converted = provider._convert_messages(PromptData(messages=messages).sendable_messages())

        assert [m["role"] for m in converted] == ["user", "assistant", "user"]
        assistant = converted[1]["content"]
        assert assistant[0] == {"type": "text", "text": "looking"}
        assert assistant[1]["type"] == "tool_use"
        assert assistant[1]["input"] == {"path": "a.go"}
        results = converted[2]["content"]
        assert [b["tool_use_id"] for b in results] == ["tu_1", "tu_2"]
        assert results[1]["content"] == "(no output)"

    def test_raw_arguments_are_wrapped(self, provider):
        call = ToolCall.from_raw("read_file", "{broken", "tu_1")
        converted = provider._convert_messages([Message.assistant("", [call])])
        assert converted[0]["content"][0]["input"] == {"raw_arguments": "{broken"}


class TestChat:
    def test_forced_tool_choice_and_system_prompt(self, provider):
        provider._client.messages.create.return_value = reply(
            SimpleNamespace(type="text", text="reading"),
            SimpleNamespace(type="tool_use", name="read_file", input={"path": "a.go"}, id="tu_9"),
        )
        prompt = PromptData(system_prompt="sys", messages=[Message.user("read a.go")], tools=[READ_FILE])

        response = provider.generate_code(prompt)

        kwargs = provider._client.messages.create.call_args.kwargs
        assert kwargs["system"] == "sys"
        assert kwargs["tool_choice"] == {"type": "any"}
        assert kwargs["tools"][0]["name"] == "read_file"
        assert kwargs["temperature"] == 0.0
        assert response.content == "reading"
        assert response.tool_calls[0].id == "tu_9"
        assert response.usage == {"prompt": 10, "completion": 5, "total": 15}

    def test_auto_tool_choice(self, provider):
        params = provider._build_request(
            PromptData(messages=[Message.user("what is go?")], tools=[READ_FILE]), ToolChoiceMode.AUTO
        )
        assert params["tool_choice"] == {"type": "auto"}

    def test_no_content_blocks_is_empty_response(self, provider):
        with pytest.raises(ProviderError) as exc:
            provider._convert_response(reply())
        assert exc.value.error_class is ErrorClass.EMPTY_RESPONSE


class TestClassifyError:
    def test_overloaded_body_type(self, provider):
        error = FakeAPIError(529, {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}})
        classified = provider.classify_error(error)

        assert classified.error_class is ErrorClass.OVERLOADED
        assert classified.message == "Overloaded"
        assert classified.retryable

    def test_retry_after_header(self, provider):
        error = FakeAPIError(429, {"error": {"type": "rate_limit_error"}}, headers={"retry-after": "7"})
        assert provider.classify_error(error).retry_after == 7.0

    def test_plain_exception_uses_message_heuristics(self, provider):
        assert provider.classify_error(ConnectionError("refused")).error_class is ErrorClass.NETWORK_ERROR


def test_model_info(provider):
    info = provider.get_model()
    assert info.context_window == 200000
    assert info.max_tokens == 8192
