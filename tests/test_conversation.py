"""Tests for the backend-neutral conversation model."""

import pytest

from autonomy.models.conversation import (
    AIResponse,
    Message,
    PromptData,
    ToolCall,
    ToolDefinition,
)


class TestToolCall:
    def test_json_string_arguments_are_decoded(self):
        call = ToolCall.from_raw("read_file", '{"path": "main.go"}', "call_1")

        assert call.arguments == {"path": "main.go"}
        assert call.id == "call_1"
        assert not call.has_raw_arguments

    def test_malformed_arguments_are_kept_raw(self):
        call = ToolCall.from_raw("read_file", '{"path": "main.go"')

        assert call.has_raw_arguments
        assert call.arguments == '{"path": "main.go"'
        assert call.args == {}
        assert call.arguments_json() == '{"path": "main.go"'

    def test_non_object_json_is_kept_raw(self):
        call = ToolCall.from_raw("tool", "[1, 2]")
        assert call.arguments == "[1, 2]"

    @pytest.mark.parametrize("raw", [None, ""])
    def test_missing_arguments_become_empty_mapping(self, raw):
        assert ToolCall.from_raw("tool", raw).arguments == {}

    def test_ids_are_synthesized(self):
        first = ToolCall.from_raw("tool", {})
        second = ToolCall.from_raw("tool", {})

        assert first.id.startswith("call_")
        assert first.id != second.id

    def test_dict_round_trip_keeps_id(self):
        call = ToolCall(name="grep", arguments={"pattern": "TODO"}, id="call_x")
        assert ToolCall.from_dict(call.to_dict()) == call


class TestMessage:
    def test_unknown_role_is_rejected(self):
        with pytest.raises(ValueError):
            Message(role="robot", content="hi")

    def test_only_assistant_carries_tool_calls(self):
        with pytest.raises(ValueError):
            Message(role="user", content="hi", tool_calls=(ToolCall(name="x"),))

    def test_tool_message_requires_call_id(self):
        with pytest.raises(ValueError):
            Message(role="tool", content="output")

    def test_is_empty(self):
        assert Message.assistant("   ").is_empty
        assert not Message.assistant("", [ToolCall(name="x")]).is_empty
        assert not Message.tool_result("call_1", "").is_empty

    def test_none_content_is_normalized(self):
        assert Message(role="user", content=None).content == ""


class TestToolDefinition:
    def test_wire_shapes(self):
        tool = ToolDefinition(
            name="read_file",
            description="Read a file",
            input_schema={"type": "object", "properties": {"path": {"type": "string"}}, "required": ["path"]},
        )

        assert tool.to_openai()["function"]["parameters"]["required"] == ["path"]
        assert tool.to_anthropic()["input_schema"]["properties"]["path"]["type"] == "string"
        assert tool.required == ["path"]

    def test_from_openai_function_dict(self):
        tool = ToolDefinition.from_dict({
            "type": "function",
            "function": {"name": "ls", "description": "List", "parameters": {"type": "object"}},
        })
        assert tool.name == "ls"
        assert tool.input_schema == {"type": "object"}


def test_prompt_copy_is_independent():
    prompt = PromptData(system_prompt="sys", messages=[Message.user("hi")])
    copied = prompt.copy()
    copied.messages.append(Message.user("more"))

    assert len(prompt.messages) == 1


def test_last_user_visible_text_prefers_latest_user_or_tool_turn():
    prompt = PromptData(messages=[
        Message.user("fix the bug"),
        Message.assistant("", [ToolCall(name="read_file", id="c1")]),
        Message.tool_result("c1", "Result of read_file: ok"),
        Message.assistant("looking"),
    ])

    assert prompt.last_user_visible_text() == "Result of read_file: ok"


def test_ai_response_to_message():
    response = AIResponse(content="done", tool_calls=[ToolCall(name="x", id="c")])
    message = response.to_message()

    assert message.role == "assistant"
    assert message.tool_calls[0].id == "c"
    assert response.has_tool_calls
