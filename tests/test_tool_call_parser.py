"""Tests for the textual tool-calling format."""

import json

from autonomy.llm.tool_call_parser import (
    build_tools_system_message,
    flatten_tool_turns,
    parse_text_envelope,
)
from autonomy.models.conversation import Message, ToolCall, ToolDefinition


READ_FILE = ToolDefinition(
    name="read_file",
    description="Read a file",
    input_schema={
        "type": "object",
        "properties": {"path": {"type": "string", "description": "File path"}},
        "required": ["path"],
    },
)


def test_catalogue_lists_tools_and_format():
    text = build_tools_system_message([READ_FILE])

    assert "**read_file**: Read a file" in text
    assert "- path (string, required): File path" in text
    assert '"tool_calls"' in text


def test_catalogue_is_empty_without_tools():
    assert build_tools_system_message([]) == ""


def test_parses_plain_envelope():
    content, calls = parse_text_envelope(
        '{"content": "reading", "tool_calls": [{"name": "read_file", "args": {"path": "main.go"}}]}'
    )

    assert content == "reading"
    assert calls[0].name == "read_file"
    assert calls[0].arguments == {"path": "main.go"}


def test_parses_fenced_envelope_with_trailing_comma():
    reply = (
        "Sure, here you go:\n"
        "```json\n"
        '{"content": "", "tool_calls": [{"name": "read_file", "args": {"path": "a.go"},},]}\n'
        "```"
    )
    _, calls = parse_text_envelope(reply)

    assert [c.name for c in calls] == ["read_file"]


def test_accepts_function_style_calls():
    reply = json.dumps({
        "tool_calls": [{"function": {"name": "grep", "arguments": '{"pattern": "TODO"}'}}]
    })
    _, calls = parse_text_envelope(reply)

    assert calls[0].name == "grep"
    assert calls[0].arguments == {"pattern": "TODO"}


def test_braces_inside_strings_do_not_break_parsing():
    reply = '{"content": "use {curly} braces", "tool_calls": []}'
    content, calls = parse_text_envelope(reply)

    assert content == "use {curly} braces"
    assert calls == []


def test_plain_text_passes_through():
    assert parse_text_envelope("The answer is 4.") == ("The answer is 4.", [])


def test_unrelated_json_is_left_as_text():
    reply = '{"status": "ok"}'
    assert parse_text_envelope(reply) == (reply, [])


def test_garbage_never_raises():
    for reply in ("{", "}{", '{"content": ', None):
        content, calls = parse_text_envelope(reply)
        assert calls == []


def test_flatten_tool_turns():
    messages = [
        Message.user("read it"),
        Message.assistant("", [ToolCall(name="read_file", arguments={"path": "a.go"}, id="c1")]),
        Message.tool_result("c1", "Result of read_file: ok"),
    ]
    flattened = flatten_tool_turns(messages)

    assert [m.role for m in flattened] == ["user", "assistant", "user"]
    assert json.loads(flattened[1].content)["tool_calls"][0]["args"] == {"path": "a.go"}
    assert flattened[2].content == "Result of read_file: ok"
