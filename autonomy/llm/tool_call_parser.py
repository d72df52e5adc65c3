"""Textual tool-calling format.

Used when a backend or model cannot take structured tool definitions: the tool
catalogue is embedded in the system prompt and the model is asked to reply
with a JSON envelope::

    {"content": "...", "tool_calls": [{"name": "tool", "args": {...}}]}

Model output is untrusted text, so parsing never raises: anything that cannot
be decoded comes back as plain content with no tool calls.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from autonomy.models.conversation import Message, ToolCall, ToolDefinition

_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def build_tools_system_message(tools: Sequence[ToolDefinition]) -> str:
    """Render the tool catalogue and the reply-format instruction."""
    if not tools:
        return ""

    lines = ["Available tools:", ""]
    for tool in tools:
        lines.append(f"**{tool.name}**: {tool.description}")
        properties = tool.properties
        if properties:
            required = set(tool.required)
            lines.append("Parameters:")
            for param_name, info in properties.items():
                info = info if isinstance(info, dict) else {}
                param_type = info.get("type", "any")
                marker = ", required" if param_name in required else ""
                desc = info.get("description", "")
                lines.append(f"- {param_name} ({param_type}{marker}): {desc}".rstrip(": "))
        lines.append("")

    lines.append("To use a tool, respond ONLY with JSON in this format:")
    lines.append("```json")
    lines.append("{")
    lines.append('  "content": "your response text",')
    lines.append('  "tool_calls": [{"name": "tool_name", "args": {"param1": "value1"}}]')
    lines.append("}")
    lines.append("```")
    lines.append("Use an empty tool_calls list when no tool is needed.")
    return "\n".join(lines)


def _first_object_span(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` span, ignoring braces inside strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from this brace; try the next one.
        start = text.find("{", start + 1)
    return None


def _lenient_loads(snippet: str) -> Any:
    try:
        return json.loads(snippet)
    except (json.JSONDecodeError, ValueError):
        pass
    return json.loads(_TRAILING_COMMA.sub(r"\1", snippet))


def _decode_envelope(text: str) -> Optional[Dict[str, Any]]:
    candidates: List[str] = []
    for match in _FENCE.finditer(text):
        span = _first_object_span(match.group(1))
        if span:
            candidates.append(span)
    span = _first_object_span(text)
    if span:
        candidates.append(span)
    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        candidates.append(text[first:last + 1])

    for candidate in candidates:
        try:
            decoded = _lenient_loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(decoded, dict):
            return decoded
    return None


def _calls_from_envelope(envelope: Dict[str, Any]) -> List[ToolCall]:
    raw_calls = envelope.get("tool_calls")
    if raw_calls is None and envelope.get("name"):
        raw_calls = [envelope]
    if not isinstance(raw_calls, list):
        return []

    calls: List[ToolCall] = []
    for raw in raw_calls:
        if not isinstance(raw, dict):
            continue
        function = raw.get("function") if isinstance(raw.get("function"), dict) else {}
        name = raw.get("name") or function.get("name")
        if not name:
            continue
        args = raw.get("args")
        if args is None:
            args = raw.get("arguments", function.get("arguments"))
        if args is None:
            args = raw.get("parameters")
        calls.append(ToolCall.from_raw(str(name), args, raw.get("id")))
    return calls


def parse_text_envelope(text: Optional[str]) -> Tuple[str, List[ToolCall]]:
    """Split a textual-format reply into ``(content, tool_calls)``."""
    text = text or ""
    envelope = _decode_envelope(text)
    if envelope is None or not ("content" in envelope or "tool_calls" in envelope or "name" in envelope):
        return text, []

    calls = _calls_from_envelope(envelope)
    content = envelope.get("content")
    if not isinstance(content, str):
        content = "" if content is None else json.dumps(content, ensure_ascii=False)
    if not content and not calls:
        return text, []
    return content, calls


def flatten_tool_turns(messages: Sequence[Message]) -> List[Message]:
    """Rewrite structured tool turns as plain text for the textual format."""
    flattened: List[Message] = []
    for msg in messages:
        if msg.role == "assistant" and msg.tool_calls:
            envelope = {
                "content": msg.content,
                "tool_calls": [{"name": tc.name, "args": tc.args or tc.arguments} for tc in msg.tool_calls],
            }
            flattened.append(Message.assistant(json.dumps(envelope, ensure_ascii=False)))
        elif msg.role == "tool":
            flattened.append(Message.user(msg.content))
        elif msg.role == "system":
            continue
        else:
            flattened.append(msg)
    return flattened
