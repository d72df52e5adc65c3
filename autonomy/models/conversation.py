#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Backend-neutral conversation model.

Provider adapters translate these types to and from each backend's wire
format; nothing above the adapters ever sees a backend-specific payload.
"""

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_TOOL = "tool"
ROLE_SYSTEM = "system"

_ROLES = {ROLE_USER, ROLE_ASSISTANT, ROLE_TOOL, ROLE_SYSTEM}


def new_call_id() -> str:
    """Synthesize a tool-call id for backends that do not assign one."""
    return f"call_{uuid.uuid4().hex[:24]}"


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation proposed by the model.

    ``arguments`` is a mapping when the payload decoded cleanly, otherwise the
    raw string the backend sent, so a malformed call is never dropped.
    """

    name: str
    arguments: Union[Dict[str, Any], str] = field(default_factory=dict)
    id: str = field(default_factory=new_call_id)

    @classmethod
    def from_raw(cls, name: str, raw_arguments: Any, call_id: Optional[str] = None) -> "ToolCall":
        """Build a ToolCall from whatever the backend put in the arguments slot."""
        arguments: Union[Dict[str, Any], str]
        if raw_arguments is None or raw_arguments == "":
            arguments = {}
        elif isinstance(raw_arguments, dict):
            arguments = dict(raw_arguments)
        elif isinstance(raw_arguments, str):
            try:
                decoded = json.loads(raw_arguments)
            except (json.JSONDecodeError, ValueError):
                arguments = raw_arguments
            else:
                arguments = decoded if isinstance(decoded, dict) else raw_arguments
        else:
            arguments = str(raw_arguments)
        return cls(name=name, arguments=arguments, id=call_id or new_call_id())

    @property
    def has_raw_arguments(self) -> bool:
        return isinstance(self.arguments, str)

    @property
    def args(self) -> Dict[str, Any]:
        """Arguments as a mapping; an undecodable payload yields ``{}``."""
        if isinstance(self.arguments, dict):
            return dict(self.arguments)
        return {}

    def arguments_json(self) -> str:
        if isinstance(self.arguments, str):
            return self.arguments
        return json.dumps(self.arguments, ensure_ascii=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments_json()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolCall":
        return cls.from_raw(data["name"], data.get("arguments"), data.get("id"))


@dataclass(frozen=True)
class Message:
    """One conversation turn; immutable once appended."""

    role: str
    content: str = ""
    tool_calls: Tuple[ToolCall, ...] = ()
    tool_call_id: Optional[str] = None

    def __post_init__(self):
        if self.role not in _ROLES:
            raise ValueError(f"Unknown message role: {self.role!r}")
        if self.tool_calls and self.role != ROLE_ASSISTANT:
            raise ValueError("Only assistant messages may carry tool calls")
        if self.role == ROLE_TOOL and not self.tool_call_id:
            raise ValueError("Tool result messages require a tool_call_id")
        if self.content is None:
            object.__setattr__(self, "content", "")
        if not isinstance(self.tool_calls, tuple):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=ROLE_USER, content=content)

    @classmethod
    def assistant(cls, content: str = "", tool_calls: Optional[List[ToolCall]] = None) -> "Message":
        return cls(role=ROLE_ASSISTANT, content=content or "", tool_calls=tuple(tool_calls or ()))

    @classmethod
    def tool_result(cls, tool_call_id: str, content: str) -> "Message":
        return cls(role=ROLE_TOOL, content=content, tool_call_id=tool_call_id)

    @property
    def is_empty(self) -> bool:
        """True for a turn with no text and no tool calls (dropped before sending).

        Tool results are never empty: dropping one would orphan its tool call.
        """
        if self.role == ROLE_TOOL:
            return False
        return not self.content.strip() and not self.tool_calls

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            role=data["role"],
            content=data.get("content") or "",
            tool_calls=tuple(ToolCall.from_dict(tc) for tc in data.get("tool_calls", ())),
            tool_call_id=data.get("tool_call_id"),
        )


@dataclass(frozen=True)
class ToolDefinition:
    """A tool the model may call. ``input_schema`` is JSON-Schema-like."""

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )

    @property
    def properties(self) -> Dict[str, Any]:
        return dict(self.input_schema.get("properties", {}))

    @property
    def required(self) -> List[str]:
        return list(self.input_schema.get("required", []))

    def to_openai(self) -> Dict[str, Any]:
        """OpenAI/Ollama function-tool shape."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema,
            },
        }

    def to_anthropic(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolDefinition":
        """Accept either the neutral shape or an OpenAI function-tool dict."""
        if data.get("type") == "function" and "function" in data:
            func = data["function"]
            return cls(
                name=func["name"],
                description=func.get("description", ""),
                input_schema=func.get("parameters") or {"type": "object", "properties": {}},
            )
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            input_schema=data.get("input_schema") or {"type": "object", "properties": {}},
        )


@dataclass
class PromptData:
    """Everything an adapter needs for one model call."""

    system_prompt: str = ""
    messages: List[Message] = field(default_factory=list)
    tools: List[ToolDefinition] = field(default_factory=list)

    def copy(self) -> "PromptData":
        return PromptData(
            system_prompt=self.system_prompt,
            messages=list(self.messages),
            tools=list(self.tools),
        )

    def sendable_messages(self) -> List[Message]:
        """Messages with empty turns removed."""
        return [msg for msg in self.messages if not msg.is_empty]

    def last_user_visible_text(self) -> str:
        """Content of the most recent user or tool-result turn."""
        for msg in reversed(self.messages):
            if msg.role in (ROLE_USER, ROLE_TOOL):
                return msg.content
        return ""


@dataclass
class AIResponse:
    """A normalized model turn."""

    content: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    usage: Dict[str, int] = field(default_factory=dict)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_message(self) -> Message:
        return Message.assistant(self.content, self.tool_calls)
