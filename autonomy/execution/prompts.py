#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Prompt text used by the task session."""

from typing import Iterable, Optional

from autonomy.models.conversation import ToolDefinition

SYSTEM_PROMPT = """You are an autonomous coding agent working inside the user's project.
You act only through the tools you are given.

DECISION TREE (follow in order):
1. The user requests an action (read, change, run, fix, create) -> use the appropriate tool
2. You receive a TOOL RESULT -> analyze it and decide: continue with more tools OR call attempt_completion
3. The user asks a conceptual question -> answer it, then call attempt_completion
4. You are unsure what to do -> use the most relevant tool to gather information

COMPLETION RULES:
- Call attempt_completion as soon as the task is done, with a clear description of what was accomplished in the result field
- Do NOT keep using tools indefinitely; stop when you have enough information
- NEVER repeat the same tool with identical parameters

CRITICAL RULES:
- For action requests you MUST use tools; text-only responses are not accepted
- Stay within the scope of the request; do not expand it without explicit permission
- If a tool fails, read the error and adjust instead of retrying the same call
"""

FORCE_TOOLS_MESSAGE = """You MUST use a tool. Your previous response had no tool calls.

{tool_list}
Choose the most appropriate tool for the task and execute it NOW.
If the task is already finished, call attempt_completion."""

PROJECT_CONTEXT_HEADER = "PROJECT CONTEXT"


def build_system_prompt(base: Optional[str] = None, project_context: str = "") -> str:
    """System prompt with an optional project context blob appended."""
    prompt = (base if base is not None else SYSTEM_PROMPT).rstrip()
    project_context = (project_context or "").strip()
    if project_context:
        prompt += f"\n\n{PROJECT_CONTEXT_HEADER}:\n{project_context}"
    return prompt


def build_force_tools_message(tools: Iterable[ToolDefinition] = ()) -> str:
    names = [tool.name for tool in tools]
    tool_list = ""
    if names:
        tool_list = "Available tools: " + ", ".join(names) + "\n\n"
    return FORCE_TOOLS_MESSAGE.format(tool_list=tool_list)


def limit_tool_output(text: str, max_lines: int) -> str:
    """Keep the first ``max_lines`` lines of ``text``."""
    if max_lines < 1:
        return text
    lines = text.split("\n")
    if len(lines) <= max_lines:
        return text
    omitted = len(lines) - max_lines
    return "\n".join(lines[:max_lines]) + f"\n... ({omitted} more lines truncated)"


def format_tool_result(tool_name: str, output: str, max_lines: int) -> str:
    return f"Result of {tool_name}: {limit_tool_output(output or '', max_lines)}"


def format_tool_error(tool_name: str, error: object, output: str = "", max_lines: int = 0) -> str:
    message = f"Error executing {tool_name}: {error}"
    if output:
        message += f". Result: {limit_tool_output(output, max_lines)}"
    return message


def format_continuation(template: str, reason: str) -> str:
    return template.format(reason=reason or "no details given")
