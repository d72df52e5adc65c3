#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Tests for the tool registry."""

import pytest

from autonomy.models.conversation import ToolDefinition
from autonomy.tools.registry import (
    COMPLETION_TOOL,
    ToolExecutionError,
    ToolNotFoundError,
    ToolRegistry,
)


def echo(args):
    return args.get("text", "")


@pytest.fixture
def registry():
    registry = ToolRegistry()
    registry.register(ToolDefinition(name="echo", description="Echo text"), echo)
    return registry


class TestRegistration:
    def test_completion_tool_is_built_in(self):
        registry = ToolRegistry()
        assert COMPLETION_TOOL in registry
        assert registry.definitions()[0].required == ["result"]

    def test_completion_tool_can_be_left_out(self):
        assert len(ToolRegistry(include_completion=False)) == 0

    def test_duplicate_names_are_rejected(self, registry):
        with pytest.raises(ValueError):
            registry.register(ToolDefinition(name="echo"), echo)
        registry.register(ToolDefinition(name="echo", description="v2"), echo, replace=True)
        assert [d.description for d in registry.definitions() if d.name == "echo"] == ["v2"]

    def test_unregister(self, registry):
        registry.unregister("echo")
        assert "echo" not in registry
        with pytest.raises(ToolNotFoundError):
            registry.unregister("echo")

    def test_names_keep_registration_order(self, registry):
        assert registry.names() == [COMPLETION_TOOL, "echo"]


class TestExecute:
    def test_runs_tool(self, registry):
        assert registry.execute("echo", {"text": "hi"}) == "hi"

    def test_wrapped_arguments_are_unwrapped(self, registry):
        assert registry.execute("echo", {"arguments": {"arguments": {"text": "deep"}}}) == "deep"

    def test_none_result_becomes_empty_string(self, registry):
        registry.register(ToolDefinition(name="noop"), lambda args: None)
        assert registry.execute("noop") == ""

    def test_unknown_tool(self, registry):
        with pytest.raises(ToolNotFoundError) as exc:
            registry.execute("rm_rf", {})
        assert str(exc.value) == "Unknown tool: rm_rf"

    def test_unexpected_exception_is_wrapped(self, registry):
        def broken(args):
            raise FileNotFoundError("no such file: a.go")

        registry.register(ToolDefinition(name="broken"), broken)
        with pytest.raises(ToolExecutionError) as exc:
            registry.execute("broken", {})

        assert str(exc.value) == "FileNotFoundError: no such file: a.go"
        assert isinstance(exc.value.__cause__, FileNotFoundError)

    def test_tool_execution_error_keeps_output(self, registry):
        def failing(args):
            raise ToolExecutionError("exit status 2", output="compile error")

        registry.register(ToolDefinition(name="build"), failing)
        with pytest.raises(ToolExecutionError) as exc:
            registry.execute("build")
        assert exc.value.output == "compile error"


class TestAttemptCompletion:
    def test_summary_is_echoed(self, registry):
        assert registry.execute(COMPLETION_TOOL, {"result": "Added tests"}) == "Task completed:\n\nAdded tests"

    def test_missing_summary(self, registry):
        assert registry.execute(COMPLETION_TOOL, {}) == "Task completed!"

    def test_refused_after_failed_tool(self, registry):
        registry.register(ToolDefinition(name="fail"), lambda args: 1 / 0)
        with pytest.raises(ToolExecutionError):
            registry.execute("fail")

        with pytest.raises(ToolExecutionError) as exc:
            registry.execute(COMPLETION_TOOL, {"result": "done"})
        assert "last operation failed" in str(exc.value)

    def test_allowed_again_after_a_success(self, registry):
        with pytest.raises(ToolNotFoundError):
            registry.execute("missing")
        registry.execute("echo", {"text": "recovered"})

        assert registry.execute(COMPLETION_TOOL, {"result": "done"}).startswith("Task completed")

    def test_recorded_failure_refuses_completion(self, registry):
        registry.execute("echo", {"text": "fine"})
        registry.record_failure("slow")

        assert registry.last_succeeded is False
        with pytest.raises(ToolExecutionError):
            registry.execute(COMPLETION_TOOL, {"result": "done"})

    def test_abandoned_call_cannot_clear_a_recorded_failure(self, registry):
        def gives_up_midway(args):
            # The caller times out while the tool is still running.
            registry.record_failure("slow")
            return "finished late"

        registry.register(ToolDefinition(name="slow"), gives_up_midway)

        assert registry.execute("slow") == "finished late"
        assert registry.last_succeeded is False
        with pytest.raises(ToolExecutionError):
            registry.execute(COMPLETION_TOOL, {"result": "done"})
