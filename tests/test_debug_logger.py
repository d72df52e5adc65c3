from pathlib import Path

from autonomy.debug_logger import DebugLogger, get_logger, is_debug_enabled, prune_old_logs
from autonomy.execution.reflection import ReflectionResult
from autonomy.llm.providers.base import ErrorClass, ProviderError
from autonomy.models.conversation import AIResponse, Message, ToolCall


def test_plain_logging_helpers_write_when_enabled(tmp_path: Path):
    logger = DebugLogger.initialize(enabled=True, log_dir=tmp_path)

    logger.info("info message")
    logger.warning("warn %s", "message")
    logger.error("error message")
    logger.debug("debug message")
    logger.close()

    log_file = logger.log_file_path
    assert log_file is not None
    assert log_file.exists()

    content = log_file.read_text(encoding="utf-8")
    assert "autonomy.general" in content
    assert "info message" in content
    assert "warn message" in content
    assert "error message" in content
    assert "debug message" in content
    assert "DEBUG_SESSION_END" in content


def test_plain_logging_helpers_are_noops_when_disabled(tmp_path: Path):
    logger = DebugLogger.initialize(enabled=False, log_dir=tmp_path)

    logger.info("info message")
    logger.warning("warn message")
    logger.error("error message")
    logger.debug("debug message")

    assert logger.log_file_path is None
    assert not any(tmp_path.iterdir())
    assert not is_debug_enabled()


def test_structured_events(tmp_path: Path):
    logger = DebugLogger.initialize(enabled=True, log_dir=tmp_path)
    assert get_logger() is logger

    logger.log_llm_request("ollama", "llama3.1", [Message.user("fix the bug")], tool_choice="force_tool")
    logger.log_llm_response("ollama", "llama3.1", AIResponse(
        content="reading", tool_calls=[ToolCall(name="read_file", arguments={"path": "a.go"})]
    ))
    logger.log_retry("ollama", 1, 2.0, ProviderError(ErrorClass.RATE_LIMIT, "slow down"))
    logger.log_tool_execution("read_file", {"path": "a.go"}, "package main")
    logger.log_step("step_1", "read_file", "completed")
    logger.log_reflection(ReflectionResult(True, False, "DONE"), "model", 1.0)
    logger.close()

    content = logger.log_file_path.read_text(encoding="utf-8")
    for event in ("LLM_REQUEST", "LLM_RESPONSE", "RETRY", "TOOL_EXECUTION",
                  "STEP_STATUS_CHANGE", "REFLECTION_RESULT"):
        assert f"[{event}]" in content
    assert "fix the bug" in content
    assert '"error_class": "rate_limit"' in content
    assert '"source": "model"' in content


def test_long_values_are_previewed(tmp_path: Path):
    logger = DebugLogger.initialize(enabled=True, log_dir=tmp_path)
    logger.log_tool_execution("read_file", {"path": "a.go"}, "x" * 2000)
    logger.close()

    content = logger.log_file_path.read_text(encoding="utf-8")
    assert "x" * 500 + "..." in content
    assert "x" * 501 not in content


def test_prune_old_logs_keeps_newest(tmp_path: Path):
    import os

    for index in range(5):
        path = tmp_path / f"autonomy_debug_{index}.log"
        path.write_text("log", encoding="utf-8")
        os.utime(path, (1000 + index, 1000 + index))

    prune_old_logs(tmp_path, keep=2)

    remaining = sorted(p.name for p in tmp_path.iterdir())
    assert remaining == ["autonomy_debug_3.log", "autonomy_debug_4.log"]
