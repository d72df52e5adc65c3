#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Main entry point for the autonomy CLI."""

import argparse
import importlib
import sys
from dataclasses import replace
from typing import List, Optional

from autonomy import config
from autonomy.core.cancellation import CancelContext, CancelledError
from autonomy.core.context import AgentContext
from autonomy.debug_logger import DebugLogger
from autonomy.execution.session import TaskFailedError
from autonomy.llm.provider_factory import detect_provider_from_model
from autonomy.llm.providers.base import ConfigurationError, ProviderError
from autonomy.models.conversation import Message, PromptData
from autonomy.tools.registry import ToolRegistry

EXIT_OK = 0
EXIT_TASK_FAILED = 1
EXIT_FATAL = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autonomy",
        description="autonomy - terminal coding agent",
    )
    parser.add_argument(
        "task",
        nargs="*",
        help="Task description (one-shot mode)"
    )
    parser.add_argument(
        "--provider",
        default=None,
        help=f"LLM provider (default: {config.LLM_PROVIDER}, detected from available API keys)"
    )
    parser.add_argument(
        "--model",
        default=None,
        help="Model name (default depends on the provider)"
    )
    parser.add_argument(
        "--base-url",
        default=None,
        help="Override the provider base URL"
    )
    parser.add_argument(
        "--max-tokens",
        type=int,
        default=None,
        help="Maximum tokens per model reply"
    )
    parser.add_argument(
        "--temperature",
        type=float,
        default=None,
        help="Sampling temperature (default: 0)"
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=None,
        help="Attempts per task before giving up"
    )
    parser.add_argument(
        "--max-turns",
        type=int,
        default=None,
        help="Model turns per attempt"
    )
    parser.add_argument(
        "--tools-module",
        action="append",
        default=[],
        metavar="MODULE",
        help="Import MODULE and call its register_tools(registry); may be repeated"
    )
    parser.add_argument(
        "--stream",
        action="store_true",
        help="Stream a plain completion for the prompt instead of running a task"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=config.DEBUG_ENABLED,
        help="Enable debug logging to .autonomy/logs/"
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Show version information and exit",
    )
    return parser


def load_tools(registry: ToolRegistry, modules: List[str]) -> None:
    """Import each module and let it register its tools."""
    for module_name in modules:
        module = importlib.import_module(module_name)
        register = getattr(module, "register_tools", None)
        if not callable(register):
            raise ConfigurationError(f"Tools module '{module_name}' has no register_tools(registry) function")
        register(registry)


def build_context(args: argparse.Namespace) -> AgentContext:
    provider = args.provider
    if provider is None and args.model:
        provider = detect_provider_from_model(args.model)

    context = AgentContext.from_env(
        provider,
        model=args.model,
        base_url=args.base_url,
        max_tokens=args.max_tokens,
        temperature=args.temperature,
    )
    session_overrides = {}
    if args.max_attempts is not None:
        session_overrides["max_attempts"] = args.max_attempts
    if args.max_turns is not None:
        session_overrides["max_turns"] = args.max_turns
    if session_overrides:
        # replace() re-runs validation.
        context.session_config = replace(context.session_config, **session_overrides)
    return context


def run_stream(context: AgentContext, prompt: str, ctx: CancelContext) -> int:
    provider = context.create_provider()
    text_channel, error_channel = provider.generate_code_stream(
        PromptData(messages=[Message.user(prompt)]), ctx
    )
    for chunk in text_channel:
        sys.stdout.write(chunk)
        sys.stdout.flush()
    print()

    error, has_error = error_channel.receive()
    if has_error:
        print(f"✗ Stream failed: {error}", file=sys.stderr)
        return EXIT_TASK_FAILED
    return EXIT_OK


def run_task(context: AgentContext, task: str, registry: ToolRegistry, ctx: CancelContext) -> int:
    debug_logger = DebugLogger.get_instance()

    with context.create_session(registry) as session:
        session.set_task(task)
        try:
            outcome = session.process_task(ctx)
        except TaskFailedError as e:
            debug_logger.log_error("main", e, {"fatal": e.fatal})
            print(f"\n✗ Task failed: {e}", file=sys.stderr)
            return EXIT_FATAL if e.fatal else EXIT_TASK_FAILED

    if outcome.final_message:
        print(outcome.final_message)
    print()
    print(f"Steps: {outcome.plan.get_summary()}")

    if outcome.completed or outcome.answered:
        print(f"✓ Done after {outcome.attempts} attempt(s)")
        return EXIT_OK

    print(f"✗ Task not completed after {outcome.attempts} attempt(s): {outcome.reason}")
    return EXIT_TASK_FAILED


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the autonomy CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    debug_logger = DebugLogger.initialize(enabled=args.debug)
    if args.debug:
        print(f"Debug logging enabled: {debug_logger.log_file_path}")

    ctx = CancelContext.background()
    try:
        try:
            context = build_context(args)
        except ValueError as e:
            print(f"✗ Invalid configuration: {e}", file=sys.stderr)
            return EXIT_FATAL

        if args.version:
            from autonomy.versioning import build_version_output

            print(build_version_output(context.provider_config.provider, context.provider_config.model))
            return EXIT_OK

        if not args.task:
            parser.print_usage(sys.stderr)
            print("✗ No task given", file=sys.stderr)
            return EXIT_FATAL

        task = " ".join(args.task)
        debug_logger.log("main", "CONFIGURATION", {
            "provider": context.provider_config.provider,
            "model": context.provider_config.model,
            "base_url": context.provider_config.base_url,
            "mode": "stream" if args.stream else "task",
            "max_attempts": context.session_config.max_attempts,
            "max_turns": context.session_config.max_turns,
        })

        if args.stream:
            return run_stream(context, task, ctx)

        registry = ToolRegistry()
        load_tools(registry, args.tools_module)
        print(f"autonomy - {context.provider_config.provider} / {context.provider_config.model}")
        print(f"Repository: {config.ROOT}")
        print()
        return run_task(context, task, registry, ctx)

    except ConfigurationError as e:
        print(f"✗ Configuration error: {e.message}", file=sys.stderr)
        return EXIT_FATAL
    except ProviderError as e:
        debug_logger.log_error("main", e)
        print(f"✗ {e}", file=sys.stderr)
        return EXIT_FATAL if e.fatal else EXIT_TASK_FAILED
    except (KeyboardInterrupt, CancelledError):
        ctx.cancel("interrupted")
        debug_logger.log("main", "USER_INTERRUPT", {}, "WARNING")
        print("\n\nAborted by user", file=sys.stderr)
        return EXIT_TASK_FAILED
    except Exception as e:
        debug_logger.log_error("main", e, {"context": "main execution loop"})
        raise
    finally:
        debug_logger.close()


if __name__ == "__main__":
    sys.exit(main())
