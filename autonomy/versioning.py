#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Version helpers for autonomy."""

from __future__ import annotations

import platform
import subprocess
from pathlib import Path
from typing import Optional

from autonomy._version import AUTONOMY_VERSION, AUTONOMY_GIT_COMMIT


def get_version() -> str:
    """Return the package version using the single source of truth."""

    if AUTONOMY_VERSION:
        return AUTONOMY_VERSION

    try:
        from importlib.metadata import version

        return version("autonomy-agent")
    except Exception:
        return "unknown"


def get_git_commit(short: bool = True) -> Optional[str]:
    """Return the git commit hash, preferring the build-time value if present."""
    if AUTONOMY_GIT_COMMIT and AUTONOMY_GIT_COMMIT != "unknown":
        return AUTONOMY_GIT_COMMIT[:7] if short else AUTONOMY_GIT_COMMIT

    try:
        repo_root = Path(__file__).resolve().parent.parent
        cmd = ["git", "rev-parse", "--short", "HEAD"] if short else ["git", "rev-parse", "HEAD"]
        commit = subprocess.check_output(cmd, cwd=repo_root, stderr=subprocess.DEVNULL)
        return commit.decode().strip()
    except (OSError, subprocess.CalledProcessError):
        return None


def build_version_output(provider: str, model: str) -> str:
    """Format detailed version information for ``--version``."""

    version = get_version()
    commit = get_git_commit(short=True)

    output = ["autonomy - terminal coding agent"]
    output.append("=" * 48)
    if commit:
        output.append(f"  Version:   {version} (commit {commit})")
    else:
        output.append(f"  Version:   {version}")
    output.append(f"  Provider:  {provider}")
    output.append(f"  Model:     {model}")
    output.append(f"  Python:    {platform.python_version()} ({platform.system()})")
    return "\n".join(output)
