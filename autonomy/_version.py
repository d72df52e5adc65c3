"""Centralized version constant for autonomy."""

# Note: AUTONOMY_GIT_COMMIT is populated at build time so wheels/sdists carry
# the commit even when git metadata is unavailable at runtime.
AUTONOMY_VERSION = "0.4.0"
AUTONOMY_GIT_COMMIT = "unknown"

__all__ = ["AUTONOMY_VERSION", "AUTONOMY_GIT_COMMIT"]
