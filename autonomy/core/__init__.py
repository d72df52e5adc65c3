"""Core plumbing shared by every layer: cancellation and the application context."""

from autonomy.core.cancellation import CancelContext, CancelledError, run_interruptible

__all__ = ["CancelContext", "CancelledError", "run_interruptible"]
