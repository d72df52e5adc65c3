#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Cancellation contexts.

A :class:`CancelContext` is passed into every network call, backoff sleep and
tool execution. Cancelling a context (or reaching its deadline) cancels all of
its children. Blocking calls that cannot observe the context themselves are run
through :func:`run_interruptible`, which executes them on a daemon thread and
polls the context while waiting.
"""

import threading
import time
from typing import Any, Callable, List, Optional


class CancelledError(Exception):
    """Raised when work is abandoned because its context was cancelled."""

    def __init__(self, reason: str = "operation cancelled"):
        super().__init__(reason)
        self.reason = reason


class CancelContext:
    """Cancellation token with optional deadline and parent propagation."""

    def __init__(self, timeout: Optional[float] = None, parent: Optional["CancelContext"] = None):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []
        self._reason: Optional[str] = None
        self._timer: Optional[threading.Timer] = None
        self._parent = parent
        self._unregister_parent: Optional[Callable[[], None]] = None
        self.deadline: Optional[float] = None

        if timeout is not None:
            self.deadline = time.monotonic() + max(0.0, timeout)
        if parent is not None and parent.deadline is not None:
            if self.deadline is None or parent.deadline < self.deadline:
                self.deadline = parent.deadline

        if parent is not None:
            self._unregister_parent = parent.on_cancel(
                lambda: self.cancel(parent.reason or "parent context cancelled")
            )

        if timeout is not None and not self._event.is_set():
            self._timer = threading.Timer(max(0.0, timeout), self.cancel, args=("deadline exceeded",))
            self._timer.daemon = True
            self._timer.start()

    @classmethod
    def background(cls) -> "CancelContext":
        """A context that is never cancelled unless someone calls cancel()."""
        return cls()

    def child(self, timeout: Optional[float] = None) -> "CancelContext":
        """Derive a context cancelled together with this one."""
        return CancelContext(timeout=timeout, parent=self)

    def cancel(self, reason: str = "context cancelled") -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
            timer, self._timer = self._timer, None

        if timer is not None:
            timer.cancel()
        for callback in callbacks:
            callback()

    def release(self) -> None:
        """Detach from the parent and stop the deadline timer without cancelling."""
        with self._lock:
            timer, self._timer = self._timer, None
            unregister, self._unregister_parent = self._unregister_parent, None
        if timer is not None:
            timer.cancel()
        if unregister is not None:
            unregister()

    def __enter__(self) -> "CancelContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, or None when there is no deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledError(self._reason or "context cancelled")

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if the context was cancelled meanwhile."""
        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback`` to run on cancellation and return an unregister function.

        If the context is already cancelled the callback runs immediately.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def unregister():
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return unregister

        callback()
        return lambda: None


def run_interruptible(ctx: Optional[CancelContext], func: Callable[..., Any], *args: Any,
                      poll_interval: float = 0.5, **kwargs: Any) -> Any:
    """Run a blocking call so that it can be abandoned when ``ctx`` is cancelled.

    The call runs on a daemon thread. When the context is cancelled the worker
    is abandoned and :class:`CancelledError` is raised; errors raised by the
    call itself are re-raised in the caller's thread.
    """
    if ctx is None:
        return func(*args, **kwargs)

    ctx.raise_if_cancelled()
    result = {"value": None, "error": None}
    done = threading.Event()
    wake = threading.Event()

    def worker():
        try:
            result["value"] = func(*args, **kwargs)
        except BaseException as e:  # re-raised in the caller thread
            result["error"] = e
        finally:
            done.set()
            wake.set()

    thread = threading.Thread(target=worker, daemon=True)
    thread.start()

    unregister = ctx.on_cancel(wake.set)
    try:
        while not done.is_set() and not ctx.cancelled:
            wake.wait(poll_interval)
    finally:
        unregister()

    if not done.is_set():
        ctx.raise_if_cancelled()

    if result["error"] is not None:
        raise result["error"]
    return result["value"]
