#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Bounded, close-once channel used to hand streamed output between threads."""

import threading
from collections import deque
from typing import Any, Deque, Iterator, Optional, Tuple

from autonomy.core.cancellation import CancelContext


class StreamChannel:
    """A bounded FIFO with explicit close.

    ``send`` blocks while the buffer is full and gives up when the channel is
    closed or the producer's context is cancelled. Receivers keep getting
    buffered items after close until the buffer is drained; iteration stops
    once the channel is closed and empty.
    """

    def __init__(self, maxsize: int = 100):
        if maxsize < 1:
            raise ValueError("maxsize must be positive")
        self.maxsize = maxsize
        self._items: Deque[Any] = deque()
        self._closed = False
        self._cond = threading.Condition()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    def send(self, item: Any, ctx: Optional[CancelContext] = None, poll_interval: float = 0.1) -> bool:
        """Enqueue ``item``; return False if it was not delivered."""
        with self._cond:
            while len(self._items) >= self.maxsize and not self._closed:
                if ctx is not None and ctx.cancelled:
                    return False
                self._cond.wait(poll_interval)
            if self._closed or (ctx is not None and ctx.cancelled):
                return False
            self._items.append(item)
            self._cond.notify_all()
            return True

    def close(self, discard: bool = False) -> bool:
        """Close the channel. Returns False if it was already closed.

        With ``discard`` any undelivered items are dropped so receivers see
        the channel as finished immediately.
        """
        with self._cond:
            if self._closed:
                return False
            self._closed = True
            if discard:
                self._items.clear()
            self._cond.notify_all()
            return True

    def receive(self, timeout: Optional[float] = None) -> Tuple[Any, bool]:
        """Return ``(item, True)``, or ``(None, False)`` once closed and drained or on timeout."""
        with self._cond:
            if not self._cond.wait_for(lambda: self._items or self._closed, timeout):
                return None, False
            if self._items:
                item = self._items.popleft()
                self._cond.notify_all()
                return item, True
            return None, False

    def __iter__(self) -> Iterator[Any]:
        while True:
            item, ok = self.receive()
            if not ok:
                return
            yield item

    def drain(self) -> list:
        """Consume everything until the channel is closed."""
        return list(self)
