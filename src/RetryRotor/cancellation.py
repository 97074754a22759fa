"""Cooperative cancellation context carried by every retrying request.

A :class:`RequestContext` plays the role of a cancellation/deadline scope for one
logical operation.  The dispatch loop never interrupts a thread; instead it checks
the context before each send and at the top of every retry-policy evaluation, bounds
the transport timeout by the remaining deadline, and sleeps between attempts through
:meth:`RequestContext.wait` so that a cancel wakes the sleeper early.

Examples:
    >>> ctx = RequestContext(timeout=5.0)
    >>> ctx.error() is None
    True
    >>> ctx.cancel()
    >>> isinstance(ctx.error(), RequestCancelled)
    True
"""

from __future__ import annotations

import threading
import time
from typing import Callable, List, Optional

from RetryRotor.errors import ContextError, DeadlineExceeded, RequestCancelled

__all__ = ["RequestContext"]


class RequestContext:
    """Thread-safe cancellation scope with an optional deadline.

    The first observed reason for completion (explicit cancel or deadline) is
    latched, so :meth:`error` keeps returning the same exception instance and
    callers may compare it by identity.
    """

    def __init__(self, *, timeout: Optional[float] = None) -> None:
        """Initialise a context, optionally expiring ``timeout`` seconds from now."""
        if timeout is not None and timeout < 0:
            raise ValueError("timeout must be non-negative")
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._error: Optional[ContextError] = None
        self._callbacks: List[Callable[[], None]] = []
        self._deadline: Optional[float] = (
            time.monotonic() + float(timeout) if timeout is not None else None
        )

    @property
    def deadline(self) -> Optional[float]:
        """Monotonic-clock deadline, or ``None`` when the context never expires."""
        return self._deadline

    def _finish(self, error: ContextError) -> ContextError:
        with self._lock:
            if self._error is None:
                self._error = error
            self._done.set()
            callbacks, self._callbacks = self._callbacks, []
            latched = self._error
        for callback in callbacks:
            callback()
        return latched

    def cancel(self) -> None:
        """Signal that the operation should stop; idempotent."""
        self._finish(RequestCancelled("request cancelled"))

    def add_done_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` once the context is cancelled or observed expired.

        The callback runs immediately when the context is already done.

        Returns:
            A function that unregisters ``callback``; safe to call more than once.
        """
        with self._lock:
            if not self._done.is_set():
                self._callbacks.append(callback)

                def remove() -> None:
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return remove
        callback()
        return lambda: None

    def is_cancelled(self) -> bool:
        """Return True once the context is done for any reason."""
        return self.error() is not None

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline (never negative), or ``None``."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def error(self) -> Optional[ContextError]:
        """Return the latched completion error, or ``None`` while still live."""
        if self._done.is_set():
            return self._error
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return self._finish(DeadlineExceeded("request deadline exceeded"))
        return None

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``, waking early on cancel or deadline.

        Returns:
            True if the context finished while (or before) waiting.
        """
        timeout = max(0.0, float(seconds))
        remaining = self.remaining()
        if remaining is not None:
            timeout = min(timeout, remaining)
        self._done.wait(timeout)
        return self.is_cancelled()

    def __repr__(self) -> str:
        state = "done" if self._done.is_set() else "live"
        return f"<RequestContext {state} deadline={self._deadline!r}>"
