"""Pluggable policy hooks consulted by :meth:`RetryRotor.client.Client.do`.

Every hook is a plain callable stored on the client, so any function with the
matching signature can replace a default:

* **Backoff** ``(min_wait, max_wait, attempt, response) -> seconds`` -- how long to
  sleep after the zero-based ``attempt`` failed.
* **RetryPolicy** ``(context, response, error) -> (should_retry, error)`` -- whether
  the outcome of an attempt deserves another try.  A non-``None`` error returned
  alongside ``should_retry=False`` replaces whatever the attempt produced.
* **Scheduler** ``(targets, cursor) -> (target, next_cursor)`` -- which candidate URL
  the next attempt goes to.  The cursor is local to one ``do`` call.
* **Logger** ``(request, severity, message, error)`` -- observability callback;
  ``request`` may be ``None``.

Example:
    >>> default_backoff(1.0, 300.0, 3, None)
    8.0
    >>> default_scheduler(("http://a", "http://b"), 2)
    ('http://a', 1)
"""

from __future__ import annotations

import logging
import math
import random
from typing import TYPE_CHECKING, Callable, Optional, Sequence, Tuple

import httpx

from RetryRotor.errors import SchedulerError

if TYPE_CHECKING:  # pragma: no cover - typing-only imports
    from RetryRotor.cancellation import RequestContext
    from RetryRotor.request import Request

__all__ = [
    "Backoff",
    "RetryPolicy",
    "Scheduler",
    "Logger",
    "default_backoff",
    "linear_jitter_backoff",
    "default_retry_policy",
    "default_scheduler",
    "default_logger",
]

LOGGER = logging.getLogger(__name__)

Backoff = Callable[[float, float, int, Optional[httpx.Response]], float]
RetryPolicy = Callable[
    ["Optional[RequestContext]", Optional[httpx.Response], Optional[BaseException]],
    Tuple[bool, Optional[BaseException]],
]
Scheduler = Callable[[Sequence[str], int], Tuple[str, int]]
Logger = Callable[["Optional[Request]", str, str, Optional[BaseException]], None]

_SEVERITY_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}


def default_backoff(
    min_wait: float, max_wait: float, attempt: int, response: Optional[httpx.Response]
) -> float:
    """Exponential backoff: ``min_wait * 2**attempt`` clamped to ``max_wait``."""
    try:
        wait = math.ldexp(float(min_wait), attempt)
    except OverflowError:
        return float(max_wait)
    if not math.isfinite(wait) or wait > max_wait:
        return float(max_wait)
    return wait


def linear_jitter_backoff(
    min_wait: float, max_wait: float, attempt: int, response: Optional[httpx.Response]
) -> float:
    """Linear backoff with jitter to avoid a thundering herd.

    ``min_wait`` and ``max_wait`` bound the per-step jitter rather than the total:
    the result is a value drawn uniformly from ``[min_wait, max_wait)`` multiplied by
    ``attempt + 1``.

    * Strictly linear one-second steps: ``min_wait == max_wait == 1.0``
      (1s, 2s, 3s, ...).
    * A little jitter around one second: ``0.8`` / ``1.2``.
    * Extreme jitter: ``0.1`` / ``20.0``.

    When ``max_wait <= min_wait`` there is no jitter range and
    ``min_wait * (attempt + 1)`` is returned.
    """
    steps = attempt + 1
    if max_wait <= min_wait:
        return min_wait * steps
    jitter = random.random() * (max_wait - min_wait)
    return (min_wait + jitter) * steps


def default_retry_policy(
    context: Optional["RequestContext"],
    response: Optional[httpx.Response],
    error: Optional[BaseException],
) -> Tuple[bool, Optional[BaseException]]:
    """Retry on transport errors and 5xx responses (except 501).

    A done context always wins: its error is returned and the loop stops.
    """
    if context is not None:
        context_error = context.error()
        if context_error is not None:
            return False, context_error

    if error is not None:
        return True, error

    if response is None:
        return True, None
    status = response.status_code
    if status == 0 or (500 <= status <= 599 and status != 501):
        return True, None

    return False, None


def default_scheduler(targets: Sequence[str], cursor: int) -> Tuple[str, int]:
    """Round-robin over ``targets``, wrapping the cursor back to the first entry."""
    if not targets:
        raise SchedulerError("no targets to schedule")
    if cursor < 0 or cursor >= len(targets):
        cursor = 0
    return targets[cursor], cursor + 1


def default_logger(
    request: Optional["Request"],
    severity: str,
    message: str,
    error: Optional[BaseException],
) -> None:
    """Forward hook messages to the ``RetryRotor.policies`` logger."""
    level = _SEVERITY_LEVELS.get(severity.upper(), logging.INFO)
    if not LOGGER.isEnabledFor(level):
        return
    fields = {"severity": severity}
    if request is not None:
        fields["method"] = request.method
        fields["url"] = str(request.url)
    if error is not None:
        fields["error_type"] = type(error).__name__
        LOGGER.log(level, "%s %s%s", severity, message, error, extra={"extra_fields": fields})
    else:
        LOGGER.log(level, "%s %s", severity, message, extra={"extra_fields": fields})
