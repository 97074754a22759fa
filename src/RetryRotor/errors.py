"""Exception hierarchy shared across request construction, dispatch, and policy hooks.

A retrying request can fail at several distinct stages: while parsing target URLs
or materialising the body, while replaying the body on a later attempt, after the
retry budget is spent, or because the caller cancelled it.  This module groups
those failure modes so callers can react to high-level categories (for example
"never retried" construction errors vs. exhaustion) while still reaching the
specialised subclasses when finer-grained handling is required.

Transport failures are *not* wrapped: they surface as the ``httpx.RequestError``
subclasses raised by the underlying client.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "RetryRotorError",
    "ConstructionError",
    "InvalidTargetURL",
    "InvalidBodyType",
    "BodyProducerError",
    "BodyReplayError",
    "RetriesExhaustedError",
    "SchedulerError",
    "ConfigurationError",
    "ContextError",
    "RequestCancelled",
    "DeadlineExceeded",
]


class RetryRotorError(RuntimeError):
    """Base exception for request construction, dispatch, and retry failures."""


class ConstructionError(RetryRotorError):
    """Raised synchronously while building a :class:`~RetryRotor.request.Request`."""


class InvalidTargetURL(ConstructionError):
    """Raised when a target in the whitespace-separated target string does not parse."""

    def __init__(self, message: str, *, target: Optional[str] = None) -> None:
        super().__init__(message)
        self.target = target


class InvalidBodyType(ConstructionError, TypeError):
    """Raised when the body value is not one of the supported representations."""

    def __init__(self, body_type: type) -> None:
        super().__init__(f"cannot handle body of type {body_type.__module__}.{body_type.__qualname__}")
        self.body_type = body_type


class BodyProducerError(ConstructionError):
    """Raised when a body factory fails on its initial trial invocation."""


class BodyReplayError(RetryRotorError):
    """Raised when the body cannot be reproduced for an attempt; never retried."""


class RetriesExhaustedError(RetryRotorError):
    """Raised when every attempt was consumed without the policy stopping the loop."""

    def __init__(self, method: str, url: str, attempts: int) -> None:
        super().__init__(f"{method} {url} giving up after {attempts} attempts")
        self.method = method
        self.url = url
        self.attempts = attempts


class SchedulerError(RetryRotorError):
    """Raised when a scheduler cannot select a target from the supplied list."""


class ConfigurationError(RetryRotorError):
    """Raised when a client is dispatched with incomplete or invalid configuration."""


class ContextError(RetryRotorError):
    """Base class for errors reported by a done :class:`~RetryRotor.cancellation.RequestContext`."""


class RequestCancelled(ContextError):
    """The request context was cancelled explicitly."""


class DeadlineExceeded(ContextError):
    """The request context deadline passed."""
