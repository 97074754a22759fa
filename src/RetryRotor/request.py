"""Retryable request wrapper and its constructors.

A :class:`Request` describes one logical operation: method, headers, a list of
candidate target URLs, and a replayable body.  The concrete ``httpx.Request``
is rebuilt for every attempt against whichever target the scheduler picked, so
the method and headers stay fixed while :attr:`Request.url` follows the
rotation.

Example:
    >>> req = new_request("POST", "http://a.example/x http://b.example/x", b"payload")
    >>> req.targets
    ('http://a.example/x', 'http://b.example/x')
    >>> req.content_length
    7
"""

from __future__ import annotations

import copy
from typing import Any, Mapping, Optional, Tuple

import httpx

from RetryRotor.body import BodyProducer, materialize_body
from RetryRotor.cancellation import RequestContext
from RetryRotor.errors import InvalidTargetURL
from RetryRotor.instrumentation import START_TIME_EXTENSION

__all__ = ["Request", "new_request", "from_request", "parse_target", "parse_targets"]

# Headers derived from the target or the payload; recomputed on every attempt.
_PER_ATTEMPT_HEADERS = ("host", "content-length", "transfer-encoding")


def parse_target(target: str) -> httpx.URL:
    """Parse one target into an absolute URL.

    Raises:
        InvalidTargetURL: the target is not an absolute URL with a scheme and host.
    """
    try:
        url = httpx.URL(target)
    except (httpx.InvalidURL, TypeError, ValueError) as exc:
        raise InvalidTargetURL(f"invalid target URL {target!r}: {exc}", target=target) from exc
    if not url.scheme or not url.host:
        raise InvalidTargetURL(
            f"invalid target URL {target!r}: missing scheme or host", target=target
        )
    return url


def parse_targets(targets: str) -> Tuple[str, ...]:
    """Split a whitespace-separated target string and validate every entry."""
    candidates = tuple(targets.split()) if isinstance(targets, str) else ()
    if not candidates:
        raise InvalidTargetURL(f"no target URLs in {targets!r}", target=targets)
    for candidate in candidates:
        parse_target(candidate)
    return candidates


class Request:
    """Method, headers, target list, and replayable body for a retrying call."""

    def __init__(
        self,
        method: str,
        targets: Tuple[str, ...],
        *,
        headers: Optional[Any] = None,
        body: Optional[BodyProducer] = None,
        content_length: Optional[int] = None,
        context: Optional[RequestContext] = None,
        extensions: Optional[Mapping[str, Any]] = None,
    ) -> None:
        if not targets:
            raise InvalidTargetURL("a request needs at least one target")
        self.method = method.upper()
        self.targets = tuple(targets)
        self.headers = httpx.Headers(headers)
        self.body = body
        self.content_length = content_length
        self.context = context if context is not None else RequestContext()
        self.extensions = dict(extensions or {})
        self.url = parse_target(self.targets[0])

    def with_context(self, context: RequestContext) -> "Request":
        """Return a shallow copy of this request bound to ``context``."""
        if context is None:
            raise ValueError("context must not be None")
        clone = copy.copy(self)
        clone.context = context
        return clone

    def build(self, http_client: httpx.Client, content: Optional[Any] = None) -> httpx.Request:
        """Build the ``httpx.Request`` for one attempt against :attr:`url`."""
        headers = httpx.Headers(self.headers)
        if content is not None and self.content_length is not None:
            headers["Content-Length"] = str(self.content_length)

        kwargs: dict = {}
        remaining = self.context.remaining()
        if remaining is not None:
            kwargs["timeout"] = httpx.Timeout(max(remaining, 0.001))

        return http_client.build_request(
            self.method,
            self.url,
            headers=headers,
            content=content,
            extensions=dict(self.extensions),
            **kwargs,
        )

    def __repr__(self) -> str:
        return f"<Request {self.method} {self.url} targets={len(self.targets)}>"


def new_request(
    method: str,
    targets: str,
    body: Any = None,
    *,
    headers: Optional[Any] = None,
    context: Optional[RequestContext] = None,
) -> Request:
    """Create a :class:`Request` for a whitespace-separated list of targets.

    Args:
        method: HTTP method name.
        targets: One or more absolute URLs separated by whitespace.
        body: Any representation accepted by :func:`~RetryRotor.body.materialize_body`.
        headers: Headers sent unchanged with every attempt.
        context: Cancellation/deadline scope; a fresh live context by default.

    Raises:
        InvalidTargetURL: any target fails to parse.
        InvalidBodyType: the body representation is unsupported.
        BodyProducerError: a body factory failed on its trial call.
    """
    parsed = parse_targets(targets)
    producer, content_length = materialize_body(body)
    return Request(
        method,
        parsed,
        headers=headers,
        body=producer,
        content_length=content_length,
        context=context,
    )


def from_request(http_request: httpx.Request, targets: str) -> Request:
    """Wrap an already built ``httpx.Request`` for retrying across ``targets``.

    Method, headers, and extensions are preserved; the body is captured so it can
    be replayed on every attempt.
    """
    parsed = parse_targets(targets)
    payload = http_request.read()
    producer, content_length = materialize_body(payload if payload else None)

    headers = httpx.Headers(
        [(k, v) for k, v in http_request.headers.multi_items() if k.lower() not in _PER_ATTEMPT_HEADERS]
    )
    extensions = {
        k: v for k, v in http_request.extensions.items() if k not in ("timeout", START_TIME_EXTENSION)
    }
    return Request(
        http_request.method,
        parsed,
        headers=headers,
        body=producer,
        content_length=content_length,
        extensions=extensions,
    )
