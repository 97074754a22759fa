# === NAVMAP v1 ===
# {
#   "module": "RetryRotor.instrumentation",
#   "purpose": "HTTP transport instrumentation and per-exchange timing logs.",
#   "sections": [
#     {
#       "id": "create-http-event-hooks",
#       "name": "create_http_event_hooks",
#       "anchor": "function-create-http-event-hooks",
#       "kind": "function"
#     },
#     {
#       "id": "redact-url",
#       "name": "_redact_url",
#       "anchor": "function-redact-url",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""HTTP transport instrumentation.

Logs one ``net.request`` record per completed HTTP exchange made by a pooled
client, capturing method, redacted URL, status, protocol, and elapsed time.
Every attempt of a retrying request shows up as its own record.
"""

import logging
import time
from urllib.parse import urlparse, urlunparse

import httpx

logger = logging.getLogger(__name__)

#: Request extension carrying the ``time.perf_counter()`` value taken when the request was sent
START_TIME_EXTENSION = "retryrotor.start_time"


def create_http_event_hooks() -> dict:
    """Create HTTPX event hooks for timing telemetry.

    The start time travels on ``request.extensions``, so an exchange that ends in a
    transport error leaves nothing behind in the hooks.

    Returns:
        Dict with 'request' and 'response' hooks for an HTTPX client

    Usage:
        >>> import httpx
        >>> hooks = create_http_event_hooks()
        >>> client = httpx.Client(event_hooks=hooks)
    """

    def on_request(request: httpx.Request) -> None:
        request.extensions[START_TIME_EXTENSION] = time.perf_counter()

    def on_response(response: httpx.Response) -> None:
        request = response.request
        start_time = request.extensions.pop(START_TIME_EXTENSION, None)
        if start_time is None:
            return

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        try:
            logger.debug(
                "net.request %s %s -> %s (%.1f ms)",
                request.method,
                _redact_url(str(request.url)),
                response.status_code,
                elapsed_ms,
                extra={
                    "extra_fields": {
                        "event": "net.request",
                        "method": request.method,
                        "url_redacted": _redact_url(str(request.url)),
                        "host": request.url.host or "unknown",
                        "status": response.status_code,
                        "http_version": response.http_version,
                        "elapsed_ms": round(elapsed_ms, 3),
                    }
                },
            )
        except Exception:  # pragma: no cover
            logger.debug("Failed to record net.request event", exc_info=True)

    return {
        "request": [on_request],
        "response": [on_response],
    }


def _redact_url(url: str) -> str:
    """Redact sensitive query parameters from URL.

    Strips query strings and userinfo, keeping only scheme + host + path.
    """
    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError:
        return "[URL_REDACTION_FAILED]"
    netloc = parsed.hostname or ""
    if port:
        netloc = f"{netloc}:{port}"
    return urlunparse((parsed.scheme, netloc, parsed.path, "", "", ""))


__all__ = [
    "START_TIME_EXTENSION",
    "create_http_event_hooks",
]
