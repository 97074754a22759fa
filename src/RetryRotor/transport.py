# === NAVMAP v1 ===
# {
#   "module": "RetryRotor.transport",
#   "purpose": "Pooled HTTPX client factory used as the default transport.",
#   "sections": [
#     {
#       "id": "create-pooled-client",
#       "name": "create_pooled_client",
#       "anchor": "function-create-pooled-client",
#       "kind": "function"
#     },
#     {
#       "id": "create-ssl-context",
#       "name": "_create_ssl_context",
#       "anchor": "function-create-ssl-context",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Pooled HTTPX client factory.

The retry loop delegates connection management entirely to an ``httpx.Client``.
This module builds the default one: per-phase timeouts, bounded connection
pooling with keepalive, optional HTTP/2, redirect following, TLS verification
against the ``certifi`` bundle, and the instrumentation hooks from
:mod:`RetryRotor.instrumentation`.

Transport-level retries inside httpx are left disabled; every retry decision is
made by the client's retry policy.

Example:
    >>> from RetryRotor.transport import create_pooled_client
    >>> http_client = create_pooled_client()
    >>> http_client.close()
"""

import logging
import ssl
from typing import Optional

import certifi
import httpx

from RetryRotor.instrumentation import create_http_event_hooks
from RetryRotor.settings import RetrySettings, get_settings

logger = logging.getLogger(__name__)

#: Maximum number of bytes read from a discarded response so its connection can be reused
RESPONSE_DRAIN_LIMIT = 4096


def _create_ssl_context(verify: bool = True) -> ssl.SSLContext:
    """Create SSL context with secure defaults.

    Uses the certifi bundle for maximum compatibility and enforces hostname
    checks unless verification was explicitly disabled.

    Returns:
        Configured ssl.SSLContext for use with HTTPX
    """
    if not verify:
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        logger.warning("TLS verification DISABLED (development only!)")
        return ctx

    ctx = ssl.create_default_context(cafile=certifi.where())
    ctx.check_hostname = True
    ctx.verify_mode = ssl.CERT_REQUIRED
    return ctx


def create_pooled_client(settings: Optional[RetrySettings] = None) -> httpx.Client:
    """Create an HTTPX client with connection pooling and instrumentation hooks.

    Configuration:
    - Timeouts: per-phase (connect, read, write, pool)
    - Connection pooling: bounded, with keepalive expiry
    - HTTP/2: negotiated when enabled and offered by the server
    - Redirects: followed, like a standard client
    - Hooks: per-exchange timing logs

    Args:
        settings: Settings to build from; defaults to :func:`get_settings`.

    Returns:
        Fully configured httpx.Client ready for use
    """
    settings = settings or get_settings()
    ssl_ctx = _create_ssl_context(settings.tls_verify)

    client = httpx.Client(
        timeout=httpx.Timeout(
            connect=settings.connect_timeout,
            read=settings.read_timeout,
            write=settings.write_timeout,
            pool=settings.pool_timeout,
        ),
        limits=httpx.Limits(
            max_connections=settings.max_connections,
            max_keepalive_connections=settings.max_keepalive_connections,
            keepalive_expiry=settings.keepalive_expiry,
        ),
        http2=settings.http2,
        follow_redirects=settings.follow_redirects,
        verify=ssl_ctx,
        headers={"User-Agent": settings.user_agent},
        event_hooks=create_http_event_hooks(),
    )

    logger.debug(
        "HTTPX client created",
        extra={
            "extra_fields": {
                "http2": settings.http2,
                "max_connections": settings.max_connections,
                "max_keepalive": settings.max_keepalive_connections,
                "config_hash": settings.config_hash(),
            }
        },
    )

    return client


__all__ = [
    "RESPONSE_DRAIN_LIMIT",
    "create_pooled_client",
]
