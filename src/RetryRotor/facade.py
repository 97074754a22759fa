"""Module-level convenience functions over a shared default client.

Callers that do not need custom policies can skip constructing a
:class:`~RetryRotor.client.Client` and use these functions directly.  The shared
client is created lazily on first use with defaults from
:func:`~RetryRotor.settings.get_settings`.

Key design:
- **Lazy initialization**: the client is built on first use, not at import time.
- **Config binding**: the client stays bound to the settings it was built with. If
  the settings change later, a warning is logged once and the client is **not**
  rebuilt; call :func:`reset_default_client` to pick up new settings.
- **PID-aware**: after a fork the child rebuilds the client on first use instead of
  sharing pooled sockets with its parent.
- **Thread-safe**: creation is guarded by a lock.

Example:
    >>> import RetryRotor
    >>> response = RetryRotor.get("https://a.example/ping https://b.example/ping")
    >>> RetryRotor.close_default_client()
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Mapping, Optional

import httpx
from pydantic import ValidationError

from RetryRotor.client import Client
from RetryRotor.errors import ConfigurationError
from RetryRotor.request import Request
from RetryRotor.settings import get_settings

logger = logging.getLogger(__name__)

_client: Optional[Client] = None
_client_lock = threading.Lock()
_client_bind_hash: Optional[str] = None
_client_bind_pid: Optional[int] = None
_config_hash_mismatch_warned = False


def _load_settings():
    try:
        return get_settings()
    except ValidationError as exc:
        raise ConfigurationError(f"invalid RETRYROTOR_* configuration: {exc}") from exc


def get_default_client() -> Client:
    """Get or create the shared default :class:`Client`."""
    global _client, _client_bind_hash, _client_bind_pid, _config_hash_mismatch_warned

    if _client is not None and _client_bind_pid == os.getpid():
        current_hash = _load_settings().config_hash()
        if current_hash != _client_bind_hash and not _config_hash_mismatch_warned:
            logger.warning(
                "Settings changed after the default client was initialized; "
                "continuing with the bound client. Call reset_default_client() to rebuild.",
                extra={"extra_fields": {"bind_hash": _client_bind_hash, "current_hash": current_hash}},
            )
            _config_hash_mismatch_warned = True
        return _client

    with _client_lock:
        if _client is not None and _client_bind_pid == os.getpid():
            return _client

        if _client is not None:
            # Forked child: drop the parent's pool without closing its sockets.
            logger.debug("Process forked; rebuilding default client.")
            _client = None

        settings = _load_settings()
        _client = Client(settings=settings)
        _client_bind_hash = settings.config_hash()
        _client_bind_pid = os.getpid()
        _config_hash_mismatch_warned = False
        logger.debug(
            "Default client initialized",
            extra={"extra_fields": {"config_hash": _client_bind_hash, "pid": _client_bind_pid}},
        )
        return _client


def close_default_client() -> None:
    """Close the shared client if one exists; safe to call repeatedly."""
    global _client

    with _client_lock:
        if _client is not None:
            try:
                _client.close()
            finally:
                _client = None


def reset_default_client() -> None:
    """Close the shared client and forget its settings binding (for tests)."""
    global _client_bind_hash, _client_bind_pid, _config_hash_mismatch_warned

    close_default_client()
    _client_bind_hash = None
    _client_bind_pid = None
    _config_hash_mismatch_warned = False


def do(request: Request) -> httpx.Response:
    """Dispatch ``request`` through the default client."""
    return get_default_client().do(request)


def get(url: str) -> httpx.Response:
    """GET ``url`` through the default client."""
    return get_default_client().get(url)


def head(url: str) -> httpx.Response:
    """HEAD ``url`` through the default client."""
    return get_default_client().head(url)


def post(url: str, content_type: Optional[str], body: Any) -> httpx.Response:
    """POST ``body`` through the default client."""
    return get_default_client().post(url, content_type, body)


def put(url: str, content_type: Optional[str], body: Any) -> httpx.Response:
    """PUT ``body`` through the default client."""
    return get_default_client().put(url, content_type, body)


def patch(url: str, content_type: Optional[str], body: Any) -> httpx.Response:
    """PATCH ``body`` through the default client."""
    return get_default_client().patch(url, content_type, body)


def delete(url: str, content_type: Optional[str] = None, body: Any = None) -> httpx.Response:
    """DELETE through the default client."""
    return get_default_client().delete(url, content_type, body)


def post_form(url: str, data: Mapping[str, Any]) -> httpx.Response:
    """POST form-encoded ``data`` through the default client."""
    return get_default_client().post_form(url, data)


__all__ = [
    "get_default_client",
    "close_default_client",
    "reset_default_client",
    "do",
    "get",
    "head",
    "post",
    "put",
    "patch",
    "delete",
    "post_form",
]
