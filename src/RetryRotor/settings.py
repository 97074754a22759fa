"""Environment-driven configuration for retrying clients and their transport.

Values are read once per process from ``RETRYROTOR_*`` environment variables (or a
``.env`` file) into a frozen :class:`RetrySettings` model.  :class:`~RetryRotor.client.Client`
consults the settings only while filling in its defaults; attributes on a constructed
client remain freely overridable.

Example:
    >>> import os
    >>> os.environ["RETRYROTOR_RETRY_MAX"] = "3"
    >>> reset_settings()
    >>> get_settings().retry_max
    3
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["RetrySettings", "get_settings", "reset_settings"]

#: Default User-Agent sent by pooled clients
DEFAULT_USER_AGENT = "RetryRotor/0.1 (+https://pypi.org/project/retryrotor/)"

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}


class RetrySettings(BaseSettings):
    """Retry, transport, and logging defaults."""

    model_config = SettingsConfigDict(
        env_prefix="RETRYROTOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # ===== Retry loop =====
    retry_wait_min: float = Field(default=1.0, ge=0.0, description="Minimum backoff wait (seconds)")
    retry_wait_max: float = Field(default=30.0, ge=0.0, description="Maximum backoff wait (seconds)")
    retry_max: int = Field(default=10, ge=0, le=1000, description="Retries after the first attempt")
    first_target: int = Field(default=0, ge=0, description="Initial scheduler cursor")

    # ===== Transport =====
    connect_timeout: float = Field(default=5.0, gt=0.0, le=300.0)
    read_timeout: float = Field(default=30.0, gt=0.0, le=3600.0)
    write_timeout: float = Field(default=30.0, gt=0.0, le=3600.0)
    pool_timeout: float = Field(default=5.0, gt=0.0, le=300.0)
    max_connections: int = Field(default=100, ge=1, le=4096)
    max_keepalive_connections: int = Field(default=20, ge=0, le=4096)
    keepalive_expiry: float = Field(default=90.0, ge=0.0, le=3600.0)
    http2: bool = Field(default=True, description="Negotiate HTTP/2 where the server offers it")
    follow_redirects: bool = True
    tls_verify: bool = True
    user_agent: str = DEFAULT_USER_AGENT

    # ===== Logging =====
    log_level: str = "INFO"
    json_logs: bool = False

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        """Normalise and validate the logging level name."""
        upper = str(v).upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_VALID_LOG_LEVELS)}, got '{v}'")
        return upper

    def level_int(self) -> int:
        """Convert :attr:`log_level` to the ``logging`` module constant."""
        return getattr(logging, self.log_level)

    def config_hash(self) -> str:
        """Deterministic hash of every field that shapes a client built from these settings."""
        payload = self.model_dump(mode="json", exclude={"log_level", "json_logs"})
        return hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()[:16]


_settings: Optional[RetrySettings] = None
_settings_lock = threading.Lock()


def get_settings() -> RetrySettings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is not None:
        return _settings
    with _settings_lock:
        if _settings is None:
            _settings = RetrySettings()
        return _settings


def reset_settings() -> None:
    """Forget cached settings so the next :func:`get_settings` re-reads the environment."""
    global _settings
    with _settings_lock:
        _settings = None
