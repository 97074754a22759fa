# === NAVMAP v1 ===
# {
#   "module": "RetryRotor.logging_config",
#   "purpose": "Structured logging setup, JSON formatting, and secret masking",
#   "sections": [
#     {"id": "mask", "name": "mask_sensitive_data", "anchor": "function-mask-sensitive-data", "kind": "function"},
#     {"id": "formatter", "name": "JSONFormatter", "anchor": "class-jsonformatter", "kind": "class"},
#     {"id": "setup", "name": "setup_logging", "anchor": "function-setup-logging", "kind": "function"}
#   ]
# }
# === /NAVMAP ===
"""
Structured Logging Utilities

This module centralizes logging setup for RetryRotor. Library modules only ever
call ``logging.getLogger(__name__)``; applications that want console output call
:func:`setup_logging` once, choosing between a plain text format and JSON lines.
Structured context attached through ``extra={"extra_fields": {...}}`` is merged
into JSON records after secrets are masked.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Dict, Optional

from RetryRotor.settings import get_settings

ROOT_LOGGER_NAME = "RetryRotor"

_HANDLER_MARKER = "_retryrotor_handler"

_SENSITIVE_KEYS = {"authorization", "proxy-authorization", "api_key", "apikey", "token", "secret", "password", "cookie"}


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Remove secrets from structured payloads prior to logging.

    Args:
        payload: Arbitrary key-value pairs that may contain credentials taken
            from request headers or URLs.

    Returns:
        Copy of the payload where common secret fields are replaced with
        `***masked***`.

    Examples:
        >>> mask_sensitive_data({"token": "secret", "status": 503})
        {'token': '***masked***', 'status': 503}
    """
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        lower = key.lower()
        if lower in _SENSITIVE_KEYS:
            masked[key] = "***masked***"
        elif isinstance(value, str) and "apikey" in value.lower():
            masked[key] = "***masked***"
        else:
            masked[key] = value
    return masked


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record.

    Examples:
        >>> formatter = JSONFormatter()
        >>> isinstance(formatter.format(logging.makeLogRecord({'msg': 'test'})), str)
        True
    """

    def format(self, record: logging.LogRecord) -> str:
        """Serialize a logging record into a JSON line.

        Args:
            record: Log record emitted by RetryRotor components.

        Returns:
            JSON string with masked secrets and any structured ``extra_fields``.
        """
        now = datetime.now(timezone.utc)
        log_obj: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            log_obj.update(extra_fields)
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(log_obj), default=str)


def setup_logging(
    level: Optional[int | str] = None,
    *,
    json_logs: Optional[bool] = None,
    stream: Optional[IO[str]] = None,
) -> logging.Logger:
    """Attach a console handler to the ``RetryRotor`` logger.

    Calling this repeatedly replaces the handler installed by the previous call
    instead of stacking duplicates.

    Args:
        level: Logging level name or number; defaults to ``RetrySettings.log_level``.
        json_logs: Emit JSON lines instead of plain text; defaults to
            ``RetrySettings.json_logs``.
        stream: Destination stream, ``sys.stderr`` by default.

    Returns:
        The configured ``RetryRotor`` logger.
    """
    settings = get_settings()
    if level is None:
        resolved_level = settings.level_int()
    elif isinstance(level, str):
        resolved_level = logging.getLevelName(level.upper())
        if not isinstance(resolved_level, int):
            raise ValueError(f"unknown logging level: {level!r}")
    else:
        resolved_level = level
    use_json = settings.json_logs if json_logs is None else json_logs

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            logger.removeHandler(handler)
            handler.close()

    handler = logging.StreamHandler(stream or sys.stderr)
    setattr(handler, _HANDLER_MARKER, True)
    if use_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(resolved_level)
    return logger


__all__ = ["JSONFormatter", "mask_sensitive_data", "setup_logging", "ROOT_LOGGER_NAME"]
