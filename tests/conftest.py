"""
Pytest Configuration

This module configures shared pytest behaviour: it makes ``src`` importable when
the package is not installed and registers the shared fixtures.

Usage:
    pytest -q
"""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
for candidate in (SRC, ROOT):
    if str(candidate) not in sys.path:
        sys.path.insert(0, str(candidate))

from tests.fixtures.determinism import (  # noqa: E402,F401
    retryrotor_env,
    seed_state,
)
from tests.fixtures.http_mocking import (  # noqa: E402,F401
    http_mock,
    retry_client,
    scripted_http,
)
