"""Tests for the default backoff, retry policy, scheduler, and logger hooks."""

from __future__ import annotations

import logging

import httpx
import pytest
from hypothesis import given
from hypothesis import strategies as st

from RetryRotor import (
    RequestContext,
    SchedulerError,
    default_backoff,
    default_logger,
    default_retry_policy,
    default_scheduler,
    linear_jitter_backoff,
    new_request,
)
from RetryRotor.errors import DeadlineExceeded, RequestCancelled


@pytest.mark.parametrize(
    "attempt,expected",
    [
        (0, 1.0),
        (1, 2.0),
        (2, 4.0),
        (3, 8.0),
        (63, 300.0),
        (128, 300.0),
        (5000, 300.0),
    ],
)
def test_default_backoff_doubles_and_clamps(attempt: int, expected: float) -> None:
    assert default_backoff(1.0, 300.0, attempt, None) == expected


def test_default_backoff_ignores_response() -> None:
    response = httpx.Response(503)
    assert default_backoff(0.5, 10.0, 2, response) == 2.0


@given(
    min_wait=st.floats(min_value=0.001, max_value=10.0),
    max_wait=st.floats(min_value=10.0, max_value=600.0),
    attempt=st.integers(min_value=0, max_value=2000),
)
def test_default_backoff_never_exceeds_max(min_wait: float, max_wait: float, attempt: int) -> None:
    wait = default_backoff(min_wait, max_wait, attempt, None)
    assert min_wait <= wait <= max_wait


@given(attempt=st.integers(min_value=0, max_value=200))
def test_default_backoff_is_monotonic(attempt: int) -> None:
    assert default_backoff(1.0, 300.0, attempt, None) <= default_backoff(1.0, 300.0, attempt + 1, None)


@pytest.mark.parametrize(
    "min_wait,max_wait,attempt,expected",
    [
        (1.0, 1.0, 0, 1.0),
        (1.0, 1.0, 4, 5.0),
        (1.0, 1.0, 50, 51.0),
        (0.002, 0.001, 2, 0.006),
        (0.000002, 0.000001, 2, 0.000006),
    ],
)
def test_linear_jitter_without_range_is_linear(
    min_wait: float, max_wait: float, attempt: int, expected: float
) -> None:
    assert linear_jitter_backoff(min_wait, max_wait, attempt, None) == pytest.approx(expected)


@given(
    min_wait=st.floats(min_value=0.0, max_value=5.0),
    spread=st.floats(min_value=0.001, max_value=20.0),
    attempt=st.integers(min_value=0, max_value=100),
)
def test_linear_jitter_stays_within_scaled_bounds(min_wait: float, spread: float, attempt: int) -> None:
    max_wait = min_wait + spread
    wait = linear_jitter_backoff(min_wait, max_wait, attempt, None)
    steps = attempt + 1
    assert min_wait * steps <= wait
    assert wait <= max_wait * steps * (1 + 1e-9)


def test_linear_jitter_varies(seed_state) -> None:
    waits = {linear_jitter_backoff(0.1, 20.0, 3, None) for _ in range(20)}
    assert len(waits) > 1


class TestDefaultRetryPolicy:
    """Decision table of the default retry policy."""

    @pytest.mark.parametrize("status", [500, 502, 503, 504, 599])
    def test_server_errors_retry(self, status: int) -> None:
        assert default_retry_policy(RequestContext(), httpx.Response(status), None) == (True, None)

    def test_not_implemented_does_not_retry(self) -> None:
        assert default_retry_policy(RequestContext(), httpx.Response(501), None) == (False, None)

    @pytest.mark.parametrize("status", [200, 204, 301, 400, 404, 429])
    def test_other_statuses_stop(self, status: int) -> None:
        assert default_retry_policy(RequestContext(), httpx.Response(status), None) == (False, None)

    def test_transport_error_retries_with_same_error(self) -> None:
        error = httpx.ConnectError("refused")
        should_retry, returned = default_retry_policy(RequestContext(), None, error)
        assert should_retry is True
        assert returned is error

    def test_missing_response_retries(self) -> None:
        assert default_retry_policy(None, None, None) == (True, None)

    def test_cancelled_context_wins(self) -> None:
        ctx = RequestContext()
        ctx.cancel()
        should_retry, returned = default_retry_policy(ctx, httpx.Response(503), httpx.ConnectError("x"))
        assert should_retry is False
        assert isinstance(returned, RequestCancelled)
        assert returned is ctx.error()

    def test_expired_context_reports_deadline(self) -> None:
        ctx = RequestContext(timeout=0)
        should_retry, returned = default_retry_policy(ctx, httpx.Response(503), None)
        assert should_retry is False
        assert isinstance(returned, DeadlineExceeded)


class TestDefaultScheduler:
    """Round-robin cursor behaviour."""

    def test_walks_targets_in_order(self) -> None:
        targets = ("http://a", "http://b", "http://c")
        cursor = 0
        picked = []
        for _ in range(5):
            target, cursor = default_scheduler(targets, cursor)
            picked.append(target)
        assert picked == ["http://a", "http://b", "http://c", "http://a", "http://b"]

    @pytest.mark.parametrize("cursor", [3, 10, -1])
    def test_out_of_range_cursor_wraps_to_first(self, cursor: int) -> None:
        assert default_scheduler(("http://a", "http://b", "http://c"), cursor) == ("http://a", 1)

    def test_empty_targets_raise(self) -> None:
        with pytest.raises(SchedulerError):
            default_scheduler((), 0)

    @given(
        size=st.integers(min_value=1, max_value=8),
        cursor=st.integers(min_value=-5, max_value=20),
    )
    def test_always_returns_member_and_valid_next_cursor(self, size: int, cursor: int) -> None:
        targets = tuple(f"http://host{i}" for i in range(size))
        target, next_cursor = default_scheduler(targets, cursor)
        assert target in targets
        assert 1 <= next_cursor <= size


class TestDefaultLogger:
    """Severity mapping and structured fields."""

    def test_error_with_exception(self, caplog: pytest.LogCaptureFixture) -> None:
        request = new_request("GET", "http://a.example/x")
        with caplog.at_level(logging.DEBUG, logger="RetryRotor"):
            default_logger(request, "ERROR", "GET http://a.example/x request failed: ", httpx.ConnectError("refused"))

        record = caplog.records[-1]
        assert record.name == "RetryRotor.policies"
        assert record.levelno == logging.ERROR
        assert record.getMessage() == "ERROR GET http://a.example/x request failed: refused"
        assert record.extra_fields["method"] == "GET"
        assert record.extra_fields["error_type"] == "ConnectError"

    def test_debug_without_request(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.DEBUG, logger="RetryRotor"):
            default_logger(None, "DEBUG", "retrying in 1.000s (2 left): ", None)

        record = caplog.records[-1]
        assert record.levelno == logging.DEBUG
        assert "method" not in record.extra_fields

    def test_disabled_level_is_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR, logger="RetryRotor"):
            default_logger(None, "DEBUG", "quiet", None)
        assert not caplog.records
