# === NAVMAP v1 ===
# {
#   "module": "RetryRotor.client",
#   "purpose": "Retrying HTTP client: dispatch loop, retry controller, and verb helpers",
#   "sections": [
#     {"id": "client", "name": "Client", "anchor": "class-client", "kind": "class"},
#     {"id": "dispatch-state", "name": "_DispatchState", "anchor": "class-dispatchstate", "kind": "class"},
#     {"id": "policy-retry", "name": "_PolicyRetry", "anchor": "class-policyretry", "kind": "class"},
#     {"id": "backoff-wait", "name": "_BackoffWait", "anchor": "class-backoffwait", "kind": "class"},
#     {"id": "send", "name": "Client._send", "anchor": "function-send", "kind": "function"},
#     {"id": "build-retrying-controller", "name": "Client._build_retrying_controller", "anchor": "function-build-retrying-controller", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Retrying HTTP client.

Responsibilities
----------------
- Dispatch a :class:`~RetryRotor.request.Request` through a Tenacity controller
  built per call: the configured retry policy decides whether to try again, the
  configured backoff decides how long to wait, and the scheduler rotates the
  target URL before every attempt.
- Replay the request body on every attempt and drain discarded responses so their
  connections return to the pool.
- Run each send on a worker thread so a cancelled request context returns control
  to the caller without waiting for the server.
- Report failures and retry announcements through the configured logger hook.
- Offer ``get``/``head``/``post``/``put``/``patch``/``delete``/``post_form``
  helpers that build a request and dispatch it.

Typical Usage
-------------
    from RetryRotor.client import Client

    client = Client(retry_max=3)
    response = client.get("https://a.example/health https://b.example/health")
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Mapping, Optional
from urllib.parse import urlencode

import httpx
from tenacity import RetryCallState, Retrying, stop_after_attempt
from tenacity.retry import retry_base
from tenacity.wait import wait_base

from RetryRotor.errors import (
    BodyReplayError,
    ConfigurationError,
    ContextError,
    InvalidTargetURL,
    RetriesExhaustedError,
)
from RetryRotor.policies import (
    Backoff,
    Logger,
    RetryPolicy,
    Scheduler,
    default_backoff,
    default_logger,
    default_retry_policy,
    default_scheduler,
)
from RetryRotor.request import Request, new_request, parse_target
from RetryRotor.settings import RetrySettings, get_settings
from RetryRotor.transport import RESPONSE_DRAIN_LIMIT, create_pooled_client

__all__ = ["Client"]

LOGGER = logging.getLogger(__name__)

_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def _close_abandoned(future: Future) -> None:
    """Close the response of a send whose caller already gave up on it."""
    if future.cancelled() or future.exception() is not None:
        return
    future.result().close()


@dataclass
class _DispatchState:
    """Loop-local state for one :meth:`Client.do` call."""

    request: Request
    cursor: int
    override: Optional[BaseException] = None

    def sleep(self, seconds: float) -> None:
        self.request.context.wait(seconds)


class _PolicyRetry(retry_base):
    """Tenacity retry predicate delegating to the client's retry policy."""

    def __init__(self, client: "Client", state: _DispatchState) -> None:
        self._client = client
        self._state = state

    def __call__(self, retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        if outcome is None:
            return False

        response: Optional[httpx.Response] = None
        error: Optional[BaseException] = None
        if outcome.failed:
            error = outcome.exception()
            if not isinstance(error, (httpx.RequestError, ContextError)):
                # Body replay failures and hook errors are never retried.
                return False
        else:
            response = outcome.result()

        should_retry, override = self._client.check_for_retry(
            self._state.request.context, response, error
        )
        if not should_retry:
            if override is not None and override is not error:
                self._state.override = override
            return False

        if response is not None:
            self._client._drain_body(response)
        return True


class _BackoffWait(wait_base):
    """Tenacity wait strategy delegating to the client's backoff hook."""

    def __init__(self, client: "Client") -> None:
        self._client = client

    def __call__(self, retry_state: RetryCallState) -> float:
        attempt = retry_state.attempt_number - 1
        if self._client.retry_max - attempt <= 0:
            return 0.0

        response: Optional[httpx.Response] = None
        outcome = retry_state.outcome
        if outcome is not None and not outcome.failed:
            response = outcome.result()

        wait = self._client.backoff(
            self._client.retry_wait_min, self._client.retry_wait_max, attempt, response
        )
        return max(0.0, float(wait))


class Client:
    """HTTP client with automatic retries, backoff, and multi-target scheduling.

    Attributes:
        http_client: Underlying ``httpx.Client`` performing each attempt.
        retry_wait_min: Minimum wait passed to :attr:`backoff` (seconds).
        retry_wait_max: Maximum wait passed to :attr:`backoff` (seconds).
        retry_max: Retries after the first attempt; ``retry_max + 1`` attempts total.
        first_target: Initial scheduler cursor for every :meth:`do` call.
        check_for_retry: Retry policy hook.
        backoff: Backoff hook.
        scheduler: Target scheduler hook.
        logger: Logging hook.
        stream: When True, responses are returned unread and must be closed by
            the caller; otherwise the body is loaded before :meth:`do` returns.

    All attributes may be reassigned after construction.  The client is not
    synchronised: do not mutate it while requests are in flight.
    """

    def __init__(
        self,
        *,
        http_client: Optional[httpx.Client] = None,
        retry_wait_min: Optional[float] = None,
        retry_wait_max: Optional[float] = None,
        retry_max: Optional[int] = None,
        first_target: Optional[int] = None,
        check_for_retry: Optional[RetryPolicy] = None,
        backoff: Optional[Backoff] = None,
        scheduler: Optional[Scheduler] = None,
        logger: Optional[Logger] = None,
        stream: bool = False,
        settings: Optional[RetrySettings] = None,
    ) -> None:
        settings = settings or get_settings()
        self.http_client = http_client if http_client is not None else create_pooled_client(settings)
        self.retry_wait_min = settings.retry_wait_min if retry_wait_min is None else retry_wait_min
        self.retry_wait_max = settings.retry_wait_max if retry_wait_max is None else retry_wait_max
        self.retry_max = settings.retry_max if retry_max is None else retry_max
        self.first_target = settings.first_target if first_target is None else first_target
        self.check_for_retry = check_for_retry or default_retry_policy
        self.backoff = backoff or default_backoff
        self.scheduler = scheduler or default_scheduler
        self.logger = logger or default_logger
        self.stream = stream
        self._send_pool: Optional[ThreadPoolExecutor] = None
        self._send_pool_lock = threading.Lock()

    # ------------------------------------------------------------------ lifecycle

    def close(self) -> None:
        """Close the underlying HTTP client and its pooled connections."""
        with self._send_pool_lock:
            pool, self._send_pool = self._send_pool, None
        if pool is not None:
            pool.shutdown(wait=False, cancel_futures=True)
        self.http_client.close()

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------ dispatch

    def _check_configuration(self) -> None:
        missing = [
            name
            for name in ("http_client", "check_for_retry", "backoff", "scheduler", "logger")
            if getattr(self, name) is None
        ]
        if missing:
            raise ConfigurationError(f"client is missing {', '.join(missing)}")
        if self.retry_max is None or self.retry_max < 0:
            raise ConfigurationError(f"retry_max must be a non-negative integer, got {self.retry_max!r}")
        if self.retry_wait_min is None or self.retry_wait_max is None:
            raise ConfigurationError("retry_wait_min and retry_wait_max must be set")

    def _drain_body(self, response: httpx.Response) -> None:
        """Read up to ``RESPONSE_DRAIN_LIMIT`` bytes so the connection can be reused."""
        if response.is_stream_consumed:
            response.close()
            return
        drained = 0
        try:
            for chunk in response.iter_raw():
                drained += len(chunk)
                if drained >= RESPONSE_DRAIN_LIMIT:
                    break
        except (httpx.HTTPError, httpx.StreamError) as exc:
            self.logger(None, "ERROR", "error reading response body: ", exc)
        finally:
            response.close()

    def _attempt(self, state: _DispatchState) -> httpx.Response:
        request = state.request

        content = None
        if request.body is not None:
            try:
                content = request.body()
            except Exception as exc:
                raise BodyReplayError(
                    f"{request.method} {request.url}: cannot reproduce request body: {exc}"
                ) from exc

        target, state.cursor = self.scheduler(request.targets, state.cursor)
        try:
            request.url = parse_target(target)
        except InvalidTargetURL as exc:
            self.logger(request, "ERROR", f"cannot use scheduled target {target!r}: ", exc)

        context_error = request.context.error()
        if context_error is not None:
            self.logger(request, "ERROR", f"{request.method} {request.url} request failed: ", context_error)
            raise context_error

        try:
            return self._send(request, request.build(self.http_client, content))
        except (httpx.RequestError, ContextError) as exc:
            self.logger(request, "ERROR", f"{request.method} {request.url} request failed: ", exc)
            raise

    def _send_executor(self) -> ThreadPoolExecutor:
        with self._send_pool_lock:
            if self._send_pool is None:
                self._send_pool = ThreadPoolExecutor(thread_name_prefix="retryrotor-send")
            return self._send_pool

    def _send(self, request: Request, built: httpx.Request) -> httpx.Response:
        """Send ``built`` on a worker thread, abandoning it once the context is done.

        The calling thread waits for whichever comes first: the transport result or
        the request context finishing.  An abandoned send is left to complete in the
        background and its response is closed as soon as it arrives.
        """
        context = request.context
        settled = threading.Event()
        future = self._send_executor().submit(self.http_client.send, built, stream=True)
        future.add_done_callback(lambda _: settled.set())
        unregister = context.add_done_callback(settled.set)
        try:
            while not future.done():
                context_error = context.error()
                if context_error is not None:
                    future.cancel()
                    future.add_done_callback(_close_abandoned)
                    raise context_error
                settled.wait(context.remaining())
        finally:
            unregister()
        return future.result()

    def _before_sleep(self, state: _DispatchState):
        def announce(retry_state: RetryCallState) -> None:
            request = state.request
            remaining = self.retry_max - (retry_state.attempt_number - 1)
            wait = 0.0
            if retry_state.next_action is not None and retry_state.next_action.sleep is not None:
                wait = float(retry_state.next_action.sleep)

            desc = f"{request.method} {request.url}"
            error: Optional[BaseException] = None
            outcome = retry_state.outcome
            if outcome is not None:
                if outcome.failed:
                    error = outcome.exception()
                else:
                    desc = f"{desc} status: {outcome.result().status_code}"
            self.logger(request, "DEBUG", f"{desc}: retrying in {wait:.3f}s ({remaining} left): ", error)

        return announce

    def _build_retrying_controller(self, state: _DispatchState) -> Retrying:
        def _retry_error_callback(retry_state: RetryCallState) -> Any:
            request = state.request
            exhausted = RetriesExhaustedError(request.method, str(request.url), retry_state.attempt_number)
            outcome = retry_state.outcome
            if outcome is not None and outcome.failed:
                raise exhausted from outcome.exception()
            raise exhausted

        return Retrying(
            retry=_PolicyRetry(self, state),
            wait=_BackoffWait(self),
            stop=stop_after_attempt(self.retry_max + 1),
            sleep=state.sleep,
            before_sleep=self._before_sleep(state),
            retry_error_callback=_retry_error_callback,
            reraise=True,
        )

    def do(self, request: Request) -> httpx.Response:
        """Send ``request`` with retries, returning the final response.

        Raises:
            BodyReplayError: the body could not be reproduced for an attempt.
            RetriesExhaustedError: every attempt asked for a retry.
            ContextError: the request context was cancelled or expired.
            httpx.RequestError: a transport error the retry policy chose not to retry.
            BaseException: any overriding error returned by the retry policy.
        """
        self._check_configuration()
        state = _DispatchState(request=request, cursor=self.first_target)
        controller = self._build_retrying_controller(state)

        try:
            response = controller(self._attempt, state)
        except Exception as exc:
            if state.override is not None and state.override is not exc:
                raise state.override from exc
            raise

        if state.override is not None:
            response.close()
            raise state.override

        LOGGER.debug(
            "Completed %s %s after %s attempt(s) with %.2fs cumulative sleep",
            request.method,
            request.url,
            controller.statistics.get("attempt_number", 1),
            controller.statistics.get("idle_for", 0.0),
        )

        if not self.stream:
            try:
                response.read()
            finally:
                response.close()
        return response

    # ------------------------------------------------------------------ verb helpers

    def get(self, url: str) -> httpx.Response:
        """Issue a GET request."""
        return self.do(new_request("GET", url))

    def head(self, url: str) -> httpx.Response:
        """Issue a HEAD request."""
        return self.do(new_request("HEAD", url))

    def _send_with_body(self, method: str, url: str, content_type: Optional[str], body: Any) -> httpx.Response:
        headers = {"Content-Type": content_type} if content_type else None
        return self.do(new_request(method, url, body, headers=headers))

    def post(self, url: str, content_type: Optional[str], body: Any) -> httpx.Response:
        """Issue a POST request with ``body`` sent as ``content_type``."""
        return self._send_with_body("POST", url, content_type, body)

    def put(self, url: str, content_type: Optional[str], body: Any) -> httpx.Response:
        """Issue a PUT request with ``body`` sent as ``content_type``."""
        return self._send_with_body("PUT", url, content_type, body)

    def patch(self, url: str, content_type: Optional[str], body: Any) -> httpx.Response:
        """Issue a PATCH request with ``body`` sent as ``content_type``."""
        return self._send_with_body("PATCH", url, content_type, body)

    def delete(self, url: str, content_type: Optional[str] = None, body: Any = None) -> httpx.Response:
        """Issue a DELETE request, optionally with a body."""
        return self._send_with_body("DELETE", url, content_type, body)

    def post_form(self, url: str, data: Mapping[str, Any]) -> httpx.Response:
        """POST ``data`` URL-encoded as ``application/x-www-form-urlencoded``."""
        return self.post(url, _FORM_CONTENT_TYPE, urlencode(data, doseq=True).encode("ascii"))

    def __repr__(self) -> str:
        return f"<Client retry_max={self.retry_max} wait={self.retry_wait_min}-{self.retry_wait_max}s>"
