"""RetryRotor: a retrying, multi-target HTTP client built on HTTPX and Tenacity.

This package wraps an ``httpx.Client`` with:
- Automatic retries on connection errors and 5xx responses (except 501)
- Pluggable backoff, retry policy, target scheduler, and logger hooks
- Round-robin rotation across several candidate URLs for one request
- Replayable request bodies, so every attempt resends identical bytes
- Cooperative cancellation and deadlines through :class:`RequestContext`

Modules:
- client: ``Client`` and its dispatch loop
- request: ``Request``, ``new_request``, ``from_request``
- body: body materialisation into replayable producers
- policies: default backoff, retry policy, scheduler, and logger hooks
- cancellation: ``RequestContext``
- settings: ``RETRYROTOR_*`` environment configuration
- transport: pooled HTTPX client factory
- facade: module-level helpers over a lazily created default client

Example:
    >>> import RetryRotor
    >>> client = RetryRotor.Client(retry_max=3)
    >>> response = client.get("https://a.example/data https://b.example/data")
"""

from RetryRotor.body import materialize_body
from RetryRotor.cancellation import RequestContext
from RetryRotor.client import Client
from RetryRotor.errors import (
    BodyProducerError,
    BodyReplayError,
    ConfigurationError,
    ConstructionError,
    ContextError,
    DeadlineExceeded,
    InvalidBodyType,
    InvalidTargetURL,
    RequestCancelled,
    RetriesExhaustedError,
    RetryRotorError,
    SchedulerError,
)
from RetryRotor.facade import (
    close_default_client,
    delete,
    do,
    get,
    get_default_client,
    head,
    patch,
    post,
    post_form,
    put,
    reset_default_client,
)
from RetryRotor.logging_config import setup_logging
from RetryRotor.policies import (
    default_backoff,
    default_logger,
    default_retry_policy,
    default_scheduler,
    linear_jitter_backoff,
)
from RetryRotor.request import Request, from_request, new_request
from RetryRotor.settings import RetrySettings, get_settings, reset_settings

__version__ = "0.1.0"

__all__ = [
    # Client and requests
    "Client",
    "Request",
    "RequestContext",
    "new_request",
    "from_request",
    "materialize_body",
    # Default hooks
    "default_backoff",
    "linear_jitter_backoff",
    "default_retry_policy",
    "default_scheduler",
    "default_logger",
    # Default client facade
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
    # Configuration and logging
    "RetrySettings",
    "get_settings",
    "reset_settings",
    "setup_logging",
    # Errors
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
