"""Tests for the pooled HTTPX client factory and its instrumentation hooks.

Tests cover:
- Timeouts, redirects, and User-Agent taken from settings
- SSL context creation
- net.request timing records and URL redaction
- Timing state carried on each request rather than held by the hooks
"""

import logging
import socket
import ssl

import httpx
import pytest

from RetryRotor import Client, RetriesExhaustedError
from RetryRotor.instrumentation import START_TIME_EXTENSION, _redact_url, create_http_event_hooks
from RetryRotor.settings import DEFAULT_USER_AGENT, RetrySettings
from RetryRotor.transport import RESPONSE_DRAIN_LIMIT, _create_ssl_context, create_pooled_client


class TestCreatePooledClient:
    def setup_method(self):
        self.client = None

    def teardown_method(self):
        if self.client is not None:
            self.client.close()

    def test_uses_settings(self):
        settings = RetrySettings(connect_timeout=2.0, read_timeout=9.0, http2=False, user_agent="rotor-test/1.0")
        self.client = create_pooled_client(settings)
        assert isinstance(self.client, httpx.Client)
        assert self.client.timeout.connect == 2.0
        assert self.client.timeout.read == 9.0
        assert self.client.follow_redirects is True
        assert self.client.headers["User-Agent"] == "rotor-test/1.0"

    def test_defaults_from_global_settings(self):
        self.client = create_pooled_client()
        assert self.client.headers["User-Agent"] == DEFAULT_USER_AGENT
        assert self.client.event_hooks["request"]
        assert self.client.event_hooks["response"]

    def test_redirects_can_be_disabled(self):
        self.client = create_pooled_client(RetrySettings(follow_redirects=False, http2=False))
        assert self.client.follow_redirects is False

    def test_drain_limit(self):
        assert RESPONSE_DRAIN_LIMIT == 4096


class TestSSLContext:
    def test_verified_context(self):
        ctx = _create_ssl_context(True)
        assert isinstance(ctx, ssl.SSLContext)
        assert ctx.check_hostname is True
        assert ctx.verify_mode == ssl.CERT_REQUIRED

    def test_disabled_verification_warns(self, caplog: pytest.LogCaptureFixture):
        with caplog.at_level(logging.WARNING, logger="RetryRotor.transport"):
            ctx = _create_ssl_context(False)
        assert ctx.verify_mode == ssl.CERT_NONE
        assert any("TLS verification DISABLED" in r.getMessage() for r in caplog.records)


class TestInstrumentation:
    def test_logs_one_record_per_exchange(self, caplog: pytest.LogCaptureFixture):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        with httpx.Client(transport=transport, event_hooks=create_http_event_hooks()) as client:
            with caplog.at_level(logging.DEBUG, logger="RetryRotor.instrumentation"):
                client.get("https://user:pw@a.example:8443/path?token=secret")
                client.get("https://b.example/other")

        records = [r for r in caplog.records if r.name == "RetryRotor.instrumentation"]
        assert len(records) == 2
        first = records[0].extra_fields
        assert first["event"] == "net.request"
        assert first["status"] == 503
        assert first["host"] == "a.example"
        assert first["url_redacted"] == "https://a.example:8443/path"
        assert "secret" not in records[0].getMessage()
        assert records[1].extra_fields["host"] == "b.example"

    def test_start_time_consumed_by_response_hook(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200))
        with httpx.Client(transport=transport, event_hooks=create_http_event_hooks()) as client:
            response = client.get("https://a.example/")
        assert START_TIME_EXTENSION not in response.request.extensions

    def test_hooks_hold_no_shared_state(self):
        hooks = create_http_event_hooks()
        assert all(hook.__closure__ is None for hook in hooks["request"] + hooks["response"])

    def test_refused_connection_retries_keep_timing_on_each_request(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            port = sock.getsockname()[1]

        sent = []
        http_client = create_pooled_client(RetrySettings(http2=False))
        hooks = http_client.event_hooks
        http_client.event_hooks = {
            "request": [*hooks["request"], sent.append],
            "response": hooks["response"],
        }
        client = Client(http_client=http_client, retry_max=5, retry_wait_min=0.0, retry_wait_max=0.0)
        try:
            with pytest.raises(RetriesExhaustedError) as excinfo:
                client.get(f"http://127.0.0.1:{port}/")
        finally:
            client.close()

        assert isinstance(excinfo.value.__cause__, httpx.ConnectError)
        assert len(sent) == 6
        assert len({id(request) for request in sent}) == 6
        assert all(START_TIME_EXTENSION in request.extensions for request in sent)

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://a.example/p?q=1", "https://a.example/p"),
            ("http://u:p@h.example:8080/x#frag", "http://h.example:8080/x"),
            ("https://h.example", "https://h.example"),
            ("http://h.example:notaport/", "[URL_REDACTION_FAILED]"),
        ],
    )
    def test_redact_url(self, url, expected):
        assert _redact_url(url) == expected
