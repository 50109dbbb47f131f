"""
Tests for the ingestion adapters and the shared HTTP transport.

A fake requests session is injected into HttpClient so no network traffic
happens; each test checks how one kind of feed answer is mapped onto a
FetchSuccess payload or a FetchFailure error kind.
"""
import time

import pytest
import requests

from intel_pipeline.errors import FetchTimeoutError, HttpStatusError
from intel_pipeline.ingestion import (
    CsvFeedAdapter,
    DelimitedText,
    ErrorKind,
    HttpBody,
    HttpClient,
    JsonArray,
    JsonFeedAdapter,
    JsonObjectWrapped,
    PlainLines,
    RateLimiter,
    TextFeedAdapter,
    get_adapter,
)
from intel_pipeline.ingestion.base_adapter import registered_formats
from intel_pipeline.tests.fakes import FakeResponse, make_config


def deadline_in(seconds=5.0):
    return time.monotonic() + seconds


class TestJsonFeedAdapter:

    def test_array_body(self, fake_session):
        session, factory = fake_session(FakeResponse(content=b'[{"ioc": "1.2.3.4"}]'))
        adapter = JsonFeedAdapter(HttpClient(session_factory=factory))

        result = adapter.fetch(make_config("feed"), deadline_in())

        assert result.ok
        assert result.payload == JsonArray(items=({"ioc": "1.2.3.4"},))
        assert session.closed
        assert session.requests[0]["method"] == "GET"
        assert session.requests[0]["stream"] is True

    def test_object_body_and_post_form(self, fake_session):
        session, factory = fake_session(FakeResponse(content=b'{"query_status": "ok", "data": []}'))
        adapter = JsonFeedAdapter(HttpClient(session_factory=factory))
        config = make_config("tf", method="POST", body={"query": "get_iocs", "days": "1"})

        result = adapter.fetch(config, deadline_in())

        assert isinstance(result.payload, JsonObjectWrapped)
        assert session.requests[0]["data"] == {"query": "get_iocs", "days": "1"}

    def test_invalid_json_is_malformed_payload(self, fake_session):
        _, factory = fake_session(FakeResponse(content=b"<html>maintenance</html>"))
        result = JsonFeedAdapter(HttpClient(session_factory=factory)).fetch(make_config("feed"), deadline_in())

        assert not result.ok
        assert result.error_kind == ErrorKind.MALFORMED_PAYLOAD

    def test_scalar_json_is_malformed_payload(self, fake_session):
        _, factory = fake_session(FakeResponse(content=b"42"))
        result = JsonFeedAdapter(HttpClient(session_factory=factory)).fetch(make_config("feed"), deadline_in())
        assert result.error_kind == ErrorKind.MALFORMED_PAYLOAD


class TestTextAndCsvAdapters:

    def test_text_drops_comments_and_blanks(self, fake_session):
        body = b"# OpenPhish feed\nhttps://a.example.test/x\n\n  https://b.example.test/y  \n"
        _, factory = fake_session(FakeResponse(content=body))

        result = TextFeedAdapter(HttpClient(session_factory=factory)).fetch(
            make_config("openphish", format="text"), deadline_in()
        )

        assert result.payload == PlainLines(lines=("https://a.example.test/x", "https://b.example.test/y"))

    def test_csv_strips_bom(self, fake_session):
        _, factory = fake_session(FakeResponse(content="\ufeffurl\nhttp://a.example.test/\n".encode("utf-8")))

        result = CsvFeedAdapter(HttpClient(session_factory=factory)).fetch(
            make_config("phish", format="csv"), deadline_in()
        )

        assert result.payload == DelimitedText(text="url\nhttp://a.example.test/\n")

    def test_binary_body_rejected(self, fake_session):
        _, factory = fake_session(FakeResponse(content=b"PK\x03\x04\x00\x00"))
        result = TextFeedAdapter(HttpClient(session_factory=factory)).fetch(
            make_config("list", format="text"), deadline_in()
        )
        assert result.error_kind == ErrorKind.MALFORMED_PAYLOAD

    def test_not_modified_text_feed_is_not_a_success(self, fake_session):
        _, factory = fake_session(FakeResponse(status_code=304, content=b""))
        result = TextFeedAdapter(HttpClient(session_factory=factory)).fetch(
            make_config("list", format="text"), deadline_in()
        )
        assert not result.ok
        assert result.error_kind == ErrorKind.HTTP_STATUS


class TestEncoding:

    BODY = "https://ex\u00e4mple.com/login\n".encode("utf-8")

    def test_text_without_charset_is_utf8(self, fake_session):
        response = FakeResponse(content=self.BODY, headers={"Content-Type": "text/plain"}, encoding="ISO-8859-1")
        _, factory = fake_session(response)

        result = TextFeedAdapter(HttpClient(session_factory=factory)).fetch(
            make_config("openphish", format="text"), deadline_in()
        )

        assert result.payload == PlainLines(lines=("https://ex\u00e4mple.com/login",))

    def test_declared_charset_is_honoured(self, fake_session):
        body = "https://ex\u00e4mple.com/login\n".encode("latin-1")
        response = FakeResponse(content=body, headers={"content-type": "text/plain; charset=ISO-8859-1"})
        _, factory = fake_session(response)

        result = TextFeedAdapter(HttpClient(session_factory=factory)).fetch(
            make_config("openphish", format="text"), deadline_in()
        )

        assert result.payload == PlainLines(lines=("https://ex\u00e4mple.com/login",))

    def test_unknown_charset_falls_back_to_utf8(self):
        body = HttpBody(status_code=200, content=self.BODY, encoding="x-no-such-charset")
        assert body.text == "https://ex\u00e4mple.com/login\n"


class TestErrorMapping:

    @pytest.mark.parametrize("status,kind", [
        (401, ErrorKind.MALFORMED_AUTH),
        (403, ErrorKind.MALFORMED_AUTH),
        (404, ErrorKind.HTTP_STATUS),
        (500, ErrorKind.HTTP_STATUS),
        (300, ErrorKind.HTTP_STATUS),
        (304, ErrorKind.HTTP_STATUS),
    ])
    def test_status_codes(self, fake_session, status, kind):
        _, factory = fake_session(FakeResponse(status_code=status))
        result = JsonFeedAdapter(HttpClient(session_factory=factory)).fetch(make_config("feed"), deadline_in())
        assert result.error_kind == kind
        assert str(status) in result.message

    def test_429_includes_retry_after(self, fake_session):
        _, factory = fake_session(FakeResponse(status_code=429, headers={"Retry-After": "120"}))
        result = JsonFeedAdapter(HttpClient(session_factory=factory)).fetch(make_config("feed"), deadline_in())
        assert result.error_kind == ErrorKind.RATE_LIMITED
        assert "retry after 120s" in result.message

    def test_connection_error_is_network(self, fake_session):
        _, factory = fake_session(requests.ConnectionError("Name or service not known"))
        result = JsonFeedAdapter(HttpClient(session_factory=factory)).fetch(make_config("feed"), deadline_in())
        assert result.error_kind == ErrorKind.NETWORK

    def test_requests_timeout_is_timeout(self, fake_session):
        _, factory = fake_session(requests.ReadTimeout("read timed out"))
        result = JsonFeedAdapter(HttpClient(session_factory=factory)).fetch(make_config("feed"), deadline_in())
        assert result.error_kind == ErrorKind.TIMEOUT

    def test_expired_deadline_is_timeout_without_request(self, fake_session):
        session, factory = fake_session(FakeResponse(content=b"[]"))
        result = JsonFeedAdapter(HttpClient(session_factory=factory)).fetch(
            make_config("feed"), time.monotonic() - 1
        )
        assert result.error_kind == ErrorKind.TIMEOUT
        assert session.requests == []

    def test_slow_body_hits_deadline(self, fake_session):
        body = b"[" + b" " * (64 * 1024 * 3) + b"]"
        _, factory = fake_session(FakeResponse(content=body, chunk_delay=0.1))
        result = JsonFeedAdapter(HttpClient(session_factory=factory)).fetch(make_config("feed"), deadline_in(0.15))
        assert result.error_kind == ErrorKind.TIMEOUT

    def test_unexpected_exception_is_captured(self, fake_session):
        _, factory = fake_session(RuntimeError("boom"))
        result = JsonFeedAdapter(HttpClient(session_factory=factory)).fetch(make_config("feed"), deadline_in())
        assert result.error_kind == ErrorKind.NETWORK
        assert "RuntimeError" in result.message


class TestAuthentication:

    def test_api_key_header_sent(self, fake_session, monkeypatch):
        monkeypatch.setenv("TEST_FEED_KEY", "s3cret")
        session, factory = fake_session(FakeResponse(content=b"[]"))
        config = make_config("keyed", auth_header="Auth-Key", api_key_env="TEST_FEED_KEY")

        JsonFeedAdapter(HttpClient(session_factory=factory)).fetch(config, deadline_in())

        assert session.requests[0]["headers"]["Auth-Key"] == "s3cret"

    def test_missing_required_key_is_malformed_auth(self, fake_session, monkeypatch):
        monkeypatch.delenv("TEST_FEED_KEY", raising=False)
        session, factory = fake_session(FakeResponse(content=b"[]"))
        config = make_config(
            "keyed", auth_header="Auth-Key", api_key_env="TEST_FEED_KEY", api_key_required=True
        )

        result = JsonFeedAdapter(HttpClient(session_factory=factory)).fetch(config, deadline_in())

        assert result.error_kind == ErrorKind.MALFORMED_AUTH
        assert session.requests == []

    def test_optional_key_missing_sends_no_header(self, fake_session, monkeypatch):
        monkeypatch.delenv("TEST_FEED_KEY", raising=False)
        session, factory = fake_session(FakeResponse(content=b"[]"))
        config = make_config("keyed", auth_header="Auth-Key", api_key_env="TEST_FEED_KEY")

        result = JsonFeedAdapter(HttpClient(session_factory=factory)).fetch(config, deadline_in())

        assert result.ok
        assert "Auth-Key" not in session.requests[0]["headers"]


class TestHttpClient:

    def test_raises_taxonomy_errors(self, fake_session):
        _, factory = fake_session(FakeResponse(status_code=503))
        with pytest.raises(HttpStatusError) as excinfo:
            HttpClient(session_factory=factory).fetch("feed", "GET", "https://x.example.test/", deadline_in())
        assert excinfo.value.status_code == 503

    def test_rate_limit_wait_beyond_deadline_times_out(self, fake_session):
        _, factory = fake_session(FakeResponse(content=b"[]"), FakeResponse(content=b"[]"))
        client = HttpClient(session_factory=factory)
        client.fetch("slow-feed-test", "GET", "https://x.example.test/", deadline_in(), rate_limit_per_minute=1)

        with pytest.raises(FetchTimeoutError):
            client.fetch("slow-feed-test", "GET", "https://x.example.test/", deadline_in(1.0),
                         rate_limit_per_minute=1)


class TestRateLimiter:

    def test_no_rate_means_no_wait(self):
        limiter = RateLimiter(None)
        assert limiter.reserve() == 0.0
        assert limiter.reserve() == 0.0

    def test_second_token_waits(self):
        limiter = RateLimiter(60)
        assert limiter.reserve() == 0.0
        assert 0.5 < limiter.reserve() <= 1.0

    def test_abandoned_reservation_takes_no_token(self):
        limiter = RateLimiter(1)
        assert limiter.reserve() == 0.0

        for _ in range(3):
            assert limiter.reserve(max_wait=1.0) is None

        assert 59.0 < limiter.reserve() <= 60.0


def test_adapter_registry_covers_all_formats():
    assert registered_formats() == ["csv", "json", "text"]
    assert isinstance(get_adapter("csv"), CsvFeedAdapter)
    with pytest.raises(KeyError):
        get_adapter("xml")
