"""Tests for HTTP client infrastructure layer."""

import httpx
import pytest
import respx

from src.ingestion.http_client import (
    HTTPClient,
    HTTPClientError,
    RateLimitError,
    RetryConfig,
)

URL = "https://api.example.com/items"


@pytest.fixture
def no_wait() -> RetryConfig:
    return RetryConfig(max_retries=2, base_delay=0.0, jitter_factor=0.0)


class TestRetryConfig:
    def test_exponential_backoff_capped(self):
        config = RetryConfig(base_delay=1.0, max_backoff_seconds=5.0, jitter_factor=0.0)
        assert config.backoff(0) == 1.0
        assert config.backoff(1) == 2.0
        assert config.backoff(5) == 5.0

    def test_retry_after_wins_when_reasonable(self):
        config = RetryConfig(max_backoff_seconds=30.0, jitter_factor=0.0)
        assert config.backoff(0, retry_after=7.0) == 7.0
        assert config.backoff(0, retry_after=120.0) == 1.0

    def test_jitter_bounded(self):
        config = RetryConfig(base_delay=1.0, jitter_factor=0.5)
        for _ in range(20):
            assert 1.0 <= config.backoff(0) <= 1.5

    def test_from_settings(self, test_settings):
        config = RetryConfig.from_settings(test_settings)
        assert config.max_retries == test_settings.max_http_retries
        assert config.max_backoff_seconds == test_settings.max_backoff_seconds


class TestHTTPClient:
    @pytest.mark.asyncio
    @respx.mock
    async def test_get_json(self, no_wait):
        route = respx.get(URL).mock(return_value=httpx.Response(200, json={"ok": True}))

        async with HTTPClient(no_wait) as http:
            payload = await http.get_json(URL, params={"q": "x"})

        assert payload == {"ok": True}
        assert route.calls.last.request.url.params["q"] == "x"
        assert route.calls.last.request.headers["User-Agent"].startswith("castline/")

    @pytest.mark.asyncio
    @respx.mock
    async def test_retries_server_errors(self, no_wait):
        route = respx.get(URL).mock(side_effect=[
            httpx.Response(503),
            httpx.Response(502),
            httpx.Response(200, json={"ok": True}),
        ])

        async with HTTPClient(no_wait) as http:
            assert await http.get_json(URL) == {"ok": True}
        assert route.call_count == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_retries_connection_errors(self, no_wait):
        route = respx.get(URL).mock(side_effect=[
            httpx.ConnectError("refused"),
            httpx.Response(200, text="<rss/>"),
        ])

        async with HTTPClient(no_wait) as http:
            assert await http.get_text(URL) == "<rss/>"
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_persistent_429_raises_rate_limit(self, no_wait):
        route = respx.get(URL).mock(return_value=httpx.Response(429, headers={"Retry-After": "0"}))

        async with HTTPClient(no_wait) as http:
            with pytest.raises(RateLimitError) as exc_info:
                await http.get_json(URL)

        assert exc_info.value.status_code == 429
        assert route.call_count == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_client_errors_not_retried(self, no_wait):
        route = respx.get(URL).mock(return_value=httpx.Response(404))

        async with HTTPClient(no_wait) as http:
            with pytest.raises(HTTPClientError) as exc_info:
                await http.get_json(URL)

        assert exc_info.value.status_code == 404
        assert not isinstance(exc_info.value, RateLimitError)
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_json(self, no_wait):
        respx.get(URL).mock(return_value=httpx.Response(200, text="not json"))

        async with HTTPClient(no_wait) as http:
            with pytest.raises(HTTPClientError, match="Invalid JSON"):
                await http.get_json(URL)

    @pytest.mark.asyncio
    @respx.mock
    async def test_post_form(self, no_wait):
        route = respx.post(URL).mock(return_value=httpx.Response(200, json={"access_token": "t"}))

        async with HTTPClient(no_wait) as http:
            payload = await http.post_form(URL, data={"grant_type": "client_credentials"})

        assert payload["access_token"] == "t"
        assert b"grant_type=client_credentials" in route.calls.last.request.content

    @pytest.mark.asyncio
    async def test_requires_context_manager(self):
        with pytest.raises(RuntimeError):
            await HTTPClient().get_json(URL)
