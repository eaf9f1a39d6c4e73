"""
Retrying HTTP transport shared by the platform adapters.

Provides:
- RetryConfig: exponential backoff with jitter, honoring Retry-After
- HTTPClient: async client that retries 429/5xx and connection-level
  failures, then raises HTTPClientError

Adapters own payload interpretation; this layer only moves bytes and
decides when a failure is worth another attempt.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any

import httpx

from src.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

_RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})
_RETRYABLE_EXCEPTIONS = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.ReadError,
    httpx.RemoteProtocolError,
)

USER_AGENT = "castline/0.1 (+timeline ingestion)"


@dataclass
class RetryConfig:
    """
    Backoff schedule for retryable failures.

    delay = min(max_backoff, base_delay * 2^attempt) plus up to
    ``jitter_factor`` of itself. A server-supplied Retry-After wins when
    it is shorter than ``max_backoff_seconds``.
    """

    max_retries: int = 3
    max_backoff_seconds: float = 30.0
    base_delay: float = 1.0
    jitter_factor: float = 0.1

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RetryConfig":
        settings = settings or get_settings()
        return cls(
            max_retries=settings.max_http_retries,
            max_backoff_seconds=settings.max_backoff_seconds,
        )

    def backoff(self, attempt: int, retry_after: float | None = None) -> float:
        if retry_after is not None and 0 <= retry_after <= self.max_backoff_seconds:
            return retry_after
        delay = min(self.base_delay * (2**attempt), self.max_backoff_seconds)
        return delay + delay * self.jitter_factor * random.random()


class HTTPClientError(Exception):
    """A request failed for good: non-retryable status or retries exhausted."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        url: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class RateLimitError(HTTPClientError):
    """Still rate limited (429) after the last retry."""


def _retry_after_seconds(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class HTTPClient:
    """
    Async HTTP client with retry and backoff.

    Example:
        async with HTTPClient(RetryConfig(max_retries=2)) as http:
            payload = await http.get_json(
                "https://www.googleapis.com/youtube/v3/videos",
                params={"id": "abc", "part": "snippet"},
            )
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            retry_config: Backoff schedule. Uses defaults if None.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests, proxies).
        """
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HTTPClient":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        response = await self.request("GET", url, params=params, headers=headers)
        try:
            return response.json()
        except ValueError as e:
            raise HTTPClientError(
                f"Invalid JSON from {url}: {e}", status_code=response.status_code, url=url
            ) from e

    async def get_text(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> str:
        response = await self.request("GET", url, params=params, headers=headers)
        return response.text

    async def post_form(
        self,
        url: str,
        data: dict[str, str],
        headers: dict[str, str] | None = None,
    ) -> Any:
        """POST a form body and decode the JSON reply."""
        response = await self.request("POST", url, data=data, headers=headers)
        try:
            return response.json()
        except ValueError as e:
            raise HTTPClientError(
                f"Invalid JSON from {url}: {e}", status_code=response.status_code, url=url
            ) from e

    async def request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        data: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Send one logical request, retrying transient failures.

        Raises:
            RateLimitError: 429 persisted through every attempt
            HTTPClientError: any other terminal failure
        """
        if not self._client:
            raise RuntimeError("HTTPClient must be used as async context manager")

        attempts = self.retry_config.max_retries + 1
        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            try:
                response = await self._client.request(
                    method, url, params=params, headers=headers, data=data
                )
            except _RETRYABLE_EXCEPTIONS as e:
                if last_attempt:
                    raise HTTPClientError(
                        f"{method} {url} failed after {attempts} attempts: {e}", url=url
                    ) from e
                delay = self.retry_config.backoff(attempt)
                logger.warning(
                    f"{type(e).__name__} for {url}, "
                    f"attempt {attempt + 1}/{attempts}, retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)
                continue

            status = response.status_code
            if status in _RETRYABLE_STATUSES:
                if last_attempt:
                    error_cls = RateLimitError if status == 429 else HTTPClientError
                    raise error_cls(
                        f"{method} {url} returned {status} after {attempts} attempts",
                        status_code=status,
                        url=url,
                    )
                delay = self.retry_config.backoff(attempt, _retry_after_seconds(response))
                logger.warning(
                    f"Status {status} from {url}, "
                    f"attempt {attempt + 1}/{attempts}, retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)
                continue

            if status >= 400:
                raise HTTPClientError(
                    f"{method} {url} returned {status}", status_code=status, url=url
                )
            return response

        # range() above always returns or raises
        raise HTTPClientError(f"{method} {url} failed", url=url)
