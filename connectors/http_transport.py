"""Source API HTTP transport.

Low-level HTTP access shared by the Source API clients.
Handles sessions, timeouts, retries, and error classification.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

import aiohttp

from core.observability.logging import get_logger

logger = get_logger(__name__)

# The ERP reports server-side faults inside otherwise-200 responses.
ERROR_MARKER = "System.InvalidOperationException"


class SourceApiError(Exception):
    """Base exception for Source API errors."""
    def __init__(self, message: str, status_code: int = 0, response_body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class SourceHttpError(SourceApiError):
    """Non-success HTTP status or connection failure."""
    pass


class SourceTimeoutError(SourceApiError):
    """The request did not complete within the configured timeout."""
    pass


class SourceBusinessError(SourceApiError):
    """The response body carries the ERP's server-side error marker."""
    pass


def raise_for_error_marker(body: str, url: str = "") -> str:
    """Return body unchanged, or raise SourceBusinessError if it carries the error marker."""
    if body and ERROR_MARKER in body:
        raise SourceBusinessError(
            f"Source API error at {url}: {body[:500]}",
            200,
            body,
        )
    return body


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 2
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    retry_on_status: Tuple[int, ...] = (429, 500, 502, 503, 504)

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for retry attempt (exponential backoff)."""
        delay = self.base_delay * (self.exponential_base ** attempt)
        return min(delay, self.max_delay)


@dataclass
class TransportConfig:
    """Configuration for the HTTP transport."""
    timeout_seconds: float = 90.0
    retry_config: RetryConfig = field(default_factory=RetryConfig)
    default_headers: Dict[str, str] = field(default_factory=dict)


class HttpTransport:
    """Async HTTP transport with retries.

    Usage:
        transport = HttpTransport(TransportConfig(timeout_seconds=30))
        body = await transport.request_text("GET", url, params={"a": "1"})
        await transport.close()
    """

    def __init__(self, config: Optional[TransportConfig] = None):
        self.config = config or TransportConfig()
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self.config.default_headers)
        return self._session

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def request_text(
        self,
        method: str,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        data: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> str:
        """Make a request with automatic retries and return the body text.

        Args:
            method: HTTP method
            url: Absolute URL
            params: Query parameters (values are stringified)
            data: Raw request body
            headers: Extra headers

        Returns:
            Response body

        Raises:
            SourceTimeoutError: Timed out on every attempt
            SourceHttpError: Non-retryable status, or retries exhausted
        """
        session = await self._get_session()
        retry_config = self.config.retry_config
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
        query = {k: str(v) for k, v in (params or {}).items() if v is not None}
        last_error: Optional[Exception] = None

        for attempt in range(retry_config.max_retries + 1):
            try:
                async with session.request(
                    method,
                    url,
                    params=query,
                    data=data,
                    headers=headers,
                    timeout=timeout,
                ) as response:
                    response_text = await response.text()

                    if response.status < 400:
                        return response_text

                    if response.status in retry_config.retry_on_status and attempt < retry_config.max_retries:
                        delay = retry_config.get_delay(attempt)
                        if response.status == 429:
                            delay = float(response.headers.get("Retry-After", delay))
                        logger.warning(
                            f"Request failed with {response.status}, "
                            f"retrying in {delay:.1f}s (attempt {attempt + 1}/{retry_config.max_retries})",
                            extra_fields={"url": url},
                        )
                        await asyncio.sleep(delay)
                        continue

                    raise SourceHttpError(
                        f"HTTP {response.status} from {url}: {response_text[:500]}",
                        response.status,
                        response_text,
                    )

            except asyncio.TimeoutError as e:
                last_error = e
                if attempt < retry_config.max_retries:
                    delay = retry_config.get_delay(attempt)
                    logger.warning(
                        f"Request timed out, retrying in {delay:.1f}s",
                        extra_fields={"url": url},
                    )
                    await asyncio.sleep(delay)
                    continue
                raise SourceTimeoutError(
                    f"Request to {url} timed out after {self.config.timeout_seconds:.0f}s"
                ) from e

            except aiohttp.ClientError as e:
                last_error = e
                if attempt < retry_config.max_retries:
                    delay = retry_config.get_delay(attempt)
                    logger.warning(
                        f"Request failed with {type(e).__name__}: {e}, retrying in {delay:.1f}s",
                        extra_fields={"url": url},
                    )
                    await asyncio.sleep(delay)
                    continue
                raise SourceHttpError(
                    f"Request to {url} failed after {retry_config.max_retries} retries: {e}"
                ) from e

        raise SourceHttpError(f"Request to {url} failed: {last_error}")

    async def get_text(
        self,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> str:
        return await self.request_text("GET", url, params=params, headers=headers)

    async def post_text(self, url: str, body: str, headers: Optional[Dict[str, str]] = None) -> str:
        return await self.request_text("POST", url, data=body, headers=headers)
