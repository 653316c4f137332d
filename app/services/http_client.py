"""
Outbound HTTP client shared by every provider sync.

Retries transient failures (connection errors, timeouts, 429, 5xx) with pure
exponential backoff: the delay after attempt n is base_delay * 2**n.
Everything else is raised immediately.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from app.services.errors import ProviderRequestError, SyncErrorKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 3
    base_delay_ms: int = 1000
    timeout_seconds: float = 30.0


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class ResilientHttpClient:
    """Stateless (apart from the connection pool) retrying wrapper around httpx.AsyncClient."""

    def __init__(
        self,
        retry_config: Optional[RetryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.retry_config = retry_config or RetryConfig()
        self._client = httpx.AsyncClient(
            timeout=self.retry_config.timeout_seconds, transport=transport
        )
        self._sleep = sleep

    def backoff_delay_ms(self, attempt: int) -> int:
        return self.retry_config.base_delay_ms * (2 ** attempt)

    def _should_retry(self, attempt: int) -> bool:
        return attempt < self.retry_config.max_retries

    async def _wait(self, method: str, url: str, attempt: int, reason: str) -> None:
        delay_ms = self.backoff_delay_ms(attempt)
        logger.warning(
            f"{method} {url} failed ({reason}), attempt {attempt + 1}/"
            f"{self.retry_config.max_retries + 1}, retrying in {delay_ms}ms"
        )
        await self._sleep(delay_ms / 1000)

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, retrying transient failures."""
        attempt = 0
        while True:
            try:
                response = await self._client.request(method, url, **kwargs)
            except httpx.TransportError as e:
                if not self._should_retry(attempt):
                    raise ProviderRequestError(
                        f"{method} {url} failed after {attempt + 1} attempts: {e!r}",
                        kind=SyncErrorKind.TRANSIENT,
                    ) from e
                await self._wait(method, url, attempt, type(e).__name__)
                attempt += 1
                continue

            status = response.status_code
            if is_retryable_status(status):
                if not self._should_retry(attempt):
                    raise ProviderRequestError(
                        f"{method} {url} returned {status} after {attempt + 1} attempts",
                        kind=SyncErrorKind.TRANSIENT,
                        status_code=status,
                    )
                await self._wait(method, url, attempt, f"HTTP {status}")
                attempt += 1
                continue

            if status >= 400:
                raise ProviderRequestError(
                    f"{method} {url} returned {status}: {response.text[:500]}",
                    kind=SyncErrorKind.PROVIDER,
                    status_code=status,
                )

            return response

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        """GET and parse JSON; a parse failure is not retried."""
        response = await self.get(url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise ProviderRequestError(
                f"GET {url} returned invalid JSON: {e}",
                kind=SyncErrorKind.INVALID_RESPONSE,
                status_code=response.status_code,
            ) from e

    async def close(self) -> None:
        await self._client.aclose()
