"""Base HTTP client for provider APIs with bounded retry logic."""

import asyncio
import logging
from typing import Any

import httpx

from abacus.config import get_settings
from abacus.services.errors import ProviderAPIError, RateLimitError, TransientNetworkError

logger = logging.getLogger(__name__)


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class ProviderHTTPClient:
    """
    Shared request logic for provider API clients.

    Features:
    - Rate-limit responses raise RateLimitError immediately (no local retry)
    - Exponential backoff retry for 5xx and transport errors
    - Non-retryable 4xx responses raise ProviderAPIError
    """

    provider_name = "provider"

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        auth: httpx.Auth | tuple[str, str] | None = None,
        max_retries: int | None = None,
        timeout: float | None = None,
        backoff_base: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.base_url = base_url.rstrip("/")
        self.headers = {"Accept": "application/json", **(headers or {})}
        self.auth = auth
        self.max_retries = max_retries if max_retries is not None else settings.http_max_retries
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self.backoff_base = backoff_base
        self.transport = transport

    def _is_rate_limited(self, response: httpx.Response) -> bool:
        return response.status_code == 429

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Make HTTP request with exponential backoff retry and return decoded JSON."""
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        last_error: Exception | None = None

        for attempt in range(self.max_retries):
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout, auth=self.auth, transport=self.transport
                ) as client:
                    response = await client.request(
                        method, url, headers=self.headers, params=params, json=json
                    )

                if self._is_rate_limited(response):
                    retry_after = _retry_after(response)
                    logger.warning(
                        f"{self.provider_name} rate limited on {path} (retry-after={retry_after})"
                    )
                    raise RateLimitError(
                        f"{self.provider_name} rate limit exceeded", retry_after=retry_after
                    )

                response.raise_for_status()
                try:
                    return response.json()
                except ValueError as e:
                    raise ProviderAPIError(
                        f"{self.provider_name} returned invalid JSON from {path}: {response.text[:200]}",
                        status_code=response.status_code,
                    ) from e

            except httpx.HTTPStatusError as e:
                last_error = e
                status = e.response.status_code
                if status >= 500:  # Server error
                    wait_time = self.backoff_base * 2**attempt
                    logger.warning(
                        f"{self.provider_name} server error {status}, retry in {wait_time}s"
                    )
                    await asyncio.sleep(wait_time)
                else:
                    raise ProviderAPIError(
                        f"{self.provider_name} API error {status}: {e.response.text[:200]}",
                        status_code=status,
                    ) from e

            except httpx.RequestError as e:
                last_error = e
                wait_time = self.backoff_base * 2**attempt
                logger.warning(f"{self.provider_name} request error: {e}, retry in {wait_time}s")
                await asyncio.sleep(wait_time)

        raise TransientNetworkError(
            f"{self.provider_name} failed after {self.max_retries} retries: {last_error}"
        )

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None, params: dict[str, Any] | None = None) -> Any:
        return await self.request("POST", path, params=params, json=json)
