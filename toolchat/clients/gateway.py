"""Chat-completion gateway client with rate limiting and error handling."""

import asyncio
import time
from typing import Any

import httpx
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from toolchat.config import GatewayConfig
from toolchat.errors import (
    ConfigurationError,
    GatewayConnectionError,
    GatewayCreditsError,
    GatewayError,
    GatewayRateLimitError,
    GatewayStatusError,
)
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

INVALID_RESPONSE = "AI gateway returned an invalid response"


def classify_status(status_code: int) -> GatewayError:
    """Map a non-success gateway status to the error surfaced to callers."""
    if status_code == 429:
        return GatewayRateLimitError()
    if status_code == 402:
        return GatewayCreditsError()
    return GatewayStatusError(status_code)


class GatewayRateLimiter:
    """Moving-window limiter on outbound gateway requests."""

    def __init__(self, requests_per_minute: int = 60):
        """Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute
        """
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)
        self.request_limit = parse(f"{requests_per_minute}/minute")

    async def wait(self, identifier: str = "gateway") -> None:
        """Block until a request slot is available in the current window."""
        while not self.limiter.hit(self.request_limit, identifier):
            window_stats = self.limiter.get_window_stats(self.request_limit, identifier)
            wait_time = max(0.05, window_stats.reset_time - time.time())
            logger.warning(f"Gateway request rate limit exceeded, waiting {wait_time:.2f}s")
            await asyncio.sleep(wait_time)


class GatewayClient:
    """Low-level client for an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        config: GatewayConfig,
        http_client: httpx.AsyncClient | None = None,
        rate_limiter: GatewayRateLimiter | None = None,
    ):
        """Initialize gateway client.

        Args:
            config: Gateway configuration; ``api_key`` is required
            http_client: Shared HTTP client (one is created if omitted)
            rate_limiter: Outbound request limiter
        """
        if not config.api_key:
            raise ConfigurationError("AI_GATEWAY_API_KEY is not configured")

        self.config = config
        self.http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(config.timeout, connect=10.0))
        self.rate_limiter = rate_limiter or GatewayRateLimiter(config.requests_per_minute)

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Run a non-streaming completion and return the decoded body.

        Connection errors and 5xx responses are retried with exponential
        backoff; 429 and 402 are raised immediately.

        Raises:
            GatewayError: On any non-success outcome
        """
        payload: dict[str, Any] = {"model": self.config.model, "messages": messages}
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        logger.debug(f"Completion request with {len(messages)} messages and {len(tools or [])} tools")

        for attempt in range(self.config.max_retries):
            last_attempt = attempt == self.config.max_retries - 1
            await self.rate_limiter.wait()
            try:
                response = await self.http.post(self.config.url, json=payload, headers=self.headers)
            except httpx.HTTPError as e:
                logger.warning(f"Gateway connection failed (attempt {attempt + 1}): {e}")
                if last_attempt:
                    raise GatewayConnectionError("Failed to reach the AI gateway") from e
                await asyncio.sleep(self.config.retry_delay * (2**attempt))
                continue

            if response.is_success:
                try:
                    return response.json()
                except ValueError as e:
                    logger.error(f"AI gateway returned a non-JSON body: {response.text[:500]}")
                    raise GatewayError(INVALID_RESPONSE) from e

            logger.error(f"AI gateway error: {response.status_code} {response.text[:500]}")
            if response.status_code >= 500 and not last_attempt:
                await asyncio.sleep(self.config.retry_delay * (2**attempt))
                continue
            raise classify_status(response.status_code)

        raise GatewayConnectionError(f"Failed to complete request after {self.config.max_retries} attempts")

    async def open_stream(self, messages: list[dict[str, Any]]) -> httpx.Response:
        """Start a streaming completion and return the open response.

        The status is checked before returning, so a returned response is
        always successful. The caller owns it and must close it.

        Raises:
            GatewayError: If the gateway is unreachable or answers non-2xx
        """
        payload = {"model": self.config.model, "messages": messages, "stream": True}
        await self.rate_limiter.wait()

        # The relay forwards the body without the upstream Content-Encoding
        headers = {**self.headers, "Accept-Encoding": "identity"}
        request = self.http.build_request("POST", self.config.url, json=payload, headers=headers)
        try:
            response = await self.http.send(request, stream=True)
        except httpx.HTTPError as e:
            logger.error(f"Gateway stream connection failed: {e}")
            raise GatewayConnectionError("Failed to reach the AI gateway") from e

        if not response.is_success:
            body = await response.aread()
            await response.aclose()
            logger.error(f"AI gateway error: {response.status_code} {body[:500]!r}")
            raise classify_status(response.status_code)

        logger.debug(f"Gateway stream opened: {response.headers.get('content-type')}")
        return response

    async def aclose(self) -> None:
        await self.http.aclose()
