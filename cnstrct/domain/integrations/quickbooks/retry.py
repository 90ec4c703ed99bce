"""Uniform retry policy for outbound Intuit calls

Bounded exponential backoff on 429/5xx, timeouts and connection errors.
Any other response, including every other 4xx, is returned to the caller
on the first attempt.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

import httpx

from ....config import QBO_RETRY_BASE_DELAY, QBO_RETRY_MAX_ATTEMPTS
from .errors import QBONetworkError

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


@dataclass
class RetryPolicy:
    max_attempts: int = QBO_RETRY_MAX_ATTEMPTS
    base_delay: float = QBO_RETRY_BASE_DELAY
    max_delay: float = 8.0
    retry_statuses: frozenset = RETRYABLE_STATUSES
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def backoff(self, attempt: int) -> float:
        """Delay before the attempt after `attempt` (zero-based)"""
        return min(self.base_delay * (2**attempt), self.max_delay)

    def _retry_after(self, response: httpx.Response, attempt: int) -> float:
        header = response.headers.get("Retry-After")
        if header:
            try:
                return min(float(header), self.max_delay)
            except ValueError:
                pass
        return self.backoff(attempt)

    async def send(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        label: Optional[str] = None,
        **kwargs,
    ) -> httpx.Response:
        """
        Send a request, retrying transient failures.

        Returns the last response once attempts are exhausted so the caller
        can report the provider's error. Raises QBONetworkError if the final
        attempt failed without a response.
        """
        label = label or f"{method} {url}"
        attempts = max(1, self.max_attempts)
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            is_last = attempt == attempts - 1
            try:
                response = await client.request(method, url, **kwargs)
            except (httpx.TimeoutException, httpx.TransportError) as e:
                last_error = e
                if is_last:
                    break
                delay = self.backoff(attempt)
                logger.warning(
                    f"🔄 {label} failed ({type(e).__name__}), retrying in {delay}s "
                    f"(attempt {attempt + 1}/{attempts})"
                )
                await self.sleep(delay)
                continue

            if response.status_code in self.retry_statuses and not is_last:
                delay = self._retry_after(response, attempt)
                logger.warning(
                    f"🔄 {label} returned {response.status_code}, retrying in {delay}s "
                    f"(attempt {attempt + 1}/{attempts})"
                )
                await self.sleep(delay)
                continue

            return response

        logger.error(f"❌ {label} failed after {attempts} attempts: {last_error}")
        raise QBONetworkError(f"QuickBooks request failed after {attempts} attempts: {last_error}") from last_error
