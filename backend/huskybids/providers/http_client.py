import asyncio
import logging
import time
from typing import Optional
from urllib.parse import urlparse

import httpx

from huskybids.errors import FeedUnavailableError

logger = logging.getLogger("huskybids.http_client")

# Retryable HTTP status codes
_RETRYABLE_STATUSES = {429, 500, 502, 503, 504}


class CircuitBreaker:
    """Stops calling a failing upstream until recovery_timeout has passed."""

    def __init__(self, failure_threshold: int = 3, recovery_timeout: int = 300):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.is_open = False

    def record_success(self) -> None:
        self.failure_count = 0
        self.is_open = False

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()
        if self.failure_count >= self.failure_threshold and not self.is_open:
            self.is_open = True
            logger.warning("Circuit breaker OPEN after %d failures", self.failure_count)

    def can_attempt(self) -> bool:
        if not self.is_open:
            return True
        # Half-open: let one call through after the recovery window
        if self.last_failure_time and (time.time() - self.last_failure_time > self.recovery_timeout):
            logger.info("Circuit breaker half-open, allowing retry")
            return True
        return False


def _parse_retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def _safe_url(url: str) -> str:
    """Strip query params for logging."""
    parsed = urlparse(str(url))
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"


class ResilientClient:
    """httpx.AsyncClient wrapper with retry, exponential backoff and a circuit breaker.

    Exhausted retries and an open circuit both raise FeedUnavailableError, so
    callers deal with one failure type regardless of what went wrong upstream.
    """

    def __init__(
        self,
        name: str,
        timeout: float = 15.0,
        max_retries: int = 2,
        base_delay: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._name = name
        self._max_retries = max_retries
        self._base_delay = base_delay
        self.circuit = CircuitBreaker()

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if not self.circuit.can_attempt():
            raise FeedUnavailableError(f"[{self._name}] circuit open", url=_safe_url(url))

        failure = ""
        for attempt in range(self._max_retries + 1):
            try:
                resp = await self._client.request(method, url, **kwargs)
            except (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError) as exc:
                failure = f"network error: {exc}"
                delay = self._base_delay * (2 ** attempt)
            else:
                if resp.status_code not in _RETRYABLE_STATUSES:
                    self.circuit.record_success()
                    return resp
                failure = f"status {resp.status_code}"
                delay = _parse_retry_after(resp) or self._base_delay * (2 ** attempt)

            logger.warning(
                "[%s] %s on %s %s (attempt %d/%d)",
                self._name, failure, method, _safe_url(url), attempt + 1, self._max_retries + 1,
            )
            if attempt < self._max_retries:
                await asyncio.sleep(min(delay, 60.0))

        self.circuit.record_failure()
        logger.error(
            "[%s] All %d attempts failed for %s %s (%s)",
            self._name, self._max_retries + 1, method, _safe_url(url), failure,
        )
        raise FeedUnavailableError(f"[{self._name}] {failure}", url=_safe_url(url))

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()
