import asyncio
import logging
import time
from typing import Optional
from urllib.parse import urlparse

import httpx

logger = logging.getLogger("quiniela.http_client")

# 304 and 4xx are answers, not failures
_RETRYABLE_STATUSES = {429, 500, 502, 503, 504}
_NETWORK_ERRORS = (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError)


class CircuitBreaker:
    """Opens after consecutive failed calls; half-opens after recovery_timeout."""

    def __init__(self, failure_threshold: int = 3, recovery_timeout: int = 300):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.opened_at: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.opened_at is not None

    def record_success(self) -> None:
        self.failure_count = 0
        self.opened_at = None

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.failure_count >= self.failure_threshold:
            self.opened_at = time.monotonic()
            logger.warning("Circuit breaker open after %d failed calls", self.failure_count)

    def can_attempt(self) -> bool:
        if self.opened_at is None:
            return True
        return time.monotonic() - self.opened_at > self.recovery_timeout


class CircuitOpenError(httpx.HTTPError):
    """Raised instead of calling a provider whose circuit is open."""


def safe_url(url: str) -> str:
    """Strip query params for safe logging."""
    parsed = urlparse(str(url))
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


class ResilientClient:
    """httpx.AsyncClient with bounded retries, exponential backoff and a circuit breaker.

    A call counts as failed for the breaker only when every attempt failed;
    the last retryable response is then returned, or the last network error
    raised.
    """

    def __init__(
        self,
        name: str,
        timeout: float = 10.0,
        max_retries: int = 2,
        base_delay: float = 2.0,
        max_delay: float = 30.0,
    ):
        self._client = httpx.AsyncClient(timeout=timeout)
        self._name = name
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self.circuit = CircuitBreaker()

    def _backoff(self, attempt: int, response: Optional[httpx.Response] = None) -> float:
        delay = _retry_after(response) if response is not None else None
        if delay is None:
            delay = self._base_delay * (2 ** attempt)
        return min(delay, self._max_delay)

    async def get(self, url: str, **kwargs) -> httpx.Response:
        if not self.circuit.can_attempt():
            raise CircuitOpenError(f"[{self._name}] circuit open, skipping {safe_url(url)}")

        attempts = self._max_retries + 1
        last_exc: Optional[Exception] = None
        last_resp: Optional[httpx.Response] = None

        for attempt in range(attempts):
            if attempt:
                await asyncio.sleep(self._backoff(attempt - 1, last_resp))
            try:
                resp = await self._client.get(url, **kwargs)
            except _NETWORK_ERRORS as exc:
                last_exc, last_resp = exc, None
                logger.warning(
                    "[%s] %s on GET %s (attempt %d/%d)",
                    self._name, type(exc).__name__, safe_url(url), attempt + 1, attempts,
                )
                continue

            if resp.status_code not in _RETRYABLE_STATUSES:
                self.circuit.record_success()
                return resp
            last_resp = resp
            logger.warning(
                "[%s] HTTP %d on GET %s (attempt %d/%d)",
                self._name, resp.status_code, safe_url(url), attempt + 1, attempts,
            )

        self.circuit.record_failure()
        if last_resp is not None:
            logger.error("[%s] Giving up on %s after %d attempts", self._name, safe_url(url), attempts)
            return last_resp
        raise last_exc  # type: ignore[misc]

    async def aclose(self) -> None:
        await self._client.aclose()
