"""Retry policy and reachability tracking for IPTV provider calls."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

CHECK_INTERVAL_SECONDS = 5 * 60


class ProviderHealth:
    """Wraps provider operations with bounded exponential backoff.

    Only transient failures are retried: timeouts, dropped connections and
    5xx responses. Everything else is raised to the caller on the first
    attempt. The helper also remembers whether the provider answered the
    last time it was contacted.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._max_attempts = max(1, max_attempts)
        self._base_delay = base_delay
        self._sleep = sleep
        self.is_healthy = True
        self.last_check: float | None = None

    @staticmethod
    def is_transient(error: BaseException) -> bool:
        """Return whether ``error`` is worth retrying."""

        if isinstance(
            error,
            (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError),
        ):
            return True
        if isinstance(error, httpx.HTTPStatusError):
            return 500 <= error.response.status_code < 600
        return False

    def backoff(self, attempt: int) -> float:
        """Delay before the retry following ``attempt`` (1-based)."""

        return self._base_delay * (2 ** (attempt - 1))

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        label: str = "provider call",
    ) -> T:
        """Execute ``operation`` retrying transient failures."""

        attempt = 1
        while True:
            try:
                result = await operation()
            except Exception as exc:
                transient = self.is_transient(exc)
                logger.warning(
                    "%s failed (attempt %s/%s): %s",
                    label,
                    attempt,
                    self._max_attempts,
                    exc.__class__.__name__,
                )
                if transient:
                    self.mark(False)
                if not transient or attempt >= self._max_attempts:
                    raise
                delay = self.backoff(attempt)
                logger.info("Retrying %s in %.1fs", label, delay)
                await self._sleep(delay)
                attempt += 1
                continue
            self.mark(True)
            return result

    async def check(self, contact: Callable[[], Awaitable[Any]]) -> bool:
        """Run a reachability ``contact`` and record the outcome."""

        try:
            payload = await contact()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Provider health check failed: %s", exc.__class__.__name__)
            self.mark(False)
            return False
        healthy = isinstance(payload, (list, dict))
        self.mark(healthy)
        return healthy

    def due(self) -> bool:
        """Return whether the provider has not been contacted recently."""

        if self.last_check is None:
            return True
        return time.time() - self.last_check >= CHECK_INTERVAL_SECONDS

    def status(self) -> dict[str, Any]:
        next_check = (
            self.last_check + CHECK_INTERVAL_SECONDS if self.last_check is not None else None
        )
        return {
            "healthy": self.is_healthy,
            "lastCheck": self.last_check,
            "nextCheck": next_check,
        }

    def mark(self, healthy: bool) -> None:
        """Record the outcome of a provider contact."""

        self.is_healthy = healthy
        self.last_check = time.time()
