"""Health gate for serializing role startup.

Polls a single HTTPS health endpoint until it answers 200. Used to wait for
kube-controller-manager before starting kube-scheduler.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

import httpx

from .errors import HealthGateTimeoutError, StartupAbortedError
from .shared.logging import get_logger

if TYPE_CHECKING:
    from .supervisor import LifecycleSignal

logger = get_logger(__name__)

CONTROLLER_MANAGER_HEALTH_URL = "https://127.0.0.1:10257/healthz"

DEFAULT_INTERVAL = 1.0
DEFAULT_TIMEOUT = 5.0
DEFAULT_CONNECT_TIMEOUT = 5.0


@dataclass
class HealthCheckResult:
    """Result of waiting for an endpoint."""

    healthy: bool
    url: str = ""
    attempts: int = 0
    elapsed_seconds: float = 0.0


class HealthGate:
    """Poll a health endpoint until it is healthy."""

    def __init__(
        self,
        interval_seconds: float = DEFAULT_INTERVAL,
        timeout_seconds: float = DEFAULT_TIMEOUT,
        connect_timeout_seconds: float = DEFAULT_CONNECT_TIMEOUT,
        deadline_seconds: float | None = None,
    ):
        """Initialize health gate.

        Args:
            interval_seconds: Seconds between attempts.
            timeout_seconds: Overall timeout for each HTTP request.
            connect_timeout_seconds: Connect timeout for each HTTP request.
            deadline_seconds: Give up after this many seconds; None retries
                forever.
        """
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self.connect_timeout_seconds = connect_timeout_seconds
        self.deadline_seconds = deadline_seconds

    async def check(self, url: str) -> str | None:
        """Perform a single health check.

        The endpoint is a loopback probe, so certificates are not verified,
        and no connection is kept for the next attempt.

        Returns:
            None when healthy, otherwise a description of the failure.
        """
        try:
            async with httpx.AsyncClient(
                verify=False,
                timeout=httpx.Timeout(self.timeout_seconds, connect=self.connect_timeout_seconds),
                limits=httpx.Limits(max_keepalive_connections=0),
            ) as client:
                response = await client.get(url)
            if response.status_code == 200:
                return None
            return f"HTTP {response.status_code}"
        except httpx.ConnectError:
            return "Connection refused"
        except httpx.TimeoutException:
            return "Request timeout"
        except Exception as e:
            return str(e) or type(e).__name__

    async def wait_healthy(
        self,
        url: str = CONTROLLER_MANAGER_HEALTH_URL,
        stop: LifecycleSignal | None = None,
        on_attempt: Callable[[int, str | None], None] | None = None,
    ) -> HealthCheckResult:
        """Poll the endpoint until it is healthy.

        Args:
            url: Health endpoint URL.
            stop: Lifecycle signal that aborts the wait when it fires.
            on_attempt: Optional callback called with (attempt, error) after
                each failed attempt, for progress reporting.

        Returns:
            HealthCheckResult of the successful poll.

        Raises:
            StartupAbortedError: If ``stop`` fires while waiting.
            HealthGateTimeoutError: If the deadline passes first.
        """
        start = datetime.now()
        attempt = 0

        while True:
            if stop is not None and stop.cancelled:
                raise StartupAbortedError(f"Stopped waiting for {url}: {stop.reason}")

            attempt += 1
            error = await self.check(url)
            elapsed = (datetime.now() - start).total_seconds()

            if error is None:
                logger.info("endpoint healthy", url=url, attempts=attempt, elapsed=elapsed)
                return HealthCheckResult(
                    healthy=True,
                    url=url,
                    attempts=attempt,
                    elapsed_seconds=elapsed,
                )

            logger.info("health check failed", url=url, attempt=attempt, error=error)
            if on_attempt:
                on_attempt(attempt, error)

            if self.deadline_seconds is not None and elapsed >= self.deadline_seconds:
                raise HealthGateTimeoutError(
                    f"{url} did not become healthy within {self.deadline_seconds}s. "
                    f"Last error: {error}",
                    url=url,
                    attempts=attempt,
                )

            await self._sleep(stop)

    async def _sleep(self, stop: LifecycleSignal | None) -> None:
        """Wait one interval, waking early if ``stop`` fires."""
        if stop is None:
            await asyncio.sleep(self.interval_seconds)
            return
        try:
            await asyncio.wait_for(stop.wait(), timeout=self.interval_seconds)
        except asyncio.TimeoutError:
            pass
