"""Service readiness checks run before load tests and workflows."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Iterable, List, Optional

from searchbench.harness.models import Endpoint, ServiceCheck
from searchbench.harness.prober import Prober

logger = logging.getLogger(__name__)


class ServiceReadinessChecker:
    """Poll each service's liveness endpoint until it answers successfully.

    Polling stops after ``attempts`` probes or once the optional deadline
    (a ``clock`` timestamp) passes, whichever comes first.
    """

    def __init__(
        self,
        prober: Prober,
        *,
        attempts: int = 30,
        poll_interval: float = 1.0,
        timeout: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._prober = prober
        self._attempts = max(1, attempts)
        self._poll_interval = max(0.0, poll_interval)
        self._timeout = timeout
        self._clock = clock
        self._sleep = sleep

    async def check(self, endpoint: Endpoint) -> ServiceCheck:
        """Single readiness probe without retries."""
        outcome = await self._prober.probe(endpoint, self._timeout)
        detail = "ready" if outcome.succeeded else (outcome.detail or str(outcome.failure_reason))
        return ServiceCheck(
            name=endpoint.service,
            url=endpoint.url,
            ready=outcome.succeeded,
            attempts=1,
            latency_seconds=outcome.elapsed_ms / 1000.0,
            detail=detail,
        )

    async def wait_for(self, endpoint: Endpoint, *, deadline: Optional[float] = None) -> ServiceCheck:
        start = time.perf_counter()
        last_error = f"{endpoint.service} not reachable"
        attempts_made = 0
        for attempt in range(1, self._attempts + 1):
            remaining = self._remaining(deadline)
            if remaining is not None and remaining <= 0:
                last_error = f"suite deadline reached ({last_error})"
                break
            timeout = self._timeout if remaining is None else min(self._timeout, remaining)
            outcome = await self._prober.probe(endpoint, timeout)
            attempts_made = attempt
            if outcome.succeeded:
                latency = time.perf_counter() - start
                logger.info("Service %s ready in %.2fs", endpoint.service, latency)
                return ServiceCheck(
                    name=endpoint.service,
                    url=endpoint.url,
                    ready=True,
                    attempts=attempt,
                    latency_seconds=latency,
                    detail=f"{endpoint.service} ready ({outcome.status_code})",
                )
            last_error = outcome.detail or str(outcome.failure_reason)
            logger.warning(
                "Service %s not ready (attempt %s/%s): %s",
                endpoint.service,
                attempt,
                self._attempts,
                last_error,
            )
            if attempt < self._attempts:
                pause = self._poll_interval
                remaining = self._remaining(deadline)
                if remaining is not None:
                    pause = min(pause, max(remaining, 0.0))
                if pause > 0:
                    await self._sleep(pause)

        latency = time.perf_counter() - start
        logger.error(
            "Service %s failed readiness check after %s attempt(s): %s",
            endpoint.service,
            attempts_made,
            last_error,
        )
        return ServiceCheck(
            name=endpoint.service,
            url=endpoint.url,
            ready=False,
            attempts=attempts_made,
            latency_seconds=latency,
            detail=last_error,
        )

    async def wait_for_all(
        self,
        endpoints: Iterable[Endpoint],
        *,
        deadline: Optional[float] = None,
    ) -> List[ServiceCheck]:
        checks = await asyncio.gather(*(self.wait_for(endpoint, deadline=deadline) for endpoint in endpoints))
        return list(checks)

    def _remaining(self, deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        return deadline - self._clock()
