"""Load test driver: repeated probes of one endpoint under a request pattern."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional

from searchbench.harness.errors import ConfigurationError
from searchbench.harness.models import Endpoint, LoadTestResult, ProbeOutcome, utcnow
from searchbench.harness.prober import Prober

logger = logging.getLogger(__name__)


def validate_load_parameters(
    request_count: int,
    inter_request_delay: float,
    concurrency: int,
    per_request_timeout: float,
) -> None:
    if request_count < 1:
        raise ConfigurationError(f"request_count must be >= 1 (got {request_count})")
    if concurrency < 1:
        raise ConfigurationError(f"concurrency must be >= 1 (got {concurrency})")
    if inter_request_delay < 0:
        raise ConfigurationError(f"inter_request_delay must be >= 0 (got {inter_request_delay})")
    if per_request_timeout <= 0:
        raise ConfigurationError(f"per_request_timeout must be > 0 (got {per_request_timeout})")


class LoadTestDriver:
    """Drive ``request_count`` probes against an endpoint through bounded lanes.

    Each lane runs its probes one after another, so ``concurrency`` lanes
    never have more than ``concurrency`` requests in flight. The
    inter-request delay is the minimum spacing between two dispatches on
    the same lane.
    """

    def __init__(
        self,
        prober: Prober,
        *,
        status_path: str = "/status",
        readiness_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._prober = prober
        self._status_path = status_path
        self._readiness_timeout = readiness_timeout
        self._clock = clock
        self._sleep = sleep

    async def run_load_test(
        self,
        endpoint: Endpoint,
        request_count: int,
        inter_request_delay: float,
        concurrency: int,
        per_request_timeout: float,
        *,
        deadline: Optional[float] = None,
        check_readiness: bool = True,
        status_path: Optional[str] = None,
    ) -> LoadTestResult:
        validate_load_parameters(request_count, inter_request_delay, concurrency, per_request_timeout)
        started_at = utcnow()

        if self._expired(deadline):
            logger.warning("Suite deadline passed before load test of %s %s", endpoint.service, endpoint.label)
            return LoadTestResult.from_outcomes(
                endpoint, [], requested_count=request_count, started_at=started_at, truncated=True
            )

        if check_readiness and not await self._service_ready(
            endpoint, per_request_timeout, status_path or self._status_path
        ):
            return LoadTestResult.unreachable(endpoint, requested_count=request_count, started_at=started_at)

        logger.info(
            "Load testing %s %s (requests=%s, concurrency=%s, delay=%.3fs)",
            endpoint.service,
            endpoint.label,
            request_count,
            concurrency,
            inter_request_delay,
        )

        outcomes: List[ProbeOutcome] = []
        issued = 0

        async def lane() -> None:
            nonlocal issued
            last_dispatch: Optional[float] = None
            while issued < request_count:
                if last_dispatch is not None and inter_request_delay > 0:
                    wait = inter_request_delay - (self._clock() - last_dispatch)
                    if deadline is not None:
                        wait = min(wait, deadline - self._clock())
                    if wait > 0:
                        await self._sleep(wait)
                if self._expired(deadline) or issued >= request_count:
                    return
                issued += 1
                last_dispatch = self._clock()
                outcomes.append(await self._prober.probe(endpoint, per_request_timeout))

        lanes = min(concurrency, request_count)
        await asyncio.gather(*(lane() for _ in range(lanes)))

        result = LoadTestResult.from_outcomes(
            endpoint,
            outcomes,
            requested_count=request_count,
            started_at=started_at,
            truncated=len(outcomes) < request_count,
        )
        if result.truncated:
            logger.warning(
                "Load test of %s %s stopped at deadline after %s/%s request(s)",
                endpoint.service,
                endpoint.label,
                result.sample_count,
                request_count,
            )
        logger.info(
            "Load test %s %s: %s/%s succeeded (%.1f%%), avg latency %s",
            endpoint.service,
            endpoint.label,
            result.succeeded_count,
            result.sample_count,
            result.success_rate,
            f"{result.average_latency_ms:.1f}ms" if result.average_latency_ms is not None else "n/a",
        )
        return result

    async def _service_ready(self, endpoint: Endpoint, per_request_timeout: float, status_path: str) -> bool:
        status = endpoint.status_endpoint(status_path)
        outcome = await self._prober.probe(status, self._readiness_timeout or per_request_timeout)
        if outcome.succeeded:
            return True
        logger.warning(
            "Service %s unreachable at %s (%s); skipping load test of %s",
            endpoint.service,
            status.url,
            outcome.detail or outcome.failure_reason,
            endpoint.label,
        )
        return False

    def _expired(self, deadline: Optional[float]) -> bool:
        return deadline is not None and self._clock() >= deadline
