"""Single timed HTTP request with outcome classification."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional, Protocol

import httpx

from searchbench.harness.models import Endpoint, FailureReason, ProbeOutcome, utcnow

logger = logging.getLogger(__name__)


class Prober(Protocol):
    async def probe(self, endpoint: Endpoint, timeout: float) -> ProbeOutcome:
        ...


class EndpointProber:
    """Issue one request per call and return the outcome as data.

    The prober never retries and never raises for measurement failures;
    timeouts, refused connections and error statuses all come back as a
    :class:`ProbeOutcome`. Elapsed time is taken from a monotonic clock and
    spans dispatch until the full response body was read.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._client = client
        self._clock = clock

    async def probe(self, endpoint: Endpoint, timeout: float) -> ProbeOutcome:
        started_at = utcnow()
        start = self._clock()
        try:
            # httpx applies the timeout per phase; wait_for caps the whole request.
            response = await asyncio.wait_for(self._send(endpoint, timeout), timeout=timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            return self._failed(endpoint, started_at, start, FailureReason.TIMEOUT, exc)
        except httpx.ConnectError as exc:
            reason = (
                FailureReason.CONNECTION_REFUSED
                if _is_connection_refused(exc)
                else FailureReason.OTHER_TRANSPORT_ERROR
            )
            return self._failed(endpoint, started_at, start, reason, exc)
        except Exception as exc:  # noqa: BLE001 - every probe failure is reported as data
            return self._failed(endpoint, started_at, start, FailureReason.OTHER_TRANSPORT_ERROR, exc)

        elapsed_ms = self._elapsed_ms(start)
        if response.is_success:
            return ProbeOutcome(
                started_at=started_at,
                elapsed_ms=elapsed_ms,
                succeeded=True,
                status_code=response.status_code,
            )

        logger.debug(
            "%s %s responded %s in %.1fms",
            endpoint.method,
            endpoint.url,
            response.status_code,
            elapsed_ms,
        )
        return ProbeOutcome(
            started_at=started_at,
            elapsed_ms=elapsed_ms,
            succeeded=False,
            failure_reason=FailureReason.NON_SUCCESS_STATUS,
            status_code=response.status_code,
            detail=f"status {response.status_code}",
        )

    async def _send(self, endpoint: Endpoint, timeout: float) -> httpx.Response:
        return await self._client.request(endpoint.method.upper(), endpoint.url, timeout=timeout)

    def _failed(
        self,
        endpoint: Endpoint,
        started_at,
        start: float,
        reason: FailureReason,
        exc: BaseException,
    ) -> ProbeOutcome:
        elapsed_ms = self._elapsed_ms(start)
        detail = str(exc) or exc.__class__.__name__
        logger.debug(
            "%s %s failed after %.1fms (%s): %s",
            endpoint.method,
            endpoint.url,
            elapsed_ms,
            reason.value,
            detail,
        )
        return ProbeOutcome(
            started_at=started_at,
            elapsed_ms=elapsed_ms,
            succeeded=False,
            failure_reason=reason,
            detail=detail,
        )

    def _elapsed_ms(self, start: float) -> float:
        return max(self._clock() - start, 0.0) * 1000.0


def _is_connection_refused(exc: BaseException, _seen: Optional[set] = None) -> bool:
    """Walk the exception chain (and exception groups) for a refused connect."""
    seen = _seen if _seen is not None else set()
    if exc is None or id(exc) in seen:
        return False
    seen.add(id(exc))

    if isinstance(exc, ConnectionRefusedError):
        return True
    if "refused" in str(exc).lower():
        return True

    for nested in getattr(exc, "exceptions", ()) or ():
        if _is_connection_refused(nested, seen):
            return True
    for linked in (exc.__cause__, exc.__context__):
        if linked is not None and _is_connection_refused(linked, seen):
            return True
    return False
