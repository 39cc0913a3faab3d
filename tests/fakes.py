"""
In-memory stand-ins for the network-facing collaborators.

FakeProber answers probes from a url -> outcome table and records every
call; FakePoller answers readiness waits from a scripted list.
"""

import asyncio
from typing import Callable, Dict, List, Optional, Tuple, Union

from searchbench.harness.models import Endpoint, FailureReason, ProbeOutcome, utcnow


def ok(elapsed_ms: float = 10.0, status_code: int = 200) -> ProbeOutcome:
    return ProbeOutcome(started_at=utcnow(), elapsed_ms=elapsed_ms, succeeded=True, status_code=status_code)


def failed(
    reason: FailureReason = FailureReason.NON_SUCCESS_STATUS,
    elapsed_ms: float = 5.0,
    status_code: Optional[int] = None,
) -> ProbeOutcome:
    if reason == FailureReason.NON_SUCCESS_STATUS and status_code is None:
        status_code = 500
    return ProbeOutcome(
        started_at=utcnow(),
        elapsed_ms=elapsed_ms,
        succeeded=False,
        failure_reason=reason,
        status_code=status_code,
        detail=reason.value,
    )


Response = Union[ProbeOutcome, Callable[[Endpoint], ProbeOutcome]]


class FakeProber:
    """Scripted prober; unknown urls get ``default``."""

    def __init__(
        self,
        responses: Optional[Dict[str, Response]] = None,
        *,
        default: Optional[Response] = None,
        delay: float = 0.0,
    ) -> None:
        self.responses = dict(responses or {})
        self.default = default if default is not None else ok()
        self.delay = delay
        self.calls: List[Tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def probe(self, endpoint: Endpoint, timeout: float) -> ProbeOutcome:
        self.calls.append((endpoint.method, endpoint.url))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            response = self.responses.get(endpoint.url, self.default)
            return response(endpoint) if callable(response) else response
        finally:
            self.in_flight -= 1

    def urls(self) -> List[str]:
        return [url for _, url in self.calls]


class FakePoller:
    """Readiness check that returns scripted answers, then ``fallback``."""

    def __init__(self, answers: Optional[List[bool]] = None, *, fallback: bool = True) -> None:
        self.answers = list(answers or [])
        self.fallback = fallback
        self.calls: List[Tuple[str, float, float]] = []

    async def wait_until_ready(self, endpoint: Endpoint, timeout: float, poll_interval: float) -> bool:
        self.calls.append((endpoint.url, timeout, poll_interval))
        if self.answers:
            return self.answers.pop(0)
        return self.fallback


class SleepRecorder:
    """Replacement for asyncio.sleep that records instead of waiting."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeClock:
    """Monotonic clock that only moves when ``sleep`` is awaited."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
