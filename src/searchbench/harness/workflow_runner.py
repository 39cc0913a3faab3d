"""Workflow orchestration: ingest -> index -> search for one work item."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Protocol, Tuple

import httpx

from searchbench.harness.errors import ConfigurationError
from searchbench.harness.models import (
    PIPELINE_STAGES,
    Endpoint,
    ProbeOutcome,
    StageName,
    WorkflowRun,
    WorkflowStage,
    WorkflowState,
    utcnow,
)
from searchbench.harness.prober import Prober

logger = logging.getLogger(__name__)

READY_STATUSES = frozenset({"available", "ready", "indexed", "updated", "downloaded"})

DEADLINE_EXCEEDED = "deadline_exceeded"
READINESS_TIMEOUT = "readiness_timeout"

_STAGE_STATES = {
    StageName.INGEST: WorkflowState.INGESTING,
    StageName.INDEX: WorkflowState.INDEXING,
    StageName.SEARCH: WorkflowState.SEARCHING,
}

_STATE_STAGES = {state: name for name, state in _STAGE_STATES.items()}


@dataclass(frozen=True)
class SettlePolicy:
    """How long to wait for a stage's effects before the dependent call.

    With ``readiness`` set, the endpoint is polled until it reports ready or
    ``readiness_timeout`` expires. Without it, ``delay_seconds`` is slept
    blindly, which only approximates the downstream consistency window.
    """

    delay_seconds: float = 0.0
    readiness: Optional[Endpoint] = None
    readiness_timeout: float = 10.0
    poll_interval: float = 0.25


@dataclass(frozen=True)
class WorkflowPipeline:
    ingest: Endpoint
    index: Endpoint
    search: Endpoint
    after_ingest: Optional[SettlePolicy] = None
    after_index: Optional[SettlePolicy] = None
    stage_timeout: float = 30.0

    def stage_endpoint(self, name: StageName) -> Endpoint:
        return {
            StageName.INGEST: self.ingest,
            StageName.INDEX: self.index,
            StageName.SEARCH: self.search,
        }[name]

    def settle_after(self, name: StageName) -> Optional[SettlePolicy]:
        if name == StageName.INGEST:
            return self.after_ingest
        if name == StageName.INDEX:
            return self.after_index
        return None

    def validate(self) -> None:
        if self.stage_timeout <= 0:
            raise ConfigurationError(f"stage_timeout must be > 0 (got {self.stage_timeout})")
        for name in PIPELINE_STAGES:
            self.stage_endpoint(name).render(work_item="probe")
        for policy in (self.after_ingest, self.after_index):
            if policy is None:
                continue
            if policy.delay_seconds < 0:
                raise ConfigurationError("settle delay_seconds must be >= 0")
            if policy.readiness is not None:
                if policy.readiness_timeout <= 0 or policy.poll_interval <= 0:
                    raise ConfigurationError("readiness_timeout and poll_interval must be > 0")
                policy.readiness.render(work_item="probe")


class ReadinessCheck(Protocol):
    async def wait_until_ready(self, endpoint: Endpoint, timeout: float, poll_interval: float) -> bool:
        ...


class ReadinessPoller:
    """Poll a readiness endpoint until the collaborating service confirms."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._clock = clock
        self._sleep = sleep

    async def is_ready(self, endpoint: Endpoint, timeout: float) -> bool:
        try:
            response = await asyncio.wait_for(
                self._client.request(endpoint.method.upper(), endpoint.url, timeout=timeout),
                timeout=timeout,
            )
        except Exception as exc:  # noqa: BLE001 - best effort poll
            logger.debug("Readiness poll of %s failed: %s", endpoint.url, exc)
            return False
        if not response.is_success:
            return False
        try:
            payload = response.json()
        except ValueError:
            return True
        return payload_reports_ready(payload)

    async def wait_until_ready(self, endpoint: Endpoint, timeout: float, poll_interval: float) -> bool:
        deadline = self._clock() + timeout
        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                return False
            if await self.is_ready(endpoint, remaining):
                return True
            remaining = deadline - self._clock()
            if remaining <= 0:
                return False
            await self._sleep(min(poll_interval, remaining))


def payload_reports_ready(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return True
    if "available" in payload:
        return bool(payload["available"])
    status = payload.get("status")
    if status is None:
        return True
    return str(status).lower() in READY_STATUSES


class _RunTracker:
    """Mutable bookkeeping for one run; frozen into a WorkflowRun at the end."""

    def __init__(self, work_item_id: str, clock: Callable[[], float]) -> None:
        self.work_item_id = work_item_id
        self.state = WorkflowState.NOT_STARTED
        self.stages: List[WorkflowStage] = []
        self.failed_stage: Optional[StageName] = None
        self.failure_reason: Optional[str] = None
        self._clock = clock
        self._in_flight: Optional[Tuple[StageName, datetime, float]] = None
        self._first_start: Optional[float] = None
        self._last_end: Optional[float] = None

    def transition(self, state: WorkflowState) -> None:
        if state == self.state:
            return
        logger.debug("Work item %s: %s -> %s", self.work_item_id, self.state.name, state.name)
        self.state = state

    def begin_stage(self, name: StageName) -> None:
        now = self._clock()
        if self._first_start is None:
            self._first_start = now
        self._in_flight = (name, utcnow(), now)

    def finish_stage(self, outcome: ProbeOutcome) -> WorkflowStage:
        name, started_at, _ = self._in_flight
        self._in_flight = None
        self._last_end = self._clock()
        stage = WorkflowStage(
            name=name,
            started_at=started_at,
            elapsed_ms=outcome.elapsed_ms,
            succeeded=outcome.succeeded,
            failure_reason=outcome.failure_reason.value if outcome.failure_reason else None,
            status_code=outcome.status_code,
        )
        self.stages.append(stage)
        return stage

    def fail(self, stage: StageName, reason: str) -> None:
        self.failed_stage = stage
        self.failure_reason = reason
        self.transition(WorkflowState.FAILED)

    def abort(self, reason: str) -> None:
        """Stop at the current stage; an in-flight call counts as a failed attempt.

        While settling after a stage the run is already in the next stage's
        state, so the failure names the stage it was waiting to start.
        """
        stage = _STATE_STAGES.get(self.state, PIPELINE_STAGES[0])
        if self._in_flight is not None:
            name, started_at, start = self._in_flight
            stage = name
            self._in_flight = None
            self._last_end = self._clock()
            self.stages.append(
                WorkflowStage(
                    name=name,
                    started_at=started_at,
                    elapsed_ms=max(self._last_end - start, 0.0) * 1000.0,
                    succeeded=False,
                    failure_reason=reason,
                )
            )
        self.fail(stage, reason)

    def build(self) -> WorkflowRun:
        total_ms: Optional[float] = None
        if self._first_start is not None and self._last_end is not None:
            total_ms = max(self._last_end - self._first_start, 0.0) * 1000.0
        return WorkflowRun.from_stages(
            self.work_item_id,
            self.stages,
            total_elapsed_ms=total_ms,
            failed_stage=self.failed_stage,
            failure_reason=self.failure_reason,
        )


class WorkflowOrchestrator:
    """Push work items through the ingest -> index -> search pipeline.

    Each run walks ``NOT_STARTED -> INGESTING -> INDEXING -> SEARCHING ->
    DONE``; any failing stage moves the run to ``FAILED`` and the remaining
    stages are never attempted. Runs for different work items share no
    state beyond the service endpoints.
    """

    def __init__(
        self,
        prober: Prober,
        pipeline: WorkflowPipeline,
        *,
        poller: Optional[ReadinessCheck] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        pipeline.validate()
        self._prober = prober
        self._pipeline = pipeline
        self._poller = poller
        self._clock = clock
        self._sleep = sleep

    async def run(self, work_item_id: str, *, deadline: Optional[float] = None) -> WorkflowRun:
        tracker = _RunTracker(str(work_item_id), self._clock)
        if deadline is None:
            await self._advance(tracker)
        else:
            remaining = deadline - self._clock()
            if remaining <= 0:
                tracker.abort(DEADLINE_EXCEEDED)
            else:
                try:
                    await asyncio.wait_for(self._advance(tracker), timeout=remaining)
                except asyncio.TimeoutError:
                    logger.error(
                        "Work item %s hit the suite deadline while %s",
                        work_item_id,
                        tracker.state.value,
                    )
                    tracker.abort(DEADLINE_EXCEEDED)

        run = tracker.build()
        if run.overall_succeeded:
            logger.info("Work item %s completed in %.1fms", run.work_item_id, run.total_elapsed_ms or 0.0)
        return run

    async def run_many(
        self,
        work_item_ids: Iterable[str],
        *,
        concurrency: int = 1,
        interval: float = 0.0,
        deadline: Optional[float] = None,
    ) -> List[WorkflowRun]:
        """Run work items independently; results keep the input order."""
        if concurrency < 1:
            raise ConfigurationError(f"workflow concurrency must be >= 1 (got {concurrency})")
        items = [str(item) for item in work_item_ids]

        if concurrency == 1:
            runs: List[WorkflowRun] = []
            for idx, item in enumerate(items):
                if idx and interval > 0:
                    await self._pause(interval, deadline)
                runs.append(await self.run(item, deadline=deadline))
            return runs

        semaphore = asyncio.Semaphore(concurrency)

        async def guarded(item: str) -> WorkflowRun:
            async with semaphore:
                return await self.run(item, deadline=deadline)

        return list(await asyncio.gather(*(guarded(item) for item in items)))

    async def _advance(self, tracker: _RunTracker) -> None:
        for position, name in enumerate(PIPELINE_STAGES):
            tracker.transition(_STAGE_STATES[name])
            endpoint = self._pipeline.stage_endpoint(name).render(work_item=tracker.work_item_id)

            tracker.begin_stage(name)
            outcome = await self._prober.probe(endpoint, self._pipeline.stage_timeout)
            stage = tracker.finish_stage(outcome)
            if not stage.succeeded:
                logger.error(
                    "Work item %s failed at %s stage (%s %s): %s",
                    tracker.work_item_id,
                    name.value,
                    endpoint.method,
                    endpoint.url,
                    outcome.detail or stage.failure_reason,
                )
                tracker.fail(name, stage.failure_reason or "stage_failed")
                return
            logger.debug("Work item %s %s took %.1fms", tracker.work_item_id, name.value, stage.elapsed_ms)

            if position + 1 < len(PIPELINE_STAGES):
                tracker.transition(_STAGE_STATES[PIPELINE_STAGES[position + 1]])
            policy = self._pipeline.settle_after(name)
            if policy is not None and not await self._settle(policy, tracker.work_item_id):
                logger.error(
                    "Work item %s: %s result not ready after %.1fs",
                    tracker.work_item_id,
                    name.value,
                    policy.readiness_timeout,
                )
                tracker.fail(name, READINESS_TIMEOUT)
                return

        tracker.transition(WorkflowState.DONE)

    async def _settle(self, policy: SettlePolicy, work_item_id: str) -> bool:
        if policy.readiness is not None and self._poller is not None:
            endpoint = policy.readiness.render(work_item=work_item_id)
            return await self._poller.wait_until_ready(endpoint, policy.readiness_timeout, policy.poll_interval)
        if policy.delay_seconds > 0:
            await self._sleep(policy.delay_seconds)
        return True

    async def _pause(self, seconds: float, deadline: Optional[float]) -> None:
        if deadline is not None:
            seconds = min(seconds, max(deadline - self._clock(), 0.0))
        if seconds > 0:
            await self._sleep(seconds)
