"""Common data models for benchmark measurements."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from searchbench.harness.errors import ConfigurationError
from searchbench.harness.stats import mean, percentile


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FailureReason(str, Enum):
    """Why a single request did not succeed."""

    TIMEOUT = "timeout"
    CONNECTION_REFUSED = "connection_refused"
    NON_SUCCESS_STATUS = "non_success_status"
    OTHER_TRANSPORT_ERROR = "other_transport_error"


@dataclass(frozen=True)
class Endpoint:
    """An HTTP endpoint of a service under test.

    ``path`` may be a template such as ``/ingest/{work_item}``; call
    :meth:`render` to fill it before probing.
    """

    service: str
    base_url: str
    path: str
    method: str = "GET"

    @property
    def url(self) -> str:
        path = self.path if self.path.startswith("/") else f"/{self.path}"
        return f"{self.base_url.rstrip('/')}{path}"

    @property
    def label(self) -> str:
        return f"{self.method.upper()} {self.path}"

    def render(self, **params: Any) -> "Endpoint":
        try:
            path = self.path.format_map(params)
        except (KeyError, IndexError, ValueError) as exc:
            raise ConfigurationError(
                f"Cannot render path template {self.path!r} for {self.service}: {exc}"
            ) from exc
        return replace(self, path=path)

    def status_endpoint(self, status_path: str = "/status") -> "Endpoint":
        return Endpoint(service=self.service, base_url=self.base_url, path=status_path, method="GET")


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of one timed request. Never mutated after creation."""

    started_at: datetime
    elapsed_ms: float
    succeeded: bool
    failure_reason: Optional[FailureReason] = None
    status_code: Optional[int] = None
    detail: Optional[str] = None


@dataclass(frozen=True)
class LoadTestResult:
    """Aggregated statistics for repeated probes of a single endpoint.

    ``average_latency_ms`` and the latency percentiles only cover succeeded
    probes; failed probes count towards ``success_rate`` alone. When the
    service readiness probe failed, ``service_reachable`` is ``False`` and
    no samples were taken.
    """

    endpoint: Endpoint
    sample_count: int
    average_latency_ms: Optional[float]
    success_rate: float
    outcomes: Tuple[ProbeOutcome, ...] = ()
    service_reachable: bool = True
    requested_count: int = 0
    started_at: datetime = field(default_factory=utcnow)
    truncated: bool = False
    p50_latency_ms: Optional[float] = None
    p95_latency_ms: Optional[float] = None
    min_latency_ms: Optional[float] = None
    max_latency_ms: Optional[float] = None

    @classmethod
    def from_outcomes(
        cls,
        endpoint: Endpoint,
        outcomes: Iterable[ProbeOutcome],
        *,
        requested_count: Optional[int] = None,
        started_at: Optional[datetime] = None,
        truncated: bool = False,
    ) -> "LoadTestResult":
        samples = tuple(outcomes)
        sample_count = len(samples)
        latencies = [outcome.elapsed_ms for outcome in samples if outcome.succeeded]
        success_rate = (100.0 * len(latencies) / sample_count) if sample_count else 0.0
        return cls(
            endpoint=endpoint,
            sample_count=sample_count,
            average_latency_ms=mean(latencies),
            success_rate=success_rate,
            outcomes=samples,
            service_reachable=True,
            requested_count=sample_count if requested_count is None else requested_count,
            started_at=started_at or utcnow(),
            truncated=truncated,
            p50_latency_ms=percentile(latencies, 0.5),
            p95_latency_ms=percentile(latencies, 0.95),
            min_latency_ms=min(latencies) if latencies else None,
            max_latency_ms=max(latencies) if latencies else None,
        )

    @classmethod
    def unreachable(
        cls,
        endpoint: Endpoint,
        *,
        requested_count: int,
        started_at: Optional[datetime] = None,
    ) -> "LoadTestResult":
        return cls(
            endpoint=endpoint,
            sample_count=0,
            average_latency_ms=None,
            success_rate=0.0,
            outcomes=(),
            service_reachable=False,
            requested_count=requested_count,
            started_at=started_at or utcnow(),
        )

    @property
    def succeeded_count(self) -> int:
        return len([outcome for outcome in self.outcomes if outcome.succeeded])

    def failure_breakdown(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for outcome in self.outcomes:
            if outcome.failure_reason is None:
                continue
            key = outcome.failure_reason.value
            counts[key] = counts.get(key, 0) + 1
        return counts


class StageName(str, Enum):
    INGEST = "ingest"
    INDEX = "index"
    SEARCH = "search"


PIPELINE_STAGES: Tuple[StageName, ...] = (StageName.INGEST, StageName.INDEX, StageName.SEARCH)


class WorkflowState(Enum):
    NOT_STARTED = "not_started"
    INGESTING = "ingesting"
    INDEXING = "indexing"
    SEARCHING = "searching"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class WorkflowStage:
    name: StageName
    started_at: datetime
    elapsed_ms: float
    succeeded: bool
    failure_reason: Optional[str] = None
    status_code: Optional[int] = None


@dataclass(frozen=True)
class WorkflowRun:
    """Timings for one work item pushed through ingest -> index -> search.

    ``stages`` only holds stages that were actually attempted, so it is
    always a prefix of :data:`PIPELINE_STAGES`.
    """

    work_item_id: str
    stages: Tuple[WorkflowStage, ...]
    total_elapsed_ms: Optional[float]
    overall_succeeded: bool
    failed_stage: Optional[StageName] = None
    failure_reason: Optional[str] = None

    @classmethod
    def from_stages(
        cls,
        work_item_id: str,
        stages: Iterable[WorkflowStage],
        *,
        total_elapsed_ms: Optional[float],
        failed_stage: Optional[StageName] = None,
        failure_reason: Optional[str] = None,
    ) -> "WorkflowRun":
        attempted = tuple(stages)
        names = tuple(stage.name for stage in attempted)
        if names != PIPELINE_STAGES[: len(names)]:
            raise ValueError(f"Stages {names} are not a prefix of the pipeline")
        complete = (
            names == PIPELINE_STAGES
            and all(stage.succeeded for stage in attempted)
            and failed_stage is None
        )
        if not complete and failed_stage is None:
            failed_stage = next(
                (stage.name for stage in attempted if not stage.succeeded),
                PIPELINE_STAGES[len(names)] if len(names) < len(PIPELINE_STAGES) else None,
            )
        return cls(
            work_item_id=work_item_id,
            stages=attempted,
            total_elapsed_ms=total_elapsed_ms if attempted else None,
            overall_succeeded=complete,
            failed_stage=None if complete else failed_stage,
            failure_reason=None if complete else failure_reason,
        )

    def stage(self, name: StageName) -> Optional[WorkflowStage]:
        for stage in self.stages:
            if stage.name == name:
                return stage
        return None

    def stage_elapsed_ms(self, name: StageName) -> Optional[float]:
        stage = self.stage(name)
        return stage.elapsed_ms if stage is not None else None


@dataclass(frozen=True)
class BenchmarkReport:
    """Frozen output of a suite run, handed to the report renderer."""

    suite_started_at: datetime
    load_tests: Tuple[LoadTestResult, ...]
    workflows: Tuple[WorkflowRun, ...]
    suite_finished_at: Optional[datetime] = None
    min_success_rate: float = 100.0

    def load_test_failed(self, result: LoadTestResult) -> bool:
        if not result.service_reachable:
            return True
        return result.success_rate < self.min_success_rate

    @property
    def failed_load_tests(self) -> int:
        return len([result for result in self.load_tests if self.load_test_failed(result)])

    @property
    def failed_workflows(self) -> int:
        return len([run for run in self.workflows if not run.overall_succeeded])

    @property
    def failure_count(self) -> int:
        return self.failed_load_tests + self.failed_workflows

    @property
    def succeeded(self) -> bool:
        return self.failure_count == 0


@dataclass(frozen=True)
class ServiceCheck:
    name: str
    url: str
    ready: bool
    attempts: int
    latency_seconds: float
    detail: str = ""
