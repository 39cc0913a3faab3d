"""Append-only collector that freezes measurements into a BenchmarkReport."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from searchbench.harness.errors import AlreadyFinalizedError
from searchbench.harness.models import BenchmarkReport, LoadTestResult, WorkflowRun, utcnow

logger = logging.getLogger(__name__)


class ResultAggregator:
    """Collect results from the measuring components.

    Results are handed over, not shared: callers must not touch a result
    after recording it. All writes go through one lock so concurrent
    producers are serialized. Load tests are reported in the order they
    were initiated (``position``), not the order they finished.
    """

    def __init__(
        self,
        suite_started_at: Optional[datetime] = None,
        *,
        min_success_rate: float = 100.0,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._suite_started_at = suite_started_at or now()
        self._min_success_rate = min_success_rate
        self._now = now
        self._lock = threading.Lock()
        self._load_tests: List[Tuple[int, int, LoadTestResult]] = []
        self._workflows: List[Tuple[int, int, WorkflowRun]] = []
        self._arrivals = 0
        self._report: Optional[BenchmarkReport] = None

    @property
    def finalized(self) -> bool:
        with self._lock:
            return self._report is not None

    def record_load_test(self, result: LoadTestResult, *, position: Optional[int] = None) -> None:
        with self._lock:
            self._ensure_open("load test")
            order = self._arrivals if position is None else position
            self._load_tests.append((order, self._arrivals, result))
            self._arrivals += 1

    def record_workflow(self, run: WorkflowRun, *, position: Optional[int] = None) -> None:
        with self._lock:
            self._ensure_open("workflow run")
            order = self._arrivals if position is None else position
            self._workflows.append((order, self._arrivals, run))
            self._arrivals += 1

    def finalize(self) -> BenchmarkReport:
        """Freeze and return the report; repeated calls return the same object."""
        with self._lock:
            if self._report is not None:
                return self._report
            self._report = BenchmarkReport(
                suite_started_at=self._suite_started_at,
                load_tests=tuple(item[2] for item in sorted(self._load_tests, key=lambda item: item[:2])),
                workflows=tuple(item[2] for item in sorted(self._workflows, key=lambda item: item[:2])),
                suite_finished_at=self._now(),
                min_success_rate=self._min_success_rate,
            )
            logger.info(
                "Report finalized: %s load test(s), %s workflow run(s), %s failure(s)",
                len(self._report.load_tests),
                len(self._report.workflows),
                self._report.failure_count,
            )
            return self._report

    def _ensure_open(self, kind: str) -> None:
        if self._report is not None:
            raise AlreadyFinalizedError(f"Cannot record {kind}: report already finalized")
