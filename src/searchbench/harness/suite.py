"""Benchmark suite runner: load tests per endpoint, workflows per work item."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Callable, List, Optional

import httpx

from searchbench.harness.aggregator import ResultAggregator
from searchbench.harness.boot_runner import ServiceReadinessChecker
from searchbench.harness.load_runner import LoadTestDriver
from searchbench.harness.models import BenchmarkReport, ServiceCheck
from searchbench.harness.plan import RunPlan
from searchbench.harness.prober import EndpointProber, Prober
from searchbench.harness.report import write_report
from searchbench.harness.workflow_runner import ReadinessCheck, ReadinessPoller, WorkflowOrchestrator

logger = logging.getLogger(__name__)


class BenchmarkSuite:
    """Run every load test and workflow of a plan into one report.

    The plan is validated on construction, so configuration errors surface
    before any request is sent. Measurement failures never abort the suite;
    they end up as failed entries in the report.
    """

    def __init__(
        self,
        plan: RunPlan,
        *,
        prober: Optional[Prober] = None,
        poller: Optional[ReadinessCheck] = None,
        output_dir: Optional[Path] = None,
        run_load_tests: bool = True,
        run_workflows: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        plan.check()
        self.plan = plan
        self._pipeline = plan.pipeline()
        self._prober = prober
        self._poller = poller
        self._output_dir = output_dir
        self._run_load_tests = run_load_tests
        self._run_workflows = run_workflows and self._pipeline is not None
        self._clock = clock
        self.service_checks: List[ServiceCheck] = []
        self.report_path: Optional[Path] = None

    async def run(self) -> BenchmarkReport:
        if self._prober is not None:
            return await self._execute(self._prober, self._poller)

        async with httpx.AsyncClient(limits=self._client_limits()) as client:
            return await self._execute(EndpointProber(client), self._poller or ReadinessPoller(client))

    async def _execute(self, prober: Prober, poller: Optional[ReadinessCheck]) -> BenchmarkReport:
        plan = self.plan
        aggregator = ResultAggregator(min_success_rate=plan.min_success_rate)
        deadline = self._clock() + plan.suite_deadline if plan.suite_deadline else None
        logger.info(
            "Starting benchmark suite: %s endpoint(s), %s work item(s)%s",
            len(plan.endpoints()) if self._run_load_tests else 0,
            len(plan.workflow.work_items) if self._run_workflows and plan.workflow else 0,
            f", deadline {plan.suite_deadline:.0f}s" if plan.suite_deadline else "",
        )

        if plan.wait_for_services:
            await self._wait_for_services(prober, deadline)

        if self._run_load_tests:
            await self._run_load_suite(prober, aggregator, deadline)

        if self._run_workflows:
            await self._run_workflow_suite(prober, poller, aggregator, deadline)

        report = aggregator.finalize()
        if self._output_dir is not None:
            self.report_path = write_report(report, self._output_dir)
        logger.info(
            "Benchmark suite finished: %s failed load test(s), %s failed workflow run(s)",
            report.failed_load_tests,
            report.failed_workflows,
        )
        return report

    async def _wait_for_services(self, prober: Prober, deadline: Optional[float]) -> None:
        checker = ServiceReadinessChecker(
            prober,
            attempts=self.plan.service_wait_attempts,
            poll_interval=self.plan.service_wait_interval,
            timeout=self.plan.load.per_request_timeout,
            clock=self._clock,
        )
        self.service_checks = await checker.wait_for_all(self.plan.status_endpoints(), deadline=deadline)
        not_ready = [check.name for check in self.service_checks if not check.ready]
        if not_ready:
            logger.error("Services not ready: %s; continuing, affected tests will fail", ", ".join(not_ready))

    async def _run_load_suite(
        self,
        prober: Prober,
        aggregator: ResultAggregator,
        deadline: Optional[float],
    ) -> None:
        load = self.plan.load
        driver = LoadTestDriver(prober, clock=self._clock)
        position = 0
        for service in self.plan.services:
            for item in service.endpoints:
                endpoint = service.endpoint(item.path, item.method)
                result = await driver.run_load_test(
                    endpoint,
                    load.request_count,
                    load.inter_request_delay,
                    load.concurrency,
                    load.per_request_timeout,
                    deadline=deadline,
                    status_path=service.status_path,
                )
                aggregator.record_load_test(result, position=position)
                position += 1

    async def _run_workflow_suite(
        self,
        prober: Prober,
        poller: Optional[ReadinessCheck],
        aggregator: ResultAggregator,
        deadline: Optional[float],
    ) -> None:
        workflow = self.plan.workflow
        orchestrator = WorkflowOrchestrator(prober, self._pipeline, poller=poller, clock=self._clock)
        runs = await orchestrator.run_many(
            workflow.work_items,
            concurrency=workflow.concurrency,
            interval=workflow.interval,
            deadline=deadline,
        )
        for position, run in enumerate(runs):
            aggregator.record_workflow(run, position=position)

    def _client_limits(self) -> httpx.Limits:
        workflow_concurrency = self.plan.workflow.concurrency if self.plan.workflow else 1
        connections = max(self.plan.load.concurrency, workflow_concurrency) * 2
        return httpx.Limits(max_connections=max(connections, 10), max_keepalive_connections=max(connections, 10))


def run_suite(plan: RunPlan, **kwargs) -> BenchmarkReport:
    """Synchronous entry point around :meth:`BenchmarkSuite.run`."""
    suite = BenchmarkSuite(plan, **kwargs)
    return asyncio.run(suite.run())


def exit_code(report: BenchmarkReport) -> int:
    return 0 if report.failure_count == 0 else 1
