"""Serialization of a BenchmarkReport for the external report renderer."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from searchbench.harness.models import (
    PIPELINE_STAGES,
    BenchmarkReport,
    Endpoint,
    LoadTestResult,
    ProbeOutcome,
    WorkflowRun,
)

logger = logging.getLogger(__name__)

REPORT_FILENAME = "benchmark_report.json"


def report_to_dict(report: BenchmarkReport, *, include_outcomes: bool = True) -> Dict[str, Any]:
    return {
        "suite_started_at": _timestamp(report.suite_started_at),
        "suite_finished_at": _timestamp(report.suite_finished_at),
        "summary": {
            "load_tests": len(report.load_tests),
            "workflows": len(report.workflows),
            "failed_load_tests": report.failed_load_tests,
            "failed_workflows": report.failed_workflows,
            "failure_count": report.failure_count,
            "succeeded": report.succeeded,
            "min_success_rate": report.min_success_rate,
        },
        "load_tests": [
            _load_test_to_dict(result, failed=report.load_test_failed(result), include_outcomes=include_outcomes)
            for result in report.load_tests
        ],
        "workflows": [_workflow_to_dict(run) for run in report.workflows],
    }


def write_report(report: BenchmarkReport, output_dir: Path, *, filename: str = REPORT_FILENAME) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / filename
    with output_path.open("w", encoding="utf-8") as handle:
        json.dump(report_to_dict(report), handle, indent=2, sort_keys=True)
    logger.info("Benchmark report written to %s", output_path)
    return output_path


def _endpoint_to_dict(endpoint: Endpoint) -> Dict[str, Any]:
    return {
        "service": endpoint.service,
        "base_url": endpoint.base_url,
        "path": endpoint.path,
        "method": endpoint.method,
        "url": endpoint.url,
    }


def _outcome_to_dict(outcome: ProbeOutcome) -> Dict[str, Any]:
    return {
        "started_at": _timestamp(outcome.started_at),
        "elapsed_ms": outcome.elapsed_ms,
        "succeeded": outcome.succeeded,
        "failure_reason": outcome.failure_reason.value if outcome.failure_reason else None,
        "status_code": outcome.status_code,
    }


def _load_test_to_dict(result: LoadTestResult, *, failed: bool, include_outcomes: bool) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "endpoint": _endpoint_to_dict(result.endpoint),
        "started_at": _timestamp(result.started_at),
        "service_reachable": result.service_reachable,
        "requested_count": result.requested_count,
        "sample_count": result.sample_count,
        "succeeded_count": result.succeeded_count,
        "success_rate": result.success_rate,
        "average_latency_ms": result.average_latency_ms,
        "p50_latency_ms": result.p50_latency_ms,
        "p95_latency_ms": result.p95_latency_ms,
        "min_latency_ms": result.min_latency_ms,
        "max_latency_ms": result.max_latency_ms,
        "failures": result.failure_breakdown(),
        "truncated": result.truncated,
        "failed": failed,
    }
    if include_outcomes:
        payload["outcomes"] = [_outcome_to_dict(outcome) for outcome in result.outcomes]
    return payload


def _workflow_to_dict(run: WorkflowRun) -> Dict[str, Any]:
    return {
        "work_item_id": run.work_item_id,
        "overall_succeeded": run.overall_succeeded,
        "total_elapsed_ms": run.total_elapsed_ms,
        "failed_stage": run.failed_stage.value if run.failed_stage else None,
        "failure_reason": run.failure_reason,
        # Unattempted stages stay null, never zero.
        "stage_elapsed_ms": {name.value: run.stage_elapsed_ms(name) for name in PIPELINE_STAGES},
        "stages": [
            {
                "name": stage.name.value,
                "started_at": _timestamp(stage.started_at),
                "elapsed_ms": stage.elapsed_ms,
                "succeeded": stage.succeeded,
                "failure_reason": stage.failure_reason,
                "status_code": stage.status_code,
            }
            for stage in run.stages
        ],
    }


def _timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None
