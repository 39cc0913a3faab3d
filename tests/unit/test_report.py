"""
Unit tests for report serialization.
"""

import json

import pytest

from searchbench.harness.models import BenchmarkReport, LoadTestResult, StageName, WorkflowRun, WorkflowStage, utcnow
from searchbench.harness.report import REPORT_FILENAME, report_to_dict, write_report
from tests.fakes import failed, ok


@pytest.fixture
def report(search_endpoint) -> BenchmarkReport:
    load = LoadTestResult.from_outcomes(search_endpoint, [ok(10.0), ok(30.0), failed()], requested_count=3)
    ingest = WorkflowStage(name=StageName.INGEST, started_at=utcnow(), elapsed_ms=120.0, succeeded=True)
    index = WorkflowStage(
        name=StageName.INDEX,
        started_at=utcnow(),
        elapsed_ms=8.0,
        succeeded=False,
        failure_reason="non_success_status",
        status_code=503,
    )
    run = WorkflowRun.from_stages("84", [ingest, index], total_elapsed_ms=130.0, failure_reason="non_success_status")
    return BenchmarkReport(suite_started_at=utcnow(), load_tests=(load,), workflows=(run,), suite_finished_at=utcnow())


@pytest.mark.unit
class TestReportSerialization:
    """Tests for report_to_dict and write_report."""

    def test_summary(self, report):
        data = report_to_dict(report)

        assert data["summary"]["failed_load_tests"] == 1
        assert data["summary"]["failed_workflows"] == 1
        assert data["summary"]["succeeded"] is False

    def test_load_test_fields(self, report):
        entry = report_to_dict(report)["load_tests"][0]

        assert entry["endpoint"]["url"] == "http://search.test/search?q=test"
        assert entry["average_latency_ms"] == pytest.approx(20.0)
        assert entry["success_rate"] == pytest.approx(100.0 * 2 / 3)
        assert entry["failures"] == {"non_success_status": 1}
        assert entry["failed"] is True
        assert len(entry["outcomes"]) == 3

    def test_unattempted_stage_is_null(self, report):
        workflow = report_to_dict(report)["workflows"][0]

        assert workflow["stage_elapsed_ms"] == {"ingest": 120.0, "index": 8.0, "search": None}
        assert workflow["failed_stage"] == "index"
        assert [stage["name"] for stage in workflow["stages"]] == ["ingest", "index"]
        assert workflow["stages"][1]["status_code"] == 503

    def test_outcomes_can_be_omitted(self, report):
        entry = report_to_dict(report, include_outcomes=False)["load_tests"][0]

        assert "outcomes" not in entry

    def test_write_report(self, report, tmp_path):
        path = write_report(report, tmp_path / "results")

        assert path == tmp_path / "results" / REPORT_FILENAME
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["workflows"][0]["work_item_id"] == "84"
        assert data["suite_finished_at"] is not None
