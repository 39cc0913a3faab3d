"""
Unit tests for ResultAggregator.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from searchbench.harness.aggregator import ResultAggregator
from searchbench.harness.errors import AlreadyFinalizedError
from searchbench.harness.models import LoadTestResult, WorkflowRun
from tests.fakes import ok


def _result(endpoint, samples: int) -> LoadTestResult:
    return LoadTestResult.from_outcomes(endpoint, [ok()] * samples)


@pytest.mark.unit
class TestResultAggregator:
    """Tests for collecting and freezing results."""

    def test_finalize_is_idempotent(self, search_endpoint):
        aggregator = ResultAggregator()
        aggregator.record_load_test(_result(search_endpoint, 1))

        first = aggregator.finalize()
        second = aggregator.finalize()

        assert first is second
        assert aggregator.finalized is True
        assert len(first.load_tests) == 1
        assert first.suite_finished_at is not None

    def test_record_after_finalize_fails(self, search_endpoint):
        aggregator = ResultAggregator()
        aggregator.finalize()

        with pytest.raises(AlreadyFinalizedError):
            aggregator.record_load_test(_result(search_endpoint, 1))
        with pytest.raises(AlreadyFinalizedError):
            aggregator.record_workflow(WorkflowRun.from_stages("84", [], total_elapsed_ms=None))

    def test_orders_by_initiation_position(self, search_endpoint):
        aggregator = ResultAggregator()
        third = _result(search_endpoint, 3)
        first = _result(search_endpoint, 1)
        second = _result(search_endpoint, 2)

        aggregator.record_load_test(third, position=2)
        aggregator.record_load_test(first, position=0)
        aggregator.record_load_test(second, position=1)

        assert aggregator.finalize().load_tests == (first, second, third)

    def test_arrival_order_without_position(self):
        aggregator = ResultAggregator()
        runs = [WorkflowRun.from_stages(item, [], total_elapsed_ms=None) for item in ("84", "11", "1342")]
        for run in runs:
            aggregator.record_workflow(run)

        assert [run.work_item_id for run in aggregator.finalize().workflows] == ["84", "11", "1342"]

    def test_concurrent_producers(self, search_endpoint):
        aggregator = ResultAggregator()

        with ThreadPoolExecutor(max_workers=8) as pool:
            for position in range(50):
                pool.submit(aggregator.record_load_test, _result(search_endpoint, 1), position=position)

        assert len(aggregator.finalize().load_tests) == 50

    def test_min_success_rate_is_carried(self):
        report = ResultAggregator(min_success_rate=90.0).finalize()

        assert report.min_success_rate == 90.0
        assert report.succeeded is True
