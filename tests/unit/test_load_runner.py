"""
Unit tests for LoadTestDriver.

Tests:
- Request count and concurrency bounds
- Readiness gate for unreachable services
- Inter-request spacing
- Deadline truncation
- Parameter validation
"""

import time

import pytest

from searchbench.harness.errors import ConfigurationError
from searchbench.harness.load_runner import LoadTestDriver, validate_load_parameters
from searchbench.harness.models import FailureReason
from tests.fakes import FakeClock, FakeProber, SleepRecorder, failed, ok

STATUS_URL = "http://search.test/status"
SEARCH_URL = "http://search.test/search?q=test"


@pytest.mark.unit
class TestLoadTestDriver:
    """Tests for run_load_test."""

    @pytest.mark.asyncio
    async def test_all_requests_succeed(self, search_endpoint):
        prober = FakeProber({SEARCH_URL: ok(50.0)})

        result = await LoadTestDriver(prober).run_load_test(search_endpoint, 20, 0.0, 5, 1.0)

        assert result.sample_count == 20
        assert result.requested_count == 20
        assert result.success_rate == 100.0
        assert result.average_latency_ms == pytest.approx(50.0)
        assert result.truncated is False
        assert prober.urls()[0] == STATUS_URL
        assert prober.urls()[1:] == [SEARCH_URL] * 20

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, search_endpoint):
        prober = FakeProber(delay=0.01)

        result = await LoadTestDriver(prober).run_load_test(search_endpoint, 12, 0.0, 3, 1.0)

        assert result.sample_count == 12
        assert prober.max_in_flight == 3

    @pytest.mark.asyncio
    async def test_exact_request_count_with_uneven_lanes(self, search_endpoint):
        prober = FakeProber()

        result = await LoadTestDriver(prober).run_load_test(search_endpoint, 7, 0.0, 3, 1.0)

        assert result.sample_count == 7
        assert prober.urls().count(SEARCH_URL) == 7

    @pytest.mark.asyncio
    async def test_mixed_outcomes(self, search_endpoint):
        outcomes = iter([ok(10.0), failed(FailureReason.TIMEOUT), ok(30.0), failed()])
        prober = FakeProber({SEARCH_URL: lambda endpoint: next(outcomes)})

        result = await LoadTestDriver(prober).run_load_test(search_endpoint, 4, 0.0, 1, 1.0)

        assert result.success_rate == pytest.approx(50.0)
        assert result.average_latency_ms == pytest.approx(20.0)
        assert result.failure_breakdown() == {"timeout": 1, "non_success_status": 1}

    @pytest.mark.asyncio
    async def test_unreachable_service_is_skipped(self, search_endpoint):
        prober = FakeProber({STATUS_URL: failed(FailureReason.CONNECTION_REFUSED)})

        result = await LoadTestDriver(prober).run_load_test(search_endpoint, 20, 0.1, 1, 1.0)

        assert result.service_reachable is False
        assert result.sample_count == 0
        assert result.requested_count == 20
        assert prober.urls() == [STATUS_URL]

    @pytest.mark.asyncio
    async def test_custom_status_path(self, search_endpoint):
        prober = FakeProber()

        await LoadTestDriver(prober).run_load_test(search_endpoint, 1, 0.0, 1, 1.0, status_path="/health")

        assert prober.urls()[0] == "http://search.test/health"

    @pytest.mark.asyncio
    async def test_readiness_check_can_be_disabled(self, search_endpoint):
        prober = FakeProber()

        await LoadTestDriver(prober).run_load_test(search_endpoint, 2, 0.0, 1, 1.0, check_readiness=False)

        assert prober.urls() == [SEARCH_URL, SEARCH_URL]

    @pytest.mark.asyncio
    async def test_spacing_between_dispatches(self, search_endpoint):
        sleep = SleepRecorder()
        prober = FakeProber()

        await LoadTestDriver(prober, sleep=sleep).run_load_test(search_endpoint, 4, 0.1, 1, 1.0)

        assert len(sleep.calls) == 3
        assert all(0.0 < wait <= 0.1 for wait in sleep.calls)

    @pytest.mark.asyncio
    async def test_expired_deadline_sends_nothing(self, search_endpoint):
        prober = FakeProber()

        result = await LoadTestDriver(prober).run_load_test(
            search_endpoint, 5, 0.0, 1, 1.0, deadline=time.monotonic() - 1.0
        )

        assert result.sample_count == 0
        assert result.truncated is True
        assert prober.calls == []

    @pytest.mark.asyncio
    async def test_deadline_truncates(self, search_endpoint):
        prober = FakeProber()

        result = await LoadTestDriver(prober).run_load_test(
            search_endpoint, 100, 0.05, 1, 1.0, deadline=time.monotonic() + 0.12
        )

        assert result.truncated is True
        assert 0 < result.sample_count < 100
        assert result.requested_count == 100

    @pytest.mark.asyncio
    async def test_spacing_wait_is_capped_by_deadline(self, search_endpoint):
        clock = FakeClock()
        prober = FakeProber()

        result = await LoadTestDriver(prober, clock=clock, sleep=clock.sleep).run_load_test(
            search_endpoint, 3, 2.0, 1, 1.0, deadline=0.2
        )

        assert clock.sleeps == [pytest.approx(0.2)]
        assert result.sample_count == 1
        assert result.truncated is True

    @pytest.mark.asyncio
    async def test_long_delay_returns_at_deadline(self, search_endpoint):
        started = time.monotonic()

        result = await LoadTestDriver(FakeProber()).run_load_test(
            search_endpoint, 3, 2.0, 1, 1.0, deadline=started + 0.2
        )

        assert time.monotonic() - started < 1.0
        assert result.sample_count == 1
        assert result.truncated is True


@pytest.mark.unit
class TestValidateLoadParameters:
    """Tests for load parameter validation."""

    @pytest.mark.parametrize(
        "request_count,delay,concurrency,timeout",
        [
            (0, 0.1, 1, 5.0),
            (20, -0.1, 1, 5.0),
            (20, 0.1, 0, 5.0),
            (20, 0.1, 1, 0.0),
        ],
    )
    def test_rejects_invalid(self, request_count, delay, concurrency, timeout):
        with pytest.raises(ConfigurationError):
            validate_load_parameters(request_count, delay, concurrency, timeout)

    @pytest.mark.asyncio
    async def test_driver_validates_before_probing(self, search_endpoint):
        prober = FakeProber()

        with pytest.raises(ConfigurationError):
            await LoadTestDriver(prober).run_load_test(search_endpoint, 0, 0.0, 1, 1.0)

        assert prober.calls == []
