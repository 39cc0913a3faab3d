"""Load tests, workflow timing and result aggregation."""

from .aggregator import ResultAggregator
from .errors import AlreadyFinalizedError, ConfigurationError, HarnessError
from .load_runner import LoadTestDriver
from .models import (
    BenchmarkReport,
    Endpoint,
    FailureReason,
    LoadTestResult,
    ProbeOutcome,
    StageName,
    WorkflowRun,
    WorkflowStage,
    WorkflowState,
)
from .plan import RunPlan, default_plan, load_plan
from .prober import EndpointProber
from .suite import BenchmarkSuite, exit_code, run_suite
from .workflow_runner import SettlePolicy, WorkflowOrchestrator, WorkflowPipeline

__all__ = [
    "AlreadyFinalizedError",
    "BenchmarkReport",
    "BenchmarkSuite",
    "ConfigurationError",
    "Endpoint",
    "EndpointProber",
    "FailureReason",
    "HarnessError",
    "LoadTestDriver",
    "LoadTestResult",
    "ProbeOutcome",
    "ResultAggregator",
    "RunPlan",
    "SettlePolicy",
    "StageName",
    "WorkflowOrchestrator",
    "WorkflowPipeline",
    "WorkflowRun",
    "WorkflowStage",
    "WorkflowState",
    "default_plan",
    "exit_code",
    "load_plan",
    "run_suite",
]
