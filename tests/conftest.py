"""
Shared fixtures for the harness tests.

- Endpoints of three fake services on *.test hosts
- A workflow pipeline wired to those services
- A small run plan for end-to-end suite tests
"""

import pytest

from searchbench.harness.models import Endpoint
from searchbench.harness.plan import RunPlan, parse_plan
from searchbench.harness.workflow_runner import WorkflowPipeline

INGEST_BASE = "http://ingest.test"
INDEX_BASE = "http://index.test"
SEARCH_BASE = "http://search.test"


@pytest.fixture
def search_endpoint() -> Endpoint:
    return Endpoint(service="search-service", base_url=SEARCH_BASE, path="/search?q=test")


@pytest.fixture
def pipeline() -> WorkflowPipeline:
    return WorkflowPipeline(
        ingest=Endpoint("ingestion-service", INGEST_BASE, "/ingest/{work_item}", "POST"),
        index=Endpoint("indexing-service", INDEX_BASE, "/index/update/{work_item}", "POST"),
        search=Endpoint("search-service", SEARCH_BASE, "/search?q=test"),
        stage_timeout=1.0,
    )


def build_plan_data(**overrides) -> dict:
    data = {
        "services": [
            {
                "name": "ingestion-service",
                "base_url": INGEST_BASE,
                "endpoints": [{"path": "/status"}, {"path": "/ingest/list"}],
            },
            {
                "name": "indexing-service",
                "base_url": INDEX_BASE,
                "endpoints": [{"path": "/index/status"}],
            },
            {
                "name": "search-service",
                "base_url": SEARCH_BASE,
                "endpoints": [{"path": "/search?q=test"}],
            },
        ],
        "load": {"request_count": 3, "inter_request_delay": 0.0, "concurrency": 1, "per_request_timeout": 1.0},
        "workflow": {
            "ingest": {"service": "ingestion-service", "path": "/ingest/{work_item}", "method": "POST"},
            "index": {"service": "indexing-service", "path": "/index/update/{work_item}", "method": "POST"},
            "search": {"service": "search-service", "path": "/search?q=test"},
            "after_ingest": {"readiness_path": "/ingest/status/{work_item}", "readiness_timeout": 1.0},
            "stage_timeout": 1.0,
            "work_items": ["84", "11"],
        },
    }
    data.update(overrides)
    return data


@pytest.fixture
def run_plan() -> RunPlan:
    return parse_plan(build_plan_data())
