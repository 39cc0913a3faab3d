"""Run configuration: services, endpoints, load pattern and workflow items.

A plan is immutable once built. It comes either from a JSON file
(:func:`load_plan`) or from the environment-driven settings
(:func:`default_plan`), which mirror the classic three-service setup:
ingestion on :7001, indexing on :7002 and search on :7003.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from searchbench.config import Settings
from searchbench.harness.errors import ConfigurationError
from searchbench.harness.models import Endpoint
from searchbench.harness.workflow_runner import SettlePolicy, WorkflowPipeline

logger = logging.getLogger(__name__)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class EndpointPlan(_Frozen):
    path: str
    method: str = "GET"


class ServicePlan(_Frozen):
    name: str
    base_url: str
    status_path: str = "/status"
    endpoints: Tuple[EndpointPlan, ...] = ()

    def endpoint(self, path: str, method: str = "GET") -> Endpoint:
        return Endpoint(service=self.name, base_url=self.base_url, path=path, method=method.upper())


class LoadPlan(_Frozen):
    request_count: int = Field(default=20, ge=1)
    inter_request_delay: float = Field(default=0.1, ge=0)
    concurrency: int = Field(default=1, ge=1)
    per_request_timeout: float = Field(default=5.0, gt=0)


class StagePlan(_Frozen):
    service: str
    path: str
    method: str = "GET"


class SettlePlan(_Frozen):
    delay_seconds: float = Field(default=0.0, ge=0)
    readiness_service: Optional[str] = None
    readiness_path: Optional[str] = None
    readiness_timeout: float = Field(default=10.0, gt=0)
    poll_interval: float = Field(default=0.25, gt=0)


class WorkflowPlan(_Frozen):
    ingest: StagePlan
    index: StagePlan
    search: StagePlan
    after_ingest: SettlePlan = SettlePlan()
    after_index: SettlePlan = SettlePlan()
    stage_timeout: float = Field(default=30.0, gt=0)
    work_items: Tuple[str, ...] = ()
    concurrency: int = Field(default=1, ge=1)
    interval: float = Field(default=0.0, ge=0)


class RunPlan(_Frozen):
    services: Tuple[ServicePlan, ...]
    load: LoadPlan = LoadPlan()
    workflow: Optional[WorkflowPlan] = None
    suite_deadline: Optional[float] = Field(default=None, gt=0)
    wait_for_services: bool = False
    service_wait_attempts: int = Field(default=30, ge=1)
    service_wait_interval: float = Field(default=1.0, ge=0)
    min_success_rate: float = Field(default=100.0, ge=0, le=100)

    def check(self) -> None:
        """Cross-reference checks pydantic field constraints cannot express."""
        names = [service.name for service in self.services]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate service name(s): {', '.join(duplicates)}")
        if self.workflow is not None:
            self.pipeline().validate()

    def service(self, name: str) -> ServicePlan:
        for service in self.services:
            if service.name == name:
                return service
        known = ", ".join(service.name for service in self.services) or "<none>"
        raise ConfigurationError(f"Unknown service {name!r} (known: {known})")

    def endpoints(self) -> List[Endpoint]:
        return [
            service.endpoint(item.path, item.method)
            for service in self.services
            for item in service.endpoints
        ]

    def status_endpoints(self) -> List[Endpoint]:
        return [service.endpoint(service.status_path) for service in self.services]

    def pipeline(self) -> Optional[WorkflowPipeline]:
        workflow = self.workflow
        if workflow is None:
            return None
        return WorkflowPipeline(
            ingest=self._stage_endpoint(workflow.ingest),
            index=self._stage_endpoint(workflow.index),
            search=self._stage_endpoint(workflow.search),
            after_ingest=self._settle_policy(workflow.after_ingest, workflow.ingest),
            after_index=self._settle_policy(workflow.after_index, workflow.index),
            stage_timeout=workflow.stage_timeout,
        )

    def select(
        self,
        services: Optional[Iterable[str]] = None,
        endpoints: Optional[Iterable[str]] = None,
    ) -> "RunPlan":
        """Narrow the load tests to the named services and/or endpoint paths."""
        selected = list(self.services)
        if services:
            wanted = list(services)
            selected = [self.service(name) for name in wanted]
        if endpoints:
            paths = list(endpoints)
            known = {item.path for service in selected for item in service.endpoints}
            unknown = [path for path in paths if path not in known]
            if unknown:
                raise ConfigurationError(f"Unknown endpoint(s): {', '.join(unknown)}")
            selected = [
                service.model_copy(
                    update={"endpoints": tuple(item for item in service.endpoints if item.path in paths)}
                )
                for service in selected
            ]
        # Services referenced by the workflow must stay resolvable.
        kept = {service.name for service in selected}
        extra = [
            service.model_copy(update={"endpoints": ()})
            for service in self.services
            if service.name not in kept
        ]
        return self.model_copy(update={"services": tuple(selected) + tuple(extra)})

    def with_overrides(self, **overrides: Any) -> "RunPlan":
        """Return a validated copy with load/workflow/suite fields replaced."""
        load_fields = set(LoadPlan.model_fields)
        load_updates = {key: value for key, value in overrides.items() if key in load_fields and value is not None}
        other = {key: value for key, value in overrides.items() if key not in load_fields and value is not None}
        data = self.model_dump()
        data["load"].update(load_updates)
        data.update(other)
        return parse_plan(data)

    def _stage_endpoint(self, stage: StagePlan) -> Endpoint:
        return self.service(stage.service).endpoint(stage.path, stage.method)

    def _settle_policy(self, settle: SettlePlan, stage: StagePlan) -> SettlePolicy:
        readiness = None
        if settle.readiness_path:
            service = self.service(settle.readiness_service or stage.service)
            readiness = service.endpoint(settle.readiness_path)
        return SettlePolicy(
            delay_seconds=settle.delay_seconds,
            readiness=readiness,
            readiness_timeout=settle.readiness_timeout,
            poll_interval=settle.poll_interval,
        )


def parse_plan(data: Dict[str, Any]) -> RunPlan:
    try:
        plan = RunPlan.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid run plan: {exc}") from exc
    plan.check()
    return plan


def load_plan(path: Path) -> RunPlan:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Unable to read run plan {path}: {exc}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Run plan {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Run plan {path} must be a JSON object")
    logger.info("Loaded run plan from %s", path)
    return parse_plan(data)


def default_plan(settings: Settings) -> RunPlan:
    """Plan covering the ingestion, indexing and search services."""
    status = settings.status_path
    data: Dict[str, Any] = {
        "services": [
            {
                "name": "ingestion-service",
                "base_url": settings.ingestion_base_url,
                "status_path": status,
                "endpoints": [
                    {"path": status},
                    {"path": "/ingest/list"},
                    {"path": "/ingest/status/1342"},
                ],
            },
            {
                "name": "indexing-service",
                "base_url": settings.indexing_base_url,
                "status_path": status,
                "endpoints": [
                    {"path": status},
                    {"path": "/index/status"},
                ],
            },
            {
                "name": "search-service",
                "base_url": settings.search_base_url,
                "status_path": status,
                "endpoints": [
                    {"path": status},
                    {"path": "/search?q=test"},
                    {"path": "/search?q=love&author=Test"},
                ],
            },
        ],
        "load": {
            "request_count": settings.request_count,
            "inter_request_delay": settings.inter_request_delay,
            "concurrency": settings.concurrency,
            "per_request_timeout": settings.per_request_timeout,
        },
        "workflow": {
            "ingest": {"service": "ingestion-service", "path": "/ingest/{work_item}", "method": "POST"},
            "index": {"service": "indexing-service", "path": "/index/update/{work_item}", "method": "POST"},
            "search": {"service": "search-service", "path": "/search?q=test"},
            "after_ingest": {
                "delay_seconds": settings.ingest_settle_seconds,
                "readiness_path": "/ingest/status/{work_item}",
                "readiness_timeout": settings.readiness_timeout,
                "poll_interval": settings.readiness_poll_interval,
            },
            # The indexing service exposes no per-item signal; fixed delay only.
            "after_index": {"delay_seconds": settings.index_settle_seconds},
            "stage_timeout": max(settings.per_request_timeout, 30.0),
            "work_items": settings.work_item_ids,
            "concurrency": settings.workflow_concurrency,
            "interval": settings.workflow_interval,
        },
        "suite_deadline": settings.suite_deadline,
        "wait_for_services": settings.wait_for_services,
        "service_wait_attempts": settings.service_wait_attempts,
        "service_wait_interval": settings.service_wait_interval,
        "min_success_rate": settings.min_success_rate,
    }
    return parse_plan(data)
