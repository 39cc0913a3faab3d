"""Harness settings loaded from the environment via pydantic-settings."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Default run parameters; a run-plan file overrides these."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Services under test
    ingestion_base_url: str = "http://0.0.0.0:7001"
    indexing_base_url: str = "http://0.0.0.0:7002"
    search_base_url: str = "http://0.0.0.0:7003"
    status_path: str = "/status"

    # Load tests
    request_count: int = 20
    inter_request_delay: float = 0.1
    concurrency: int = 1
    per_request_timeout: float = 5.0
    min_success_rate: float = 100.0

    # Workflows
    ingest_settle_seconds: float = 2.0
    index_settle_seconds: float = 3.0
    readiness_timeout: float = 10.0
    readiness_poll_interval: float = 0.25
    workflow_interval: float = 1.0
    workflow_concurrency: int = 1
    work_items: str = "84,11,1342"

    # Suite
    suite_deadline: Optional[float] = None
    wait_for_services: bool = False
    service_wait_attempts: int = 30
    service_wait_interval: float = 1.0
    output_dir: Path = Field(default=Path("benchmark_results"))

    # Application
    log_level: str = "INFO"

    @property
    def work_item_ids(self) -> list[str]:
        """Split the comma separated work item list."""
        return [item.strip() for item in self.work_items.split(",") if item.strip()]


# Global settings instance
settings = Settings()
