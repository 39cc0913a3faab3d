"""
Unit tests for environment-driven settings.
"""

import pytest

from searchbench.config import Settings


@pytest.mark.unit
class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("REQUEST_COUNT", raising=False)

        settings = Settings(_env_file=None)

        assert settings.request_count == 20
        assert settings.ingestion_base_url == "http://0.0.0.0:7001"
        assert settings.work_item_ids == ["84", "11", "1342"]

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("REQUEST_COUNT", "5")
        monkeypatch.setenv("SEARCH_BASE_URL", "http://search.internal:9000")

        settings = Settings(_env_file=None)

        assert settings.request_count == 5
        assert settings.search_base_url == "http://search.internal:9000"

    def test_work_items_ignore_blanks(self):
        settings = Settings(_env_file=None, work_items=" 84, ,11 ,")

        assert settings.work_item_ids == ["84", "11"]
