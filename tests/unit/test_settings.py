"""
Unit Tests - Configuration
"""
from datetime import datetime

import pytest
from pydantic import ValidationError

from txn_warehouse.config.settings import DatabaseSettings, EtlSettings, Settings


class TestSettings:
    """Tests for application settings"""

    def test_testing_environment(self, test_settings):
        assert test_settings.app_env == "testing"
        assert test_settings.debug is True
        assert not test_settings.is_production

    def test_invalid_environment(self):
        with pytest.raises(ValidationError):
            Settings(app_env="moon")

    def test_etl_defaults(self, test_settings):
        etl = test_settings.etl
        assert etl.batch_size == 10_000
        assert etl.max_workers == 4
        assert etl.retry_attempts == 2
        assert etl.min_date == datetime(2000, 1, 1)

    def test_empty_date_window_rejected(self):
        with pytest.raises(ValidationError):
            EtlSettings(min_date=datetime(2030, 1, 1), max_date=datetime(2020, 1, 1))

    def test_database_url_override(self):
        settings = DatabaseSettings(url="sqlite+aiosqlite:///local.db")
        assert settings.async_url == "sqlite+aiosqlite:///local.db"

    def test_postgres_url(self):
        settings = DatabaseSettings(host="db", port=5433, db="wh", user="etl", password="pw", url=None)
        assert settings.async_url == "postgresql+asyncpg://etl:pw@db:5433/wh"
