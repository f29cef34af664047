"""Tests for environment-driven settings."""
import secrets

import pytest
from pydantic import ValidationError

from app.config import Settings, WEAK_SECRET_KEYS

LOCAL_DB = "postgresql+asyncpg://localhost/inventario"


def make_settings(**overrides) -> Settings:
    values = {"ENVIRONMENT": "development", "DATABASE_URL": LOCAL_DB}
    values.update(overrides)
    return Settings(**values)


class TestDatabaseUrl:
    def test_plain_postgres_url_gets_async_driver(self):
        s = make_settings(DATABASE_URL="postgresql://bodega:clave@db:5432/inventario")
        assert s.DATABASE_URL == "postgresql+asyncpg://bodega:clave@db:5432/inventario"

    @pytest.mark.parametrize("url", [LOCAL_DB, "sqlite+aiosqlite:///./local.db"])
    def test_async_urls_unchanged(self, url):
        assert make_settings(DATABASE_URL=url).DATABASE_URL == url


class TestEnvironment:
    def test_development_keeps_debug_and_docs(self):
        s = make_settings()
        assert s.is_production is False
        assert s.DEBUG is True
        assert s.DOCS_ENABLED is True
        assert s.ACCESS_TOKEN_EXPIRE_MINUTES == 120

    @pytest.mark.parametrize("secret", sorted(WEAK_SECRET_KEYS) + ["corta"])
    def test_production_refuses_weak_secrets(self, secret):
        with pytest.raises(ValidationError):
            make_settings(ENVIRONMENT="production", SECRET_KEY=secret)

    @pytest.mark.parametrize("environment", ["production", "staging"])
    def test_deployed_environments_force_debug_off(self, environment):
        s = make_settings(ENVIRONMENT=environment, SECRET_KEY=secrets.token_urlsafe(32), DEBUG=True)
        assert s.is_production is True
        assert s.DEBUG is False
        assert s.sqlalchemy_echo is False
        assert s.DOCS_ENABLED is False


class TestSnapshotSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("CRON_SECRET", raising=False)
        monkeypatch.delenv("SNAPSHOT_SCHEDULER_ENABLED", raising=False)
        s = make_settings()
        assert s.CRON_SECRET is None
        assert s.SNAPSHOT_SCHEDULER_ENABLED is False
        assert (s.SNAPSHOT_HOUR, s.SNAPSHOT_MINUTE) == (23, 59)
        assert s.SNAPSHOT_TIMEZONE == "America/Caracas"
        assert s.LOW_STOCK_CRITICAL_RATIO == 0.5

    def test_values_read_from_environment(self, monkeypatch):
        monkeypatch.setenv("SNAPSHOT_HOUR", "6")
        monkeypatch.setenv("CRON_SECRET", "cron-bodega")
        s = make_settings()
        assert s.SNAPSHOT_HOUR == 6
        assert s.CRON_SECRET == "cron-bodega"

    @pytest.mark.parametrize(
        "field,value",
        [("SNAPSHOT_HOUR", 24), ("SNAPSHOT_MINUTE", 60), ("LOW_STOCK_CRITICAL_RATIO", 0)],
    )
    def test_out_of_range_values_rejected(self, field, value):
        with pytest.raises(ValidationError):
            make_settings(**{field: value})
