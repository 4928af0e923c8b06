"""
Tests for EngineConfig.
"""

import logging

import pytest

from actiongraph.core.config import EngineConfig
from actiongraph.core.errors import ValidationError
from actiongraph.storage.engine import InMemoryActionStore


ENV_VARS = [
    "ACTIONGRAPH_DATABASE_URL",
    "DATABASE_URL",
    "ACTIONGRAPH_SQLITE_TIMEOUT",
    "ACTIONGRAPH_MIRROR_FAMILY_DEPENDENCIES",
    "ACTIONGRAPH_LOG_LEVEL",
    "ACTIONGRAPH_BACKFILL_BATCH_SIZE",
    "ACTIONGRAPH_BACKFILL_DELAY",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestFromEnv:
    def test_defaults(self, clean_env):
        config = EngineConfig.from_env()
        assert config.database_url == "memory://"
        assert config.mirror_family_dependencies is False
        assert config.log_level == "WARNING"
        assert config.backfill_batch_size == 10

    def test_reads_all_variables(self, clean_env):
        clean_env.setenv("ACTIONGRAPH_DATABASE_URL", "sqlite:///tmp/plan.db")
        clean_env.setenv("ACTIONGRAPH_SQLITE_TIMEOUT", "5")
        clean_env.setenv("ACTIONGRAPH_MIRROR_FAMILY_DEPENDENCIES", "yes")
        clean_env.setenv("ACTIONGRAPH_LOG_LEVEL", "debug")
        clean_env.setenv("ACTIONGRAPH_BACKFILL_BATCH_SIZE", "25")
        clean_env.setenv("ACTIONGRAPH_BACKFILL_DELAY", "0.5")

        config = EngineConfig.from_env()

        assert config.sqlite_path == "tmp/plan.db"
        assert config.sqlite_timeout == 5.0
        assert config.mirror_family_dependencies is True
        assert config.log_level == "DEBUG"
        assert config.backfill_batch_size == 25
        assert config.backfill_delay == 0.5

    def test_database_url_fallback(self, clean_env):
        """Should fall back to DATABASE_URL."""
        clean_env.setenv("DATABASE_URL", "plans.db")
        assert EngineConfig.from_env().sqlite_path == "plans.db"

    def test_server_database_url_ignored(self, clean_env):
        """Should ignore a shared DATABASE_URL that is not SQLite."""
        clean_env.setenv("DATABASE_URL", "postgres://app@db/plans")

        config = EngineConfig.from_env()

        assert config.database_url == "memory://"
        assert isinstance(config.open_store(), InMemoryActionStore)

    def test_explicit_url_wins(self, clean_env):
        clean_env.setenv("ACTIONGRAPH_DATABASE_URL", "memory://")
        clean_env.setenv("DATABASE_URL", "other.db")
        assert EngineConfig.from_env().sqlite_path is None

    def test_invalid_boolean(self, clean_env):
        clean_env.setenv("ACTIONGRAPH_MIRROR_FAMILY_DEPENDENCIES", "maybe")
        with pytest.raises(ValidationError) as exc_info:
            EngineConfig.from_env()
        assert exc_info.value.field == "ACTIONGRAPH_MIRROR_FAMILY_DEPENDENCIES"

    def test_invalid_number(self, clean_env):
        clean_env.setenv("ACTIONGRAPH_BACKFILL_BATCH_SIZE", "lots")
        with pytest.raises(ValidationError, match="must be a number"):
            EngineConfig.from_env()


class TestEngineConfig:
    def test_memory_store(self):
        config = EngineConfig()
        assert config.sqlite_path is None
        assert isinstance(config.open_store(), InMemoryActionStore)

    def test_unsupported_scheme(self):
        with pytest.raises(ValidationError) as exc_info:
            _ = EngineConfig(database_url="postgres://localhost/plans").sqlite_path
        assert exc_info.value.field == "database_url"

    def test_invalid_log_level(self):
        with pytest.raises(ValueError):
            EngineConfig(log_level="chatty")

    def test_extra_fields_forbidden(self):
        with pytest.raises(ValueError):
            EngineConfig(colour="red")

    def test_apply_logging(self):
        logger = logging.getLogger("actiongraph")
        previous = logger.level
        try:
            EngineConfig(log_level="DEBUG").apply_logging()
            assert logger.level == logging.DEBUG
        finally:
            logger.setLevel(previous)
