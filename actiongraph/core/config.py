"""
Engine configuration.

Settings come from explicit construction or from environment variables:

    ACTIONGRAPH_DATABASE_URL        memory:// | sqlite:///path/to.db | path/to.db
                                    (falls back to DATABASE_URL)
    ACTIONGRAPH_SQLITE_TIMEOUT      seconds to wait on a locked database
    ACTIONGRAPH_MIRROR_FAMILY_DEPENDENCIES
                                    maintain depends_on(child, parent) for
                                    every family edge (true/false)
    ACTIONGRAPH_LOG_LEVEL           level for the "actiongraph" logger
    ACTIONGRAPH_BACKFILL_BATCH_SIZE actions per backfill batch
    ACTIONGRAPH_BACKFILL_DELAY      seconds to sleep between backfill batches

DATABASE_URL is shared with other services and often names a server
database such as postgres. It is only used when it points at SQLite or
memory; any other scheme is ignored and the in-memory default applies.
A non-SQLite ACTIONGRAPH_DATABASE_URL is an error.

Malformed values raise ValidationError naming the variable.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, Field, field_validator

from actiongraph.core.errors import ValidationError

if TYPE_CHECKING:
    from actiongraph.storage.engine import ActionStore

logger = logging.getLogger(__name__)


MEMORY_URL = "memory://"
SQLITE_SCHEME = "sqlite:///"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValidationError(f"{name} must be a boolean, got {raw!r}", field=name)


def _env_number(name: str, cast: type) -> Optional[float]:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return cast(raw)
    except ValueError as e:
        raise ValidationError(f"{name} must be a number, got {raw!r}", field=name) from e


def _is_local_url(url: str) -> bool:
    url = url.strip()
    return url == MEMORY_URL or url.startswith(SQLITE_SCHEME) or "://" not in url


class EngineConfig(BaseModel):
    """Configuration for an ActionGraph instance."""

    database_url: str = Field(default=MEMORY_URL, description="Where actions are persisted")
    sqlite_timeout: float = Field(default=30.0, gt=0, description="SQLite busy timeout (seconds)")
    mirror_family_dependencies: bool = Field(
        default=False,
        description="Keep a depends_on(child, parent) edge alongside every family edge"
    )
    log_level: str = Field(default="WARNING", description="Level for the actiongraph logger")
    backfill_batch_size: int = Field(default=10, ge=1)
    backfill_delay: float = Field(default=1.0, ge=0)

    model_config = {"extra": "forbid"}

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {v}")
        return level

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Build a config from ACTIONGRAPH_* environment variables."""
        values: dict = {}

        url = os.getenv("ACTIONGRAPH_DATABASE_URL")
        if not url:
            shared = os.getenv("DATABASE_URL")
            if shared and _is_local_url(shared):
                url = shared
            elif shared:
                logger.info("Ignoring non-SQLite DATABASE_URL, using in-memory store")
        if url:
            values["database_url"] = url

        timeout = _env_number("ACTIONGRAPH_SQLITE_TIMEOUT", float)
        if timeout is not None:
            values["sqlite_timeout"] = timeout
        values["mirror_family_dependencies"] = _env_bool(
            "ACTIONGRAPH_MIRROR_FAMILY_DEPENDENCIES", False
        )
        if os.getenv("ACTIONGRAPH_LOG_LEVEL"):
            values["log_level"] = os.environ["ACTIONGRAPH_LOG_LEVEL"]
        batch_size = _env_number("ACTIONGRAPH_BACKFILL_BATCH_SIZE", int)
        if batch_size is not None:
            values["backfill_batch_size"] = batch_size
        delay = _env_number("ACTIONGRAPH_BACKFILL_DELAY", float)
        if delay is not None:
            values["backfill_delay"] = delay

        return cls(**values)

    @property
    def sqlite_path(self) -> Optional[str]:
        """Filesystem path of the SQLite database, or None for in-memory."""
        url = self.database_url.strip()
        if not url or url == MEMORY_URL:
            return None
        if url.startswith(SQLITE_SCHEME):
            return url[len(SQLITE_SCHEME):]
        if "://" in url:
            raise ValidationError(f"Unsupported database URL: {url}", field="database_url")
        return url

    def open_store(self) -> ActionStore:
        """Construct the store this config points at. The caller owns closing it."""
        from actiongraph.storage.engine import InMemoryActionStore
        from actiongraph.storage.sqlite import SQLiteActionStore

        path = self.sqlite_path
        if path is None:
            return InMemoryActionStore()
        return SQLiteActionStore(path, timeout=self.sqlite_timeout)

    def apply_logging(self) -> None:
        """Set the package logger level. Handlers are left to the application."""
        logging.getLogger("actiongraph").setLevel(self.log_level)
